from __future__ import annotations

import logging

from showspot_messaging.application.dto.conversation import ConversationGroups, empty_groups
from showspot_messaging.application.exceptions import AggregationError, AppError
from showspot_messaging.application.uow import UnitOfWork
from showspot_messaging.domain.value_objects.entity_ref import EntityRef
from showspot_messaging.services.entity_resolver import to_messaging_identity

logger = logging.getLogger(__name__)


async def get_all_conversations(
    viewer: EntityRef,
    uow: UnitOfWork,
) -> ConversationGroups:
    """Conversations of ``viewer`` grouped by counterpart origin type.

    Every group key is present. Each list is newest first.
    """
    identity = await to_messaging_identity(viewer, uow)
    try:
        rows = await uow.conversations.summarize_for(identity)
    except AppError:
        raise
    except Exception as exc:
        logger.exception("Conversation aggregation failed for %s", identity.key)
        raise AggregationError("Could not load conversations") from exc

    groups = empty_groups()
    seen: set[str] = set()
    for row in rows:
        conv = row.conversation
        if conv.other_entity_id in seen:
            logger.warning(
                "Duplicate summary for counterpart %s ignored", conv.other_entity_id,
            )
            continue
        seen.add(conv.other_entity_id)
        groups[row.group].append(conv)

    for convs in groups.values():
        convs.sort(key=lambda c: c.last_message_at, reverse=True)
    return groups


async def get_unread_total(viewer: EntityRef, uow: UnitOfWork) -> int:
    identity = await to_messaging_identity(viewer, uow)
    try:
        return await uow.conversations.count_unread(identity)
    except AppError:
        raise
    except Exception as exc:
        logger.exception("Unread count failed for %s", identity.key)
        raise AggregationError("Could not load unread count") from exc
