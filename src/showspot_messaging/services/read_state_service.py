from __future__ import annotations

import logging

from showspot_messaging.application.exceptions import AppError
from showspot_messaging.application.state.chat_timeline import ChatTimeline
from showspot_messaging.application.state.conversation_cache import ConversationCache
from showspot_messaging.application.ports.clock import Clock, SystemClock
from showspot_messaging.application.uow import UnitOfWork, UowFactory
from showspot_messaging.domain.value_objects.entity_ref import EntityRef
from showspot_messaging.services.entity_resolver import to_messaging_identity

logger = logging.getLogger(__name__)


async def mark_read(
    viewer: EntityRef,
    counterpart: EntityRef,
    uow: UnitOfWork,
    *,
    clock: Clock | None = None,
) -> int:
    """Mark everything the counterpart sent the viewer as read. Returns rows changed."""
    reader = await to_messaging_identity(viewer, uow)
    sender = await to_messaging_identity(counterpart, uow)
    now = (clock or SystemClock()).now()
    updated = await uow.messages_w.mark_read(reader, sender, now)
    await uow.commit()
    return updated


class ReadStateTracker:
    """Keeps the store and a session's cached views in agreement on read state."""

    def __init__(
        self,
        uow_factory: UowFactory,
        cache: ConversationCache,
        *,
        clock: Clock | None = None,
    ) -> None:
        self._uow_factory = uow_factory
        self._cache = cache
        self._clock = clock or SystemClock()

    async def mark_read(
        self,
        viewer: EntityRef,
        counterpart: EntityRef,
        timeline: ChatTimeline | None = None,
    ) -> int:
        resolved = counterpart
        updated = 0
        stored = False
        try:
            async with self._uow_factory() as uow:
                resolved = await to_messaging_identity(counterpart, uow)
                updated = await mark_read(viewer, resolved, uow, clock=self._clock)
            stored = True
        except AppError:
            raise
        except Exception:
            # Reset the view only; without a read mark the next refresh restores the count.
            logger.exception("mark_read failed for %s", counterpart.key)

        # The cached summary may be keyed by either id, and may sit in any tab.
        self._cache.reset_unread(
            counterpart.id, resolved.id, as_of=self._clock.now() if stored else None,
        )
        if timeline is not None:
            timeline.mark_incoming_read()
        return updated
