from __future__ import annotations

from dataclasses import dataclass

from showspot_messaging.domain.entities.conversation import Conversation
from showspot_messaging.domain.value_objects.enums import EntityType

ConversationGroups = dict[EntityType, list[Conversation]]


@dataclass(frozen=True, slots=True)
class GroupedConversation:
    """One aggregated row: the summary and the tab it belongs to."""

    group: EntityType
    conversation: Conversation


def empty_groups() -> ConversationGroups:
    return {entity_type: [] for entity_type in EntityType}
