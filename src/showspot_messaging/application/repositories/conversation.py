from __future__ import annotations

from typing import Protocol

from showspot_messaging.application.dto.conversation import GroupedConversation
from showspot_messaging.domain.value_objects.entity_ref import EntityRef


class ConversationReader(Protocol):
    async def summarize_for(self, viewer: EntityRef) -> list[GroupedConversation]:
        """One row per counterpart: newest message, unread count, origin group."""
        ...

    async def count_unread(self, viewer: EntityRef) -> int: ...
