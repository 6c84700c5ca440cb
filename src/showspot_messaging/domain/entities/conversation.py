from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime

from showspot_messaging.domain.value_objects.enums import EntityType


@dataclass(frozen=True, slots=True)
class Conversation:
    """Viewer-relative summary of the exchange with one counterpart."""

    conversation_id: str
    other_entity_id: str
    other_entity_type: EntityType
    other_entity_name: str
    other_entity_image: str | None
    last_message: str
    last_message_at: datetime
    last_message_sender_id: str
    unread_count: int = 0
