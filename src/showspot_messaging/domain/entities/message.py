from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime
from uuid import UUID

from showspot_messaging.domain.value_objects.entity_ref import EntityRef
from showspot_messaging.domain.value_objects.enums import (
    DeliveryStatus,
    EntityType,
    MessageType,
)

MAX_MESSAGE_LENGTH = 5000


@dataclass(frozen=True, slots=True)
class MessageRecord:
    """A stored message row.

    ``sender``/``recipient`` are always spotter refs. The ``intended_*`` refs
    keep the artist or venue identity the message was composed against.
    """

    id: UUID
    sender: EntityRef
    recipient: EntityRef
    intended_sender: EntityRef
    intended_recipient: EntityRef
    content: str
    message_type: MessageType
    is_read: bool
    read_at: datetime | None
    client_msg_id: UUID
    created_at: datetime

    def involves(self, ref: EntityRef) -> bool:
        return ref in (self.sender, self.recipient)

    def other_party(self, viewer: EntityRef) -> EntityRef:
        return self.recipient if self.sender == viewer else self.sender


@dataclass(frozen=True, slots=True)
class Message:
    """A message as rendered for one viewer."""

    message_id: UUID
    sender_id: str
    sender_type: EntityType
    sender_name: str
    sender_image: str | None
    message_content: str
    message_type: MessageType
    is_read: bool
    created_at: datetime
    is_own_message: bool
    client_msg_id: UUID | None = None
    delivery: DeliveryStatus = DeliveryStatus.SENT
