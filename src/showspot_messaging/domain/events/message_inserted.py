from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime
from typing import Any
from uuid import UUID

from showspot_messaging.domain.entities.message import MessageRecord
from showspot_messaging.domain.value_objects.entity_ref import EntityRef
from showspot_messaging.domain.value_objects.enums import EntityType, MessageType


@dataclass(frozen=True, slots=True)
class MessageInserted:
    """Change-feed event announcing a new ``messages`` row."""

    message_id: UUID
    sender: EntityRef
    recipient: EntityRef
    intended_sender: EntityRef
    intended_recipient: EntityRef
    content: str
    message_type: MessageType
    client_msg_id: UUID | None
    created_at: datetime

    @classmethod
    def from_record(cls, record: MessageRecord) -> MessageInserted:
        return cls(
            message_id=record.id,
            sender=record.sender,
            recipient=record.recipient,
            intended_sender=record.intended_sender,
            intended_recipient=record.intended_recipient,
            content=record.content,
            message_type=record.message_type,
            client_msg_id=record.client_msg_id,
            created_at=record.created_at,
        )

    @classmethod
    def from_payload(cls, data: dict[str, Any]) -> MessageInserted:
        """Parse a raw feed payload. Raises ``KeyError``/``ValueError`` on bad input."""
        sender = _ref(data, "sender")
        recipient = _ref(data, "recipient")
        client_msg_id = data.get("client_msg_id")
        return cls(
            message_id=UUID(str(data["message_id"])),
            sender=sender,
            recipient=recipient,
            intended_sender=_ref(data, "intended_sender", default=sender),
            intended_recipient=_ref(data, "intended_recipient", default=recipient),
            content=data["message_content"],
            message_type=MessageType(data.get("message_type", MessageType.TEXT)),
            client_msg_id=UUID(str(client_msg_id)) if client_msg_id else None,
            created_at=datetime.fromisoformat(str(data["created_at"])),
        )

    def to_payload(self) -> dict[str, Any]:
        return {
            "message_id": str(self.message_id),
            "sender_id": self.sender.id,
            "sender_type": self.sender.type.value,
            "recipient_id": self.recipient.id,
            "recipient_type": self.recipient.type.value,
            "intended_sender_id": self.intended_sender.id,
            "intended_sender_type": self.intended_sender.type.value,
            "intended_recipient_id": self.intended_recipient.id,
            "intended_recipient_type": self.intended_recipient.type.value,
            "message_content": self.content,
            "message_type": self.message_type.value,
            "client_msg_id": str(self.client_msg_id) if self.client_msg_id else None,
            "created_at": self.created_at.isoformat(),
        }


def _ref(
    data: dict[str, Any], prefix: str, *, default: EntityRef | None = None,
) -> EntityRef:
    entity_id = data.get(f"{prefix}_id")
    if entity_id is None:
        if default is None:
            raise KeyError(f"{prefix}_id")
        return default
    return EntityRef(
        id=str(entity_id),
        type=EntityType(data.get(f"{prefix}_type", EntityType.SPOTTER)),
    )
