from __future__ import annotations

from showspot_messaging.domain.entities.message import MessageRecord
from showspot_messaging.domain.value_objects.entity_ref import EntityRef
from showspot_messaging.domain.value_objects.enums import EntityType, MessageType
from showspot_messaging.infrastructure.db.models.message import MessageModel


def model_to_entity(model: MessageModel) -> MessageRecord:
    return MessageRecord(
        id=model.id,
        sender=EntityRef(id=model.sender_id, type=EntityType(model.sender_type)),
        recipient=EntityRef(id=model.recipient_id, type=EntityType(model.recipient_type)),
        intended_sender=EntityRef(
            id=model.intended_sender_id, type=EntityType(model.intended_sender_type),
        ),
        intended_recipient=EntityRef(
            id=model.intended_recipient_id, type=EntityType(model.intended_recipient_type),
        ),
        content=model.content,
        message_type=MessageType(model.message_type),
        is_read=model.is_read,
        read_at=model.read_at,
        client_msg_id=model.client_msg_id,
        created_at=model.created_at,
    )


def entity_to_values(entity: MessageRecord) -> dict[str, object]:
    """Column values for an INSERT of ``entity``."""
    return {
        "id": entity.id,
        "sender_id": entity.sender.id,
        "sender_type": entity.sender.type.value,
        "recipient_id": entity.recipient.id,
        "recipient_type": entity.recipient.type.value,
        "intended_sender_id": entity.intended_sender.id,
        "intended_sender_type": entity.intended_sender.type.value,
        "intended_recipient_id": entity.intended_recipient.id,
        "intended_recipient_type": entity.intended_recipient.type.value,
        "content": entity.content,
        "message_type": entity.message_type.value,
        "is_read": entity.is_read,
        "read_at": entity.read_at,
        "client_msg_id": entity.client_msg_id,
        "created_at": entity.created_at,
    }
