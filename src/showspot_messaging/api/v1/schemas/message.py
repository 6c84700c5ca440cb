from __future__ import annotations

from datetime import datetime
from uuid import UUID

from pydantic import BaseModel, Field

from showspot_messaging.domain.value_objects.enums import DeliveryStatus, EntityType, MessageType


class SendMessageRequest(BaseModel):
    content: str = Field(min_length=1)
    client_msg_id: UUID | None = None


class MessageResponse(BaseModel):
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

    model_config = {"from_attributes": True}


class MarkReadResponse(BaseModel):
    updated: int
