from __future__ import annotations

from datetime import datetime

from pydantic import BaseModel

from showspot_messaging.application.dto.conversation import ConversationGroups
from showspot_messaging.domain.value_objects.enums import EntityType


class ConversationResponse(BaseModel):
    conversation_id: str
    other_entity_id: str
    other_entity_type: EntityType
    other_entity_name: str
    other_entity_image: str | None
    last_message: str
    last_message_at: datetime
    last_message_sender_id: str
    unread_count: int

    model_config = {"from_attributes": True}


class ConversationGroupsResponse(BaseModel):
    spotter: list[ConversationResponse] = []
    artist: list[ConversationResponse] = []
    venue: list[ConversationResponse] = []

    @classmethod
    def from_groups(cls, groups: ConversationGroups) -> ConversationGroupsResponse:
        return cls(
            **{
                entity_type.value: [
                    ConversationResponse.model_validate(c, from_attributes=True)
                    for c in groups.get(entity_type, [])
                ]
                for entity_type in EntityType
            }
        )


class UnreadCountResponse(BaseModel):
    unread_count: int
