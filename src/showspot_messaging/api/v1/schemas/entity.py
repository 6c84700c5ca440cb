from __future__ import annotations

from pydantic import BaseModel

from showspot_messaging.domain.value_objects.enums import EntityType


class EntityRefResponse(BaseModel):
    id: str
    type: EntityType

    model_config = {"from_attributes": True}


class IdentityResponse(BaseModel):
    """The spotter that is messaged on behalf of an entity."""

    id: str
    type: EntityType
    name: str
    image: str | None = None


class SearchableEntityResponse(BaseModel):
    entity_id: str
    entity_type: EntityType
    entity_name: str
    entity_image: str | None = None
    entity_location: str | None = None

    model_config = {"from_attributes": True}
