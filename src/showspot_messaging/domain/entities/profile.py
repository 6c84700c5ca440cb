from __future__ import annotations

from dataclasses import dataclass

from showspot_messaging.domain.value_objects.entity_ref import EntityRef
from showspot_messaging.domain.value_objects.enums import EntityType


@dataclass(frozen=True, slots=True)
class EntityProfile:
    ref: EntityRef
    name: str
    image: str | None
    location: str | None
    owner_spotter_id: str | None


@dataclass(frozen=True, slots=True)
class DisplayIdentity:
    """Name and image to show for a participant. ``ref`` is always a spotter."""

    ref: EntityRef
    name: str
    image: str | None = None


@dataclass(frozen=True, slots=True)
class SearchableEntity:
    entity_id: str
    entity_type: EntityType
    entity_name: str
    entity_image: str | None = None
    entity_location: str | None = None

    @property
    def ref(self) -> EntityRef:
        return EntityRef(id=self.entity_id, type=self.entity_type)
