from __future__ import annotations

from showspot_messaging.domain.entities.profile import EntityProfile, SearchableEntity
from showspot_messaging.domain.value_objects.entity_ref import EntityRef
from showspot_messaging.domain.value_objects.enums import EntityType
from showspot_messaging.infrastructure.db.models.entity import ArtistModel, SpotterModel, VenueModel

ProfileModel = SpotterModel | ArtistModel | VenueModel


def model_to_profile(model: ProfileModel, entity_type: EntityType) -> EntityProfile:
    owner = model.id if isinstance(model, SpotterModel) else model.spotter_id
    return EntityProfile(
        ref=EntityRef(id=model.id, type=entity_type),
        name=model.name,
        image=model.image_url,
        location=model.location,
        owner_spotter_id=owner,
    )


def row_to_searchable(row: object) -> SearchableEntity:
    return SearchableEntity(
        entity_id=row.id,  # type: ignore[attr-defined]
        entity_type=EntityType(row.entity_type),  # type: ignore[attr-defined]
        entity_name=row.name,  # type: ignore[attr-defined]
        entity_image=row.image_url,  # type: ignore[attr-defined]
        entity_location=row.location,  # type: ignore[attr-defined]
    )
