from __future__ import annotations

from fastapi import APIRouter, Query

from showspot_messaging.api.deps import CurrentViewer, UoWDep
from showspot_messaging.api.v1.schemas.entity import (
    EntityRefResponse,
    IdentityResponse,
    SearchableEntityResponse,
)
from showspot_messaging.config import settings
from showspot_messaging.domain.value_objects.entity_ref import EntityRef
from showspot_messaging.domain.value_objects.enums import EntityType
from showspot_messaging.services import entity_resolver

router = APIRouter(prefix="/api/v1/messaging", tags=["entities"])


@router.get("/me", response_model=EntityRefResponse)
async def get_acting_entity(viewer: CurrentViewer) -> EntityRefResponse:
    return EntityRefResponse.model_validate(viewer, from_attributes=True)


@router.get("/entities/search", response_model=list[SearchableEntityResponse])
async def search_entities(
    viewer: CurrentViewer,
    uow: UoWDep,
    q: str = Query("", max_length=200),
) -> list[SearchableEntityResponse]:
    results = await entity_resolver.search_messageable_entities(
        q, viewer, uow, limit=settings.SEARCH_LIMIT,
    )
    return [SearchableEntityResponse.model_validate(r, from_attributes=True) for r in results]


@router.get("/entities/{entity_type}/{entity_id}/identity", response_model=IdentityResponse)
async def get_identity(
    entity_type: EntityType,
    entity_id: str,
    viewer: CurrentViewer,
    uow: UoWDep,
) -> IdentityResponse:
    identity = await entity_resolver.resolve_display_identity(
        EntityRef(id=entity_id, type=entity_type), uow,
    )
    return IdentityResponse(
        id=identity.ref.id,
        type=identity.ref.type,
        name=identity.name,
        image=identity.image,
    )
