from __future__ import annotations

from sqlalchemy import literal, select, union_all
from sqlalchemy.ext.asyncio import AsyncSession

from showspot_messaging.domain.entities.profile import EntityProfile, SearchableEntity
from showspot_messaging.domain.value_objects.entity_ref import EntityRef
from showspot_messaging.domain.value_objects.enums import EntityType
from showspot_messaging.infrastructure.db.mappers import entity as mapper
from showspot_messaging.infrastructure.db.models.entity import ArtistModel, SpotterModel, VenueModel

_MODELS: dict[EntityType, type[SpotterModel] | type[ArtistModel] | type[VenueModel]] = {
    EntityType.SPOTTER: SpotterModel,
    EntityType.ARTIST: ArtistModel,
    EntityType.VENUE: VenueModel,
}


class EntityReaderRepo:
    def __init__(self, session: AsyncSession) -> None:
        self._session = session

    async def get_profile(self, ref: EntityRef) -> EntityProfile | None:
        model = await self._session.get(_MODELS[ref.type], ref.id)
        return mapper.model_to_profile(model, ref.type) if model else None

    async def find_for_account(
        self, account_id: str, entity_type: EntityType,
    ) -> EntityProfile | None:
        if entity_type == EntityType.SPOTTER:
            return await self.get_profile(EntityRef.spotter(account_id))
        model_cls = _MODELS[entity_type]
        stmt = (
            select(model_cls)
            .where(model_cls.spotter_id == account_id)  # type: ignore[union-attr]
            .order_by(model_cls.created_at.asc(), model_cls.id.asc())
            .limit(1)
        )
        result = await self._session.execute(stmt)
        model = result.scalar_one_or_none()
        return mapper.model_to_profile(model, entity_type) if model else None

    async def search(
        self, query: str, *, exclude: EntityRef, limit: int = 20,
    ) -> list[SearchableEntity]:
        parts = []
        for entity_type, model_cls in _MODELS.items():
            stmt = select(
                model_cls.id,
                literal(entity_type.value).label("entity_type"),
                model_cls.name,
                model_cls.image_url,
                model_cls.location,
            ).where(model_cls.name.icontains(query, autoescape=True))
            if entity_type == exclude.type:
                stmt = stmt.where(model_cls.id != exclude.id)
            parts.append(stmt)

        matches = union_all(*parts).subquery()
        stmt = select(matches).order_by(matches.c.name.asc(), matches.c.id.asc()).limit(limit)
        result = await self._session.execute(stmt)
        return [mapper.row_to_searchable(row) for row in result.all()]
