from __future__ import annotations

from typing import Protocol

from showspot_messaging.domain.entities.profile import EntityProfile, SearchableEntity
from showspot_messaging.domain.value_objects.entity_ref import EntityRef
from showspot_messaging.domain.value_objects.enums import EntityType


class EntityReader(Protocol):
    async def get_profile(self, ref: EntityRef) -> EntityProfile | None: ...

    async def find_for_account(
        self, account_id: str, entity_type: EntityType,
    ) -> EntityProfile | None:
        """Spotter whose id is the account id, or the artist/venue the account owns."""
        ...

    async def search(
        self, query: str, *, exclude: EntityRef, limit: int = 20,
    ) -> list[SearchableEntity]: ...
