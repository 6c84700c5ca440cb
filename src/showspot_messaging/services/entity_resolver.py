"""Maps accounts and entity references onto messageable spotter identities.

Artists and venues are never messaged directly: every message is addressed
to the spotter that owns the profile. All code that needs a messaging
address or a display identity goes through :func:`resolve_display_identity`.
"""
from __future__ import annotations

import logging
from typing import Awaitable, Callable

from showspot_messaging.application.exceptions import (
    AppError,
    NotFoundError,
    ResolutionError,
)
from showspot_messaging.application.uow import UnitOfWork
from showspot_messaging.domain.entities.profile import (
    DisplayIdentity,
    EntityProfile,
    SearchableEntity,
)
from showspot_messaging.domain.value_objects.entity_ref import EntityRef
from showspot_messaging.domain.value_objects.enums import EntityType

logger = logging.getLogger(__name__)

# Acting-identity precedence for an account.
_ACTING_PRECEDENCE: tuple[EntityType, ...] = (
    EntityType.SPOTTER,
    EntityType.ARTIST,
    EntityType.VENUE,
)


async def resolve_acting_entity(account_id: str, uow: UnitOfWork) -> EntityRef:
    """Return the spotter, artist or venue the account currently acts as."""
    for entity_type in _ACTING_PRECEDENCE:
        profile = await uow.entities.find_for_account(account_id, entity_type)
        if profile is not None:
            return profile.ref
    raise NotFoundError(f"No messaging entity for account {account_id}")


async def _spotter_itself(profile: EntityProfile, uow: UnitOfWork) -> DisplayIdentity:
    return DisplayIdentity(ref=profile.ref, name=profile.name, image=profile.image)


async def _owning_spotter(profile: EntityProfile, uow: UnitOfWork) -> DisplayIdentity:
    if not profile.owner_spotter_id:
        raise ResolutionError(f"{profile.ref.key} has no owning spotter")
    owner = await uow.entities.get_profile(EntityRef.spotter(profile.owner_spotter_id))
    if owner is None:
        raise ResolutionError(
            f"Spotter {profile.owner_spotter_id} owning {profile.ref.key} not found"
        )
    return DisplayIdentity(ref=owner.ref, name=owner.name, image=owner.image)


_Resolver = Callable[[EntityProfile, UnitOfWork], Awaitable[DisplayIdentity]]

_RESOLVERS: dict[EntityType, _Resolver] = {
    EntityType.SPOTTER: _spotter_itself,
    EntityType.ARTIST: _owning_spotter,
    EntityType.VENUE: _owning_spotter,
}

_missing = set(EntityType) - set(_RESOLVERS)
if _missing:
    raise RuntimeError(f"No identity resolver for entity types: {sorted(_missing)}")


async def resolve_display_identity(ref: EntityRef, uow: UnitOfWork) -> DisplayIdentity:
    """Resolve ``ref`` to the spotter that is messaged on its behalf."""
    try:
        profile = await uow.entities.get_profile(ref)
    except AppError:
        raise
    except Exception as exc:
        logger.exception("Profile lookup failed for %s", ref.key)
        raise ResolutionError(f"Could not look up {ref.key}") from exc
    if profile is None:
        raise ResolutionError(f"Entity {ref.key} not found")
    return await _RESOLVERS[ref.type](profile, uow)


async def to_messaging_identity(ref: EntityRef, uow: UnitOfWork) -> EntityRef:
    """Spotter ref used to address messages for ``ref``. No I/O for spotters."""
    if ref.is_spotter:
        return ref
    identity = await resolve_display_identity(ref, uow)
    return identity.ref


async def search_messageable_entities(
    query: str,
    searcher: EntityRef,
    uow: UnitOfWork,
    *,
    limit: int = 20,
) -> list[SearchableEntity]:
    query = query.strip()
    if not query:
        return []
    return await uow.entities.search(query, exclude=searcher, limit=limit)
