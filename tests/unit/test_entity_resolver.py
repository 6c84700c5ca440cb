from __future__ import annotations

import pytest

from showspot_messaging.application.exceptions import NotFoundError, ResolutionError
from showspot_messaging.domain.value_objects.entity_ref import EntityRef
from showspot_messaging.domain.value_objects.enums import EntityType
from showspot_messaging.services import entity_resolver
from tests.conftest import ALICE, BLUE_ROOM, BOB, OWLS


@pytest.mark.asyncio
async def test_acting_entity_prefers_spotter(uow):
    assert await entity_resolver.resolve_acting_entity(BOB.id, uow) == BOB


@pytest.mark.asyncio
async def test_acting_entity_falls_back_to_owned_artist(store, uow):
    store.profiles.pop(BOB)

    assert await entity_resolver.resolve_acting_entity(BOB.id, uow) == OWLS


@pytest.mark.asyncio
async def test_acting_entity_falls_back_to_owned_venue(store, uow):
    store.add_profile(EntityRef(id="venue-dive", type=EntityType.VENUE), "Dive", owner=EntityRef.spotter("acct-9"))

    ref = await entity_resolver.resolve_acting_entity("acct-9", uow)

    assert ref == EntityRef(id="venue-dive", type=EntityType.VENUE)


@pytest.mark.asyncio
async def test_acting_entity_missing_raises_not_found(uow):
    with pytest.raises(NotFoundError):
        await entity_resolver.resolve_acting_entity("nobody", uow)


@pytest.mark.asyncio
async def test_artist_resolves_to_owning_spotter(uow):
    identity = await entity_resolver.resolve_display_identity(OWLS, uow)

    assert identity.ref == BOB
    assert identity.name == "Bob"


@pytest.mark.asyncio
async def test_venue_resolves_to_owning_spotter(uow):
    identity = await entity_resolver.resolve_display_identity(BLUE_ROOM, uow)

    assert identity.ref.is_spotter
    assert identity.ref.id == "spotter-carol"


@pytest.mark.asyncio
async def test_spotter_resolves_to_itself(uow):
    identity = await entity_resolver.resolve_display_identity(ALICE, uow)

    assert identity.ref == ALICE
    assert identity.name == "Alice"


@pytest.mark.asyncio
async def test_unknown_entity_raises_resolution_error(uow):
    with pytest.raises(ResolutionError):
        await entity_resolver.resolve_display_identity(
            EntityRef(id="artist-ghost", type=EntityType.ARTIST), uow,
        )


@pytest.mark.asyncio
async def test_ownerless_artist_raises_resolution_error(store, uow):
    orphan = EntityRef(id="artist-orphan", type=EntityType.ARTIST)
    store.add_profile(orphan, "Orphan")

    with pytest.raises(ResolutionError):
        await entity_resolver.resolve_display_identity(orphan, uow)


@pytest.mark.asyncio
async def test_dangling_owner_raises_resolution_error(store, uow):
    lost = EntityRef(id="artist-lost", type=EntityType.ARTIST)
    store.add_profile(lost, "Lost", owner=EntityRef.spotter("deleted"))

    with pytest.raises(ResolutionError):
        await entity_resolver.resolve_display_identity(lost, uow)


@pytest.mark.asyncio
async def test_store_failure_becomes_resolution_error(store, uow):
    store.failing.add("get_profile")

    with pytest.raises(ResolutionError):
        await entity_resolver.resolve_display_identity(OWLS, uow)


@pytest.mark.asyncio
async def test_to_messaging_identity_skips_lookup_for_spotters(store, uow):
    store.failing.add("get_profile")

    assert await entity_resolver.to_messaging_identity(ALICE, uow) == ALICE


@pytest.mark.asyncio
async def test_search_matches_all_types_excluding_searcher(uow):
    results = await entity_resolver.search_messageable_entities("the", ALICE, uow)

    assert [r.entity_name for r in results] == ["The Blue Room", "The Night Owls"]
    assert {r.entity_type for r in results} == {EntityType.ARTIST, EntityType.VENUE}


@pytest.mark.asyncio
async def test_search_excludes_searcher(uow):
    results = await entity_resolver.search_messageable_entities("alice", ALICE, uow)

    assert results == []


@pytest.mark.asyncio
async def test_blank_search_returns_nothing(store, uow):
    store.failing.add("search")

    assert await entity_resolver.search_messageable_entities("   ", ALICE, uow) == []


@pytest.mark.asyncio
async def test_search_respects_limit(uow):
    results = await entity_resolver.search_messageable_entities("o", ALICE, uow, limit=2)

    assert len(results) == 2
