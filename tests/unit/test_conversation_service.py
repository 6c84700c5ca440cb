from __future__ import annotations

from datetime import timedelta

import pytest

from showspot_messaging.application.exceptions import AggregationError
from showspot_messaging.domain.value_objects.enums import EntityType
from showspot_messaging.services import conversation_service
from tests.conftest import ALICE, BASE_TIME, BLUE_ROOM, BOB, CAROL, OWLS, seed_message


def _at(minutes: int):
    return BASE_TIME + timedelta(minutes=minutes)


@pytest.fixture
def busy_store(store):
    # Alice -> The Night Owls (owned by Bob), Bob replies.
    seed_message(store, ALICE, BOB, "Great show!", at=_at(1), intended_recipient=OWLS)
    seed_message(store, BOB, ALICE, "Thanks!", at=_at(2), intended_sender=OWLS)
    seed_message(store, BOB, ALICE, "See you on the 28th", at=_at(3), intended_sender=OWLS)
    # Carol writes to Alice as herself.
    seed_message(store, CAROL, ALICE, "Coffee?", at=_at(4))
    # Alice asks The Blue Room (owned by Carol) something: Carol already has a thread with Alice.
    seed_message(store, ALICE, CAROL, "All ages?", at=_at(5), intended_recipient=BLUE_ROOM)
    return store


@pytest.mark.asyncio
async def test_groups_partition_conversations_without_duplicates(busy_store, uow):
    groups = await conversation_service.get_all_conversations(ALICE, uow)

    assert set(groups) == set(EntityType)
    ids = [c.other_entity_id for convs in groups.values() for c in convs]
    assert sorted(ids) == sorted({BOB.id, CAROL.id})
    assert len(ids) == len(set(ids))


@pytest.mark.asyncio
async def test_group_follows_first_contact(busy_store, uow):
    groups = await conversation_service.get_all_conversations(ALICE, uow)

    assert [c.other_entity_id for c in groups[EntityType.ARTIST]] == [BOB.id]
    assert [c.other_entity_id for c in groups[EntityType.SPOTTER]] == [CAROL.id]
    assert groups[EntityType.VENUE] == []


@pytest.mark.asyncio
async def test_summary_carries_latest_message_and_unread(busy_store, uow):
    groups = await conversation_service.get_all_conversations(ALICE, uow)

    with_bob = groups[EntityType.ARTIST][0]
    assert with_bob.last_message == "See you on the 28th"
    assert with_bob.last_message_sender_id == BOB.id
    assert with_bob.unread_count == 2
    assert with_bob.other_entity_name == "Bob"


@pytest.mark.asyncio
async def test_unread_matches_history(busy_store, uow):
    groups = await conversation_service.get_all_conversations(ALICE, uow)

    for convs in groups.values():
        for conv in convs:
            expected = sum(
                1 for r in busy_store.messages
                if r.sender.id == conv.other_entity_id and r.recipient == ALICE and not r.is_read
            )
            assert conv.unread_count == expected
    assert await conversation_service.get_unread_total(ALICE, uow) == 3


@pytest.mark.asyncio
async def test_counterpart_sees_own_grouping(busy_store, uow):
    groups = await conversation_service.get_all_conversations(BOB, uow)

    assert [c.other_entity_id for c in groups[EntityType.SPOTTER]] == [ALICE.id]
    assert groups[EntityType.SPOTTER][0].unread_count == 1


@pytest.mark.asyncio
async def test_artist_viewer_sees_owner_conversations(busy_store, uow):
    as_artist = await conversation_service.get_all_conversations(OWLS, uow)
    as_owner = await conversation_service.get_all_conversations(BOB, uow)

    assert as_artist == as_owner


@pytest.mark.asyncio
async def test_groups_sorted_newest_first(store, uow):
    seed_message(store, BOB, ALICE, "older", at=_at(1))
    seed_message(store, CAROL, ALICE, "newer", at=_at(2))

    groups = await conversation_service.get_all_conversations(ALICE, uow)

    assert [c.last_message for c in groups[EntityType.SPOTTER]] == ["newer", "older"]


@pytest.mark.asyncio
async def test_no_messages_gives_empty_groups(uow):
    groups = await conversation_service.get_all_conversations(ALICE, uow)

    assert groups == {t: [] for t in EntityType}


@pytest.mark.asyncio
async def test_store_failure_raises_aggregation_error(store, uow):
    store.failing.add("summarize")

    with pytest.raises(AggregationError):
        await conversation_service.get_all_conversations(ALICE, uow)
    with pytest.raises(AggregationError):
        await conversation_service.get_unread_total(ALICE, uow)
