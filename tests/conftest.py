"""Shared test fixtures."""
from __future__ import annotations

import dataclasses
import itertools
import uuid
from dataclasses import dataclass, field
from datetime import datetime, timedelta, timezone
from types import TracebackType
from typing import Any

import pytest

from showspot_messaging.application.cursor import decode_cursor
from showspot_messaging.application.dto.conversation import GroupedConversation
from showspot_messaging.application.ports.feed import FeedCallback, FeedErrorCallback
from showspot_messaging.application.repositories.outbox import OutboxRecord
from showspot_messaging.domain.entities.conversation import Conversation
from showspot_messaging.domain.entities.message import MessageRecord
from showspot_messaging.domain.entities.profile import EntityProfile, SearchableEntity
from showspot_messaging.domain.value_objects.entity_ref import EntityRef, conversation_key
from showspot_messaging.domain.value_objects.enums import EntityType, MessageType

BASE_TIME = datetime(2026, 3, 1, 12, 0, tzinfo=timezone.utc)

ALICE = EntityRef.spotter("spotter-alice")
BOB = EntityRef.spotter("spotter-bob")
CAROL = EntityRef.spotter("spotter-carol")
OWLS = EntityRef(id="artist-owls", type=EntityType.ARTIST)
BLUE_ROOM = EntityRef(id="venue-blue-room", type=EntityType.VENUE)


class StoreDown(RuntimeError):
    pass


class FakeClock:
    """Deterministic clock. ``now()`` advances by ``step`` on every call."""

    def __init__(self, start: datetime = BASE_TIME, step: timedelta = timedelta(milliseconds=1)) -> None:
        self.current = start
        self.step = step
        self.mono = 1000.0

    def now(self) -> datetime:
        value = self.current
        self.current += self.step
        return value

    def monotonic(self) -> float:
        return self.mono

    def advance(self, seconds: float) -> None:
        self.current += timedelta(seconds=seconds)
        self.mono += seconds


@dataclass
class FakeStore:
    """Rows shared by every FakeUoW opened on it."""

    profiles: dict[EntityRef, EntityProfile] = field(default_factory=dict)
    messages: list[MessageRecord] = field(default_factory=list)
    outbox: list[OutboxRecord] = field(default_factory=list)
    # Operation names that raise StoreDown: get_profile, search, summarize, list_between, insert, mark_read.
    failing: set[str] = field(default_factory=set)
    commits: int = 0

    def check(self, op: str) -> None:
        if op in self.failing:
            raise StoreDown(f"{op} unavailable")

    def add_profile(
        self,
        ref: EntityRef,
        name: str,
        *,
        owner: EntityRef | None = None,
        image: str | None = None,
        location: str | None = None,
    ) -> EntityProfile:
        owner_id = ref.id if ref.is_spotter else (owner.id if owner else None)
        profile = EntityProfile(
            ref=ref, name=name, image=image, location=location, owner_spotter_id=owner_id,
        )
        self.profiles[ref] = profile
        return profile


def seed_message(
    store: FakeStore,
    sender: EntityRef,
    recipient: EntityRef,
    content: str,
    *,
    at: datetime,
    is_read: bool = False,
    intended_sender: EntityRef | None = None,
    intended_recipient: EntityRef | None = None,
) -> MessageRecord:
    record = MessageRecord(
        id=uuid.uuid4(),
        sender=sender,
        recipient=recipient,
        intended_sender=intended_sender or sender,
        intended_recipient=intended_recipient or recipient,
        content=content,
        message_type=MessageType.TEXT,
        is_read=is_read,
        read_at=at if is_read else None,
        client_msg_id=uuid.uuid4(),
        created_at=at,
    )
    store.messages.append(record)
    return record


@dataclass
class FakeEntityReader:
    _store: FakeStore

    async def get_profile(self, ref: EntityRef) -> EntityProfile | None:
        self._store.check("get_profile")
        return self._store.profiles.get(ref)

    async def find_for_account(
        self, account_id: str, entity_type: EntityType,
    ) -> EntityProfile | None:
        self._store.check("get_profile")
        for profile in self._store.profiles.values():
            if profile.ref.type != entity_type:
                continue
            if entity_type == EntityType.SPOTTER and profile.ref.id == account_id:
                return profile
            if entity_type != EntityType.SPOTTER and profile.owner_spotter_id == account_id:
                return profile
        return None

    async def search(
        self, query: str, *, exclude: EntityRef, limit: int = 20,
    ) -> list[SearchableEntity]:
        self._store.check("search")
        needle = query.lower()
        found = [
            SearchableEntity(
                entity_id=p.ref.id,
                entity_type=p.ref.type,
                entity_name=p.name,
                entity_image=p.image,
                entity_location=p.location,
            )
            for p in self._store.profiles.values()
            if needle in p.name.lower() and p.ref != exclude
        ]
        found.sort(key=lambda e: (e.entity_name, e.entity_id))
        return found[:limit]


def _ordered(messages: list[MessageRecord]) -> list[MessageRecord]:
    indexed = list(enumerate(messages))
    indexed.sort(key=lambda pair: (pair[1].created_at, pair[0]))
    return [m for _, m in indexed]


@dataclass
class FakeConversationReader:
    _store: FakeStore

    async def summarize_for(self, viewer: EntityRef) -> list[GroupedConversation]:
        self._store.check("summarize")
        threads: dict[str, list[MessageRecord]] = {}
        for record in _ordered(self._store.messages):
            if record.involves(viewer):
                threads.setdefault(record.other_party(viewer).id, []).append(record)

        rows: list[GroupedConversation] = []
        for other_id, records in threads.items():
            first, last = records[0], records[-1]
            origin = first.intended_recipient if first.sender == viewer else first.intended_sender
            other = EntityRef.spotter(other_id)
            profile = self._store.profiles.get(other)
            rows.append(
                GroupedConversation(
                    group=origin.type,
                    conversation=Conversation(
                        conversation_id=conversation_key(viewer, other),
                        other_entity_id=other_id,
                        other_entity_type=EntityType.SPOTTER,
                        other_entity_name=profile.name if profile else "",
                        other_entity_image=profile.image if profile else None,
                        last_message=last.content,
                        last_message_at=last.created_at,
                        last_message_sender_id=last.sender.id,
                        unread_count=sum(
                            1 for r in records if r.recipient == viewer and not r.is_read
                        ),
                    ),
                )
            )
        rows.sort(key=lambda r: r.conversation.last_message_at, reverse=True)
        return rows

    async def count_unread(self, viewer: EntityRef) -> int:
        self._store.check("summarize")
        return sum(1 for r in self._store.messages if r.recipient == viewer and not r.is_read)


@dataclass
class FakeMessageReader:
    _store: FakeStore

    async def list_between(
        self,
        a: EntityRef,
        b: EntityRef,
        *,
        before: str | None = None,
        limit: int | None = None,
    ) -> list[MessageRecord]:
        self._store.check("list_between")
        found = [
            r for r in _ordered(self._store.messages)
            if (r.sender, r.recipient) in ((a, b), (b, a))
        ]
        if before:
            ts, mid = decode_cursor(before)
            cut = next(
                (i for i, r in enumerate(found) if r.created_at == ts and r.id == mid), None,
            )
            found = found[:cut] if cut is not None else [r for r in found if r.created_at < ts]
        if limit is not None:
            found = found[-limit:]
        return found


@dataclass
class FakeMessageWriter:
    _store: FakeStore

    async def create_if_not_exists(
        self, record: MessageRecord,
    ) -> tuple[MessageRecord, bool]:
        self._store.check("insert")
        for existing in self._store.messages:
            if existing.sender == record.sender and existing.client_msg_id == record.client_msg_id:
                return existing, False
        self._store.messages.append(record)
        return record, True

    async def mark_read(
        self, reader: EntityRef, sender: EntityRef, read_at: datetime,
    ) -> int:
        self._store.check("mark_read")
        updated = 0
        for index, record in enumerate(self._store.messages):
            if record.recipient == reader and record.sender == sender and not record.is_read:
                self._store.messages[index] = dataclasses.replace(record, is_read=True, read_at=read_at)
                updated += 1
        return updated


@dataclass
class FakeOutboxWriter:
    _store: FakeStore
    _ids: Any = field(default_factory=lambda: itertools.count(1))
    sent: list[int] = field(default_factory=list)
    failed: list[tuple[int, datetime]] = field(default_factory=list)

    async def add(self, event_type: str, channels: list[str], payload: dict[str, Any]) -> None:
        self._store.outbox.append(
            OutboxRecord(
                id=next(self._ids),
                event_type=event_type,
                channels=list(channels),
                payload=payload,
                attempts=0,
            )
        )

    async def fetch_pending(self, batch_size: int) -> list[OutboxRecord]:
        return self._store.outbox[:batch_size]

    async def mark_sent(self, ids: list[int]) -> None:
        self.sent.extend(ids)
        self._store.outbox = [r for r in self._store.outbox if r.id not in ids]

    async def mark_failed(self, record_id: int, next_retry_at: datetime) -> None:
        self.failed.append((record_id, next_retry_at))


@dataclass
class FakeUoW:
    """In-memory UoW for unit tests."""
    store: FakeStore = field(default_factory=FakeStore)
    _committed: bool = False

    def __post_init__(self) -> None:
        self.entities = FakeEntityReader(self.store)
        self.conversations = FakeConversationReader(self.store)
        self.messages = FakeMessageReader(self.store)
        self.messages_w = FakeMessageWriter(self.store)
        self.outbox = FakeOutboxWriter(self.store)

    async def flush(self) -> None:
        pass

    async def commit(self) -> None:
        self._committed = True
        self.store.commits += 1

    async def rollback(self) -> None:
        pass

    async def __aenter__(self) -> FakeUoW:
        return self

    async def __aexit__(
        self,
        exc_type: type[BaseException] | None,
        exc_val: BaseException | None,
        exc_tb: TracebackType | None,
    ) -> None:
        if exc_type is not None:
            await self.rollback()


class FakeSubscription:
    def __init__(
        self, channel: str, callback: FeedCallback, on_error: FeedErrorCallback | None,
    ) -> None:
        self.channel = channel
        self.callback = callback
        self.on_error = on_error
        self.closed = False

    async def deliver(self, payload: dict[str, Any]) -> None:
        """Invoke the callback even after close, like a late in-flight event."""
        await self.callback(payload)

    async def close(self) -> None:
        self.closed = True


class FakeChangeFeed:
    def __init__(self) -> None:
        self.subscriptions: list[FakeSubscription] = []
        self.fail_next = 0

    async def subscribe(
        self,
        channel: str,
        callback: FeedCallback,
        on_error: FeedErrorCallback | None = None,
    ) -> FakeSubscription:
        if self.fail_next:
            self.fail_next -= 1
            raise ConnectionError("feed unavailable")
        subscription = FakeSubscription(channel, callback, on_error)
        self.subscriptions.append(subscription)
        return subscription

    def active(self, channel: str | None = None) -> list[FakeSubscription]:
        return [
            s for s in self.subscriptions
            if not s.closed and (channel is None or s.channel == channel)
        ]

    async def publish(self, channel: str, payload: dict[str, Any]) -> None:
        for subscription in self.active(channel):
            await subscription.deliver(payload)

    async def drop(self, channel: str, exc: BaseException) -> None:
        for subscription in self.active(channel):
            if subscription.on_error is not None:
                await subscription.on_error(exc)

    async def flush_outbox(self, store: FakeStore) -> int:
        """Deliver every pending outbox record, like the outbox worker would."""
        records, store.outbox = store.outbox, []
        for record in records:
            for channel in record.channels:
                await self.publish(channel, record.payload)
        return len(records)


@pytest.fixture
def store() -> FakeStore:
    store = FakeStore()
    store.add_profile(ALICE, "Alice", location="Brooklyn, NY")
    store.add_profile(BOB, "Bob", location="Austin, TX")
    store.add_profile(CAROL, "Carol", location="Chicago, IL")
    store.add_profile(OWLS, "The Night Owls", owner=BOB, location="Austin, TX")
    store.add_profile(BLUE_ROOM, "The Blue Room", owner=CAROL, location="Chicago, IL")
    return store


@pytest.fixture
def uow(store: FakeStore) -> FakeUoW:
    return FakeUoW(store=store)


@pytest.fixture
def uow_factory(store: FakeStore):
    return lambda: FakeUoW(store=store)


@pytest.fixture
def clock() -> FakeClock:
    return FakeClock()


@pytest.fixture
def feed() -> FakeChangeFeed:
    return FakeChangeFeed()
