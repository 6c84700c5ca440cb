"""Message list of the conversation currently open in a session."""
from __future__ import annotations

import bisect
import dataclasses
import itertools
import uuid
from datetime import datetime
from uuid import UUID

from showspot_messaging.application.exceptions import AppError
from showspot_messaging.application.ports.clock import Clock, SystemClock
from showspot_messaging.domain.entities.message import Message
from showspot_messaging.domain.entities.profile import DisplayIdentity
from showspot_messaging.domain.value_objects.entity_ref import EntityRef
from showspot_messaging.domain.value_objects.enums import DeliveryStatus, MessageType


class ChatTimeline:
    """Ordered, de-duplicated messages exchanged with one counterpart.

    Persisted messages are kept ascending by ``created_at``, ties in arrival
    order. Optimistic sends that are pending or failed follow them, in send
    order, until they are confirmed or discarded.
    """

    def __init__(
        self,
        me: DisplayIdentity,
        counterpart: DisplayIdentity,
        *,
        requested: EntityRef | None = None,
        clock: Clock | None = None,
        echo_window: float = 5.0,
    ) -> None:
        self.me = me
        self.counterpart = counterpart
        # The ref the chat was opened with; may be the artist/venue behind ``counterpart``.
        self.requested = requested or counterpart.ref
        self.error: AppError | None = None
        self.loaded = False
        self._clock = clock or SystemClock()
        self._echo_window = echo_window
        self._seq = itertools.count()
        self._entries: list[tuple[datetime, int, Message]] = []
        self._ids: set[UUID] = set()
        self._pending: list[Message] = []
        self._sent_at: dict[UUID, float] = {}

    @property
    def messages(self) -> list[Message]:
        return [m for _, _, m in self._entries] + list(self._pending)

    @property
    def pending(self) -> list[Message]:
        return list(self._pending)

    def is_with(self, ref: EntityRef) -> bool:
        return ref.id in (self.counterpart.ref.id, self.requested.id)

    def load(self, history: list[Message]) -> None:
        """Adopt a fetched history, keeping anything the feed delivered meanwhile."""
        previous = [m for _, _, m in self._entries]
        self._entries = []
        self._ids = set()
        for message in history:
            self._insert(message)
        for message in previous:
            if message.message_id not in self._ids:
                self._insert(message)
        persisted_client_ids = {m.client_msg_id for m in history if m.client_msg_id}
        self._pending = [
            m for m in self._pending if m.client_msg_id not in persisted_client_ids
        ]
        self.loaded = True
        self.error = None

    def add_optimistic(
        self,
        content: str,
        *,
        client_msg_id: UUID | None = None,
        message_type: MessageType = MessageType.TEXT,
    ) -> Message:
        local_id = client_msg_id or uuid.uuid4()
        message = Message(
            message_id=local_id,
            sender_id=self.me.ref.id,
            sender_type=self.me.ref.type,
            sender_name=self.me.name,
            sender_image=self.me.image,
            message_content=content,
            message_type=message_type,
            is_read=True,
            created_at=self._clock.now(),
            is_own_message=True,
            client_msg_id=local_id,
            delivery=DeliveryStatus.PENDING,
        )
        self._pending.append(message)
        self._sent_at[local_id] = self._clock.monotonic()
        return message

    def confirm(self, client_msg_id: UUID, canonical: Message) -> Message:
        """Swap the optimistic entry for the persisted one. Never duplicates."""
        self._take_pending(client_msg_id)
        canonical = dataclasses.replace(
            canonical, client_msg_id=client_msg_id, delivery=DeliveryStatus.SENT,
        )
        if canonical.message_id in self._ids:
            # The feed echo got here first.
            return self._get(canonical.message_id) or canonical
        self._insert(canonical)
        return canonical

    def mark_failed(self, client_msg_id: UUID) -> Message | None:
        for index, message in enumerate(self._pending):
            if message.client_msg_id == client_msg_id:
                failed = dataclasses.replace(message, delivery=DeliveryStatus.FAILED)
                self._pending[index] = failed
                return failed
        return None

    def discard(self, client_msg_id: UUID) -> Message | None:
        return self._take_pending(client_msg_id)

    def apply_incoming(self, message: Message) -> bool:
        """Merge a feed message. Returns False for duplicates."""
        if message.message_id in self._ids:
            return False
        if message.is_own_message:
            echoed = self._match_echo(message)
            if echoed is not None:
                self._take_pending(echoed)
                message = dataclasses.replace(message, client_msg_id=echoed, is_read=True)
        self._insert(dataclasses.replace(message, delivery=DeliveryStatus.SENT))
        return True

    def mark_incoming_read(self) -> int:
        changed = 0
        for index, (ts, seq, message) in enumerate(self._entries):
            if not message.is_own_message and not message.is_read:
                self._entries[index] = (ts, seq, dataclasses.replace(message, is_read=True))
                changed += 1
        return changed

    def _match_echo(self, message: Message) -> UUID | None:
        if message.client_msg_id is not None:
            for pending in self._pending:
                if pending.client_msg_id == message.client_msg_id:
                    return pending.client_msg_id
        now = self._clock.monotonic()
        for pending in self._pending:
            sent_at = self._sent_at.get(pending.client_msg_id)  # type: ignore[arg-type]
            if (
                pending.delivery == DeliveryStatus.PENDING
                and pending.message_content == message.message_content
                and sent_at is not None
                and now - sent_at <= self._echo_window
            ):
                return pending.client_msg_id
        return None

    def _take_pending(self, client_msg_id: UUID) -> Message | None:
        for index, message in enumerate(self._pending):
            if message.client_msg_id == client_msg_id:
                self._sent_at.pop(client_msg_id, None)
                return self._pending.pop(index)
        return None

    def _get(self, message_id: UUID) -> Message | None:
        for _, _, message in self._entries:
            if message.message_id == message_id:
                return message
        return None

    def _insert(self, message: Message) -> None:
        bisect.insort(self._entries, (message.created_at, next(self._seq), message))
        self._ids.add(message.message_id)
