from __future__ import annotations

from datetime import datetime
from typing import Protocol

from showspot_messaging.domain.entities.message import MessageRecord
from showspot_messaging.domain.value_objects.entity_ref import EntityRef


class MessageReader(Protocol):
    async def list_between(
        self,
        a: EntityRef,
        b: EntityRef,
        *,
        before: str | None = None,
        limit: int | None = None,
    ) -> list[MessageRecord]:
        """Messages exchanged by ``a`` and ``b``, oldest first.

        With ``limit`` only the newest ``limit`` messages older than the
        ``before`` cursor are returned.
        """
        ...


class MessageWriter(Protocol):
    async def create_if_not_exists(
        self, record: MessageRecord,
    ) -> tuple[MessageRecord, bool]:
        """Insert message. Return (message, created). If conflict on client_msg_id → return existing."""
        ...

    async def mark_read(
        self, reader: EntityRef, sender: EntityRef, read_at: datetime,
    ) -> int:
        """Mark unread messages from ``sender`` to ``reader`` as read; return count."""
        ...
