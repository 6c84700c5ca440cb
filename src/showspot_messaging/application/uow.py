from __future__ import annotations

from contextlib import AbstractAsyncContextManager
from typing import Callable, Protocol

from showspot_messaging.application.repositories.conversation import ConversationReader
from showspot_messaging.application.repositories.entity import EntityReader
from showspot_messaging.application.repositories.message import MessageReader, MessageWriter
from showspot_messaging.application.repositories.outbox import OutboxWriter


class UnitOfWork(Protocol):
    entities: EntityReader
    conversations: ConversationReader
    messages: MessageReader
    messages_w: MessageWriter
    outbox: OutboxWriter

    async def commit(self) -> None: ...
    async def rollback(self) -> None: ...
    async def flush(self) -> None: ...


# Opens a fresh unit of work per operation; used by long-lived sessions.
UowFactory = Callable[[], AbstractAsyncContextManager[UnitOfWork]]
