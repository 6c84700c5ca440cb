from __future__ import annotations

import logging
import uuid

from showspot_messaging.application.cursor import encode_cursor
from showspot_messaging.application.exceptions import AppError, HistoryLoadError, SendError
from showspot_messaging.application.ports.clock import Clock, SystemClock
from showspot_messaging.application.ports.feed import DEFAULT_CHANNEL_PREFIX, channel_for
from showspot_messaging.application.uow import UnitOfWork
from showspot_messaging.domain.entities.message import MAX_MESSAGE_LENGTH, Message, MessageRecord
from showspot_messaging.domain.entities.profile import DisplayIdentity
from showspot_messaging.domain.events.message_inserted import MessageInserted
from showspot_messaging.domain.value_objects.entity_ref import EntityRef
from showspot_messaging.domain.value_objects.enums import MessageType
from showspot_messaging.services.entity_resolver import (
    resolve_display_identity,
    to_messaging_identity,
)

logger = logging.getLogger(__name__)

MESSAGE_INSERTED = "message.inserted"


def validate_content(content: str, max_length: int = MAX_MESSAGE_LENGTH) -> str:
    """Return the trimmed content or raise a non-retryable ``SendError``."""
    text = (content or "").strip()
    if not text:
        raise SendError("Message cannot be empty")
    if len(text) > max_length:
        raise SendError(f"Message is too long (max {max_length} characters)")
    return text


def present_message(
    record: MessageRecord | MessageInserted,
    viewer: EntityRef,
    sender: DisplayIdentity,
    *,
    is_read: bool | None = None,
) -> Message:
    """Render a stored row or feed event for ``viewer`` (a spotter ref)."""
    if isinstance(record, MessageRecord):
        message_id = record.id
        content = record.content
        read = record.is_read
    else:
        message_id = record.message_id
        content = record.content
        read = False
    return Message(
        message_id=message_id,
        sender_id=record.sender.id,
        sender_type=record.sender.type,
        sender_name=sender.name,
        sender_image=sender.image,
        message_content=content,
        message_type=record.message_type,
        is_read=read if is_read is None else is_read,
        created_at=record.created_at,
        is_own_message=record.sender.id == viewer.id,
        client_msg_id=record.client_msg_id,
    )


def history_cursor(message: Message) -> str:
    """Cursor for the page of messages older than ``message``."""
    return encode_cursor(message.created_at, message.message_id)


async def load_history(
    viewer: EntityRef,
    counterpart: EntityRef,
    uow: UnitOfWork,
    *,
    before: str | None = None,
    limit: int | None = None,
) -> list[Message]:
    """Messages between the viewer and the counterpart, oldest first.

    Without ``limit`` the whole history is returned. Long conversations
    should page with ``before``/``limit`` instead.
    """
    me = await resolve_display_identity(viewer, uow)
    other = await resolve_display_identity(counterpart, uow)
    try:
        records = await uow.messages.list_between(
            me.ref, other.ref, before=before, limit=limit,
        )
    except AppError:
        raise
    except Exception as exc:
        logger.exception("History load failed for %s <-> %s", me.ref.key, other.ref.key)
        raise HistoryLoadError("Could not load messages") from exc

    senders = {me.ref: me, other.ref: other}
    return [present_message(r, me.ref, senders[r.sender]) for r in records]


async def append(
    viewer: EntityRef,
    counterpart: EntityRef,
    content: str,
    uow: UnitOfWork,
    *,
    client_msg_id: uuid.UUID | None = None,
    message_type: MessageType = MessageType.TEXT,
    max_length: int = MAX_MESSAGE_LENGTH,
    channel_prefix: str = DEFAULT_CHANNEL_PREFIX,
    clock: Clock | None = None,
) -> Message:
    """Persist a message and return the canonical row as seen by the sender.

    Idempotent on ``client_msg_id``: resending the same id returns the row
    written the first time.
    """
    text = validate_content(content, max_length)
    me = await resolve_display_identity(viewer, uow)
    other = await resolve_display_identity(counterpart, uow)
    if me.ref == other.ref:
        raise SendError("Cannot send a message to yourself")

    record = MessageRecord(
        id=uuid.uuid4(),
        sender=me.ref,
        recipient=other.ref,
        intended_sender=viewer,
        intended_recipient=counterpart,
        content=text,
        message_type=message_type,
        is_read=False,
        read_at=None,
        client_msg_id=client_msg_id or uuid.uuid4(),
        created_at=(clock or SystemClock()).now(),
    )

    try:
        record, created = await uow.messages_w.create_if_not_exists(record)
        if created:
            event = MessageInserted.from_record(record)
            await uow.outbox.add(
                MESSAGE_INSERTED,
                [
                    channel_for(me.ref, channel_prefix),
                    channel_for(other.ref, channel_prefix),
                ],
                event.to_payload(),
            )
            await uow.commit()
    except AppError:
        raise
    except Exception as exc:
        logger.exception("Send failed for %s -> %s", me.ref.key, other.ref.key)
        raise SendError("Could not send message", retryable=True) from exc

    if created:
        logger.debug("Message %s stored for %s -> %s", record.id, me.ref.key, other.ref.key)
    return present_message(record, me.ref, me)
