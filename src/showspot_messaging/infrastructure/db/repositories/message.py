from __future__ import annotations

from datetime import datetime

from sqlalchemy import and_, or_, select, update
from sqlalchemy.dialects.postgresql import insert as pg_insert
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy.orm import aliased

from showspot_messaging.application.cursor import decode_cursor
from showspot_messaging.domain.entities.message import MessageRecord
from showspot_messaging.domain.value_objects.entity_ref import EntityRef
from showspot_messaging.infrastructure.db.mappers import message as mapper
from showspot_messaging.infrastructure.db.models.message import MessageModel


def _between(a: EntityRef, b: EntityRef):
    def _direction(src: EntityRef, dst: EntityRef):
        return and_(
            MessageModel.sender_type == src.type.value,
            MessageModel.sender_id == src.id,
            MessageModel.recipient_type == dst.type.value,
            MessageModel.recipient_id == dst.id,
        )

    return or_(_direction(a, b), _direction(b, a))


class MessageReaderRepo:
    def __init__(self, session: AsyncSession) -> None:
        self._session = session

    async def list_between(
        self,
        a: EntityRef,
        b: EntityRef,
        *,
        before: str | None = None,
        limit: int | None = None,
    ) -> list[MessageRecord]:
        stmt = select(MessageModel).where(_between(a, b))
        if before:
            ts, mid = decode_cursor(before)
            # Ties on created_at fall back to insert order.
            anchor = aliased(MessageModel)
            cursor_seq = select(anchor.seq).where(anchor.id == mid).scalar_subquery()
            stmt = stmt.where(
                (MessageModel.created_at < ts)
                | ((MessageModel.created_at == ts) & (MessageModel.seq < cursor_seq))
            )
        if limit is None:
            stmt = stmt.order_by(MessageModel.created_at.asc(), MessageModel.seq.asc())
            result = await self._session.execute(stmt)
            return [mapper.model_to_entity(m) for m in result.scalars().all()]

        # Newest page first, then flipped back to chronological order.
        stmt = stmt.order_by(MessageModel.created_at.desc(), MessageModel.seq.desc()).limit(limit)
        result = await self._session.execute(stmt)
        page = [mapper.model_to_entity(m) for m in result.scalars().all()]
        page.reverse()
        return page


class MessageWriterRepo:
    def __init__(self, session: AsyncSession) -> None:
        self._session = session

    async def create_if_not_exists(
        self, record: MessageRecord,
    ) -> tuple[MessageRecord, bool]:
        """Insert message idempotently. Returns (message, created_flag)."""
        stmt = (
            pg_insert(MessageModel)
            .values(**mapper.entity_to_values(record))
            .on_conflict_do_nothing(constraint="uq_message_client_id")
            .returning(MessageModel)
        )
        result = await self._session.execute(stmt)
        row = result.scalar_one_or_none()

        if row is not None:
            return mapper.model_to_entity(row), True

        # Conflict: the same client id was already stored by this sender.
        existing = await self.get_by_client_msg_id(record.sender, record.client_msg_id)
        assert existing is not None
        return existing, False

    async def get_by_client_msg_id(
        self, sender: EntityRef, client_msg_id: object,
    ) -> MessageRecord | None:
        stmt = select(MessageModel).where(
            MessageModel.sender_type == sender.type.value,
            MessageModel.sender_id == sender.id,
            MessageModel.client_msg_id == client_msg_id,
        )
        result = await self._session.execute(stmt)
        model = result.scalar_one_or_none()
        return mapper.model_to_entity(model) if model else None

    async def mark_read(
        self, reader: EntityRef, sender: EntityRef, read_at: datetime,
    ) -> int:
        stmt = (
            update(MessageModel)
            .where(
                MessageModel.recipient_type == reader.type.value,
                MessageModel.recipient_id == reader.id,
                MessageModel.sender_type == sender.type.value,
                MessageModel.sender_id == sender.id,
                MessageModel.is_read.is_(False),
            )
            .values(is_read=True, read_at=read_at)
            .execution_options(synchronize_session=False)
        )
        result = await self._session.execute(stmt)
        return result.rowcount or 0
