from __future__ import annotations

from sqlalchemy import and_, case, func, or_, select
from sqlalchemy.ext.asyncio import AsyncSession

from showspot_messaging.application.dto.conversation import GroupedConversation
from showspot_messaging.domain.entities.conversation import Conversation
from showspot_messaging.domain.value_objects.entity_ref import EntityRef, conversation_key
from showspot_messaging.domain.value_objects.enums import EntityType
from showspot_messaging.infrastructure.db.models.entity import SpotterModel
from showspot_messaging.infrastructure.db.models.message import MessageModel


def _involves(viewer: EntityRef):
    return or_(
        and_(MessageModel.sender_type == viewer.type.value, MessageModel.sender_id == viewer.id),
        and_(
            MessageModel.recipient_type == viewer.type.value,
            MessageModel.recipient_id == viewer.id,
        ),
    )


class ConversationReaderRepo:
    def __init__(self, session: AsyncSession) -> None:
        self._session = session

    async def summarize_for(self, viewer: EntityRef) -> list[GroupedConversation]:
        """Aggregate the viewer's messages into one row per counterpart.

        The group is the counterpart's intended type on the first message of
        the pair, so a chat started with an artist stays under artists.
        """
        m = MessageModel
        sent = m.sender_id == viewer.id
        other_id = case((sent, m.recipient_id), else_=m.sender_id)
        other_intended_type = case((sent, m.intended_recipient_type), else_=m.intended_sender_type)

        ranked = (
            select(
                other_id.label("other_id"),
                m.content,
                m.created_at,
                m.sender_id,
                func.row_number()
                .over(partition_by=other_id, order_by=(m.created_at.desc(), m.seq.desc()))
                .label("rn"),
                func.count()
                .filter(and_(m.recipient_id == viewer.id, m.is_read.is_(False)))
                .over(partition_by=other_id)
                .label("unread"),
                func.first_value(other_intended_type)
                .over(partition_by=other_id, order_by=(m.created_at.asc(), m.seq.asc()))
                .label("origin_type"),
            )
            .where(_involves(viewer))
            .subquery()
        )

        stmt = (
            select(
                ranked.c.other_id,
                ranked.c.content,
                ranked.c.created_at,
                ranked.c.sender_id,
                ranked.c.unread,
                ranked.c.origin_type,
                SpotterModel.name,
                SpotterModel.image_url,
            )
            .outerjoin(SpotterModel, SpotterModel.id == ranked.c.other_id)
            .where(ranked.c.rn == 1)
            .order_by(ranked.c.created_at.desc())
        )
        result = await self._session.execute(stmt)

        rows: list[GroupedConversation] = []
        for row in result.all():
            other = EntityRef.spotter(row.other_id)
            try:
                group = EntityType(row.origin_type)
            except ValueError:
                group = EntityType.SPOTTER
            rows.append(
                GroupedConversation(
                    group=group,
                    conversation=Conversation(
                        conversation_id=conversation_key(viewer, other),
                        other_entity_id=other.id,
                        other_entity_type=other.type,
                        other_entity_name=row.name or "",
                        other_entity_image=row.image_url,
                        last_message=row.content,
                        last_message_at=row.created_at,
                        last_message_sender_id=row.sender_id,
                        unread_count=int(row.unread or 0),
                    ),
                )
            )
        return rows

    async def count_unread(self, viewer: EntityRef) -> int:
        stmt = select(func.count()).select_from(MessageModel).where(
            MessageModel.recipient_type == viewer.type.value,
            MessageModel.recipient_id == viewer.id,
            MessageModel.is_read.is_(False),
        )
        result = await self._session.execute(stmt)
        return int(result.scalar_one())
