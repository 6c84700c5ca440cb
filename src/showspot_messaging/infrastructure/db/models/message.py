from __future__ import annotations

import uuid
from datetime import datetime

from sqlalchemy import (
    BigInteger,
    Boolean,
    CheckConstraint,
    Identity,
    Index,
    String,
    Text,
    UniqueConstraint,
    text,
)
from sqlalchemy.dialects.postgresql import TIMESTAMP, UUID
from sqlalchemy.orm import Mapped, mapped_column

from showspot_messaging.infrastructure.db.base import Base


class MessageModel(Base):
    __tablename__ = "messages"

    id: Mapped[uuid.UUID] = mapped_column(
        UUID(as_uuid=True),
        primary_key=True,
        default=uuid.uuid4,
        server_default=text("gen_random_uuid()"),
    )
    # Insert order; breaks ties between equal created_at values.
    seq: Mapped[int] = mapped_column(BigInteger, Identity(), nullable=False, unique=True)
    sender_id: Mapped[str] = mapped_column(String(64), nullable=False)
    sender_type: Mapped[str] = mapped_column(String(20), nullable=False, default="spotter")
    recipient_id: Mapped[str] = mapped_column(String(64), nullable=False)
    recipient_type: Mapped[str] = mapped_column(String(20), nullable=False, default="spotter")
    # Identity the message was composed against (artist/venue or the spotter itself).
    intended_sender_id: Mapped[str] = mapped_column(String(64), nullable=False)
    intended_sender_type: Mapped[str] = mapped_column(String(20), nullable=False)
    intended_recipient_id: Mapped[str] = mapped_column(String(64), nullable=False)
    intended_recipient_type: Mapped[str] = mapped_column(String(20), nullable=False)
    content: Mapped[str] = mapped_column(Text, nullable=False)
    message_type: Mapped[str] = mapped_column(String(20), nullable=False, default="text")
    is_read: Mapped[bool] = mapped_column(
        Boolean, nullable=False, default=False, server_default=text("false"),
    )
    read_at: Mapped[datetime | None] = mapped_column(TIMESTAMP(timezone=True), nullable=True)
    client_msg_id: Mapped[uuid.UUID] = mapped_column(UUID(as_uuid=True), nullable=False)
    created_at: Mapped[datetime] = mapped_column(
        TIMESTAMP(timezone=True),
        nullable=False,
        server_default=text("now()"),
    )

    __table_args__ = (
        UniqueConstraint(
            "sender_type",
            "sender_id",
            "client_msg_id",
            name="uq_message_client_id",
        ),
        CheckConstraint(
            "NOT (sender_type = recipient_type AND sender_id = recipient_id)",
            name="ck_message_not_self",
        ),
        CheckConstraint(
            "message_type IN ('text', 'system', 'notification')",
            name="ck_message_type",
        ),
        CheckConstraint("char_length(content) > 0", name="ck_message_content_not_empty"),
        Index("ix_messages_sender_timeline", "sender_id", "created_at"),
        Index("ix_messages_recipient_timeline", "recipient_id", "created_at"),
        Index(
            "ix_messages_recipient_unread",
            "recipient_id",
            "sender_id",
            postgresql_where=text("NOT is_read"),
        ),
    )
