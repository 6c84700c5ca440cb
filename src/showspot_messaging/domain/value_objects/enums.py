from __future__ import annotations

from enum import StrEnum


class EntityType(StrEnum):
    SPOTTER = "spotter"
    ARTIST = "artist"
    VENUE = "venue"


class MessageType(StrEnum):
    TEXT = "text"
    SYSTEM = "system"
    NOTIFICATION = "notification"


class DeliveryStatus(StrEnum):
    """Local-only send state of a message in an open chat."""

    PENDING = "pending"
    SENT = "sent"
    FAILED = "failed"


class SubscriptionState(StrEnum):
    UNSUBSCRIBED = "unsubscribed"
    SUBSCRIBING = "subscribing"
    SUBSCRIBED = "subscribed"
    ERROR = "error"
