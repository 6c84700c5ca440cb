"""Import all models so Alembic can discover them via Base.metadata."""
from showspot_messaging.infrastructure.db.models.entity import ArtistModel, SpotterModel, VenueModel
from showspot_messaging.infrastructure.db.models.message import MessageModel
from showspot_messaging.infrastructure.db.models.outbox import OutboxMessageModel

__all__ = [
    "ArtistModel",
    "MessageModel",
    "OutboxMessageModel",
    "SpotterModel",
    "VenueModel",
]
