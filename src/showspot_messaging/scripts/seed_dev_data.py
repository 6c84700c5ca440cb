"""Seed development data: spotters, an artist, a venue and a few conversations."""
from __future__ import annotations

import asyncio
import logging

from showspot_messaging.config import settings
from showspot_messaging.domain.value_objects.entity_ref import EntityRef
from showspot_messaging.domain.value_objects.enums import EntityType
from showspot_messaging.infrastructure.db.base import Base
from showspot_messaging.infrastructure.db.models import ArtistModel, SpotterModel, VenueModel
from showspot_messaging.infrastructure.db.session import AsyncSessionLocal, engine
from showspot_messaging.infrastructure.db.uow import SqlAlchemyUoW
from showspot_messaging.log import configure_logging
from showspot_messaging.services import message_service

logger = logging.getLogger(__name__)

SPOTTERS = [
    ("spotter-alice", "Alice", "Brooklyn, NY"),
    ("spotter-bob", "Bob", "Austin, TX"),
    ("spotter-carol", "Carol", "Chicago, IL"),
]
ARTIST = ("artist-night-owls", "spotter-bob", "The Night Owls", "Austin, TX")
VENUE = ("venue-blue-room", "spotter-carol", "The Blue Room", "Chicago, IL")

CONVERSATIONS = [
    # (sender, recipient as addressed, content)
    (EntityRef.spotter("spotter-alice"), EntityRef(id=ARTIST[0], type=EntityType.ARTIST),
     "Loved your set last night! Are you playing again this month?"),
    (EntityRef.spotter("spotter-bob"), EntityRef.spotter("spotter-alice"),
     "Thanks! We're back on the 28th."),
    (EntityRef.spotter("spotter-alice"), EntityRef(id=VENUE[0], type=EntityType.VENUE),
     "Is the Friday show all ages?"),
    (EntityRef.spotter("spotter-carol"), EntityRef.spotter("spotter-bob"),
     "Want to book The Night Owls for a Saturday?"),
]


async def create_schema() -> None:
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)


async def seed() -> None:
    await create_schema()
    async with AsyncSessionLocal() as session:
        for spotter_id, name, location in SPOTTERS:
            session.add(SpotterModel(id=spotter_id, name=name, location=location))
        await session.flush()
        session.add(ArtistModel(id=ARTIST[0], spotter_id=ARTIST[1], name=ARTIST[2], location=ARTIST[3]))
        session.add(VenueModel(id=VENUE[0], spotter_id=VENUE[1], name=VENUE[2], location=VENUE[3]))
        await session.commit()

        uow = SqlAlchemyUoW(session)
        for sender, recipient, content in CONVERSATIONS:
            await message_service.append(
                sender,
                recipient,
                content,
                uow,
                max_length=settings.MESSAGE_MAX_LENGTH,
                channel_prefix=settings.FEED_CHANNEL_PREFIX,
            )

    logger.info(
        "Seeded %d spotters, 1 artist, 1 venue and %d messages",
        len(SPOTTERS),
        len(CONVERSATIONS),
    )


def main() -> None:
    configure_logging(settings.LOG_LEVEL)
    asyncio.run(seed())


if __name__ == "__main__":
    main()
