"""Redis Pub/Sub: publish side and per-channel change-feed subscriptions."""
from __future__ import annotations

import asyncio
import logging
from typing import Any

import redis.asyncio as aioredis

from showspot_messaging.application.ports.feed import FeedCallback, FeedErrorCallback
from showspot_messaging.infrastructure.bus.serializer import deserialize_event, serialize_event

logger = logging.getLogger(__name__)


class RedisPubSubPublisher:
    """Implements application.ports.bus.EventPublisher."""

    def __init__(self, redis: aioredis.Redis) -> None:
        self._redis = redis

    async def publish(self, channel: str, event_type: str, payload: dict[str, Any]) -> None:
        raw = serialize_event(event_type, payload)
        await self._redis.publish(channel, raw)


class RedisFeedSubscription:
    """Background task that listens to one Redis channel and dispatches payloads."""

    def __init__(
        self,
        redis: aioredis.Redis,
        channel: str,
        callback: FeedCallback,
        on_error: FeedErrorCallback | None = None,
    ) -> None:
        self._redis = redis
        self._channel = channel
        self._callback = callback
        self._on_error = on_error
        self._pubsub = redis.pubsub()
        self._task: asyncio.Task[None] | None = None
        self._closed = False
        self._released = False

    async def start(self) -> None:
        # Subscribing up front makes connection failures raise to the caller.
        await self._pubsub.subscribe(self._channel)
        self._task = asyncio.create_task(
            self._listen(), name=f"redis-feed:{self._channel}",
        )
        logger.debug("Redis feed subscription started on channel=%s", self._channel)

    async def close(self) -> None:
        if self._closed:
            return
        self._closed = True
        task = self._task
        # close() may be called from our own error callback.
        if task is not None and task is not asyncio.current_task():
            task.cancel()
            try:
                await task
            except asyncio.CancelledError:
                pass
        await self._release()
        logger.debug("Redis feed subscription closed on channel=%s", self._channel)

    async def _listen(self) -> None:
        try:
            async for message in self._pubsub.listen():
                if message["type"] != "message":
                    continue
                try:
                    _event_type, data = deserialize_event(message["data"])
                except (ValueError, KeyError):
                    logger.warning("Malformed message on %s ignored", self._channel)
                    continue
                try:
                    await self._callback(data)
                except Exception:
                    logger.exception("Error processing feed message on %s", self._channel)
        except asyncio.CancelledError:
            raise
        except Exception as exc:
            if self._closed:
                return
            logger.warning("Redis feed on %s failed: %s", self._channel, exc)
            if self._on_error is not None:
                await self._on_error(exc)

    async def _release(self) -> None:
        if self._released:
            return
        self._released = True
        try:
            await self._pubsub.unsubscribe(self._channel)
        except Exception as exc:  # noqa: BLE001
            logger.debug("Unsubscribe from %s failed: %s", self._channel, exc)
        await self._pubsub.aclose()


class RedisChangeFeed:
    """Implements application.ports.feed.ChangeFeed on Redis Pub/Sub."""

    def __init__(self, redis: aioredis.Redis) -> None:
        self._redis = redis

    async def subscribe(
        self,
        channel: str,
        callback: FeedCallback,
        on_error: FeedErrorCallback | None = None,
    ) -> RedisFeedSubscription:
        subscription = RedisFeedSubscription(self._redis, channel, callback, on_error)
        try:
            await subscription.start()
        except Exception:
            await subscription.close()
            raise
        return subscription
