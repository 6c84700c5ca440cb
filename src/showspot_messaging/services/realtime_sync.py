"""Change-feed subscription for one messaging session.

State machine::

    UNSUBSCRIBED -> SUBSCRIBING -> SUBSCRIBED -> (ERROR | UNSUBSCRIBED)
                                 ERROR -> SUBSCRIBING (backoff retry)

``subscribe`` and ``unsubscribe`` are the only external transitions. Every
subscription carries a generation number. Callbacks from an older
generation are ignored, so a torn-down feed can never deliver into the
session again.
"""
from __future__ import annotations

import asyncio
import logging
from functools import partial
from typing import Any, Callable, Coroutine

from showspot_messaging.application.exceptions import AppError, SubscriptionError
from showspot_messaging.application.ports.feed import (
    DEFAULT_CHANNEL_PREFIX,
    ChangeFeed,
    FeedSubscription,
    channel_for,
)
from showspot_messaging.application.uow import UowFactory
from showspot_messaging.domain.entities.message import Message
from showspot_messaging.domain.entities.profile import DisplayIdentity
from showspot_messaging.domain.events.message_inserted import MessageInserted
from showspot_messaging.domain.value_objects.entity_ref import EntityRef
from showspot_messaging.domain.value_objects.enums import SubscriptionState
from showspot_messaging.services.entity_resolver import resolve_display_identity
from showspot_messaging.services.message_service import present_message

logger = logging.getLogger(__name__)

MessageHandler = Callable[[Message, MessageInserted], Coroutine[Any, Any, None]]
ErrorHandler = Callable[[SubscriptionError], Coroutine[Any, Any, None]]


class RealtimeSynchronizer:
    def __init__(
        self,
        feed: ChangeFeed,
        uow_factory: UowFactory,
        *,
        write_lock: asyncio.Lock | None = None,
        on_error: ErrorHandler | None = None,
        channel_prefix: str = DEFAULT_CHANNEL_PREFIX,
        retry_base: float = 1.0,
        retry_max: float = 30.0,
        max_retries: int = 5,
    ) -> None:
        self._feed = feed
        self._uow_factory = uow_factory
        self._lock = write_lock or asyncio.Lock()
        self._on_error = on_error
        self._channel_prefix = channel_prefix
        self._retry_base = retry_base
        self._retry_max = retry_max
        self._max_retries = max_retries

        self._state = SubscriptionState.UNSUBSCRIBED
        self._viewer: EntityRef | None = None
        self._handler: MessageHandler | None = None
        self._subscription: FeedSubscription | None = None
        self._generation = 0
        self._attempts = 0
        self._retry_task: asyncio.Task[None] | None = None
        self._error_task: asyncio.Task[None] | None = None
        self._transition = asyncio.Lock()
        self._senders: dict[EntityRef, DisplayIdentity] = {}

    @property
    def state(self) -> SubscriptionState:
        return self._state

    @property
    def viewer(self) -> EntityRef | None:
        return self._viewer

    async def subscribe(self, viewer: EntityRef, on_message: MessageHandler) -> None:
        """Start delivering messages for ``viewer`` (its spotter identity).

        A repeated call for the same viewer while subscribing or subscribed
        changes nothing. A different viewer replaces the current feed.
        """
        async with self._transition:
            if (
                self._viewer == viewer
                and self._state in (SubscriptionState.SUBSCRIBING, SubscriptionState.SUBSCRIBED)
            ):
                self._handler = on_message
                return
            await self._teardown()
            if self._viewer != viewer:
                self._senders.clear()
            self._viewer = viewer
            self._handler = on_message
            self._attempts = 0
            await self._open()

    async def unsubscribe(self) -> None:
        async with self._transition:
            await self._teardown()
            self._viewer = None
            self._handler = None
            self._senders.clear()
        logger.debug("Realtime feed unsubscribed")

    async def _open(self) -> None:
        assert self._viewer is not None
        self._generation += 1
        generation = self._generation
        self._state = SubscriptionState.SUBSCRIBING
        channel = channel_for(self._viewer, self._channel_prefix)
        try:
            subscription = await self._feed.subscribe(
                channel,
                partial(self._dispatch, generation),
                partial(self._on_feed_error, generation),
            )
        except Exception as exc:
            logger.warning("Feed subscribe failed on %s: %s", channel, exc)
            self._fail(exc)
            return

        if generation != self._generation:
            # Torn down while the subscribe call was in flight.
            await subscription.close()
            return
        self._subscription = subscription
        self._state = SubscriptionState.SUBSCRIBED
        self._attempts = 0
        logger.info("Realtime feed subscribed on %s", channel)

    async def _teardown(self) -> None:
        self._generation += 1
        if self._retry_task is not None:
            self._retry_task.cancel()
            self._retry_task = None
        subscription, self._subscription = self._subscription, None
        self._state = SubscriptionState.UNSUBSCRIBED
        if subscription is not None:
            try:
                await subscription.close()
            except Exception:
                logger.exception("Error closing feed subscription")

    def _fail(self, exc: BaseException) -> None:
        self._state = SubscriptionState.ERROR
        self._attempts += 1
        if self._attempts > self._max_retries:
            error = SubscriptionError(f"Realtime feed unavailable: {exc}")
            logger.error("Giving up on realtime feed after %d attempts", self._attempts - 1)
            if self._on_error is not None:
                self._error_task = asyncio.create_task(
                    self._on_error(error), name="feed-error-callback",
                )
            return
        delay = self._backoff(self._attempts)
        logger.info("Retrying realtime feed in %.1fs (attempt %d)", delay, self._attempts)
        self._retry_task = asyncio.create_task(
            self._retry_after(delay, self._generation), name="feed-resubscribe",
        )

    def _backoff(self, attempts: int) -> float:
        return min(self._retry_base * (2 ** (attempts - 1)), self._retry_max)

    async def _retry_after(self, delay: float, generation: int) -> None:
        await asyncio.sleep(delay)
        async with self._transition:
            if generation != self._generation or self._viewer is None:
                return
            self._retry_task = None
            await self._open()

    async def _on_feed_error(self, generation: int, exc: BaseException) -> None:
        async with self._transition:
            if generation != self._generation:
                return
            logger.warning("Realtime feed dropped: %s", exc)
            subscription, self._subscription = self._subscription, None
            if subscription is not None:
                try:
                    await subscription.close()
                except Exception:
                    logger.exception("Error closing dropped feed subscription")
            self._fail(exc)

    async def _dispatch(self, generation: int, payload: dict[str, Any]) -> None:
        if generation != self._generation or self._state != SubscriptionState.SUBSCRIBED:
            logger.debug("Dropping event from stale feed generation %d", generation)
            return
        viewer, handler = self._viewer, self._handler
        if viewer is None or handler is None:
            return

        try:
            event = MessageInserted.from_payload(payload)
        except (KeyError, ValueError, TypeError):
            logger.warning("Malformed feed payload ignored: %r", payload)
            return
        if viewer not in (event.sender, event.recipient):
            logger.warning(
                "Feed event %s does not involve %s; ignored", event.message_id, viewer.key,
            )
            return

        try:
            sender = await self._sender_identity(event.sender)
        except AppError as exc:
            logger.warning("Cannot resolve sender of %s: %s", event.message_id, exc.detail)
            sender = DisplayIdentity(ref=event.sender, name="")

        # The session may have moved on while the sender lookup was suspended.
        if generation != self._generation:
            return
        message = present_message(event, viewer, sender, is_read=event.sender == viewer)
        async with self._lock:
            await handler(message, event)

    async def _sender_identity(self, ref: EntityRef) -> DisplayIdentity:
        cached = self._senders.get(ref)
        if cached is not None:
            return cached
        async with self._uow_factory() as uow:
            identity = await resolve_display_identity(ref, uow)
        self._senders[ref] = identity
        return identity
