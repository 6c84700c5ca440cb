"""One viewer's live messaging session.

The session owns the conversation cache, the open chat and the realtime
feed for a single acting identity. Presentation code talks to it with
plain values and receives pushes through injected callbacks, which live
exactly as long as the session.
"""
from __future__ import annotations

import asyncio
import logging
from typing import Any, Callable, Coroutine
from uuid import UUID

from showspot_messaging.application.dto.conversation import ConversationGroups
from showspot_messaging.application.exceptions import (
    AggregationError,
    AppError,
    SendError,
    SubscriptionError,
)
from showspot_messaging.application.ports.clock import Clock, SystemClock
from showspot_messaging.application.ports.feed import DEFAULT_CHANNEL_PREFIX, ChangeFeed
from showspot_messaging.application.state.chat_timeline import ChatTimeline
from showspot_messaging.application.state.conversation_cache import ConversationCache
from showspot_messaging.application.uow import UowFactory
from showspot_messaging.domain.entities.message import MAX_MESSAGE_LENGTH, Message
from showspot_messaging.domain.entities.profile import DisplayIdentity
from showspot_messaging.domain.events.message_inserted import MessageInserted
from showspot_messaging.domain.value_objects.entity_ref import EntityRef
from showspot_messaging.domain.value_objects.enums import DeliveryStatus, SubscriptionState
from showspot_messaging.services import conversation_service, entity_resolver, message_service
from showspot_messaging.services.read_state_service import ReadStateTracker
from showspot_messaging.services.realtime_sync import RealtimeSynchronizer

logger = logging.getLogger(__name__)

OnMessage = Callable[[Message], Coroutine[Any, Any, None]]
OnConversations = Callable[[ConversationGroups], Coroutine[Any, Any, None]]
OnError = Callable[[AppError], Coroutine[Any, Any, None]]


class MessagingSession:
    def __init__(
        self,
        viewer: EntityRef,
        me: DisplayIdentity,
        *,
        uow_factory: UowFactory,
        feed: ChangeFeed,
        on_message: OnMessage | None = None,
        on_conversations: OnConversations | None = None,
        on_error: OnError | None = None,
        clock: Clock | None = None,
        channel_prefix: str = DEFAULT_CHANNEL_PREFIX,
        echo_window: float = 5.0,
        max_length: int = MAX_MESSAGE_LENGTH,
        retry_base: float = 1.0,
        retry_max: float = 30.0,
        max_retries: int = 5,
    ) -> None:
        self.viewer = viewer
        self.me = me
        self.cache = ConversationCache()
        self.chat: ChatTimeline | None = None
        self.conversations_error: AggregationError | None = None
        self._uow_factory = uow_factory
        self._on_message = on_message
        self._on_conversations = on_conversations
        self._on_error = on_error
        self._clock = clock or SystemClock()
        self._channel_prefix = channel_prefix
        self._echo_window = echo_window
        self._max_length = max_length
        self._lock = asyncio.Lock()
        self._closed = False
        self._reader = ReadStateTracker(uow_factory, self.cache, clock=self._clock)
        self._sync = RealtimeSynchronizer(
            feed,
            uow_factory,
            write_lock=self._lock,
            on_error=self._on_subscription_error,
            channel_prefix=channel_prefix,
            retry_base=retry_base,
            retry_max=retry_max,
            max_retries=max_retries,
        )

    @classmethod
    async def start(
        cls,
        account_id: str,
        *,
        uow_factory: UowFactory,
        feed: ChangeFeed,
        **kwargs: Any,
    ) -> MessagingSession:
        """Resolve the acting identity, load conversations and go live.

        ``NotFoundError``/``ResolutionError`` propagate: without an identity
        there is no session to enter.
        """
        async with uow_factory() as uow:
            viewer = await entity_resolver.resolve_acting_entity(account_id, uow)
            me = await entity_resolver.resolve_display_identity(viewer, uow)
        session = cls(viewer, me, uow_factory=uow_factory, feed=feed, **kwargs)
        await session.refresh_conversations()
        await session._sync.subscribe(me.ref, session._on_incoming)
        logger.info("Messaging session started for %s as %s", account_id, viewer.key)
        return session

    @property
    def closed(self) -> bool:
        return self._closed

    @property
    def subscription_state(self) -> SubscriptionState:
        return self._sync.state

    async def refresh_conversations(self) -> ConversationGroups:
        """Reload summaries. On failure the last known state is kept."""
        as_of = self._clock.now()
        try:
            async with self._uow_factory() as uow:
                groups = await conversation_service.get_all_conversations(self.viewer, uow)
        except AggregationError as exc:
            self.conversations_error = exc
            logger.warning("Conversation refresh failed: %s", exc.detail)
            return self.cache.groups
        if self._closed:
            return self.cache.groups
        async with self._lock:
            self.cache.apply_snapshot(groups, as_of)
            self.conversations_error = None
        await self._emit_conversations()
        return self.cache.groups

    async def open_conversation(self, counterpart: EntityRef) -> ChatTimeline:
        """Open the chat with ``counterpart`` (any entity type), load it and mark it read."""
        async with self._uow_factory() as uow:
            other = await entity_resolver.resolve_display_identity(counterpart, uow)
        timeline = ChatTimeline(
            self.me,
            other,
            requested=counterpart,
            clock=self._clock,
            echo_window=self._echo_window,
        )
        self.chat = timeline
        await self.reload_chat()
        if self.chat is timeline:
            await self._reader.mark_read(self.me.ref, other.ref, timeline)
            await self._emit_conversations()
        return timeline

    async def start_conversation(self, target: EntityRef) -> ChatTimeline:
        """Open a chat with a search result; artists and venues map to their owner."""
        return await self.open_conversation(target)

    async def reload_chat(self) -> ChatTimeline | None:
        timeline = self.chat
        if timeline is None:
            return None
        try:
            async with self._uow_factory() as uow:
                history = await message_service.load_history(
                    self.me.ref, timeline.counterpart.ref, uow,
                )
        except AggregationError as exc:
            timeline.error = exc
            logger.warning("History load failed: %s", exc.detail)
            return timeline
        # Only apply if the user is still looking at the same chat.
        if self._closed or self.chat is not timeline:
            return timeline
        async with self._lock:
            timeline.load(history)
        return timeline

    def close_conversation(self) -> None:
        self.chat = None

    async def send(self, content: str) -> Message:
        """Render ``content`` at once, then persist it.

        Invalid content raises ``SendError`` without rendering. Transport
        failures leave the message in the chat marked failed and re-raise.
        """
        timeline = self._require_chat()
        text = message_service.validate_content(content, self._max_length)
        optimistic = timeline.add_optimistic(text)
        return await self._deliver(timeline, optimistic)

    async def retry(self, client_msg_id: UUID) -> Message:
        """Resend a failed message under its original client id."""
        timeline = self._require_chat()
        failed = timeline.discard(client_msg_id)
        if failed is None:
            raise SendError("No failed message to retry")
        optimistic = timeline.add_optimistic(
            failed.message_content, client_msg_id=client_msg_id,
        )
        return await self._deliver(timeline, optimistic)

    async def mark_read(self, counterpart: EntityRef) -> int:
        timeline = self.chat if self.chat and self.chat.is_with(counterpart) else None
        updated = await self._reader.mark_read(self.me.ref, counterpart, timeline)
        await self._emit_conversations()
        return updated

    async def close(self) -> None:
        if self._closed:
            return
        self._closed = True
        await self._sync.unsubscribe()
        self.chat = None
        self.cache.clear()
        logger.info("Messaging session closed for %s", self.viewer.key)

    async def _deliver(self, timeline: ChatTimeline, optimistic: Message) -> Message:
        assert optimistic.client_msg_id is not None
        client_msg_id = optimistic.client_msg_id
        async with self._lock:
            try:
                async with self._uow_factory() as uow:
                    canonical = await message_service.append(
                        self.viewer,
                        timeline.requested,
                        optimistic.message_content,
                        uow,
                        client_msg_id=client_msg_id,
                        max_length=self._max_length,
                        channel_prefix=self._channel_prefix,
                        clock=self._clock,
                    )
            except AppError:
                failed = timeline.mark_failed(client_msg_id)
                logger.warning("Message %s failed to send", client_msg_id)
                if failed is not None and self._on_message is not None:
                    await self._on_message(failed)
                raise
            confirmed = timeline.confirm(client_msg_id, canonical)
            self.cache.apply_message(
                confirmed,
                viewer=self.me.ref,
                counterpart=timeline.counterpart,
                group=timeline.requested.type,
                count_unread=False,
            )
        await self._emit_conversations()
        return confirmed

    async def _on_incoming(self, message: Message, event: MessageInserted) -> None:
        """Feed handler; runs under the session write lock."""
        if self._closed:
            return
        counterpart_ref = event.recipient if message.is_own_message else event.sender
        intended = event.intended_recipient if message.is_own_message else event.intended_sender
        timeline = self.chat
        in_open_chat = timeline is not None and timeline.is_with(counterpart_ref)

        if timeline is not None and in_open_chat:
            if not timeline.apply_incoming(message):
                return
            counterpart = timeline.counterpart
        else:
            if self.cache.is_known(counterpart_ref.id, message.message_id):
                logger.debug("Duplicate feed event %s ignored", message.message_id)
                return
            counterpart = await self._counterpart_identity(counterpart_ref, message)

        self.cache.apply_message(
            message,
            viewer=self.me.ref,
            counterpart=counterpart,
            group=intended.type,
            count_unread=not in_open_chat,
        )
        if timeline is not None and in_open_chat and not message.is_own_message:
            try:
                await self._reader.mark_read(self.me.ref, counterpart.ref, timeline)
            except AppError as exc:
                logger.warning("Auto mark-read failed for %s: %s", counterpart.ref.key, exc.detail)

        if self._on_message is not None and message.delivery != DeliveryStatus.FAILED:
            await self._on_message(message)
        await self._emit_conversations()

    async def _counterpart_identity(
        self, ref: EntityRef, message: Message,
    ) -> DisplayIdentity:
        found = self.cache.find(ref.id)
        if found is not None:
            conv = found[1]
            return DisplayIdentity(
                ref=ref, name=conv.other_entity_name, image=conv.other_entity_image,
            )
        if not message.is_own_message:
            return DisplayIdentity(ref=ref, name=message.sender_name, image=message.sender_image)
        try:
            async with self._uow_factory() as uow:
                return await entity_resolver.resolve_display_identity(ref, uow)
        except AppError as exc:
            logger.warning("Cannot resolve counterpart %s: %s", ref.key, exc.detail)
            return DisplayIdentity(ref=ref, name="")

    async def _on_subscription_error(self, error: SubscriptionError) -> None:
        if self._on_error is not None and not self._closed:
            await self._on_error(error)

    async def _emit_conversations(self) -> None:
        if self._on_conversations is not None and not self._closed:
            await self._on_conversations(self.cache.groups)

    def _require_chat(self) -> ChatTimeline:
        if self.chat is None:
            raise SendError("No conversation is open")
        return self.chat
