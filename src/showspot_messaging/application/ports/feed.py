from __future__ import annotations

from typing import Any, Callable, Coroutine, Protocol

from showspot_messaging.domain.value_objects.entity_ref import EntityRef

DEFAULT_CHANNEL_PREFIX = "messages"

FeedCallback = Callable[[dict[str, Any]], Coroutine[Any, Any, None]]
FeedErrorCallback = Callable[[BaseException], Coroutine[Any, Any, None]]


class FeedSubscription(Protocol):
    async def close(self) -> None: ...


class ChangeFeed(Protocol):
    """Publish/subscribe delivery of inserted message rows."""

    async def subscribe(
        self,
        channel: str,
        callback: FeedCallback,
        on_error: FeedErrorCallback | None = None,
    ) -> FeedSubscription:
        """Start delivering payloads published on ``channel``.

        Raises once the subscription cannot be established. Failures after
        that are reported through ``on_error``.
        """
        ...


def channel_for(ref: EntityRef, prefix: str = DEFAULT_CHANNEL_PREFIX) -> str:
    return f"{prefix}:{ref.type}:{ref.id}"
