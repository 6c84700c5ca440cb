from __future__ import annotations


class AppError(Exception):
    """Base application error."""

    def __init__(self, detail: str = "") -> None:
        self.detail = detail
        super().__init__(detail)


class NotFoundError(AppError):
    """The account has no spotter, artist or venue to act as."""


class ResolutionError(AppError):
    """An entity reference points at a missing profile or owner spotter."""


class AggregationError(AppError):
    """Conversation summaries could not be fetched."""


class HistoryLoadError(AggregationError):
    """Message history for a conversation could not be fetched."""


class SendError(AppError):
    """A message could not be written.

    ``retryable`` is False for validation failures (empty or too long
    content, self-addressed message) and True for transport failures.
    """

    def __init__(self, detail: str = "", *, retryable: bool = False) -> None:
        super().__init__(detail)
        self.retryable = retryable


class SubscriptionError(AppError):
    """The change feed could not be set up or dropped while running."""
