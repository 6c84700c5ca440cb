"""WebSocket message envelope models."""
from __future__ import annotations

from typing import Any

from pydantic import BaseModel


class WsInbound(BaseModel):
    """Client → Server."""

    type: str  # open | send | retry | mark_read | close | refresh | ping
    data: dict[str, Any] = {}


class WsOutbound(BaseModel):
    """Server → Client."""

    # message.created | conversations.updated | message.failed | subscription.error | error | pong
    type: str
    data: dict[str, Any] = {}
