"""In-process WebSocket connection manager."""
from __future__ import annotations

import logging
from typing import Any

from fastapi import WebSocket

from showspot_messaging.infrastructure.ws.protocol import WsOutbound
from showspot_messaging.services.messaging_session import MessagingSession

logger = logging.getLogger(__name__)


class ConnectionManager:
    """Tracks WebSocket connections per principal and the messaging session of each."""

    def __init__(self) -> None:
        self._connections: dict[str, set[WebSocket]] = {}
        self._sessions: dict[WebSocket, MessagingSession] = {}

    async def connect(self, ws: WebSocket, principal_key: str) -> None:
        await ws.accept()
        self._connections.setdefault(principal_key, set()).add(ws)
        logger.debug("WS connected: %s (total=%d)", principal_key, len(self._connections))

    def attach(self, ws: WebSocket, session: MessagingSession) -> None:
        self._sessions[ws] = session

    def session_for(self, ws: WebSocket) -> MessagingSession | None:
        return self._sessions.get(ws)

    def connection_count(self, principal_key: str) -> int:
        return len(self._connections.get(principal_key, ()))

    async def disconnect(self, ws: WebSocket, principal_key: str) -> None:
        conns = self._connections.get(principal_key)
        if conns:
            conns.discard(ws)
            if not conns:
                del self._connections[principal_key]
        session = self._sessions.pop(ws, None)
        if session is not None:
            await session.close()
        logger.debug("WS disconnected: %s", principal_key)

    async def send(self, ws: WebSocket, event_type: str, data: dict[str, Any]) -> None:
        await ws.send_text(WsOutbound(type=event_type, data=data).model_dump_json())

    async def close_all(self) -> None:
        """Close every live messaging session; used on shutdown."""
        sessions, self._sessions = list(self._sessions.values()), {}
        for session in sessions:
            try:
                await session.close()
            except Exception:
                logger.exception("Error closing messaging session")
        self._connections.clear()
