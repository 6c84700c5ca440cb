from __future__ import annotations

import asyncio
import logging
from typing import Any
from uuid import UUID

from fastapi import APIRouter, Query, WebSocket, WebSocketDisconnect

from showspot_messaging.api.deps import get_verifier
from showspot_messaging.api.v1.schemas.conversation import ConversationGroupsResponse
from showspot_messaging.api.v1.schemas.message import MessageResponse
from showspot_messaging.application.dto.conversation import ConversationGroups
from showspot_messaging.application.dto.principal import Principal
from showspot_messaging.application.exceptions import AppError, NotFoundError, ResolutionError, SendError
from showspot_messaging.config import settings
from showspot_messaging.domain.entities.message import Message
from showspot_messaging.domain.value_objects.entity_ref import EntityRef
from showspot_messaging.domain.value_objects.enums import DeliveryStatus, EntityType
from showspot_messaging.infrastructure.bus.redis_pubsub import RedisChangeFeed
from showspot_messaging.infrastructure.db.uow import uow_scope
from showspot_messaging.infrastructure.ws.manager import ConnectionManager
from showspot_messaging.infrastructure.ws.protocol import WsInbound
from showspot_messaging.services.messaging_session import MessagingSession

logger = logging.getLogger(__name__)
router = APIRouter(tags=["websocket"])

manager = ConnectionManager()


def get_manager() -> ConnectionManager:
    return manager


def _message_data(message: Message) -> dict[str, Any]:
    return MessageResponse.model_validate(message, from_attributes=True).model_dump(mode="json")


def _groups_data(groups: ConversationGroups) -> dict[str, Any]:
    return ConversationGroupsResponse.from_groups(groups).model_dump(mode="json")


def _entity_ref(data: dict[str, Any]) -> EntityRef:
    return EntityRef(id=str(data["entity_id"]), type=EntityType(data["entity_type"]))


async def _authenticate(token: str) -> Principal | None:
    try:
        verifier = get_verifier()
        return await verifier.verify(token)
    except Exception:
        logger.debug("WS auth failed", exc_info=True)
        return None


@router.websocket("/ws/messaging")
async def ws_messaging(
    websocket: WebSocket,
    token: str = Query(...),
) -> None:
    principal = await _authenticate(token)
    if principal is None:
        await websocket.close(code=4001, reason="Authentication failed")
        return

    pkey = principal.principal_key
    await manager.connect(websocket, pkey)

    async def on_message(message: Message) -> None:
        event = "message.failed" if message.delivery == DeliveryStatus.FAILED else "message.created"
        await manager.send(websocket, event, _message_data(message))

    async def on_conversations(groups: ConversationGroups) -> None:
        await manager.send(websocket, "conversations.updated", _groups_data(groups))

    async def on_error(error: AppError) -> None:
        await manager.send(websocket, "subscription.error", {"detail": error.detail})

    heartbeat_task: asyncio.Task[None] | None = None
    try:
        try:
            session = await MessagingSession.start(
                principal.account_id,
                uow_factory=uow_scope,
                feed=RedisChangeFeed(websocket.app.state.redis),
                on_message=on_message,
                on_conversations=on_conversations,
                on_error=on_error,
                channel_prefix=settings.FEED_CHANNEL_PREFIX,
                echo_window=settings.ECHO_SUPPRESSION_SECONDS,
                max_length=settings.MESSAGE_MAX_LENGTH,
                retry_base=settings.FEED_RETRY_BASE_SECONDS,
                retry_max=settings.FEED_RETRY_MAX_SECONDS,
                max_retries=settings.FEED_MAX_RETRIES,
            )
        except (NotFoundError, ResolutionError) as exc:
            await manager.send(websocket, "error", {"code": "no_identity", "detail": exc.detail})
            await websocket.close(code=4004, reason="No messaging identity")
            return
        manager.attach(websocket, session)

        heartbeat_task = asyncio.create_task(
            _heartbeat(websocket), name=f"ws-heartbeat-{pkey}",
        )
        await _read_loop(websocket, session)
    except WebSocketDisconnect:
        pass
    except Exception:
        logger.exception("WS error for %s", pkey)
    finally:
        if heartbeat_task is not None:
            heartbeat_task.cancel()
        await manager.disconnect(websocket, pkey)


async def _heartbeat(ws: WebSocket) -> None:
    interval = settings.WS_HEARTBEAT_SECONDS
    try:
        while True:
            await asyncio.sleep(interval)
            await manager.send(ws, "pong", {})
    except asyncio.CancelledError:
        pass
    except Exception:
        pass


async def _read_loop(ws: WebSocket, session: MessagingSession) -> None:
    while True:
        raw = await ws.receive_text()
        try:
            msg = WsInbound.model_validate_json(raw)
        except Exception:
            await manager.send(ws, "error", {"code": "invalid_payload"})
            continue

        try:
            await _dispatch(ws, session, msg)
        except (KeyError, ValueError) as exc:
            await manager.send(ws, "error", {"code": "invalid_data", "type": msg.type, "detail": str(exc)})
        except AppError as exc:
            await manager.send(ws, "error", _error_data(msg.type, exc))


async def _dispatch(ws: WebSocket, session: MessagingSession, msg: WsInbound) -> None:
    if msg.type == "ping":
        await manager.send(ws, "pong", {})

    elif msg.type == "open":
        timeline = await session.open_conversation(_entity_ref(msg.data))
        await manager.send(
            ws,
            "conversation.opened",
            {
                "entity_id": timeline.requested.id,
                "entity_type": timeline.requested.type.value,
                "messages": [_message_data(m) for m in timeline.messages],
                "error": timeline.error.detail if timeline.error else None,
            },
        )

    elif msg.type == "send":
        await _handle_send(ws, session, msg.data)

    elif msg.type == "retry":
        await _handle_send(ws, session, msg.data, retry=True)

    elif msg.type == "mark_read":
        await session.mark_read(_entity_ref(msg.data))

    elif msg.type == "close":
        session.close_conversation()

    elif msg.type == "refresh":
        await session.refresh_conversations()
        if session.conversations_error is not None:
            await manager.send(ws, "error", _error_data(msg.type, session.conversations_error))

    else:
        await manager.send(ws, "error", {"code": "unknown_type", "type": msg.type})


async def _handle_send(
    ws: WebSocket, session: MessagingSession, data: dict[str, Any], *, retry: bool = False,
) -> None:
    try:
        if retry:
            message = await session.retry(UUID(str(data["client_msg_id"])))
        else:
            message = await session.send(str(data["content"]))
    except SendError as exc:
        # Transport failures were already pushed as message.failed.
        if not exc.retryable:
            await manager.send(ws, "error", _error_data("send", exc))
        return
    await manager.send(ws, "message.created", _message_data(message))


def _error_data(frame_type: str, exc: AppError) -> dict[str, Any]:
    return {"code": type(exc).__name__, "type": frame_type, "detail": exc.detail}
