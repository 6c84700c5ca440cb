from __future__ import annotations

from fastapi import APIRouter, HTTPException, Query, status

from showspot_messaging.api.deps import CurrentViewer, UoWDep
from showspot_messaging.api.v1.schemas.common import PaginatedResponse
from showspot_messaging.api.v1.schemas.message import (
    MarkReadResponse,
    MessageResponse,
    SendMessageRequest,
)
from showspot_messaging.application.cursor import InvalidCursorError, decode_cursor
from showspot_messaging.config import settings
from showspot_messaging.domain.value_objects.entity_ref import EntityRef
from showspot_messaging.domain.value_objects.enums import EntityType
from showspot_messaging.services import message_service, read_state_service

router = APIRouter(prefix="/api/v1/messaging/conversations", tags=["messages"])


@router.get(
    "/{entity_type}/{entity_id}/messages",
    response_model=PaginatedResponse[MessageResponse],
)
async def list_messages(
    entity_type: EntityType,
    entity_id: str,
    viewer: CurrentViewer,
    uow: UoWDep,
    before: str | None = Query(None),
    limit: int | None = Query(None, ge=1, le=200),
) -> PaginatedResponse[MessageResponse]:
    if before is not None:
        try:
            decode_cursor(before)
        except InvalidCursorError as exc:
            raise HTTPException(status.HTTP_422_UNPROCESSABLE_ENTITY, detail=str(exc)) from exc

    messages = await message_service.load_history(
        viewer, EntityRef(id=entity_id, type=entity_type), uow, before=before, limit=limit,
    )
    next_cursor = None
    if limit is not None and len(messages) == limit:
        next_cursor = message_service.history_cursor(messages[0])
    return PaginatedResponse[MessageResponse](
        items=[MessageResponse.model_validate(m, from_attributes=True) for m in messages],
        next_cursor=next_cursor,
    )


@router.post(
    "/{entity_type}/{entity_id}/messages",
    response_model=MessageResponse,
    status_code=201,
)
async def send_message(
    entity_type: EntityType,
    entity_id: str,
    body: SendMessageRequest,
    viewer: CurrentViewer,
    uow: UoWDep,
) -> MessageResponse:
    msg = await message_service.append(
        viewer,
        EntityRef(id=entity_id, type=entity_type),
        body.content,
        uow,
        client_msg_id=body.client_msg_id,
        max_length=settings.MESSAGE_MAX_LENGTH,
        channel_prefix=settings.FEED_CHANNEL_PREFIX,
    )
    return MessageResponse.model_validate(msg, from_attributes=True)


@router.post("/{entity_type}/{entity_id}/read", response_model=MarkReadResponse)
async def mark_read(
    entity_type: EntityType,
    entity_id: str,
    viewer: CurrentViewer,
    uow: UoWDep,
) -> MarkReadResponse:
    updated = await read_state_service.mark_read(
        viewer, EntityRef(id=entity_id, type=entity_type), uow,
    )
    return MarkReadResponse(updated=updated)
