from __future__ import annotations

from fastapi import APIRouter

from showspot_messaging.api.deps import CurrentViewer, UoWDep
from showspot_messaging.api.v1.schemas.conversation import (
    ConversationGroupsResponse,
    UnreadCountResponse,
)
from showspot_messaging.services import conversation_service

router = APIRouter(prefix="/api/v1/messaging/conversations", tags=["conversations"])


@router.get("", response_model=ConversationGroupsResponse)
async def list_conversations(
    viewer: CurrentViewer,
    uow: UoWDep,
) -> ConversationGroupsResponse:
    groups = await conversation_service.get_all_conversations(viewer, uow)
    return ConversationGroupsResponse.from_groups(groups)


@router.get("/unread-count", response_model=UnreadCountResponse)
async def unread_count(viewer: CurrentViewer, uow: UoWDep) -> UnreadCountResponse:
    total = await conversation_service.get_unread_total(viewer, uow)
    return UnreadCountResponse(unread_count=total)
