"""FastAPI dependency injection helpers."""
from __future__ import annotations

from typing import Annotated, AsyncIterator

from fastapi import Depends, HTTPException, status
from fastapi.security import HTTPAuthorizationCredentials, HTTPBearer

from showspot_messaging.application.dto.principal import Principal
from showspot_messaging.application.ports.auth import TokenVerifier
from showspot_messaging.application.uow import UnitOfWork
from showspot_messaging.config import settings
from showspot_messaging.domain.value_objects.entity_ref import EntityRef
from showspot_messaging.infrastructure.auth.hs256_verifier import HS256Verifier
from showspot_messaging.infrastructure.db.session import AsyncSessionLocal
from showspot_messaging.infrastructure.db.uow import SqlAlchemyUoW
from showspot_messaging.services.entity_resolver import resolve_acting_entity

_bearer_scheme = HTTPBearer()


async def get_uow() -> AsyncIterator[UnitOfWork]:
    async with AsyncSessionLocal() as session:
        uow = SqlAlchemyUoW(session)
        try:
            yield uow
        finally:
            await session.close()


UoWDep = Annotated[UnitOfWork, Depends(get_uow)]

_verifier: TokenVerifier | None = None


def get_verifier() -> TokenVerifier:
    global _verifier  # noqa: PLW0603
    if _verifier is None:
        _verifier = HS256Verifier(settings.JWT_SECRET, settings.JWT_ALGORITHM)
    return _verifier


async def get_current_principal(
    credentials: Annotated[HTTPAuthorizationCredentials, Depends(_bearer_scheme)],
) -> Principal:
    verifier = get_verifier()
    try:
        return await verifier.verify(credentials.credentials)
    except Exception as exc:
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail=str(exc),
        ) from exc


CurrentPrincipal = Annotated[Principal, Depends(get_current_principal)]


async def get_current_viewer(principal: CurrentPrincipal, uow: UoWDep) -> EntityRef:
    """The spotter, artist or venue the caller is acting as."""
    return await resolve_acting_entity(principal.account_id, uow)


CurrentViewer = Annotated[EntityRef, Depends(get_current_viewer)]
