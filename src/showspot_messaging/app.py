from __future__ import annotations

import logging
from contextlib import asynccontextmanager
from typing import AsyncIterator

import redis.asyncio as aioredis
from fastapi import FastAPI, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse

from showspot_messaging.api.middleware.correlation_id import CorrelationIdMiddleware
from showspot_messaging.api.v1.routers import conversations, entities, health, messages, ws
from showspot_messaging.application.exceptions import (
    AggregationError,
    NotFoundError,
    ResolutionError,
    SendError,
    SubscriptionError,
)
from showspot_messaging.config import settings

logger = logging.getLogger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI) -> AsyncIterator[None]:
    """Startup / shutdown lifecycle."""
    app.state.redis = aioredis.from_url(
        settings.REDIS_URL,
        decode_responses=True,
    )
    logger.info("Redis connection pool created")

    yield

    await ws.get_manager().close_all()
    await app.state.redis.aclose()
    logger.info("Redis connection pool closed")


def create_app() -> FastAPI:
    app = FastAPI(
        title="ShowSpot Messaging Service",
        version="0.1.0",
        lifespan=lifespan,
    )

    app.add_middleware(
        CORSMiddleware,
        allow_origins=settings.CORS_ORIGINS,
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )
    app.add_middleware(CorrelationIdMiddleware)

    _register_exception_handlers(app)

    app.include_router(health.router)
    app.include_router(entities.router)
    app.include_router(conversations.router)
    app.include_router(messages.router)
    app.include_router(ws.router)

    return app


def _register_exception_handlers(app: FastAPI) -> None:
    @app.exception_handler(NotFoundError)
    async def _not_found(_req: Request, exc: NotFoundError) -> JSONResponse:
        return JSONResponse(status_code=404, content={"detail": exc.detail})

    @app.exception_handler(ResolutionError)
    async def _unresolved(_req: Request, exc: ResolutionError) -> JSONResponse:
        return JSONResponse(status_code=404, content={"detail": exc.detail})

    @app.exception_handler(AggregationError)
    async def _aggregation(_req: Request, exc: AggregationError) -> JSONResponse:
        return JSONResponse(status_code=503, content={"detail": exc.detail})

    @app.exception_handler(SendError)
    async def _send(_req: Request, exc: SendError) -> JSONResponse:
        status_code = 502 if exc.retryable else 422
        return JSONResponse(
            status_code=status_code,
            content={"detail": exc.detail, "retryable": exc.retryable},
        )

    @app.exception_handler(SubscriptionError)
    async def _subscription(_req: Request, exc: SubscriptionError) -> JSONResponse:
        return JSONResponse(status_code=503, content={"detail": exc.detail})
