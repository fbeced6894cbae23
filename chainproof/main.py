"""FastAPI application factory."""

from __future__ import annotations

from collections.abc import AsyncIterator
from contextlib import asynccontextmanager

import structlog
from fastapi import FastAPI
from redis import asyncio as redis_async
from redis.asyncio.client import Redis
from starlette.middleware.cors import CORSMiddleware

from chainproof.config import Settings, configure_structlog, get_settings
from chainproof.db.session import Database
from chainproof.error_handlers import register_exception_handlers
from chainproof.middleware import (
    CorrelationIdMiddleware,
    LoggingMiddleware,
    RateLimitMiddleware,
    SecurityHeadersMiddleware,
)
from chainproof.routers import apikeys, auth, health

logger = structlog.get_logger(__name__)


def create_app(
    settings: Settings | None = None,
    database: Database | None = None,
    redis_client: Redis | None = None,
) -> FastAPI:
    """Create and configure the FastAPI application.

    The database handle and Redis client are created here and attached to
    ``app.state``; the lifespan opens the pool on startup and releases both
    on shutdown. Callers may inject their own handles, e.g. in tests.
    """
    settings = settings or get_settings()
    configure_structlog(
        environment=settings.app.environment,
        service=settings.app.service,
        log_level=settings.app.log_level,
    )
    database = database or Database(settings.database.url, echo=settings.database.echo)
    redis_client = redis_client or redis_async.from_url(settings.redis.url, decode_responses=True)

    @asynccontextmanager
    async def lifespan(app: FastAPI) -> AsyncIterator[None]:
        database.connect()
        logger.info("service_started", version=settings.app.version)
        try:
            yield
        finally:
            await database.disconnect()
            await redis_client.aclose()
            logger.info("service_stopped")

    app = FastAPI(title=settings.app.service, version=settings.app.version, lifespan=lifespan)
    app.state.settings = settings
    app.state.database = database
    app.state.redis = redis_client

    app.add_middleware(RateLimitMiddleware, redis_client=redis_client, settings=settings.rate_limit)
    app.add_middleware(LoggingMiddleware)
    app.add_middleware(SecurityHeadersMiddleware)
    app.add_middleware(
        CORSMiddleware,
        allow_origins=settings.app.cors_allow_origins,
        allow_methods=["GET", "POST", "PATCH", "DELETE"],
        allow_headers=["Authorization", "Content-Type", "X-API-Key", "X-Correlation-ID"],
    )
    app.add_middleware(CorrelationIdMiddleware)

    register_exception_handlers(app, environment=settings.app.environment)
    app.include_router(health.router)
    app.include_router(auth.router)
    app.include_router(apikeys.router)
    return app
