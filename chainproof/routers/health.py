"""Service banner and health check endpoints."""

from __future__ import annotations

from typing import Annotated, Any

import structlog
from fastapi import APIRouter, Depends, Request
from fastapi.responses import JSONResponse
from redis.exceptions import RedisError
from sqlalchemy.exc import SQLAlchemyError

from chainproof.config import Settings
from chainproof.error_handlers import error_response

router = APIRouter(tags=["health"])
logger = structlog.get_logger(__name__)


async def check_postgres_ready(request: Request) -> bool:
    """Return True when Postgres accepts a lightweight query."""
    database = getattr(request.app.state, "database", None)
    if database is None or not database.is_connected:
        return False
    try:
        return await database.ping()
    except (SQLAlchemyError, OSError) as exc:
        logger.warning("readiness_check_failed", dependency="postgres", error=str(exc))
        return False


async def check_redis_ready(request: Request) -> bool:
    """Return True when Redis responds to PING."""
    client = getattr(request.app.state, "redis", None)
    if client is None:
        return False
    try:
        return bool(await client.ping())
    except (RedisError, OSError) as exc:
        logger.warning("readiness_check_failed", dependency="redis", error=str(exc))
        return False


@router.get("/")
async def banner(request: Request) -> dict[str, Any]:
    """Describe the running service."""
    settings: Settings = request.app.state.settings
    return {
        "success": True,
        "message": "ChainProof API",
        "service": settings.app.service,
        "version": settings.app.version,
        "environment": settings.app.environment,
    }


@router.get("/health/live")
async def live() -> dict[str, Any]:
    """Liveness endpoint."""
    return {"success": True, "status": "live"}


@router.get("/health/ready", response_model=None)
async def ready(
    postgres_ready: Annotated[bool, Depends(check_postgres_ready)],
    redis_ready: Annotated[bool, Depends(check_redis_ready)],
) -> dict[str, Any] | JSONResponse:
    """Readiness check requiring both Postgres and Redis."""
    if not postgres_ready or not redis_ready:
        return error_response(
            status_code=503, detail="Service not ready.", code="service_unavailable"
        )
    return {"success": True, "status": "ready"}
