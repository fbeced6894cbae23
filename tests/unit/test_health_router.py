"""Unit tests for the banner and health endpoints."""

from __future__ import annotations

from types import SimpleNamespace

import pytest
from fastapi import FastAPI
from httpx import ASGITransport, AsyncClient
from redis.exceptions import ConnectionError as RedisConnectionError

from chainproof.error_handlers import register_exception_handlers
from chainproof.routers.health import check_postgres_ready, check_redis_ready, router


def _build_health_app(postgres_ready: bool, redis_ready: bool) -> FastAPI:
    """Build app with health router and deterministic dependency overrides."""
    app = FastAPI()
    app.state.settings = SimpleNamespace(
        app=SimpleNamespace(service="chainproof-api", version="1.0.0", environment="production")
    )
    register_exception_handlers(app, environment="production")
    app.include_router(router)

    async def _postgres_override() -> bool:
        return postgres_ready

    async def _redis_override() -> bool:
        return redis_ready

    app.dependency_overrides[check_postgres_ready] = _postgres_override
    app.dependency_overrides[check_redis_ready] = _redis_override
    return app


async def _get(app: FastAPI, path: str):
    async with AsyncClient(transport=ASGITransport(app=app), base_url="http://testserver") as client:
        return await client.get(path)


@pytest.mark.asyncio
async def test_banner_describes_service() -> None:
    response = await _get(_build_health_app(True, True), "/")

    assert response.status_code == 200
    assert response.json() == {
        "success": True,
        "message": "ChainProof API",
        "service": "chainproof-api",
        "version": "1.0.0",
        "environment": "production",
    }


@pytest.mark.asyncio
async def test_health_live_returns_200() -> None:
    response = await _get(_build_health_app(postgres_ready=False, redis_ready=False), "/health/live")

    assert response.status_code == 200
    assert response.json() == {"success": True, "status": "live"}


@pytest.mark.asyncio
async def test_health_ready_returns_200_when_backends_are_reachable() -> None:
    response = await _get(_build_health_app(postgres_ready=True, redis_ready=True), "/health/ready")

    assert response.status_code == 200
    assert response.json() == {"success": True, "status": "ready"}


@pytest.mark.asyncio
@pytest.mark.parametrize(("postgres_ready", "redis_ready"), [(False, True), (True, False)])
async def test_health_ready_returns_503_when_a_backend_is_down(
    postgres_ready: bool, redis_ready: bool
) -> None:
    response = await _get(_build_health_app(postgres_ready, redis_ready), "/health/ready")

    assert response.status_code == 503
    assert response.json() == {
        "success": False,
        "error": "Service not ready.",
        "code": "service_unavailable",
    }


class _FailingRedis:
    async def ping(self) -> bool:
        raise RedisConnectionError("connection refused")


@pytest.mark.asyncio
async def test_redis_check_reports_unreachable_backend() -> None:
    request = SimpleNamespace(app=SimpleNamespace(state=SimpleNamespace(redis=_FailingRedis())))
    assert await check_redis_ready(request) is False  # type: ignore[arg-type]


@pytest.mark.asyncio
async def test_postgres_check_requires_connected_database() -> None:
    database = SimpleNamespace(is_connected=False)
    request = SimpleNamespace(app=SimpleNamespace(state=SimpleNamespace(database=database)))
    assert await check_postgres_ready(request) is False  # type: ignore[arg-type]
