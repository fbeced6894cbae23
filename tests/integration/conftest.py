"""Shared integration-test fixtures using Postgres and Redis testcontainers."""

from __future__ import annotations

import os
from collections.abc import AsyncIterator, Callable, Iterator
from pathlib import Path
from typing import Any

import pytest
from alembic import command
from alembic.config import Config
from redis import asyncio as redis_async
from sqlalchemy import delete
from sqlalchemy.ext.asyncio import AsyncSession
from testcontainers.postgres import PostgresContainer
from testcontainers.redis import RedisContainer

from docker.errors import DockerException

REPO_ROOT = Path(__file__).resolve().parents[2]


def _clear_dependency_caches() -> None:
    """Clear cached settings-derived singletons between test phases."""
    from chainproof.config import get_settings
    from chainproof.core.jwt import get_jwt_service
    from chainproof.services.api_key_service import get_api_key_service
    from chainproof.services.token_service import get_token_service

    get_settings.cache_clear()
    get_jwt_service.cache_clear()
    get_token_service.cache_clear()
    get_api_key_service.cache_clear()


def _redis_connection_url(redis: RedisContainer) -> str:
    """Return a redis:// URL across testcontainers versions."""
    get_url = getattr(redis, "get_connection_url", None)
    if callable(get_url):
        redis_url = get_url()
    else:
        host = redis.get_container_host_ip()
        port = redis.get_exposed_port(6379)
        redis_url = f"redis://{host}:{port}"
    if not redis_url.endswith("/0"):
        redis_url = f"{redis_url}/0"
    return redis_url


def _postgres_async_url(postgres: PostgresContainer) -> str:
    """Return a postgresql+asyncpg URL across testcontainers versions."""
    try:
        postgres_url = postgres.get_connection_url(driver=None)
    except TypeError:
        postgres_url = postgres.get_connection_url()

    if postgres_url.startswith("postgresql+"):
        postgres_url = "postgresql://" + postgres_url.split("://", 1)[1]

    return postgres_url.replace("postgresql://", "postgresql+asyncpg://", 1)


def _set_env_values(env_values: dict[str, str]) -> Callable[[], None]:
    """Apply env vars and return a restore callback."""
    original = {key: os.environ.get(key) for key in env_values}
    os.environ.update(env_values)

    def _restore() -> None:
        for key, value in original.items():
            if value is None:
                os.environ.pop(key, None)
            else:
                os.environ[key] = value

    return _restore


@pytest.fixture(scope="session")
def integration_env() -> Iterator[dict[str, str]]:
    """Start Postgres/Redis containers, configure settings, and migrate the schema."""
    try:
        postgres = PostgresContainer("postgres:16")
        redis = RedisContainer("redis:7")
        postgres.start()
        redis.start()
    except DockerException as exc:
        if os.environ.get("CI", "").lower() in {"1", "true", "yes"}:
            pytest.fail(f"Docker daemon unavailable in CI for integration tests: {exc}")
        pytest.skip(f"Docker daemon unavailable for integration tests: {exc}")

    database_url = _postgres_async_url(postgres)
    redis_url = _redis_connection_url(redis)

    restore_env = _set_env_values(
        {
            "APP__ENVIRONMENT": "development",
            "APP__SERVICE": "chainproof-api",
            "APP__LOG_LEVEL": "INFO",
            "DATABASE__URL": database_url,
            "REDIS__URL": redis_url,
            "JWT__SECRET": "integration-secret-with-at-least-32-characters",
            "JWT__ACCESS_TOKEN_TTL_SECONDS": "604800",
            "RATE_LIMIT__DEFAULT_REQUESTS_PER_WINDOW": "10000",
            "RATE_LIMIT__LOGIN_REQUESTS_PER_WINDOW": "10000",
            "RATE_LIMIT__REGISTER_REQUESTS_PER_WINDOW": "10000",
        }
    )
    _clear_dependency_caches()

    alembic_cfg = Config(str(REPO_ROOT / "alembic.ini"))
    alembic_cfg.set_main_option("script_location", str(REPO_ROOT / "migrations"))
    alembic_cfg.set_main_option("sqlalchemy.url", database_url)
    command.upgrade(alembic_cfg, "head")

    try:
        yield {"database_url": database_url, "redis_url": redis_url}
    finally:
        try:
            _clear_dependency_caches()
        finally:
            restore_env()
            postgres.stop()
            redis.stop()


@pytest.fixture(scope="function")
async def database(integration_env: dict[str, str]) -> AsyncIterator[Any]:
    """Yield a connected store handle with empty tables."""
    from chainproof.db.session import Database
    from chainproof.models.api_key import APIKey
    from chainproof.models.user import User

    handle = Database(integration_env["database_url"])
    handle.connect()
    async with handle.session_factory() as session:
        await session.execute(delete(APIKey))
        await session.execute(delete(User))
        await session.commit()
    try:
        yield handle
    finally:
        await handle.disconnect()


@pytest.fixture(scope="function")
async def redis_client(integration_env: dict[str, str]) -> AsyncIterator[Any]:
    """Yield a flushed Redis client bound to the current event loop."""
    client = redis_async.from_url(integration_env["redis_url"], decode_responses=True)
    await client.flushdb()
    try:
        yield client
    finally:
        await client.aclose()


@pytest.fixture(scope="function")
async def db_session(database: Any) -> AsyncIterator[AsyncSession]:
    """Yield a write-capable async DB session for test seeding and assertions."""
    async with database.session_factory() as session:
        yield session


@pytest.fixture(scope="function")
def app_factory(database: Any, redis_client: Any) -> Callable[[], Any]:
    """Build isolated FastAPI app instances over the test store and Redis."""
    from chainproof.main import create_app

    def _factory() -> Any:
        _clear_dependency_caches()
        return create_app(database=database, redis_client=redis_client)

    return _factory


@pytest.fixture(scope="function")
def register_user(app_factory: Callable[[], Any]) -> Callable[..., Any]:
    """Register an account over HTTP and return its bearer headers and user id."""
    from httpx import ASGITransport, AsyncClient

    async def _register(username: str, email: str, password: str = "Sup3r-secret!") -> dict[str, Any]:
        app = app_factory()
        async with AsyncClient(
            transport=ASGITransport(app=app), base_url="http://testserver"
        ) as client:
            response = await client.post(
                "/auth/register",
                json={"username": username, "email": email, "password": password},
            )
        assert response.status_code == 201, response.text
        data = response.json()["data"]
        return {
            "user_id": data["user"]["id"],
            "headers": {"Authorization": f"Bearer {data['token']}"},
        }

    return _register
