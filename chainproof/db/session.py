"""Async SQLAlchemy engine and session factory owned by an explicit handle."""

from __future__ import annotations

from collections.abc import AsyncGenerator

import structlog
from sqlalchemy import text
from sqlalchemy.ext.asyncio import (
    AsyncEngine,
    AsyncSession,
    async_sessionmaker,
    create_async_engine,
)

logger = structlog.get_logger(__name__)


class Database:
    """Store handle created at process start and disposed on shutdown.

    The handle is attached to ``app.state.database`` by the application
    lifespan; request handlers receive sessions through
    ``chainproof.dependencies.get_database_session``.
    """

    def __init__(self, url: str, echo: bool = False) -> None:
        self._url = url
        self._echo = echo
        self._engine: AsyncEngine | None = None
        self._session_factory: async_sessionmaker[AsyncSession] | None = None

    @property
    def engine(self) -> AsyncEngine:
        """Return the open engine."""
        if self._engine is None:
            raise RuntimeError("Database is not connected.")
        return self._engine

    @property
    def session_factory(self) -> async_sessionmaker[AsyncSession]:
        """Return the session factory bound to the open engine."""
        if self._session_factory is None:
            raise RuntimeError("Database is not connected.")
        return self._session_factory

    @property
    def is_connected(self) -> bool:
        """Return True between ``connect`` and ``disconnect``."""
        return self._engine is not None

    def connect(self) -> None:
        """Create the engine and session factory."""
        if self._engine is not None:
            return
        self._engine = create_async_engine(self._url, echo=self._echo, pool_pre_ping=True)
        self._session_factory = async_sessionmaker(
            bind=self._engine, autoflush=False, expire_on_commit=False
        )
        logger.info("database_connected", database=self._engine.url.database)

    async def disconnect(self) -> None:
        """Dispose the engine and close pooled connections."""
        if self._engine is None:
            return
        await self._engine.dispose()
        self._engine = None
        self._session_factory = None
        logger.info("database_disconnected")

    async def ping(self) -> bool:
        """Return True when the database accepts a lightweight query."""
        async with self.engine.connect() as connection:
            await connection.execute(text("SELECT 1"))
        return True

    async def session(self) -> AsyncGenerator[AsyncSession, None]:
        """Yield an async database session for request-scoped use."""
        async with self.session_factory() as session:
            yield session
