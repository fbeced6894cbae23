"""API key issuance, ownership-scoped management, and authorization."""

from __future__ import annotations

from collections.abc import Mapping
from dataclasses import dataclass
from datetime import datetime
from functools import lru_cache
from typing import Any
from uuid import UUID

import structlog
from sqlalchemy import func, select, update
from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession

from chainproof.config import get_settings
from chainproof.core.api_keys import (
    APIKeyCore,
    compute_expires_at,
    is_expired,
    merge_permissions,
    rate_limit_policy,
)
from chainproof.errors import AuthError, NotFoundError, QuotaError, ServerError, ValidationError
from chainproof.models.api_key import DEFAULT_RATE_LIMIT, APIKey
from chainproof.models.user import User

logger = structlog.get_logger(__name__)

_NAME_MAX_LENGTH = 50
_MAX_GENERATION_ATTEMPTS = 3


@dataclass(frozen=True)
class CreatedAPIKey:
    """API key creation result containing raw key one-time output."""

    key: APIKey
    api_key: str


@dataclass(frozen=True)
class AuthorizedAPIKey:
    """Snapshot of a key that passed authorization and was counted."""

    key_id: UUID
    user_id: UUID
    name: str
    permissions: dict[str, bool]
    rate_limit: dict[str, int]
    usage_count: int
    last_used_at: datetime
    expires_at: datetime | None


def _validate_name(name: str | None) -> str:
    """Return the trimmed key name or raise ValidationError."""
    if name is None or not name.strip():
        raise ValidationError("Please provide a name for the API key.")
    cleaned = name.strip()
    if len(cleaned) > _NAME_MAX_LENGTH:
        raise ValidationError("Name cannot exceed 50 characters.")
    return cleaned


def _is_key_hash_conflict(exc: IntegrityError) -> bool:
    """Return True when the violated constraint is the key hash uniqueness."""
    return "uq_api_keys_hashed_key" in str(exc.orig if exc.orig is not None else exc)


class APIKeyService:
    """Service for API key CRUD, authorization, and usage accounting."""

    def __init__(self, core: APIKeyCore, max_active_keys: int = 10) -> None:
        self._core = core
        self._max_active_keys = max_active_keys

    @property
    def core(self) -> APIKeyCore:
        """Return the key primitives used by this service."""
        return self._core

    async def create_key(
        self,
        db_session: AsyncSession,
        user_id: UUID,
        name: str | None,
        permissions: Mapping[str, bool] | None = None,
        expires_in_days: float | None = None,
    ) -> CreatedAPIKey:
        """Create a key for the user and return the raw key exactly once."""
        cleaned_name = _validate_name(name)
        granted = merge_permissions(permissions)
        expires_at = compute_expires_at(expires_in_days)

        for attempt in range(1, _MAX_GENERATION_ATTEMPTS + 1):
            await self._lock_owner(db_session=db_session, user_id=user_id)
            active_count = await self.count_active_keys(db_session=db_session, user_id=user_id)
            if active_count >= self._max_active_keys:
                await db_session.rollback()
                raise QuotaError(
                    f"Maximum limit of {self._max_active_keys} active API keys reached. "
                    "Please revoke unused keys."
                )

            raw_key = self._core.generate_raw_key()
            key_row = APIKey(
                user_id=user_id,
                hashed_key=self._core.hash_key(raw_key),
                key_preview=self._core.key_preview(raw_key),
                name=cleaned_name,
                is_active=True,
                usage_count=0,
                permissions=granted,
                rate_limit=dict(DEFAULT_RATE_LIMIT),
                expires_at=expires_at,
            )
            db_session.add(key_row)
            try:
                await db_session.flush()
            except IntegrityError as exc:
                await db_session.rollback()
                if not _is_key_hash_conflict(exc):
                    raise
                logger.warning("api_key_hash_collision", user_id=str(user_id), attempt=attempt)
                continue
            except Exception:
                await db_session.rollback()
                raise
            await db_session.commit()
            return CreatedAPIKey(key=key_row, api_key=raw_key)

        raise ServerError("Server error during API key generation.")

    async def list_keys(self, db_session: AsyncSession, user_id: UUID) -> list[APIKey]:
        """List the user's keys, newest first."""
        statement = (
            select(APIKey).where(APIKey.user_id == user_id).order_by(APIKey.created_at.desc())
        )
        result = await db_session.execute(statement)
        return list(result.scalars().all())

    async def update_key(
        self,
        db_session: AsyncSession,
        user_id: UUID,
        key_id: UUID,
        name: str | None = None,
        is_active: bool | None = None,
    ) -> APIKey:
        """Rename or toggle a key owned by the user."""
        key_row = await self._get_owned_key(
            db_session=db_session, user_id=user_id, key_id=key_id, for_update=True
        )
        if key_row is None:
            raise NotFoundError("API key not found.")

        if name is not None:
            key_row.name = _validate_name(name)
        if is_active is not None:
            key_row.is_active = is_active
        try:
            await db_session.flush()
        except Exception:
            await db_session.rollback()
            raise
        await db_session.commit()
        await db_session.refresh(key_row)
        return key_row

    async def revoke_key(self, db_session: AsyncSession, user_id: UUID, key_id: UUID) -> APIKey:
        """Permanently delete a key owned by the user."""
        key_row = await self._get_owned_key(
            db_session=db_session, user_id=user_id, key_id=key_id, for_update=True
        )
        if key_row is None:
            raise NotFoundError("API key not found.")

        try:
            await db_session.delete(key_row)
            await db_session.flush()
        except Exception:
            await db_session.rollback()
            raise
        await db_session.commit()
        return key_row

    async def count_active_keys(self, db_session: AsyncSession, user_id: UUID) -> int:
        """Return how many active keys the user owns."""
        statement = (
            select(func.count())
            .select_from(APIKey)
            .where(APIKey.user_id == user_id, APIKey.is_active.is_(True))
        )
        result = await db_session.execute(statement)
        return int(result.scalar_one())

    async def authorize(self, db_session: AsyncSession, raw_key: str) -> AuthorizedAPIKey:
        """Validate a presented key and record one use of it."""
        if not self._core.is_valid_format(raw_key):
            raise AuthError("Invalid API key.", code="invalid_api_key")

        key_row = await self._get_key_by_hash(
            db_session=db_session, key_hash=self._core.hash_key(raw_key)
        )
        if key_row is None or not self._core.hash_matches(key_row.hashed_key, raw_key):
            raise AuthError("Invalid API key.", code="invalid_api_key")
        if not key_row.is_active:
            raise AuthError("API key is inactive.", code="inactive_api_key")
        if is_expired(key_row):
            raise AuthError("API key has expired.", code="expired_api_key")

        usage_count, last_used_at = await self.record_usage(db_session=db_session, key_id=key_row.id)
        return AuthorizedAPIKey(
            key_id=key_row.id,
            user_id=key_row.user_id,
            name=key_row.name,
            permissions=merge_permissions(key_row.permissions),
            rate_limit=rate_limit_policy(key_row),
            usage_count=usage_count,
            last_used_at=last_used_at,
            expires_at=key_row.expires_at,
        )

    async def record_usage(self, db_session: AsyncSession, key_id: UUID) -> tuple[int, datetime]:
        """Increment the usage counter in place and stamp last use."""
        statement = (
            update(APIKey)
            .where(APIKey.id == key_id)
            .values(usage_count=APIKey.usage_count + 1, last_used_at=func.now())
            .returning(APIKey.usage_count, APIKey.last_used_at)
            .execution_options(synchronize_session=False)
        )
        try:
            result = await db_session.execute(statement)
            row = result.one_or_none()
        except Exception:
            await db_session.rollback()
            raise
        if row is None:
            await db_session.rollback()
            raise AuthError("Invalid API key.", code="invalid_api_key")
        await db_session.commit()
        return int(row[0]), row[1]

    async def _lock_owner(self, db_session: AsyncSession, user_id: UUID) -> None:
        """Lock the owning user row so quota checks serialize per user."""
        statement = select(User.id).where(User.id == user_id).with_for_update()
        result = await db_session.execute(statement)
        if result.scalar_one_or_none() is None:
            raise NotFoundError("User not found.")

    async def _get_owned_key(
        self,
        db_session: AsyncSession,
        user_id: UUID,
        key_id: UUID,
        for_update: bool,
    ) -> APIKey | None:
        """Fetch a key by id only when it belongs to the user."""
        statement = select(APIKey).where(APIKey.id == key_id, APIKey.user_id == user_id)
        if for_update:
            statement = statement.with_for_update()
        result = await db_session.execute(statement)
        return result.scalar_one_or_none()

    async def _get_key_by_hash(self, db_session: AsyncSession, key_hash: str) -> APIKey | None:
        """Fetch a key row by its token hash."""
        result = await db_session.execute(select(APIKey).where(APIKey.hashed_key == key_hash))
        return result.scalar_one_or_none()


def api_key_summary(key: APIKey) -> dict[str, Any]:
    """Return non-secret identifying fields for logs and audit events."""
    return {"key_id": str(key.id), "key_preview": key.key_preview, "name": key.name}


@lru_cache
def get_api_key_service() -> APIKeyService:
    """Create and cache API key service dependency."""
    settings = get_settings()
    return APIKeyService(
        core=APIKeyCore(prefix=settings.api_keys.prefix),
        max_active_keys=settings.api_keys.max_active_keys,
    )
