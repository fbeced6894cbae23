"""API key ORM model."""

from __future__ import annotations

from datetime import datetime
from typing import TYPE_CHECKING, Any
from uuid import UUID

from sqlalchemy import Boolean, DateTime, ForeignKey, Index, Integer, String
from sqlalchemy.dialects.postgresql import JSONB
from sqlalchemy.dialects.postgresql import UUID as PGUUID
from sqlalchemy.orm import Mapped, mapped_column, relationship

from chainproof.db.base import Base, TimestampMixin, UUIDPrimaryKeyMixin

if TYPE_CHECKING:
    from chainproof.models.user import User

DEFAULT_PERMISSIONS: dict[str, bool] = {
    "analyze": True,
    "risk_score": True,
    "full_analysis": True,
    "batch": True,
    "registration": True,
}
DEFAULT_RATE_LIMIT: dict[str, int] = {
    "requests_per_minute": 60,
    "requests_per_day": 10000,
}


def _default_permissions() -> dict[str, Any]:
    return dict(DEFAULT_PERMISSIONS)


def _default_rate_limit() -> dict[str, Any]:
    return dict(DEFAULT_RATE_LIMIT)


class APIKey(UUIDPrimaryKeyMixin, TimestampMixin, Base):
    """Hashed API key record owned by one user."""

    __tablename__ = "api_keys"
    __table_args__ = (Index("ix_api_keys_user_id_is_active", "user_id", "is_active"),)

    user_id: Mapped[UUID] = mapped_column(
        PGUUID(as_uuid=True), ForeignKey("users.id", ondelete="RESTRICT"), nullable=False
    )
    hashed_key: Mapped[str] = mapped_column(String(64), nullable=False, unique=True)
    key_preview: Mapped[str] = mapped_column(String(11), nullable=False)
    name: Mapped[str] = mapped_column(String(50), nullable=False)
    is_active: Mapped[bool] = mapped_column(Boolean, nullable=False, default=True)
    last_used_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True), nullable=True)
    usage_count: Mapped[int] = mapped_column(Integer, nullable=False, default=0, server_default="0")
    permissions: Mapped[dict[str, Any]] = mapped_column(
        JSONB, nullable=False, default=_default_permissions
    )
    rate_limit: Mapped[dict[str, Any]] = mapped_column(
        JSONB, nullable=False, default=_default_rate_limit
    )
    expires_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True), nullable=True)

    user: Mapped[User] = relationship(back_populates="api_keys")
