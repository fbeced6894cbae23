"""API key request/response schemas."""

from __future__ import annotations

from datetime import datetime
from typing import Literal
from uuid import UUID

from pydantic import BaseModel, ConfigDict, Field
from pydantic.alias_generators import to_camel

from chainproof.core.api_keys import (
    MAX_EXPIRES_IN_DAYS,
    is_expired,
    merge_permissions,
    rate_limit_policy,
)
from chainproof.models.api_key import APIKey
from chainproof.services.api_key_service import AuthorizedAPIKey


class _StrictRequest(BaseModel):
    """Request body accepting snake_case or camelCase names and nothing else."""

    model_config = ConfigDict(extra="forbid", alias_generator=to_camel, populate_by_name=True)


class PermissionsPayload(_StrictRequest):
    """Capability flags; omitted flags keep their default (enabled)."""

    analyze: bool | None = None
    risk_score: bool | None = None
    full_analysis: bool | None = None
    batch: bool | None = None
    registration: bool | None = None


class APIKeyCreateRequest(_StrictRequest):
    """Create API key request payload."""

    name: str | None = Field(default=None, max_length=50)
    permissions: PermissionsPayload | None = None
    expires_in_days: float | None = Field(
        default=None, allow_inf_nan=False, le=MAX_EXPIRES_IN_DAYS
    )


class APIKeyUpdateRequest(_StrictRequest):
    """Partial update payload; only supplied fields change."""

    name: str | None = Field(default=None, min_length=1, max_length=50)
    is_active: bool | None = None


class APIKeyIntrospectRequest(_StrictRequest):
    """Optional body form of the presented key."""

    api_key: str | None = Field(default=None, min_length=4, max_length=128)


class RateLimitPolicy(BaseModel):
    """Requests allowed per key."""

    requests_per_minute: int
    requests_per_day: int


class APIKeyPublic(BaseModel):
    """Redacted key view; the raw token never appears here."""

    id: UUID
    name: str
    key_preview: str
    is_active: bool
    is_expired: bool
    usage_count: int
    last_used_at: datetime | None
    permissions: dict[str, bool]
    rate_limit: RateLimitPolicy
    expires_at: datetime | None
    created_at: datetime


class APIKeyCreated(BaseModel):
    """Creation payload, the only response carrying the raw key."""

    id: UUID
    api_key: str
    name: str
    key_preview: str
    permissions: dict[str, bool]
    rate_limit: RateLimitPolicy
    expires_at: datetime | None
    created_at: datetime


class APIKeyCreateResponse(BaseModel):
    """Create API key success envelope."""

    success: Literal[True] = True
    message: str = "API key created successfully."
    data: APIKeyCreated
    warning: str = "Please save this API key securely. You will not be able to see it again."


class APIKeyListResponse(BaseModel):
    """List API keys success envelope."""

    success: Literal[True] = True
    count: int
    data: list[APIKeyPublic]


class APIKeyUpdateResponse(BaseModel):
    """Update API key success envelope."""

    success: Literal[True] = True
    message: str = "API key updated successfully."
    data: APIKeyPublic


class RevokedAPIKey(BaseModel):
    """Identity of a deleted key."""

    id: UUID
    name: str


class APIKeyRevokeResponse(BaseModel):
    """Revoke API key success envelope."""

    success: Literal[True] = True
    message: str = "API key revoked successfully."
    data: RevokedAPIKey


class APIKeyIntrospection(BaseModel):
    """Authorization result for a presented key."""

    key_id: UUID
    user_id: UUID
    name: str
    permissions: dict[str, bool]
    rate_limit: RateLimitPolicy
    usage_count: int
    last_used_at: datetime
    expires_at: datetime | None


class APIKeyIntrospectResponse(BaseModel):
    """Introspection success envelope."""

    success: Literal[True] = True
    data: APIKeyIntrospection


def api_key_public_view(key: APIKey, now: datetime | None = None) -> APIKeyPublic:
    """Project a key row onto its redacted client view."""
    return APIKeyPublic(
        id=key.id,
        name=key.name,
        key_preview=key.key_preview,
        is_active=key.is_active,
        is_expired=is_expired(key, now=now),
        usage_count=key.usage_count,
        last_used_at=key.last_used_at,
        permissions=merge_permissions(key.permissions),
        rate_limit=RateLimitPolicy(**rate_limit_policy(key)),
        expires_at=key.expires_at,
        created_at=key.created_at,
    )


def api_key_created_view(key: APIKey, raw_key: str) -> APIKeyCreated:
    """Build the one-time creation payload."""
    return APIKeyCreated(
        id=key.id,
        api_key=raw_key,
        name=key.name,
        key_preview=key.key_preview,
        permissions=merge_permissions(key.permissions),
        rate_limit=RateLimitPolicy(**rate_limit_policy(key)),
        expires_at=key.expires_at,
        created_at=key.created_at,
    )


def api_key_introspection_view(authorized: AuthorizedAPIKey) -> APIKeyIntrospection:
    """Build the introspection payload from an authorization snapshot."""
    return APIKeyIntrospection(
        key_id=authorized.key_id,
        user_id=authorized.user_id,
        name=authorized.name,
        permissions=authorized.permissions,
        rate_limit=RateLimitPolicy(**authorized.rate_limit),
        usage_count=authorized.usage_count,
        last_used_at=authorized.last_used_at,
        expires_at=authorized.expires_at,
    )
