"""Account request/response schemas."""

from __future__ import annotations

from datetime import datetime
from typing import Literal
from uuid import UUID

from pydantic import BaseModel, Field

from chainproof.models.user import User


class RegisterRequest(BaseModel):
    """Registration payload; presence of each field is checked by the service."""

    username: str | None = Field(default=None, max_length=50)
    email: str | None = Field(default=None, max_length=320)
    password: str | None = Field(default=None, max_length=256)


class LoginRequest(BaseModel):
    """Password login payload."""

    email: str | None = Field(default=None, max_length=320)
    password: str | None = Field(default=None, max_length=256)


class UserPublic(BaseModel):
    """Client-visible user fields."""

    id: UUID
    username: str
    email: str
    is_active: bool
    created_at: datetime
    last_login_at: datetime | None


class AuthPayload(BaseModel):
    """User plus freshly issued bearer token."""

    user: UserPublic
    token: str
    token_type: Literal["bearer"] = "bearer"
    expires_at: datetime


class AuthResponse(BaseModel):
    """Register/login success envelope."""

    success: Literal[True] = True
    message: str
    data: AuthPayload


class ProfilePayload(BaseModel):
    """Profile plus active key count."""

    user: UserPublic
    api_key_count: int


class ProfileResponse(BaseModel):
    """Profile success envelope."""

    success: Literal[True] = True
    data: ProfilePayload


def user_public_view(user: User) -> UserPublic:
    """Project a user row onto its client-visible fields."""
    return UserPublic(
        id=user.id,
        username=user.username,
        email=user.email,
        is_active=user.is_active,
        created_at=user.created_at,
        last_login_at=user.last_login_at,
    )
