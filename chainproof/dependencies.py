"""Shared FastAPI dependency helpers."""

from __future__ import annotations

import hmac
from collections.abc import AsyncGenerator, Awaitable, Callable
from typing import Annotated

from fastapi import Depends, Request
from sqlalchemy.ext.asyncio import AsyncSession

from chainproof.core.api_keys import APIKeyCore
from chainproof.db.session import Database
from chainproof.errors import AuthError, PermissionDeniedError
from chainproof.models.user import User
from chainproof.services.api_key_service import (
    APIKeyService,
    AuthorizedAPIKey,
    get_api_key_service,
)
from chainproof.services.token_service import TokenService, get_token_service
from chainproof.services.user_service import UserService, get_user_service

API_KEY_HEADER = "x-api-key"


def get_database(request: Request) -> Database:
    """Return the store handle attached by the application lifespan."""
    database = getattr(request.app.state, "database", None)
    if not isinstance(database, Database):
        raise RuntimeError("Database handle is not configured on the application.")
    return database


async def get_database_session(
    database: Annotated[Database, Depends(get_database)],
) -> AsyncGenerator[AsyncSession, None]:
    """Expose the request-scoped async database session dependency."""
    async for session in database.session():
        yield session


def extract_bearer_token(request: Request) -> str | None:
    """Extract bearer token from Authorization header."""
    authorization = request.headers.get("authorization", "").strip()
    if not authorization:
        return None
    scheme, _, token = authorization.partition(" ")
    if not hmac.compare_digest(scheme.lower(), "bearer"):
        return None
    cleaned = token.strip()
    return cleaned or None


def extract_api_key(request: Request, prefix: str) -> str | None:
    """Extract an API key from X-API-Key or a prefixed bearer credential."""
    header_value = request.headers.get(API_KEY_HEADER, "").strip()
    if header_value:
        return header_value
    bearer = extract_bearer_token(request)
    if bearer is not None and bearer.startswith(prefix):
        return bearer
    return None


async def get_current_user(
    request: Request,
    db_session: Annotated[AsyncSession, Depends(get_database_session)],
    token_service: Annotated[TokenService, Depends(get_token_service)],
    user_service: Annotated[UserService, Depends(get_user_service)],
) -> User:
    """Resolve the bearer token to the current, active user record."""
    token = extract_bearer_token(request)
    if token is None:
        raise AuthError("No token provided.", code="invalid_token")

    user_id = token_service.verify_access_token(token)
    user = await user_service.get_user_by_id(db_session=db_session, user_id=user_id)
    if user is None:
        raise AuthError("User not found.", code="invalid_token")
    if not user.is_active:
        raise AuthError("Account is disabled. Please contact support.", code="account_disabled")

    request.state.user = {"user_id": str(user.id), "email": user.email}
    return user


async def get_api_key_principal(
    request: Request,
    db_session: Annotated[AsyncSession, Depends(get_database_session)],
    api_key_service: Annotated[APIKeyService, Depends(get_api_key_service)],
) -> AuthorizedAPIKey:
    """Authorize the presented API key and count the request against it."""
    core: APIKeyCore = api_key_service.core
    raw_key = extract_api_key(request, prefix=core.prefix)
    if raw_key is None:
        raise AuthError("No API key provided.", code="invalid_api_key")

    authorized = await api_key_service.authorize(db_session=db_session, raw_key=raw_key)
    request.state.user = {"user_id": str(authorized.user_id), "key_id": str(authorized.key_id)}
    return authorized


def require_api_key_permission(
    permission: str,
) -> Callable[..., Awaitable[AuthorizedAPIKey]]:
    """Require an authorized API key whose permission set enables ``permission``."""

    async def checker(
        authorized: Annotated[AuthorizedAPIKey, Depends(get_api_key_principal)],
    ) -> AuthorizedAPIKey:
        if not authorized.permissions.get(permission, False):
            raise PermissionDeniedError(f"API key does not grant the '{permission}' permission.")
        return authorized

    return checker
