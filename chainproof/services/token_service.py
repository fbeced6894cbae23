"""Bearer token issuance and verification service."""

from __future__ import annotations

from dataclasses import dataclass
from datetime import UTC, datetime, timedelta
from functools import lru_cache
from uuid import UUID

from chainproof.config import get_settings
from chainproof.core.jwt import JWTService, TokenValidationError, get_jwt_service
from chainproof.errors import AuthError


@dataclass(frozen=True)
class IssuedToken:
    """Signed bearer token and its expiry."""

    token: str
    expires_at: datetime


class TokenService:
    """Issue user bearer tokens and resolve them back to user ids."""

    def __init__(self, jwt_service: JWTService, access_token_ttl_seconds: int) -> None:
        self._jwt_service = jwt_service
        self._access_token_ttl_seconds = access_token_ttl_seconds

    def issue_access_token(self, user_id: UUID | str) -> IssuedToken:
        """Issue a bearer token carrying only the user id."""
        expires_at = datetime.now(UTC) + timedelta(seconds=self._access_token_ttl_seconds)
        token = self._jwt_service.issue_token(
            subject=str(user_id),
            expires_in_seconds=self._access_token_ttl_seconds,
        )
        return IssuedToken(token=token, expires_at=expires_at)

    def verify_access_token(self, token: str) -> UUID:
        """Return the subject user id of a valid token."""
        try:
            claims = self._jwt_service.verify_token(token)
        except TokenValidationError as exc:
            raise AuthError(exc.detail, code=exc.code) from exc
        try:
            return UUID(str(claims["sub"]))
        except ValueError as exc:
            raise AuthError("Invalid token.", code="invalid_token") from exc


@lru_cache
def get_token_service() -> TokenService:
    """Build and cache token service based on application settings."""
    settings = get_settings()
    return TokenService(
        jwt_service=get_jwt_service(),
        access_token_ttl_seconds=settings.jwt.access_token_ttl_seconds,
    )
