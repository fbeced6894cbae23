"""Service error taxonomy mapped onto HTTP responses."""

from __future__ import annotations


class ServiceError(Exception):
    """Base class for failures raised by services and surfaced to clients."""

    status_code = 500
    default_code = "server_error"

    def __init__(self, detail: str, code: str | None = None, status_code: int | None = None) -> None:
        super().__init__(detail)
        self.detail = detail
        self.code = code or self.default_code
        if status_code is not None:
            self.status_code = status_code


class ValidationError(ServiceError):
    """Missing or malformed input."""

    status_code = 400
    default_code = "validation_error"


class ConflictError(ServiceError):
    """A unique field is already taken."""

    status_code = 400
    default_code = "conflict"


class AuthError(ServiceError):
    """Bad credentials, or an invalid or expired token or API key."""

    status_code = 401
    default_code = "invalid_credentials"


class PermissionDeniedError(ServiceError):
    """Authenticated caller lacks the requested capability."""

    status_code = 403
    default_code = "insufficient_permission"


class QuotaError(ServiceError):
    """Per-user resource limit reached."""

    status_code = 400
    default_code = "quota_exceeded"


class NotFoundError(ServiceError):
    """Resource absent or not owned by the caller."""

    status_code = 404
    default_code = "not_found"


class ServerError(ServiceError):
    """Unexpected store or crypto failure."""
