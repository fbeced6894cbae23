"""Structured audit events for account and API key actions."""

from __future__ import annotations

import ipaddress
from functools import lru_cache
from typing import Any
from uuid import UUID

import structlog
from fastapi import Request

logger = structlog.get_logger(__name__)

_REDACTED = "***REDACTED***"
_SENSITIVE_KEY_PARTS = (
    "api_key",
    "apikey",
    "authorization",
    "hashed_key",
    "password",
    "secret",
    "token",
)


def _is_sensitive_key(key: str) -> bool:
    """Return True when metadata key likely contains credential material."""
    normalized = key.strip().lower().replace("-", "_")
    return any(part in normalized for part in _SENSITIVE_KEY_PARTS)


def _sanitize_value(value: Any) -> Any:
    """Coerce metadata values to JSON-safe primitives."""
    if value is None or isinstance(value, bool | int | float | str):
        return value
    if isinstance(value, UUID):
        return str(value)
    if isinstance(value, dict):
        return sanitize_metadata(value)
    if isinstance(value, list | tuple):
        return [_sanitize_value(item) for item in value]
    return str(value)


def sanitize_metadata(metadata: dict[str, Any]) -> dict[str, Any]:
    """Redact credential-bearing keys from event metadata."""
    return {
        key: _REDACTED if _is_sensitive_key(key) else _sanitize_value(value)
        for key, value in metadata.items()
    }


def extract_client_ip(request: Request) -> str | None:
    """Extract canonical client IP from forwarding headers or peer address."""
    forwarded_for = request.headers.get("x-forwarded-for", "").strip()
    candidate = forwarded_for.split(",")[0].strip() if forwarded_for else None
    if candidate is None and request.client is not None:
        candidate = request.client.host
    if not candidate:
        return None
    try:
        return str(ipaddress.ip_address(candidate))
    except ValueError:
        return None


class AuditService:
    """Emit one structured log line per security-relevant action."""

    def emit(
        self,
        event_type: str,
        success: bool,
        request: Request,
        actor_id: str | UUID | None = None,
        target_id: str | UUID | None = None,
        failure_reason: str | None = None,
        **metadata: Any,
    ) -> None:
        """Log an audit event; never raises into the request path."""
        event_logger = logger.info if success else logger.warning
        event_logger(
            "audit_event",
            event_type=event_type,
            success=success,
            actor_id=str(actor_id) if actor_id else None,
            target_id=str(target_id) if target_id else None,
            failure_reason=failure_reason,
            ip_address=extract_client_ip(request),
            user_agent=request.headers.get("user-agent"),
            metadata=sanitize_metadata(metadata) or None,
        )


@lru_cache
def get_audit_service() -> AuditService:
    """Create and cache audit service dependency."""
    return AuditService()
