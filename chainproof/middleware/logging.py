"""Request completion logging with credential redaction."""

from __future__ import annotations

from collections.abc import Mapping
from time import perf_counter
from typing import Any

import structlog
from fastapi import Request
from starlette.middleware.base import BaseHTTPMiddleware
from starlette.responses import Response

from chainproof.services.audit_service import extract_client_ip

REDACTED = "***REDACTED***"
_SENSITIVE_NAMES = frozenset(
    {"api_key", "apikey", "authorization", "cookie", "key", "password", "secret", "token"}
)

logger = structlog.get_logger(__name__)


def is_sensitive_name(name: str) -> bool:
    """Return True when a parameter name likely carries credential material."""
    normalized = name.strip().lower().replace("-", "_")
    if normalized in _SENSITIVE_NAMES:
        return True
    return any(part in normalized for part in ("token", "password", "api_key", "secret"))


def redact_params(values: Mapping[str, Any]) -> dict[str, Any]:
    """Replace credential-bearing values while keeping their names."""
    redacted: dict[str, Any] = {}
    for name, value in values.items():
        if is_sensitive_name(name):
            redacted[name] = REDACTED
        elif isinstance(value, Mapping):
            redacted[name] = redact_params(value)
        else:
            redacted[name] = value
    return redacted


class LoggingMiddleware(BaseHTTPMiddleware):
    """Emit one ``request_completed`` event per request."""

    async def dispatch(self, request: Request, call_next) -> Response:
        start = perf_counter()
        query_params = redact_params(dict(request.query_params))
        fields: dict[str, Any] = {
            "method": request.method,
            "path": request.url.path,
            "query_params": query_params,
            "client_ip": extract_client_ip(request),
            "user_agent": request.headers.get("user-agent", ""),
        }

        try:
            response = await call_next(request)
        except Exception:
            logger.exception(
                "request_completed",
                status_code=500,
                duration_ms=round((perf_counter() - start) * 1000, 2),
                **fields,
            )
            raise

        user_state = getattr(request.state, "user", None)
        if isinstance(user_state, dict):
            fields["user_id"] = user_state.get("user_id")
        event_logger = logger.warning if response.status_code >= 400 else logger.info
        event_logger(
            "request_completed",
            status_code=response.status_code,
            duration_ms=round((perf_counter() - start) * 1000, 2),
            **fields,
        )
        return response
