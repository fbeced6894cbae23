"""Correlation ID middleware."""

from __future__ import annotations

import re
from uuid import uuid4

import structlog
from fastapi import Request
from starlette.middleware.base import BaseHTTPMiddleware
from starlette.responses import Response

CORRELATION_ID_HEADER = "X-Correlation-ID"
_SAFE_CORRELATION_ID = re.compile(r"^[A-Za-z0-9._:-]{1,128}$")

logger = structlog.get_logger(__name__)


def resolve_correlation_id(incoming: str | None) -> str:
    """Keep a well-formed client id, otherwise mint a fresh UUID."""
    candidate = (incoming or "").strip()
    if _SAFE_CORRELATION_ID.fullmatch(candidate):
        return candidate
    if candidate:
        logger.debug("correlation_id_replaced", supplied_length=len(candidate))
    return str(uuid4())


class CorrelationIdMiddleware(BaseHTTPMiddleware):
    """Tie every log line and response of a request to one correlation id."""

    async def dispatch(self, request: Request, call_next) -> Response:
        correlation_id = resolve_correlation_id(request.headers.get(CORRELATION_ID_HEADER))
        request.state.correlation_id = correlation_id

        with structlog.contextvars.bound_contextvars(correlation_id=correlation_id):
            response = await call_next(request)

        response.headers[CORRELATION_ID_HEADER] = correlation_id
        return response
