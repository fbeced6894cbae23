"""Global exception handlers enforcing the API error envelope."""

from __future__ import annotations

from typing import Any

import structlog
from fastapi import FastAPI, Request
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse
from starlette.exceptions import HTTPException as StarletteHTTPException

from chainproof.errors import ServiceError

GENERIC_SERVER_ERROR = "Internal server error."

_CODE_BY_STATUS: dict[int, str] = {
    400: "validation_error",
    401: "invalid_token",
    403: "insufficient_permission",
    404: "not_found",
    405: "method_not_allowed",
    429: "rate_limited",
    503: "service_unavailable",
}

logger = structlog.get_logger(__name__)


def error_response(status_code: int, detail: str, code: str) -> JSONResponse:
    """Build the standardized JSON error envelope."""
    return JSONResponse(
        status_code=status_code,
        content={"success": False, "error": detail, "code": code},
    )


def service_error_response(exc: ServiceError) -> JSONResponse:
    """Render a service error as an error envelope."""
    return error_response(status_code=exc.status_code, detail=exc.detail, code=exc.code)


def _extract_detail_and_code(detail: Any) -> tuple[str, str | None]:
    """Normalize exception detail payload into message and optional code."""
    if isinstance(detail, dict):
        raw_detail = detail.get("detail", "Request failed.")
        raw_code = detail.get("code")
        return str(raw_detail), str(raw_code) if raw_code is not None else None
    if isinstance(detail, str):
        return detail, None
    return "Request failed.", None


def _format_validation_errors(errors: list[dict[str, Any]]) -> str:
    """Join every field error into one human-readable message."""
    messages: list[str] = []
    for error in errors:
        location = [str(part) for part in error.get("loc", ()) if part not in ("body", "query")]
        message = str(error.get("msg", "Invalid value"))
        messages.append(f"{'.'.join(location)}: {message}" if location else message)
    return ", ".join(messages) or "Invalid request payload."


def _correlation_id(request: Request) -> str:
    return getattr(
        request.state,
        "correlation_id",
        request.headers.get("x-correlation-id", "unknown"),
    )


def _extract_user_identifier(request: Request) -> str | None:
    """Extract best-effort user id from request state."""
    user_state = getattr(request.state, "user", None)
    if isinstance(user_state, dict) and user_state.get("user_id"):
        return str(user_state["user_id"])
    return None


def _log_auth_failure(request: Request, status_code: int, detail: str, code: str) -> None:
    """Emit WARNING-level log for 4xx responses on auth paths."""
    if status_code < 400 or status_code >= 500:
        return
    if not request.url.path.startswith("/auth"):
        return
    logger.warning(
        "auth_failure",
        correlation_id=_correlation_id(request),
        user_id=_extract_user_identifier(request),
        status_code=status_code,
        code=code,
        detail=detail,
        path=request.url.path,
        method=request.method,
    )


def register_exception_handlers(app: FastAPI, environment: str) -> None:
    """Register global exception handlers enforcing the error envelope."""

    @app.exception_handler(ServiceError)
    async def handle_service_error(request: Request, exc: ServiceError) -> JSONResponse:
        """Render taxonomy errors raised from dependencies and services."""
        if exc.status_code >= 500:
            logger.error(
                "service_error",
                correlation_id=_correlation_id(request),
                path=request.url.path,
                method=request.method,
                code=exc.code,
                error=exc.detail,
            )
        _log_auth_failure(request, exc.status_code, exc.detail, exc.code)
        return service_error_response(exc)

    @app.exception_handler(StarletteHTTPException)
    async def handle_http_exception(request: Request, exc: StarletteHTTPException) -> JSONResponse:
        """Normalize framework HTTP exceptions to the error envelope."""
        detail, raw_code = _extract_detail_and_code(exc.detail)
        code = raw_code or _CODE_BY_STATUS.get(exc.status_code, "request_failed")
        _log_auth_failure(request, exc.status_code, detail, code)
        return error_response(status_code=exc.status_code, detail=detail, code=code)

    @app.exception_handler(RequestValidationError)
    async def handle_validation_exception(
        request: Request, exc: RequestValidationError
    ) -> JSONResponse:
        """Map request validation errors to a single 400 message."""
        detail = _format_validation_errors(list(exc.errors()))
        _log_auth_failure(request, 400, detail, "validation_error")
        return error_response(status_code=400, detail=detail, code="validation_error")

    @app.exception_handler(Exception)
    async def handle_unexpected_exception(request: Request, exc: Exception) -> JSONResponse:
        """Log full detail and answer with a generic server error."""
        logger.error(
            "unhandled_exception",
            correlation_id=_correlation_id(request),
            path=request.url.path,
            method=request.method,
            error=str(exc),
            exc_info=exc,
        )
        detail = str(exc) if environment == "development" else GENERIC_SERVER_ERROR
        return error_response(status_code=500, detail=detail, code="server_error")
