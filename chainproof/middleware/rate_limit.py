"""Redis-backed sliding-window rate limiting middleware."""

from __future__ import annotations

import math
import time
from typing import Protocol
from uuid import uuid4

import structlog
from fastapi import Request
from redis.exceptions import RedisError
from starlette.middleware.base import BaseHTTPMiddleware
from starlette.responses import JSONResponse, Response

from chainproof.config import RateLimitSettings
from chainproof.services.audit_service import extract_client_ip

logger = structlog.get_logger(__name__)

_EXEMPT_PATHS = frozenset({"/health/live", "/health/ready"})


class SlidingWindowRedis(Protocol):
    """Protocol for Redis operations used by the rate limiter."""

    async def zremrangebyscore(self, name: str, min: str | int, max: int) -> int:
        """Delete members with score inside an inclusive range."""

    async def zcard(self, name: str) -> int:
        """Return sorted-set cardinality."""

    async def zadd(self, name: str, mapping: dict[str, int]) -> int:
        """Add one or more scored members to sorted set."""

    async def expire(self, name: str, time: int) -> bool:
        """Apply TTL to key."""


class RateLimitMiddleware(BaseHTTPMiddleware):
    """Apply per-client sliding-window limits; login and register keep separate buckets."""

    def __init__(
        self,
        app,
        redis_client: SlidingWindowRedis,
        settings: RateLimitSettings | None = None,
    ) -> None:
        super().__init__(app)
        limits = settings or RateLimitSettings()
        self._redis = redis_client
        self._window_milliseconds = limits.window_seconds * 1000
        self._default_limit = limits.default_requests_per_window
        self._path_limits = {
            "/auth/login": limits.login_requests_per_window,
            "/auth/register": limits.register_requests_per_window,
        }

    async def dispatch(self, request: Request, call_next) -> Response:
        """Reject requests exceeding the window threshold for this client and bucket."""
        if request.url.path in _EXEMPT_PATHS:
            return await call_next(request)

        limit = self._path_limits.get(request.url.path, self._default_limit)
        bucket_key = self._build_bucket_key(request)
        now_ms = int(time.time() * 1000)
        window_start = now_ms - self._window_milliseconds

        try:
            await self._redis.zremrangebyscore(bucket_key, "-inf", window_start)
            current_count = await self._redis.zcard(bucket_key)
            if current_count >= limit:
                logger.warning(
                    "rate_limit_exceeded",
                    path=request.url.path,
                    method=request.method,
                    limit=limit,
                )
                return JSONResponse(
                    status_code=429,
                    content={
                        "success": False,
                        "error": "Too many requests from this IP, please try again later.",
                        "code": "rate_limited",
                    },
                    headers={"Retry-After": str(math.ceil(self._window_milliseconds / 1000))},
                )

            await self._redis.zadd(bucket_key, {f"{now_ms}:{uuid4()}": now_ms})
            await self._redis.expire(bucket_key, math.ceil(self._window_milliseconds / 1000) + 1)
        except (RedisError, OSError):
            logger.warning(
                "rate_limit_backend_unavailable",
                path=request.url.path,
                method=request.method,
            )

        return await call_next(request)

    def _build_bucket_key(self, request: Request) -> str:
        """Build Redis key from the limit scope and caller network identity."""
        client_id = extract_client_ip(request) or "unknown"
        scope = request.url.path if request.url.path in self._path_limits else "default"
        return f"rate_limit:{scope}:{client_id}"
