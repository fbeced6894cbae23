"""Middleware package exports."""

from chainproof.middleware.correlation_id import CorrelationIdMiddleware
from chainproof.middleware.logging import LoggingMiddleware
from chainproof.middleware.rate_limit import RateLimitMiddleware
from chainproof.middleware.security_headers import SecurityHeadersMiddleware

__all__ = [
    "CorrelationIdMiddleware",
    "LoggingMiddleware",
    "RateLimitMiddleware",
    "SecurityHeadersMiddleware",
]
