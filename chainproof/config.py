"""Application settings and logging configuration."""

from __future__ import annotations

import logging
from datetime import UTC, datetime
from functools import lru_cache
from typing import Any, Literal

import structlog
from pydantic import BaseModel, Field, SecretStr, field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict

_LOG_CONTEXT: dict[str, str] = {"environment": "development", "service": "chainproof-api"}


class AppSettings(BaseModel):
    """Application identity and runtime settings."""

    environment: Literal["development", "staging", "production"]
    service: str = "chainproof-api"
    version: str = "1.0.0"
    host: str = "0.0.0.0"
    port: int = 3000
    log_level: Literal["DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"] = "INFO"
    cors_allow_origins: list[str] = Field(default_factory=lambda: ["*"])


class DatabaseSettings(BaseModel):
    """Database connection settings."""

    url: str = Field(description="Async SQLAlchemy URL using asyncpg driver.")
    echo: bool = False

    @field_validator("url")
    @classmethod
    def validate_asyncpg_url(cls, value: str) -> str:
        """Ensure SQLAlchemy uses the asyncpg driver."""
        if not value.startswith("postgresql+asyncpg://"):
            raise ValueError("database.url must start with 'postgresql+asyncpg://'.")
        return value


class RedisSettings(BaseModel):
    """Redis connection settings."""

    url: str = Field(description="Redis URL.")

    @field_validator("url")
    @classmethod
    def validate_redis_url(cls, value: str) -> str:
        """Ensure the Redis URL uses a supported scheme."""
        if not value.startswith(("redis://", "rediss://")):
            raise ValueError("redis.url must start with 'redis://' or 'rediss://'.")
        return value


class JWTSettings(BaseModel):
    """Bearer token signing and lifetime settings."""

    algorithm: Literal["HS256"] = "HS256"
    secret: SecretStr
    access_token_ttl_seconds: int = Field(default=7 * 24 * 3600, ge=1)

    @field_validator("secret")
    @classmethod
    def validate_secret_length(cls, value: SecretStr) -> SecretStr:
        """Reject HMAC secrets shorter than the digest size."""
        if len(value.get_secret_value()) < 32:
            raise ValueError("jwt.secret must be at least 32 characters.")
        return value


class APIKeySettings(BaseModel):
    """API key issuance policy."""

    prefix: str = Field(default="cp", min_length=1, max_length=8, pattern=r"^[a-z0-9]+$")
    max_active_keys: int = Field(default=10, ge=1)


class RateLimitSettings(BaseModel):
    """Per-client request thresholds over a sliding window."""

    window_seconds: int = Field(default=15 * 60, ge=1)
    default_requests_per_window: int = Field(default=100, ge=1)
    login_requests_per_window: int = Field(default=20, ge=1)
    register_requests_per_window: int = Field(default=20, ge=1)


class SolanaSettings(BaseSettings):
    """Solana RPC settings for the token metadata tool."""

    model_config = SettingsConfigDict(
        env_prefix="SOLANA__",
        env_file=".env",
        env_file_encoding="utf-8",
        extra="ignore",
    )

    rpc_url: str = "https://api.mainnet-beta.solana.com"
    commitment: Literal["processed", "confirmed", "finalized"] = "confirmed"
    timeout_seconds: float = Field(default=10.0, gt=0)

    @field_validator("rpc_url")
    @classmethod
    def validate_rpc_url(cls, value: str) -> str:
        """Ensure the RPC endpoint is an HTTP(S) URL."""
        if not value.startswith(("http://", "https://")):
            raise ValueError("solana.rpc_url must start with 'http://' or 'https://'.")
        return value


class Settings(BaseSettings):
    """Root application settings loaded from environment variables."""

    model_config = SettingsConfigDict(
        env_nested_delimiter="__",
        env_file=".env",
        env_file_encoding="utf-8",
        extra="ignore",
    )

    app: AppSettings
    database: DatabaseSettings
    redis: RedisSettings
    jwt: JWTSettings
    api_keys: APIKeySettings = Field(default_factory=APIKeySettings)
    rate_limit: RateLimitSettings = Field(default_factory=RateLimitSettings)


def _standard_log_fields(_: Any, __: str, event_dict: dict[str, Any]) -> dict[str, Any]:
    """Inject required structured logging fields."""
    context_vars = structlog.contextvars.get_contextvars()
    event_dict.setdefault("correlation_id", str(context_vars.get("correlation_id", "unknown")))
    event_dict.setdefault("environment", _LOG_CONTEXT["environment"])
    event_dict.setdefault("service", _LOG_CONTEXT["service"])
    event_dict.setdefault("timestamp", datetime.now(UTC).isoformat())
    return event_dict


def configure_structlog(environment: str, service: str, log_level: str = "INFO") -> None:
    """Configure structlog for JSON output with required fields."""
    _LOG_CONTEXT["environment"] = environment
    _LOG_CONTEXT["service"] = service

    level = getattr(logging, log_level, logging.INFO)
    structlog.configure(
        processors=[
            structlog.contextvars.merge_contextvars,
            structlog.processors.add_log_level,
            _standard_log_fields,
            structlog.processors.format_exc_info,
            structlog.processors.JSONRenderer(),
        ],
        context_class=dict,
        wrapper_class=structlog.make_filtering_bound_logger(level),
        logger_factory=structlog.PrintLoggerFactory(),
        cache_logger_on_first_use=True,
    )


@lru_cache
def get_settings() -> Settings:
    """Load and cache application settings from environment variables."""
    return Settings()


@lru_cache
def get_solana_settings() -> SolanaSettings:
    """Load and cache RPC settings independently of the web service settings."""
    return SolanaSettings()
