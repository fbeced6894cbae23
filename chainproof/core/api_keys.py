"""API key generation, hashing, preview, and policy primitives."""

from __future__ import annotations

import hmac
import math
import re
import secrets
from collections.abc import Mapping
from datetime import UTC, datetime, timedelta
from hashlib import sha256

from chainproof.errors import ValidationError
from chainproof.models.api_key import DEFAULT_PERMISSIONS, DEFAULT_RATE_LIMIT, APIKey

PREVIEW_LENGTH = 8
MAX_EXPIRES_IN_DAYS = 36500
PERMISSION_NAMES = frozenset(DEFAULT_PERMISSIONS)


class APIKeyCore:
    """Core API key operations over explicit values."""

    def __init__(self, prefix: str = "cp") -> None:
        self._prefix = f"{prefix}_"
        self._pattern = re.compile(rf"^{re.escape(self._prefix)}[0-9a-f]{{64}}$")

    @property
    def prefix(self) -> str:
        """Return the key prefix including its trailing underscore."""
        return self._prefix

    def generate_raw_key(self) -> str:
        """Generate a ``<prefix>_<64 hex chars>`` key from 256 random bits."""
        return f"{self._prefix}{secrets.token_hex(32)}"

    def hash_key(self, raw_key: str) -> str:
        """Hash raw API key using SHA-256 hex digest."""
        return sha256(raw_key.encode("utf-8")).hexdigest()

    def key_preview(self, raw_key: str) -> str:
        """Return the display hint built from the last 8 characters."""
        return f"...{raw_key[-PREVIEW_LENGTH:]}"

    def is_valid_format(self, raw_key: str) -> bool:
        """Validate prefix and hex body of a presented key."""
        return self._pattern.fullmatch(raw_key) is not None

    def hash_matches(self, expected_hash: str, raw_key: str) -> bool:
        """Constant-time compare between stored hash and raw key hash."""
        return hmac.compare_digest(expected_hash, self.hash_key(raw_key))


def is_expired(key: APIKey, now: datetime | None = None) -> bool:
    """Return True iff the key has an expiry strictly in the past."""
    if key.expires_at is None:
        return False
    current = now or datetime.now(UTC)
    return key.expires_at < current


def compute_expires_at(expires_in_days: float | None, now: datetime | None = None) -> datetime | None:
    """Return ``now + N days`` for a positive day count, else None."""
    if expires_in_days is None or expires_in_days <= 0:
        return None
    if not math.isfinite(expires_in_days) or expires_in_days > MAX_EXPIRES_IN_DAYS:
        raise ValidationError(f"expires_in_days cannot exceed {MAX_EXPIRES_IN_DAYS} days.")
    try:
        return (now or datetime.now(UTC)) + timedelta(days=expires_in_days)
    except (OverflowError, ValueError) as exc:
        raise ValidationError("expires_in_days is out of range.") from exc


def merge_permissions(requested: Mapping[str, bool] | None) -> dict[str, bool]:
    """Overlay requested capability flags on the full default set."""
    permissions = dict(DEFAULT_PERMISSIONS)
    if requested:
        for name, enabled in requested.items():
            if name in PERMISSION_NAMES:
                permissions[name] = bool(enabled)
    return permissions


def rate_limit_policy(key: APIKey) -> dict[str, int]:
    """Return the key's rate-limit policy with defaults filled in."""
    policy = dict(DEFAULT_RATE_LIMIT)
    if key.rate_limit:
        policy.update({name: int(value) for name, value in key.rate_limit.items()})
    return policy
