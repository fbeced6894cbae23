"""ORM model exports."""

from chainproof.models.api_key import DEFAULT_PERMISSIONS, DEFAULT_RATE_LIMIT, APIKey
from chainproof.models.user import User

__all__ = ["DEFAULT_PERMISSIONS", "DEFAULT_RATE_LIMIT", "APIKey", "User"]
