"""Database package exports."""

from chainproof.db.base import Base, TimestampMixin, UUIDPrimaryKeyMixin
from chainproof.db.session import Database

__all__ = ["Base", "Database", "TimestampMixin", "UUIDPrimaryKeyMixin"]
