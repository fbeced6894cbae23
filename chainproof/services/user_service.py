"""User registration, lookup, and password authentication."""

from __future__ import annotations

from datetime import UTC, datetime
from functools import lru_cache
from uuid import UUID

import structlog
from passlib.context import CryptContext
from sqlalchemy import or_, select
from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession

from chainproof.errors import AuthError, ConflictError, NotFoundError, ValidationError
from chainproof.models.user import User

logger = structlog.get_logger(__name__)

INVALID_CREDENTIALS = "Invalid email or password."
ACCOUNT_DISABLED = "Account is disabled. Please contact support."
_USERNAME_MAX_LENGTH = 50


def _is_blank(value: str | None) -> bool:
    return value is None or not value.strip()


def conflict_field_from_integrity_error(exc: IntegrityError) -> str:
    """Name the user field whose unique constraint was violated."""
    message = str(exc.orig if exc.orig is not None else exc)
    if "uq_users_username" in message:
        return "Username"
    return "Email"


class UserService:
    """Service responsible for user accounts and password verification."""

    def __init__(self) -> None:
        self._password_context = CryptContext(schemes=["bcrypt"], deprecated="auto")

    async def register(
        self,
        db_session: AsyncSession,
        username: str | None,
        email: str | None,
        password: str | None,
    ) -> User:
        """Create an active user with a bcrypt password hash."""
        if _is_blank(username) or _is_blank(email) or not password:
            raise ValidationError("Please provide username, email, and password.")
        assert username is not None and email is not None
        username = username.strip()
        email = email.strip()
        if len(username) > _USERNAME_MAX_LENGTH:
            raise ValidationError("Username cannot exceed 50 characters.")

        existing = await self._get_user_by_email_or_username(
            db_session=db_session, email=email, username=username
        )
        if existing is not None:
            field = "Email" if existing.email == email else "Username"
            raise ConflictError(f"{field} is already registered.")

        user = User(
            username=username,
            email=email,
            password_hash=self.hash_password(password),
            is_active=True,
        )
        db_session.add(user)
        try:
            await db_session.flush()
        except IntegrityError as exc:
            await db_session.rollback()
            field = conflict_field_from_integrity_error(exc)
            logger.info("user_register_conflict", field=field.lower())
            raise ConflictError(f"{field} is already registered.") from exc
        except Exception:
            await db_session.rollback()
            raise
        await db_session.commit()
        return user

    async def authenticate(
        self,
        db_session: AsyncSession,
        email: str | None,
        password: str | None,
    ) -> User:
        """Verify credentials and stamp the login time."""
        if _is_blank(email) or not password:
            raise ValidationError("Please provide email and password.")
        assert email is not None

        user = await self.get_user_by_email(db_session=db_session, email=email.strip())
        if user is None:
            self._password_context.dummy_verify()
            raise AuthError(INVALID_CREDENTIALS)
        if not user.is_active:
            raise AuthError(ACCOUNT_DISABLED, code="account_disabled")
        if not self.verify_password(password=password, password_hash=user.password_hash):
            raise AuthError(INVALID_CREDENTIALS)

        user.last_login_at = datetime.now(UTC)
        try:
            await db_session.flush()
        except Exception:
            await db_session.rollback()
            raise
        await db_session.commit()
        return user

    async def set_active(self, db_session: AsyncSession, user_id: UUID, is_active: bool) -> User:
        """Enable or disable a user account."""
        user = await self.get_user_by_id(db_session=db_session, user_id=user_id)
        if user is None:
            raise NotFoundError("User not found.")
        user.is_active = is_active
        await db_session.flush()
        await db_session.commit()
        return user

    async def get_user_by_id(self, db_session: AsyncSession, user_id: UUID) -> User | None:
        """Fetch a user by primary key."""
        result = await db_session.execute(select(User).where(User.id == user_id))
        return result.scalar_one_or_none()

    async def get_user_by_email(self, db_session: AsyncSession, email: str) -> User | None:
        """Fetch a user by exact email match."""
        result = await db_session.execute(select(User).where(User.email == email))
        return result.scalar_one_or_none()

    def hash_password(self, password: str) -> str:
        """Generate a bcrypt hash for the provided password."""
        return str(self._password_context.hash(password))

    def verify_password(self, password: str, password_hash: str) -> bool:
        """Verify a plaintext password against the stored bcrypt hash."""
        return bool(self._password_context.verify(password, password_hash))

    async def _get_user_by_email_or_username(
        self,
        db_session: AsyncSession,
        email: str,
        username: str,
    ) -> User | None:
        """Fetch the first user colliding on email or username."""
        statement = select(User).where(or_(User.email == email, User.username == username)).limit(1)
        result = await db_session.execute(statement)
        return result.scalar_one_or_none()


@lru_cache
def get_user_service() -> UserService:
    """Create and cache user service dependency."""
    return UserService()
