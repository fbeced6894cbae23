"""Account routes: registration, password login, and profile."""

from __future__ import annotations

from typing import Annotated

from fastapi import APIRouter, Depends, Request
from fastapi.responses import JSONResponse
from sqlalchemy.ext.asyncio import AsyncSession

from chainproof.dependencies import get_current_user, get_database_session
from chainproof.error_handlers import service_error_response
from chainproof.errors import ServiceError
from chainproof.models.user import User
from chainproof.schemas.user import (
    AuthPayload,
    AuthResponse,
    LoginRequest,
    ProfilePayload,
    ProfileResponse,
    RegisterRequest,
    user_public_view,
)
from chainproof.services.api_key_service import APIKeyService, get_api_key_service
from chainproof.services.audit_service import AuditService, get_audit_service
from chainproof.services.token_service import TokenService, get_token_service
from chainproof.services.user_service import UserService, get_user_service

router = APIRouter(prefix="/auth", tags=["auth"])


def _auth_response(user: User, token_service: TokenService, message: str) -> AuthResponse:
    issued = token_service.issue_access_token(user.id)
    return AuthResponse(
        message=message,
        data=AuthPayload(
            user=user_public_view(user),
            token=issued.token,
            expires_at=issued.expires_at,
        ),
    )


@router.post("/register", response_model=AuthResponse, status_code=201)
async def register(
    payload: RegisterRequest,
    request: Request,
    db_session: Annotated[AsyncSession, Depends(get_database_session)],
    user_service: Annotated[UserService, Depends(get_user_service)],
    token_service: Annotated[TokenService, Depends(get_token_service)],
    audit_service: Annotated[AuditService, Depends(get_audit_service)],
) -> AuthResponse | JSONResponse:
    """Create an account and return a bearer token for it."""
    try:
        user = await user_service.register(
            db_session=db_session,
            username=payload.username,
            email=payload.email,
            password=payload.password,
        )
    except ServiceError as exc:
        audit_service.emit(
            "user.register",
            success=False,
            request=request,
            failure_reason=exc.code,
            email=payload.email,
        )
        return service_error_response(exc)

    audit_service.emit("user.register", success=True, request=request, actor_id=user.id)
    return _auth_response(user, token_service, "Account created successfully.")


@router.post("/login", response_model=AuthResponse)
async def login(
    payload: LoginRequest,
    request: Request,
    db_session: Annotated[AsyncSession, Depends(get_database_session)],
    user_service: Annotated[UserService, Depends(get_user_service)],
    token_service: Annotated[TokenService, Depends(get_token_service)],
    audit_service: Annotated[AuditService, Depends(get_audit_service)],
) -> AuthResponse | JSONResponse:
    """Authenticate email/password credentials and issue a bearer token."""
    try:
        user = await user_service.authenticate(
            db_session=db_session,
            email=payload.email,
            password=payload.password,
        )
    except ServiceError as exc:
        audit_service.emit(
            "user.login",
            success=False,
            request=request,
            failure_reason=exc.code,
            email=payload.email,
        )
        return service_error_response(exc)

    audit_service.emit("user.login", success=True, request=request, actor_id=user.id)
    return _auth_response(user, token_service, "Login successful.")


@router.get("/me", response_model=ProfileResponse)
async def me(
    current_user: Annotated[User, Depends(get_current_user)],
    db_session: Annotated[AsyncSession, Depends(get_database_session)],
    api_key_service: Annotated[APIKeyService, Depends(get_api_key_service)],
) -> ProfileResponse:
    """Return the caller's profile with their active key count."""
    active_keys = await api_key_service.count_active_keys(
        db_session=db_session, user_id=current_user.id
    )
    return ProfileResponse(
        data=ProfilePayload(user=user_public_view(current_user), api_key_count=active_keys)
    )
