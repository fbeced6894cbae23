"""API key management and introspection routes."""

from __future__ import annotations

from typing import Annotated
from uuid import UUID

from fastapi import APIRouter, Depends, Request
from fastapi.responses import JSONResponse
from sqlalchemy.ext.asyncio import AsyncSession

from chainproof.dependencies import extract_api_key, get_current_user, get_database_session
from chainproof.error_handlers import service_error_response
from chainproof.errors import AuthError, ServiceError
from chainproof.models.user import User
from chainproof.schemas.api_key import (
    APIKeyCreateRequest,
    APIKeyCreateResponse,
    APIKeyIntrospectRequest,
    APIKeyIntrospectResponse,
    APIKeyListResponse,
    APIKeyRevokeResponse,
    APIKeyUpdateRequest,
    APIKeyUpdateResponse,
    RevokedAPIKey,
    api_key_created_view,
    api_key_introspection_view,
    api_key_public_view,
)
from chainproof.services.api_key_service import (
    APIKeyService,
    api_key_summary,
    get_api_key_service,
)
from chainproof.services.audit_service import AuditService, get_audit_service

router = APIRouter(prefix="/auth/api-keys", tags=["apikeys"])


@router.post("", response_model=APIKeyCreateResponse, status_code=201)
async def create_api_key(
    request: Request,
    payload: APIKeyCreateRequest,
    current_user: Annotated[User, Depends(get_current_user)],
    db_session: Annotated[AsyncSession, Depends(get_database_session)],
    api_key_service: Annotated[APIKeyService, Depends(get_api_key_service)],
    audit_service: Annotated[AuditService, Depends(get_audit_service)],
) -> APIKeyCreateResponse | JSONResponse:
    """Create an API key and return the raw key exactly once."""
    permissions = (
        payload.permissions.model_dump(exclude_none=True) if payload.permissions else None
    )
    try:
        created = await api_key_service.create_key(
            db_session=db_session,
            user_id=current_user.id,
            name=payload.name,
            permissions=permissions,
            expires_in_days=payload.expires_in_days,
        )
    except ServiceError as exc:
        audit_service.emit(
            "api_key.create",
            success=False,
            request=request,
            actor_id=current_user.id,
            failure_reason=exc.code,
        )
        return service_error_response(exc)

    audit_service.emit(
        "api_key.create",
        success=True,
        request=request,
        actor_id=current_user.id,
        target_id=created.key.id,
        **api_key_summary(created.key),
    )
    return APIKeyCreateResponse(data=api_key_created_view(created.key, created.api_key))


@router.get("", response_model=APIKeyListResponse)
async def list_api_keys(
    current_user: Annotated[User, Depends(get_current_user)],
    db_session: Annotated[AsyncSession, Depends(get_database_session)],
    api_key_service: Annotated[APIKeyService, Depends(get_api_key_service)],
) -> APIKeyListResponse:
    """List the caller's keys without exposing raw key material."""
    keys = await api_key_service.list_keys(db_session=db_session, user_id=current_user.id)
    views = [api_key_public_view(key) for key in keys]
    return APIKeyListResponse(count=len(views), data=views)


@router.post("/introspect", response_model=APIKeyIntrospectResponse)
async def introspect_api_key(
    request: Request,
    db_session: Annotated[AsyncSession, Depends(get_database_session)],
    api_key_service: Annotated[APIKeyService, Depends(get_api_key_service)],
    audit_service: Annotated[AuditService, Depends(get_audit_service)],
    payload: APIKeyIntrospectRequest | None = None,
) -> APIKeyIntrospectResponse | JSONResponse:
    """Authorize a presented key, count the use, and describe its grants."""
    raw_key = payload.api_key if payload is not None and payload.api_key else None
    if raw_key is None:
        raw_key = extract_api_key(request, prefix=api_key_service.core.prefix)
    try:
        if raw_key is None:
            raise AuthError("No API key provided.", code="invalid_api_key")
        authorized = await api_key_service.authorize(db_session=db_session, raw_key=raw_key)
    except ServiceError as exc:
        audit_service.emit(
            "api_key.introspect",
            success=False,
            request=request,
            failure_reason=exc.code,
        )
        return service_error_response(exc)

    audit_service.emit(
        "api_key.introspect",
        success=True,
        request=request,
        actor_id=authorized.user_id,
        target_id=authorized.key_id,
    )
    return APIKeyIntrospectResponse(data=api_key_introspection_view(authorized))


@router.patch("/{key_id}", response_model=APIKeyUpdateResponse)
async def update_api_key(
    key_id: UUID,
    request: Request,
    payload: APIKeyUpdateRequest,
    current_user: Annotated[User, Depends(get_current_user)],
    db_session: Annotated[AsyncSession, Depends(get_database_session)],
    api_key_service: Annotated[APIKeyService, Depends(get_api_key_service)],
    audit_service: Annotated[AuditService, Depends(get_audit_service)],
) -> APIKeyUpdateResponse | JSONResponse:
    """Rename or enable/disable one of the caller's keys."""
    try:
        key = await api_key_service.update_key(
            db_session=db_session,
            user_id=current_user.id,
            key_id=key_id,
            name=payload.name,
            is_active=payload.is_active,
        )
    except ServiceError as exc:
        audit_service.emit(
            "api_key.update",
            success=False,
            request=request,
            actor_id=current_user.id,
            target_id=key_id,
            failure_reason=exc.code,
        )
        return service_error_response(exc)

    audit_service.emit(
        "api_key.update",
        success=True,
        request=request,
        actor_id=current_user.id,
        target_id=key.id,
        is_active=key.is_active,
    )
    return APIKeyUpdateResponse(data=api_key_public_view(key))


@router.delete("/{key_id}", response_model=APIKeyRevokeResponse)
async def revoke_api_key(
    key_id: UUID,
    request: Request,
    current_user: Annotated[User, Depends(get_current_user)],
    db_session: Annotated[AsyncSession, Depends(get_database_session)],
    api_key_service: Annotated[APIKeyService, Depends(get_api_key_service)],
    audit_service: Annotated[AuditService, Depends(get_audit_service)],
) -> APIKeyRevokeResponse | JSONResponse:
    """Permanently delete one of the caller's keys."""
    try:
        key = await api_key_service.revoke_key(
            db_session=db_session, user_id=current_user.id, key_id=key_id
        )
    except ServiceError as exc:
        audit_service.emit(
            "api_key.revoke",
            success=False,
            request=request,
            actor_id=current_user.id,
            target_id=key_id,
            failure_reason=exc.code,
        )
        return service_error_response(exc)

    audit_service.emit(
        "api_key.revoke",
        success=True,
        request=request,
        actor_id=current_user.id,
        target_id=key.id,
        **api_key_summary(key),
    )
    return APIKeyRevokeResponse(data=RevokedAPIKey(id=key.id, name=key.name))
