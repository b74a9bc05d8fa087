"""User administration routes (admin only)"""

from typing import Any

from fastapi import APIRouter, Body, Depends, Query

from src.api.dependencies import get_user_admin_service, to_http_exception
from src.errors import ProvisioningError
from src.middleware.auth_middleware import AuthContext, require_identity
from src.schemas.provisioning import IdentityListResponse, ResetMfaResponse, SuccessResponse
from src.services.user_admin_service import UserAdminService

router = APIRouter()


@router.get("", response_model=IdentityListResponse)
async def list_users(
    page: int = Query(1, ge=1),
    per_page: int = Query(100, ge=1, le=1000, alias="perPage"),
    auth_context: AuthContext = Depends(require_identity),
    service: UserAdminService = Depends(get_user_admin_service),
):
    try:
        return service.list_identities(auth_context.identity_id, page=page, per_page=per_page)
    except ProvisioningError as e:
        raise to_http_exception(e)


@router.post("/delete", response_model=SuccessResponse)
async def delete_user(
    payload: Any = Body(None),
    auth_context: AuthContext = Depends(require_identity),
    service: UserAdminService = Depends(get_user_admin_service),
):
    """Delete another user's account and organization records"""
    try:
        return service.delete_identity(auth_context.identity_id, payload)
    except ProvisioningError as e:
        raise to_http_exception(e)


@router.post("/update", response_model=SuccessResponse)
async def update_user(
    payload: Any = Body(None),
    auth_context: AuthContext = Depends(require_identity),
    service: UserAdminService = Depends(get_user_admin_service),
):
    """Change another user's email and/or password"""
    try:
        return service.update_identity(auth_context.identity_id, payload)
    except ProvisioningError as e:
        raise to_http_exception(e)


@router.post("/reset-mfa", response_model=ResetMfaResponse)
async def reset_user_mfa(
    payload: Any = Body(None),
    auth_context: AuthContext = Depends(require_identity),
    service: UserAdminService = Depends(get_user_admin_service),
):
    """Remove every second factor of another user"""
    try:
        return service.reset_second_factor(auth_context.identity_id, payload)
    except ProvisioningError as e:
        raise to_http_exception(e)
