"""Invitation routes"""

from typing import Any, List, Optional

from fastapi import APIRouter, Body, Depends, Query, status

from src.api.dependencies import get_provisioning_service, to_http_exception
from src.errors import ProvisioningError
from src.middleware.auth_middleware import AuthContext, require_identity
from src.middleware.rate_limiting import rate_limit
from src.schemas.provisioning import (
    AcceptInvitationResponse,
    InvitationDetailsResponse,
    InvitationResponse,
    ResendInvitationResponse,
)
from src.services.provisioning_service import ProvisioningService

router = APIRouter()

# Rate limits
RATE_LIMIT_CREATE = rate_limit("invitations:create", limit=10, window=60)
RATE_LIMIT_ACCEPT = rate_limit("invitations:accept", limit=5, window=60)
RATE_LIMIT_DETAILS = rate_limit("invitations:details", limit=20, window=60)


@router.post("/accept", response_model=AcceptInvitationResponse)
async def accept_invitation(
    payload: Any = Body(None),
    service: ProvisioningService = Depends(get_provisioning_service),
    _rate_limit: None = Depends(RATE_LIMIT_ACCEPT),
):
    """
    Accept an invitation, creating or updating the invitee's account.
    Public endpoint: the invitation id is the credential.
    """
    try:
        return service.accept_invitation(payload)
    except ProvisioningError as e:
        raise to_http_exception(e)


@router.post("/resend", response_model=ResendInvitationResponse)
async def resend_invitation(
    payload: Any = Body(None),
    auth_context: AuthContext = Depends(require_identity),
    service: ProvisioningService = Depends(get_provisioning_service),
):
    """Refresh an invitation's expiry and send the email again. Requires admin."""
    try:
        return service.resend_invitation(auth_context.identity_id, payload)
    except ProvisioningError as e:
        raise to_http_exception(e)


@router.post("", status_code=status.HTTP_201_CREATED, response_model=InvitationResponse)
async def create_invitation(
    payload: Any = Body(None),
    auth_context: AuthContext = Depends(require_identity),
    service: ProvisioningService = Depends(get_provisioning_service),
    _rate_limit: None = Depends(RATE_LIMIT_CREATE),
):
    """Invite an email to an organization. Requires admin."""
    try:
        return service.invite_member(auth_context.identity_id, payload)
    except ProvisioningError as e:
        raise to_http_exception(e)


@router.get("", response_model=List[InvitationResponse])
async def list_invitations(
    organization_id: str = Query(..., alias="organizationId"),
    status_filter: Optional[str] = Query(None, alias="status"),
    auth_context: AuthContext = Depends(require_identity),
    service: ProvisioningService = Depends(get_provisioning_service),
):
    """List an organization's invitations, newest first. Requires admin."""
    try:
        return service.list_invitations(auth_context.identity_id, organization_id, status_filter)
    except ProvisioningError as e:
        raise to_http_exception(e)


@router.delete("/{invitation_id}", response_model=InvitationResponse)
async def cancel_invitation(
    invitation_id: str,
    auth_context: AuthContext = Depends(require_identity),
    service: ProvisioningService = Depends(get_provisioning_service),
):
    """Cancel an invitation that has not been accepted. Requires admin."""
    try:
        return service.cancel_invitation(auth_context.identity_id, invitation_id)
    except ProvisioningError as e:
        raise to_http_exception(e)


@router.get("/{invitation_id}/details", response_model=InvitationDetailsResponse)
async def get_invitation_details(
    invitation_id: str,
    service: ProvisioningService = Depends(get_provisioning_service),
    _rate_limit: None = Depends(RATE_LIMIT_DETAILS),
):
    """Public summary used by the accept page"""
    try:
        return service.describe_invitation(invitation_id)
    except ProvisioningError as e:
        raise to_http_exception(e)
