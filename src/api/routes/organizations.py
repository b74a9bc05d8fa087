"""Organization routes"""

from typing import Any

from fastapi import APIRouter, Body, Depends, status

from src.api.dependencies import get_provisioning_service, to_http_exception
from src.errors import ProvisioningError
from src.middleware.auth_middleware import AuthContext, get_auth_context
from src.middleware.rate_limiting import rate_limit
from src.schemas.provisioning import BootstrapOrganizationResponse
from src.services.provisioning_service import ProvisioningService

router = APIRouter()

RATE_LIMIT_BOOTSTRAP = rate_limit("organizations:bootstrap", limit=5, window=60)


@router.post(
    "/bootstrap",
    status_code=status.HTTP_201_CREATED,
    response_model=BootstrapOrganizationResponse,
)
async def bootstrap_organization(
    payload: Any = Body(None),
    auth_context: AuthContext = Depends(get_auth_context),
    service: ProvisioningService = Depends(get_provisioning_service),
    _rate_limit: None = Depends(RATE_LIMIT_BOOTSTRAP),
):
    """
    Create an organization and invite its first administrator.

    Requires admin role, except when no organization exists yet.
    """
    try:
        return service.bootstrap_organization(auth_context.identity_id, payload)
    except ProvisioningError as e:
        raise to_http_exception(e)
