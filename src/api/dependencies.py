"""Shared route dependencies"""

from fastapi import BackgroundTasks, Depends, HTTPException
from sqlalchemy.orm import Session

from src.database.database import get_db
from src.errors import ProvisioningError
from src.services.credentials import CredentialBackend, CredentialError, get_credential_backend
from src.services.provisioning_service import ProvisioningService
from src.services.user_admin_service import UserAdminService


def get_credentials(db: Session = Depends(get_db)) -> CredentialBackend:
    """Credential backend bound to the request's session"""
    try:
        return get_credential_backend(db)
    except (CredentialError, ValueError) as e:
        raise HTTPException(status_code=500, detail=f"Credential backend misconfigured: {e}")


def get_provisioning_service(
    background_tasks: BackgroundTasks,
    db: Session = Depends(get_db),
    credentials: CredentialBackend = Depends(get_credentials),
) -> ProvisioningService:
    return ProvisioningService(db, credentials, background_tasks)


def get_user_admin_service(
    db: Session = Depends(get_db),
    credentials: CredentialBackend = Depends(get_credentials),
) -> UserAdminService:
    return UserAdminService(db, credentials)


def to_http_exception(e: ProvisioningError) -> HTTPException:
    """Map a domain error to its HTTP response"""
    return HTTPException(status_code=e.status_code, detail=e.to_detail())
