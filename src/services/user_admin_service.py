"""
Privileged mutation of other identities.

Every operation checks the caller's role first, then validates the payload,
then rejects self-targeting where self-service has its own path, and only
then touches the credential subsystem.
"""

from typing import Any, Optional

import structlog
from sqlalchemy.orm import Session

from src.errors import ConflictError, ForbiddenError, NotFoundError, UpstreamFailureError
from src.schemas.provisioning import (
    IdentityListResponse,
    IdentitySummary,
    ResetMfaResponse,
    SuccessResponse,
    TargetUserRequest,
    UpdateUserRequest,
    load_request,
)
from src.services.credentials import (
    CredentialBackend,
    CredentialError,
    IdentityExistsError,
    IdentityNotFoundError,
)
from src.services.role_service import RoleService
from src.services.tenant_link_service import TenantLinkService
from src.templates.role_definitions import AppRole

logger = structlog.get_logger()

MAX_PAGE_SIZE = 1000


class UserAdminService:
    """Admin-only operations on identities"""

    def __init__(self, db: Session, credentials: CredentialBackend):
        self.db = db
        self.credentials = credentials
        self.roles = RoleService(db)

    @staticmethod
    def _reject_self(caller_id: str, target_id: str, action: str) -> None:
        if caller_id == target_id:
            logger.warning("self_target_rejected", caller_id=caller_id, action=action)
            raise ForbiddenError(f"Cannot {action} your own account via the admin endpoint")

    @staticmethod
    def _translate(e: CredentialError, target_id: str) -> Exception:
        if isinstance(e, IdentityNotFoundError):
            return NotFoundError(f"User {target_id} not found")
        if isinstance(e, IdentityExistsError):
            return ConflictError("Email is already in use by another user")
        return UpstreamFailureError(f"Credential subsystem error: {e}")

    def delete_identity(self, caller_id: Optional[str], payload: Any) -> SuccessResponse:
        """
        Delete another identity and its tenant records.

        Tenant records go first, so a failure at either step leaves the
        identity in place and a retry finishes the job.

        Raises:
            ForbiddenError: If the caller is not an admin or targets itself
            ValidationError: If the payload is invalid
            NotFoundError: If the target does not exist
        """
        self.roles.require_role_at_least(caller_id, AppRole.ADMIN)
        request = load_request(TargetUserRequest, payload)
        self._reject_self(caller_id, request.target_user_id, "delete")

        TenantLinkService(self.db).remove_identity_links(request.target_user_id)

        try:
            self.credentials.delete_identity(request.target_user_id)
        except CredentialError as e:
            logger.error("user_delete_failed", target_user_id=request.target_user_id, error=str(e))
            raise self._translate(e, request.target_user_id) from e

        logger.info("user_deleted", caller_id=caller_id, target_user_id=request.target_user_id)
        return SuccessResponse()

    def update_identity(self, caller_id: Optional[str], payload: Any) -> SuccessResponse:
        """
        Change another identity's email and/or password.

        Raises:
            ForbiddenError: If the caller is not an admin
            ValidationError: If neither field is given or a field is malformed
            NotFoundError: If the target does not exist
            ConflictError: If the email belongs to another identity
        """
        self.roles.require_role_at_least(caller_id, AppRole.ADMIN)
        request = load_request(UpdateUserRequest, payload)

        try:
            self.credentials.update_identity(
                request.target_user_id,
                email=request.email,
                password=request.password,
            )
        except CredentialError as e:
            logger.error("user_update_failed", target_user_id=request.target_user_id, error=str(e))
            raise self._translate(e, request.target_user_id) from e

        logger.info(
            "user_updated",
            caller_id=caller_id,
            target_user_id=request.target_user_id,
            email_changed=request.email is not None,
            password_changed=request.password is not None,
        )
        return SuccessResponse()

    def reset_second_factor(self, caller_id: Optional[str], payload: Any) -> ResetMfaResponse:
        """
        Remove every second factor enrolled by another identity.

        Factors are deleted one by one; failed deletions are logged and not
        counted. A target with no factors gets a zero count.
        """
        self.roles.require_role_at_least(caller_id, AppRole.ADMIN)
        request = load_request(TargetUserRequest, payload)
        self._reject_self(caller_id, request.target_user_id, "reset MFA of")

        try:
            factors = self.credentials.list_factors(request.target_user_id)
        except CredentialError as e:
            logger.error("mfa_factor_list_failed", target_user_id=request.target_user_id, error=str(e))
            raise self._translate(e, request.target_user_id) from e

        removed = 0
        for factor in factors:
            try:
                self.credentials.delete_factor(request.target_user_id, factor.id)
            except CredentialError as e:
                logger.error("mfa_factor_delete_failed", factor_id=factor.id, error=str(e))
                continue
            removed += 1

        logger.info(
            "mfa_reset",
            caller_id=caller_id,
            target_user_id=request.target_user_id,
            factors_found=len(factors),
            factors_removed=removed,
        )
        return ResetMfaResponse(factors_removed=removed)

    def list_identities(self, caller_id: Optional[str], page: int = 1, per_page: int = 100) -> IdentityListResponse:
        """Paginated list of identities for the users screen"""
        self.roles.require_role_at_least(caller_id, AppRole.ADMIN)
        page = max(page, 1)
        per_page = min(max(per_page, 1), MAX_PAGE_SIZE)

        try:
            result = self.credentials.list_identities(page=page, per_page=per_page)
        except CredentialError as e:
            logger.error("user_list_failed", error=str(e))
            raise UpstreamFailureError(f"Credential subsystem error: {e}") from e

        return IdentityListResponse(
            users=[
                IdentitySummary(id=u.id, email=u.email, created_at=u.created_at, phone=u.phone)
                for u in result.users
            ],
            page=page,
            per_page=per_page,
        )
