"""
Provisioning orchestrator.

Sequences organization bootstrap and invitation acceptance across the
tenant tables and the credential subsystem. There is no transaction
spanning those resources: every step commits on its own and is either
idempotent or, for the organization row, undone by compensation.
Notification emails are scheduled as background tasks and never affect
the result of the operation.
"""

from datetime import datetime, timedelta
from typing import Any, Dict, List, Optional

import structlog
from fastapi import BackgroundTasks
from sqlalchemy.exc import IntegrityError, SQLAlchemyError
from sqlalchemy.orm import Session

from src.config import settings
from src.database.models import Invitation, InvitationStatus, Organization
from src.errors import (
    AlreadyUsedError,
    ConflictError,
    DuplicateSlugError,
    ForbiddenError,
    NotFoundError,
    UpstreamFailureError,
)
from src.schemas.provisioning import (
    AcceptInvitationRequest,
    AcceptInvitationResponse,
    BootstrapOrganizationRequest,
    BootstrapOrganizationResponse,
    InvitationDetailsResponse,
    InvitationResponse,
    InviteMemberRequest,
    ResendInvitationRequest,
    ResendInvitationResponse,
    load_request,
)
from src.services.credentials import CredentialBackend, CredentialError
from src.services.identity_service import IdentityService
from src.services.invitation_service import InvitationService
from src.services.notification_service import NotificationService, notification_service, run_best_effort
from src.services.role_service import RoleService
from src.services.saga import Saga
from src.services.tenant_link_service import TenantLinkService
from src.templates.role_definitions import AppRole, display_name, role_level

logger = structlog.get_logger()


class ProvisioningService:
    """Entry points for creating organizations and onboarding identities"""

    def __init__(
        self,
        db: Session,
        credentials: CredentialBackend,
        background_tasks: Optional[BackgroundTasks] = None,
        notifications: Optional[NotificationService] = None,
    ):
        self.db = db
        self.credentials = credentials
        self.background_tasks = background_tasks if background_tasks is not None else BackgroundTasks()
        self.notifications = notifications or notification_service
        self.roles = RoleService(db)

    # Organization bootstrap

    def bootstrap_organization(self, caller_id: Optional[str], payload: Any) -> BootstrapOrganizationResponse:
        """
        Create an organization and an admin invitation for its first administrator.

        The caller must hold admin or above, unless no organization exists yet.
        If the invitation cannot be created the organization is deleted again.
        The invitation email is sent in the background.

        Raises:
            ForbiddenError: If the caller may not create organizations
            ValidationError: If the payload is invalid
            DuplicateSlugError: If the slug is taken
            UpstreamFailureError: If the store fails
        """
        self._authorize_bootstrap(caller_id)
        request = load_request(BootstrapOrganizationRequest, payload)

        saga = Saga("bootstrap_organization")
        saga.step(
            "organization",
            lambda ctx: self._create_organization(request.organization_name, request.organization_slug),
            compensate=lambda ctx: self._delete_organization(ctx["organization"]),
        )
        saga.step(
            "invitation",
            lambda ctx: InvitationService.create_invitation(
                self.db,
                email=request.admin_email,
                role=AppRole.ADMIN.value,
                organization_id=ctx["organization"],
                created_by=caller_id,
                phone=request.admin_phone,
                invitee_name=request.admin_name,
            ),
        )
        context = saga.run()

        organization_id = context["organization"]
        invitation: Invitation = context["invitation"]

        self._schedule_invitation_email(invitation, request.app_url)

        logger.info(
            "organization_bootstrapped",
            organization_id=organization_id,
            invitation_id=invitation.id,
            caller_id=caller_id,
        )
        return BootstrapOrganizationResponse(organization_id=organization_id, invitation_id=invitation.id)

    def _authorize_bootstrap(self, caller_id: Optional[str]) -> None:
        if caller_id and self.roles.has_role_at_least(caller_id, AppRole.ADMIN):
            return
        if self.db.query(Organization).first() is None:
            logger.info("first_organization_bootstrap", caller_id=caller_id)
            return
        raise ForbiddenError("Only administrators can create organizations")

    def _create_organization(self, name: str, slug: str) -> str:
        if self.db.query(Organization).filter(Organization.slug == slug).first():
            raise DuplicateSlugError(slug)

        organization = Organization(name=name, slug=slug, active=True)
        self.db.add(organization)
        try:
            self.db.commit()
        except IntegrityError as e:
            # Another request took the slug between the check and the insert
            self.db.rollback()
            raise DuplicateSlugError(slug) from e
        except SQLAlchemyError as e:
            self.db.rollback()
            logger.error("organization_create_failed", slug=slug, error=str(e))
            raise UpstreamFailureError("Failed to create organization") from e

        self.db.refresh(organization)
        logger.info("organization_created", organization_id=organization.id, slug=slug)
        return organization.id

    def _delete_organization(self, organization_id: str) -> None:
        self.db.rollback()
        self.db.query(Organization).filter(Organization.id == organization_id).delete()
        self.db.commit()
        logger.info("organization_deleted", organization_id=organization_id)

    # Invitation acceptance

    def accept_invitation(self, payload: Any) -> AcceptInvitationResponse:
        """
        Turn an invitation into an identity with membership, profile and role.

        Every step after validation is idempotent, so a failed attempt is
        completed by resubmitting rather than unwound.

        Raises:
            ValidationError: If the payload is invalid
            NotFoundError: If the invitation does not exist
            AlreadyUsedError: If it was already accepted or cancelled
            ExpiredError: If it has expired
            UpstreamFailureError: If the credential subsystem or store fails
        """
        request = load_request(AcceptInvitationRequest, payload)

        invitation = InvitationService.validate_invitation(
            InvitationService.get_invitation(self.db, request.invitation_id)
        )
        invitation_id = invitation.id
        email = invitation.email
        organization_id = invitation.organization_id
        role = invitation.role
        phone = invitation.phone

        resolved = IdentityService(self.credentials).resolve_identity(
            email=email,
            name=request.name,
            password=request.password,
            phone=phone,
        )

        TenantLinkService(self.db).ensure_tenant_link(
            identity_id=resolved.identity_id,
            organization_id=organization_id,
            role=role,
            name=request.name,
            phone=phone,
        )

        InvitationService.mark_accepted(self.db, invitation_id)

        if resolved.is_new_identity:
            self._schedule_admin_notification(
                organization_id=organization_id,
                identity_id=resolved.identity_id,
                user_name=request.name,
                user_email=email,
                role=role,
            )

        logger.info(
            "invitation_accepted_by_identity",
            invitation_id=invitation_id,
            identity_id=resolved.identity_id,
            is_new_identity=resolved.is_new_identity,
        )
        return AcceptInvitationResponse(identity_id=resolved.identity_id)

    # Invitation management

    def resend_invitation(self, caller_id: Optional[str], payload: Any) -> ResendInvitationResponse:
        """
        Refresh an invitation's expiry and send its email again.

        Reuses the existing invitation; never creates a second one.

        Raises:
            ForbiddenError: If the caller is not an administrator
            NotFoundError: If the invitation does not exist
            AlreadyUsedError: If it was accepted or cancelled
            ConflictError: If another open invitation exists for the same
                email and organization
        """
        self.roles.require_role_at_least(caller_id, AppRole.ADMIN)
        request = load_request(ResendInvitationRequest, payload)

        invitation = InvitationService.get_invitation(self.db, request.invitation_id)
        if not invitation:
            raise NotFoundError("Invitation not found")
        self._authorize_organization(caller_id, invitation.organization_id)
        if invitation.status in (InvitationStatus.ACCEPTED.value, InvitationStatus.CANCELLED.value):
            raise AlreadyUsedError(f"Cannot resend an invitation with status: {invitation.status}")

        open_invitation = InvitationService.find_open_invitation(
            self.db, invitation.email, invitation.organization_id
        )
        if open_invitation is not None and open_invitation.id != invitation.id:
            raise ConflictError("Another invitation is already open for this email")

        new_expiry = datetime.utcnow() + timedelta(days=settings.INVITATION_EXPIRY_DAYS)
        invitation = InvitationService.mark_pending(self.db, invitation.id, new_expiry)
        self._schedule_invitation_email(invitation, request.app_url)

        logger.info("invitation_resent", invitation_id=invitation.id, caller_id=caller_id)
        return ResendInvitationResponse(email=invitation.email)

    def invite_member(self, caller_id: Optional[str], payload: Any) -> InvitationResponse:
        """
        Invite an email to an organization the caller administers.

        Admins may only invite into organizations they belong to and only
        grant roles up to their own level; superadmins may invite anywhere.
        """
        self.roles.require_role_at_least(caller_id, AppRole.ADMIN)
        request = load_request(InviteMemberRequest, payload)

        self._authorize_organization(caller_id, request.organization_id)
        caller_role = self.roles.get_highest_role(caller_id)
        if role_level(request.role) > role_level(caller_role):
            raise ForbiddenError("Cannot grant a role above your own")

        invitation = InvitationService.create_invitation(
            self.db,
            email=request.email,
            role=request.role.value,
            organization_id=request.organization_id,
            created_by=caller_id,
            phone=request.phone,
            invitee_name=request.name,
        )
        self._schedule_invitation_email(invitation, request.app_url)
        return InvitationResponse.model_validate(invitation)

    def cancel_invitation(self, caller_id: Optional[str], invitation_id: str) -> InvitationResponse:
        self.roles.require_role_at_least(caller_id, AppRole.ADMIN)
        invitation = InvitationService.get_invitation(self.db, invitation_id)
        if not invitation:
            raise NotFoundError("Invitation not found")
        self._authorize_organization(caller_id, invitation.organization_id)
        return InvitationResponse.model_validate(InvitationService.cancel_invitation(self.db, invitation_id))

    def list_invitations(
        self,
        caller_id: Optional[str],
        organization_id: str,
        status: Optional[str] = None,
    ) -> List[InvitationResponse]:
        self.roles.require_role_at_least(caller_id, AppRole.ADMIN)
        self._authorize_organization(caller_id, organization_id)
        invitations = InvitationService.list_organization_invitations(self.db, organization_id, status)
        return [InvitationResponse.model_validate(i) for i in invitations]

    def describe_invitation(self, invitation_id: str) -> InvitationDetailsResponse:
        """Public summary of an invitation shown on the accept page"""
        invitation = InvitationService.get_invitation(self.db, invitation_id)
        if not invitation:
            raise NotFoundError("Invitation not found")

        valid = (
            invitation.status == InvitationStatus.PENDING.value
            and datetime.utcnow() < invitation.expires_at
        )
        return InvitationDetailsResponse(
            id=invitation.id,
            email=invitation.email,
            role=invitation.role,
            role_display_name=display_name(invitation.role),
            organization_name=invitation.organization.name,
            name=invitation.invitee_name,
            status=invitation.status,
            expires_at=invitation.expires_at,
            valid=valid,
        )

    def _authorize_organization(self, caller_id: str, organization_id: str) -> None:
        if self.roles.has_role_at_least(caller_id, AppRole.SUPERADMIN):
            return
        if not self.roles.is_member(caller_id, organization_id):
            raise ForbiddenError("Not a member of this organization")

    # Notifications

    def _schedule_invitation_email(self, invitation: Invitation, app_url: Optional[str] = None) -> None:
        self.background_tasks.add_task(
            run_best_effort,
            self.notifications.send_invitation_email,
            email=invitation.email,
            invitation_id=invitation.id,
            role=invitation.role,
            app_url=app_url,
            invitee_name=invitation.invitee_name,
            organization_name=invitation.organization.name,
        )

    def _schedule_admin_notification(
        self,
        organization_id: str,
        identity_id: str,
        user_name: str,
        user_email: str,
        role: str,
    ) -> None:
        # Recipients are collected now, while the request's session is open
        try:
            admin_emails = self._admin_emails(organization_id, exclude=identity_id)
        except (SQLAlchemyError, CredentialError) as e:
            logger.error("admin_lookup_failed", organization_id=organization_id, error=str(e))
            return

        if not admin_emails:
            logger.info("admin_notification_skipped", organization_id=organization_id, reason="no_admins")
            return

        self.background_tasks.add_task(
            run_best_effort,
            self.notifications.notify_admins_new_user,
            admin_emails=admin_emails,
            user_name=user_name,
            user_email=user_email,
            role=role,
        )

    def _admin_emails(self, organization_id: str, exclude: str) -> List[str]:
        emails: Dict[str, None] = {}
        for admin_id in self.roles.list_organization_admin_ids(organization_id, exclude=[exclude]):
            identity = self.credentials.get_identity(admin_id)
            if identity and identity.email:
                emails[identity.email] = None
        return list(emails)
