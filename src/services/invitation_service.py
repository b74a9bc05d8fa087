"""Invitation store: durable, time-bound offers of membership and role"""

from datetime import datetime, timedelta
from typing import List, Optional

import structlog
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from src.config import settings
from src.database.models import Invitation, InvitationStatus, Organization
from src.errors import (
    AlreadyUsedError,
    ConflictError,
    ExpiredError,
    NotFoundError,
    UpstreamFailureError,
    ValidationError,
)
from src.templates.role_definitions import AppRole, is_valid_role

logger = structlog.get_logger()


def _commit(db: Session, event: str, **context) -> None:
    try:
        db.commit()
    except SQLAlchemyError as e:
        db.rollback()
        logger.error(event, error=str(e), **context)
        raise UpstreamFailureError("Failed to store invitation") from e


def _is_expired(invitation: Invitation, now: Optional[datetime] = None) -> bool:
    return (now or datetime.utcnow()) >= invitation.expires_at


class InvitationService:
    """Service for managing invitations"""

    @staticmethod
    def create_invitation(
        db: Session,
        email: str,
        role: str,
        organization_id: str,
        created_by: Optional[str],
        phone: Optional[str] = None,
        expiry_days: Optional[int] = None,
        invitee_name: Optional[str] = None,
    ) -> Invitation:
        """
        Create a pending invitation for an email to join an organization.

        Args:
            db: Database session
            email: Address to invite (normalized to lower case)
            role: Role granted on acceptance
            organization_id: Organization to join
            created_by: Identity creating the invitation, None only for the
                first organization bootstrapped without a caller
            phone: Optional contact number carried to the profile on acceptance
            invitee_name: Name the inviter gave for the invitee, used in the email
                greeting and to prefill the accept page
            expiry_days: Days until the invitation expires

        Returns:
            The new Invitation

        Raises:
            ValidationError: If the role is unknown
            NotFoundError: If the organization does not exist
            ConflictError: If an open invitation already exists for this email
                and organization
            UpstreamFailureError: If the store fails
        """
        email = email.lower().strip()
        role_value = role.value if isinstance(role, AppRole) else role
        if not is_valid_role(role_value):
            raise ValidationError(
                "Invalid role",
                errors=[{"field": "role", "message": f"Unknown role: {role_value}"}],
            )

        organization = db.query(Organization).filter(Organization.id == organization_id).first()
        if not organization:
            raise NotFoundError("Organization not found")

        existing = InvitationService.find_open_invitation(db, email, organization_id)
        if existing:
            raise ConflictError("An invitation has already been sent to this email")

        invitation = Invitation(
            organization_id=organization_id,
            email=email,
            role=role_value,
            phone=phone,
            invitee_name=invitee_name,
            created_by=created_by,
            status=InvitationStatus.PENDING.value,
            expires_at=datetime.utcnow() + timedelta(days=expiry_days or settings.INVITATION_EXPIRY_DAYS),
        )
        db.add(invitation)
        _commit(db, "invitation_create_failed", organization_id=organization_id)
        db.refresh(invitation)

        logger.info(
            "invitation_created",
            invitation_id=invitation.id,
            organization_id=organization_id,
            role=role_value,
        )
        return invitation

    @staticmethod
    def get_invitation(db: Session, invitation_id: str) -> Optional[Invitation]:
        return db.query(Invitation).filter(Invitation.id == invitation_id).first()

    @staticmethod
    def find_open_invitation(db: Session, email: str, organization_id: str) -> Optional[Invitation]:
        """
        Find a pending, unexpired invitation for an email in an organization.

        Overdue pending invitations found along the way are marked expired.
        """
        candidates = db.query(Invitation).filter(
            Invitation.organization_id == organization_id,
            Invitation.email == email.lower().strip(),
            Invitation.status == InvitationStatus.PENDING.value,
        ).all()

        now = datetime.utcnow()
        open_invitation = None
        stale = False
        for invitation in candidates:
            if _is_expired(invitation, now):
                invitation.status = InvitationStatus.EXPIRED.value
                stale = True
            elif open_invitation is None:
                open_invitation = invitation
        if stale:
            _commit(db, "invitation_expire_failed", organization_id=organization_id)
        return open_invitation

    @staticmethod
    def validate_invitation(invitation: Optional[Invitation]) -> Invitation:
        """
        Check that an invitation can be accepted right now.

        Raises:
            NotFoundError: If the invitation does not exist
            AlreadyUsedError: If its status is anything but pending (including
                a stored expired status)
            ExpiredError: If it is pending but expires_at has passed
        """
        if invitation is None:
            raise NotFoundError("Invitation not found")
        if invitation.status != InvitationStatus.PENDING.value:
            raise AlreadyUsedError()
        if _is_expired(invitation):
            raise ExpiredError()
        return invitation

    @staticmethod
    def mark_accepted(db: Session, invitation_id: str) -> None:
        """
        Transition a pending invitation to accepted.

        Conditional on the stored status, so replaying it on an accepted
        invitation changes nothing.
        """
        updated = db.query(Invitation).filter(
            Invitation.id == invitation_id,
            Invitation.status == InvitationStatus.PENDING.value,
        ).update(
            {
                Invitation.status: InvitationStatus.ACCEPTED.value,
                Invitation.accepted_at: datetime.utcnow(),
            },
            synchronize_session="fetch",
        )
        _commit(db, "invitation_accept_failed", invitation_id=invitation_id)
        if updated:
            logger.info("invitation_accepted", invitation_id=invitation_id)

    @staticmethod
    def mark_pending(db: Session, invitation_id: str, new_expiry: datetime) -> Invitation:
        """Reopen an invitation with a fresh expiry (resend)"""
        invitation = InvitationService.get_invitation(db, invitation_id)
        if not invitation:
            raise NotFoundError("Invitation not found")

        invitation.status = InvitationStatus.PENDING.value
        invitation.expires_at = new_expiry
        _commit(db, "invitation_refresh_failed", invitation_id=invitation_id)
        db.refresh(invitation)
        return invitation

    @staticmethod
    def cancel_invitation(db: Session, invitation_id: str) -> Invitation:
        """
        Cancel an invitation that has not been accepted.

        Raises:
            NotFoundError: If the invitation does not exist
            ConflictError: If the invitation was already accepted
        """
        invitation = InvitationService.get_invitation(db, invitation_id)
        if not invitation:
            raise NotFoundError("Invitation not found")
        if invitation.status == InvitationStatus.ACCEPTED.value:
            raise ConflictError("Cannot cancel an accepted invitation")
        if invitation.status == InvitationStatus.CANCELLED.value:
            return invitation

        invitation.status = InvitationStatus.CANCELLED.value
        _commit(db, "invitation_cancel_failed", invitation_id=invitation_id)
        db.refresh(invitation)
        logger.info("invitation_cancelled", invitation_id=invitation_id)
        return invitation

    @staticmethod
    def list_organization_invitations(
        db: Session,
        organization_id: str,
        status: Optional[str] = None,
    ) -> List[Invitation]:
        """
        List invitations for an organization, newest first.

        Args:
            status: Optional status filter (pending, accepted, expired, cancelled)
        """
        query = db.query(Invitation).filter(Invitation.organization_id == organization_id)
        if status:
            query = query.filter(Invitation.status == status)
        return query.order_by(Invitation.created_at.desc()).all()

    @staticmethod
    def expire_stale_invitations(db: Session, now: Optional[datetime] = None) -> int:
        """
        Mark every overdue pending invitation as expired.

        Returns:
            Number of invitations updated
        """
        now = now or datetime.utcnow()
        count = db.query(Invitation).filter(
            Invitation.status == InvitationStatus.PENDING.value,
            Invitation.expires_at <= now,
        ).update({Invitation.status: InvitationStatus.EXPIRED.value}, synchronize_session="fetch")
        _commit(db, "invitation_sweep_failed")
        logger.info("invitations_expired", count=count)
        return count
