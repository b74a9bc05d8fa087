"""
Tenant linking.

Ensures the membership, profile and role grant of an identity in an
organization exist. Each row is checked and inserted on its own, so the
whole step can be re-run after a crash without duplicating anything.
"""

from typing import Optional

import structlog
from sqlalchemy.exc import IntegrityError, SQLAlchemyError
from sqlalchemy.orm import Session

from src.database.models import OrganizationMember, Profile, UserRole
from src.errors import UpstreamFailureError

logger = structlog.get_logger()


class TenantLinkService:
    """Idempotent writer for Membership, Profile and RoleGrant rows"""

    def __init__(self, db: Session):
        self.db = db

    def ensure_tenant_link(
        self,
        identity_id: str,
        organization_id: str,
        role: str,
        name: str,
        phone: Optional[str] = None,
    ) -> None:
        """
        Make sure the identity is a member of the organization with a profile
        and the given role.

        Raises:
            UpstreamFailureError: If the store fails with anything other than
                a uniqueness violation
        """
        try:
            self._ensure_membership(identity_id, organization_id)
            self._ensure_profile(identity_id, organization_id, name, phone)
            self._ensure_role(identity_id, role)
        except SQLAlchemyError as e:
            self.db.rollback()
            logger.error(
                "tenant_link_failed",
                identity_id=identity_id,
                organization_id=organization_id,
                error=str(e),
            )
            raise UpstreamFailureError("Failed to link identity to organization") from e

        logger.info(
            "tenant_link_ensured",
            identity_id=identity_id,
            organization_id=organization_id,
            role=role,
        )

    def _insert(self, row) -> bool:
        """Insert a row; False if a concurrent writer already inserted it."""
        self.db.add(row)
        try:
            self.db.commit()
        except IntegrityError:
            self.db.rollback()
            return False
        return True

    def _ensure_membership(self, identity_id: str, organization_id: str) -> None:
        existing = self.db.query(OrganizationMember).filter(
            OrganizationMember.organization_id == organization_id,
            OrganizationMember.user_id == identity_id,
        ).first()
        if existing:
            return
        self._insert(OrganizationMember(organization_id=organization_id, user_id=identity_id))

    def _ensure_profile(
        self,
        identity_id: str,
        organization_id: str,
        name: str,
        phone: Optional[str],
    ) -> None:
        profile = self.db.query(Profile).filter(Profile.user_id == identity_id).first()
        if not profile:
            inserted = self._insert(Profile(
                user_id=identity_id,
                organization_id=organization_id,
                name=name,
                phone=phone,
            ))
            if inserted:
                return
            profile = self.db.query(Profile).filter(Profile.user_id == identity_id).one()

        profile.name = name
        profile.organization_id = organization_id
        if phone:
            profile.phone = phone
        self.db.commit()

    def _ensure_role(self, identity_id: str, role: str) -> None:
        existing = self.db.query(UserRole).filter(
            UserRole.user_id == identity_id,
            UserRole.role == role,
        ).first()
        if existing:
            return
        self._insert(UserRole(user_id=identity_id, role=role))

    def remove_identity_links(self, identity_id: str) -> None:
        """Delete every membership, profile and role grant of an identity"""
        try:
            self.db.query(OrganizationMember).filter(OrganizationMember.user_id == identity_id).delete()
            self.db.query(Profile).filter(Profile.user_id == identity_id).delete()
            self.db.query(UserRole).filter(UserRole.user_id == identity_id).delete()
            self.db.commit()
        except SQLAlchemyError as e:
            self.db.rollback()
            logger.error("tenant_unlink_failed", identity_id=identity_id, error=str(e))
            raise UpstreamFailureError("Failed to remove identity records") from e
        logger.info("tenant_links_removed", identity_id=identity_id)
