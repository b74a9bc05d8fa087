"""
Role Service.

Reads role grants and answers "does this identity hold at least role X".
"""

from typing import List, Optional, Union

import structlog
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session

from src.database.models import OrganizationMember, UserRole
from src.errors import ForbiddenError
from src.templates.role_definitions import AppRole, highest_role, is_role_at_least, role_level

logger = structlog.get_logger()

RoleLike = Union[AppRole, str]


class RoleService:
    """
    Service for role grants and hierarchy checks.
    """

    def __init__(self, db: Session):
        self.db = db

    def get_user_roles(self, user_id: str) -> List[str]:
        """All role values granted to an identity."""
        grants = self.db.query(UserRole).filter(UserRole.user_id == user_id).all()
        return [grant.role for grant in grants]

    def get_highest_role(self, user_id: str) -> Optional[str]:
        return highest_role(self.get_user_roles(user_id))

    def has_role_at_least(self, user_id: str, required_role: RoleLike) -> bool:
        """
        Check whether an identity's most privileged grant reaches ``required_role``.

        Unknown role values count as level 0. An identity with no grants
        never passes. Never raises for a missing grant.

        Args:
            user_id: Identity to check
            required_role: Minimum role needed

        Returns:
            True if the identity holds the required role or a higher one
        """
        if not user_id:
            return False
        return is_role_at_least(self.get_user_roles(user_id), required_role)

    def grant_role(self, user_id: str, role: RoleLike) -> UserRole:
        """
        Grant a role, returning the existing grant if already present.

        Concurrent grants of the same role resolve to the single stored row.
        """
        value = role.value if isinstance(role, AppRole) else role
        existing = self.db.query(UserRole).filter(
            UserRole.user_id == user_id,
            UserRole.role == value,
        ).first()
        if existing:
            return existing

        grant = UserRole(user_id=user_id, role=value)
        self.db.add(grant)
        try:
            self.db.commit()
        except IntegrityError:
            self.db.rollback()
            return self.db.query(UserRole).filter(
                UserRole.user_id == user_id,
                UserRole.role == value,
            ).one()
        self.db.refresh(grant)
        logger.info("role_granted", user_id=user_id, role=value)
        return grant

    def list_organization_admin_ids(
        self,
        organization_id: str,
        exclude: Optional[List[str]] = None,
    ) -> List[str]:
        """
        Members of an organization whose highest role is admin or above.

        Args:
            organization_id: Organization whose admins to list
            exclude: Identity ids to leave out (e.g. the identity that just joined)
        """
        excluded = set(exclude or [])
        member_ids = [
            m.user_id
            for m in self.db.query(OrganizationMember).filter(
                OrganizationMember.organization_id == organization_id
            ).all()
            if m.user_id not in excluded
        ]
        if not member_ids:
            return []

        admin_level = role_level(AppRole.ADMIN)
        grants = self.db.query(UserRole).filter(UserRole.user_id.in_(member_ids)).all()
        admin_ids = {g.user_id for g in grants if role_level(g.role) >= admin_level}
        return [user_id for user_id in member_ids if user_id in admin_ids]

    def is_member(self, user_id: str, organization_id: str) -> bool:
        return self.db.query(OrganizationMember).filter(
            OrganizationMember.user_id == user_id,
            OrganizationMember.organization_id == organization_id,
        ).first() is not None

    def require_role_at_least(self, user_id: Optional[str], required_role: RoleLike) -> None:
        """
        Raise unless the identity holds ``required_role`` or higher.

        Raises:
            ForbiddenError: If the check fails (including anonymous callers)
        """
        if not self.has_role_at_least(user_id, required_role):
            logger.warning(
                "authorization_denied",
                user_id=user_id,
                required_role=required_role.value if isinstance(required_role, AppRole) else required_role,
            )
            raise ForbiddenError("Insufficient privileges")
