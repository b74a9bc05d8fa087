"""Unit tests for RoleService."""

import pytest

from src.database.models import Organization, OrganizationMember, UserRole
from src.errors import ForbiddenError
from src.services.role_service import RoleService
from src.templates.role_definitions import AppRole


@pytest.mark.unit
class TestRoleService:
    """Tests for RoleService."""

    def _grant(self, db, user_id, *roles):
        for role in roles:
            db.add(UserRole(user_id=user_id, role=role))
        db.commit()

    def test_no_grants_has_no_privilege(self, db):
        service = RoleService(db)

        assert service.has_role_at_least("nobody", AppRole.OPERADOR) is False
        assert service.get_highest_role("nobody") is None

    def test_highest_grant_wins(self, db):
        self._grant(db, "u1", "operador", "admin")
        service = RoleService(db)

        assert service.has_role_at_least("u1", AppRole.ADMIN) is True
        assert service.has_role_at_least("u1", AppRole.SUPERADMIN) is False
        assert service.get_highest_role("u1") == "admin"

    def test_unknown_role_values_grant_nothing(self, db):
        self._grant(db, "u1", "owner")

        assert RoleService(db).has_role_at_least("u1", AppRole.OPERADOR) is False

    def test_below_admin_fails_admin_check(self, db):
        self._grant(db, "u1", "almoxarife")

        assert RoleService(db).has_role_at_least("u1", "admin") is False

    def test_anonymous_caller_fails(self, db):
        assert RoleService(db).has_role_at_least(None, AppRole.OPERADOR) is False

    def test_grant_role_is_idempotent(self, db):
        service = RoleService(db)

        first = service.grant_role("u1", AppRole.AUDITOR)
        second = service.grant_role("u1", "auditor")

        assert first.id == second.id
        assert db.query(UserRole).filter(UserRole.user_id == "u1").count() == 1

    def test_require_role_at_least_raises_forbidden(self, db):
        self._grant(db, "u1", "auditor")

        with pytest.raises(ForbiddenError):
            RoleService(db).require_role_at_least("u1", AppRole.ADMIN)

    def test_list_organization_admin_ids(self, db):
        org = Organization(name="Acme", slug="acme")
        db.add(org)
        db.commit()
        for user_id in ("admin1", "admin2", "op1"):
            db.add(OrganizationMember(organization_id=org.id, user_id=user_id))
        db.commit()
        self._grant(db, "admin1", "admin")
        self._grant(db, "admin2", "superadmin")
        self._grant(db, "op1", "operador")
        # Admin elsewhere, not a member
        self._grant(db, "outsider", "admin")

        service = RoleService(db)

        assert sorted(service.list_organization_admin_ids(org.id)) == ["admin1", "admin2"]
        assert service.list_organization_admin_ids(org.id, exclude=["admin2"]) == ["admin1"]
