"""Unit tests for InvitationService."""

import pytest
from datetime import datetime, timedelta

from src.database.models import Invitation, InvitationStatus, Organization
from src.errors import AlreadyUsedError, ConflictError, ExpiredError, NotFoundError, ValidationError
from src.services.invitation_service import InvitationService


@pytest.fixture
def organization(db):
    org = Organization(name="Acme", slug="acme")
    db.add(org)
    db.commit()
    return org


@pytest.mark.unit
class TestCreateInvitation:

    def test_creates_pending_invitation_with_seven_day_ttl(self, db, organization):
        before = datetime.utcnow()

        invitation = InvitationService.create_invitation(
            db, "  New.User@Acme.com ", "operador", organization.id, created_by="admin-1"
        )

        assert invitation.email == "new.user@acme.com"
        assert invitation.status == InvitationStatus.PENDING.value
        assert invitation.created_by == "admin-1"
        assert invitation.accepted_at is None
        assert before + timedelta(days=7) <= invitation.expires_at <= datetime.utcnow() + timedelta(days=7)

    def test_rejects_second_open_invitation(self, db, organization):
        InvitationService.create_invitation(db, "a@acme.com", "operador", organization.id, "admin-1")

        with pytest.raises(ConflictError):
            InvitationService.create_invitation(db, "A@acme.com", "auditor", organization.id, "admin-1")

    def test_overdue_invitation_does_not_block_new_one(self, db, organization):
        old = InvitationService.create_invitation(db, "a@acme.com", "operador", organization.id, "admin-1")
        old.expires_at = datetime.utcnow() - timedelta(minutes=1)
        db.commit()

        new = InvitationService.create_invitation(db, "a@acme.com", "operador", organization.id, "admin-1")

        db.refresh(old)
        assert new.id != old.id
        assert old.status == InvitationStatus.EXPIRED.value

    def test_unknown_role_is_rejected(self, db, organization):
        with pytest.raises(ValidationError):
            InvitationService.create_invitation(db, "a@acme.com", "owner", organization.id, "admin-1")

    def test_unknown_organization(self, db):
        with pytest.raises(NotFoundError):
            InvitationService.create_invitation(db, "a@acme.com", "operador", "missing", "admin-1")


@pytest.mark.unit
class TestValidateInvitation:

    def test_missing(self):
        with pytest.raises(NotFoundError):
            InvitationService.validate_invitation(None)

    def test_pending_and_unexpired_is_valid(self, db, organization):
        invitation = InvitationService.create_invitation(db, "a@acme.com", "operador", organization.id, None)

        assert InvitationService.validate_invitation(invitation) is invitation

    def test_expired_by_time_even_if_pending(self, db, organization):
        invitation = InvitationService.create_invitation(db, "a@acme.com", "operador", organization.id, None)
        invitation.expires_at = datetime.utcnow() - timedelta(seconds=1)
        db.commit()

        with pytest.raises(ExpiredError):
            InvitationService.validate_invitation(invitation)

    @pytest.mark.parametrize("status", ["accepted", "cancelled", "expired"])
    def test_not_pending_is_already_used(self, db, organization, status):
        invitation = InvitationService.create_invitation(db, "a@acme.com", "operador", organization.id, None)
        invitation.status = status
        db.commit()

        with pytest.raises(AlreadyUsedError):
            InvitationService.validate_invitation(invitation)


@pytest.mark.unit
class TestInvitationTransitions:

    def test_mark_accepted_once(self, db, organization):
        invitation = InvitationService.create_invitation(db, "a@acme.com", "operador", organization.id, None)

        InvitationService.mark_accepted(db, invitation.id)
        db.refresh(invitation)
        accepted_at = invitation.accepted_at

        assert invitation.status == InvitationStatus.ACCEPTED.value
        assert accepted_at is not None

        # Replay changes nothing
        InvitationService.mark_accepted(db, invitation.id)
        db.refresh(invitation)
        assert invitation.accepted_at == accepted_at

    def test_mark_pending_refreshes_expiry(self, db, organization):
        invitation = InvitationService.create_invitation(db, "a@acme.com", "operador", organization.id, None)
        invitation.status = "expired"
        db.commit()
        new_expiry = datetime.utcnow() + timedelta(days=7)

        refreshed = InvitationService.mark_pending(db, invitation.id, new_expiry)

        assert refreshed.id == invitation.id
        assert refreshed.status == "pending"
        assert refreshed.expires_at == new_expiry

    def test_cancel(self, db, organization):
        invitation = InvitationService.create_invitation(db, "a@acme.com", "operador", organization.id, None)

        cancelled = InvitationService.cancel_invitation(db, invitation.id)

        assert cancelled.status == InvitationStatus.CANCELLED.value

    def test_cannot_cancel_accepted(self, db, organization):
        invitation = InvitationService.create_invitation(db, "a@acme.com", "operador", organization.id, None)
        InvitationService.mark_accepted(db, invitation.id)

        with pytest.raises(ConflictError):
            InvitationService.cancel_invitation(db, invitation.id)

    def test_list_with_status_filter(self, db, organization):
        first = InvitationService.create_invitation(db, "a@acme.com", "operador", organization.id, None)
        InvitationService.create_invitation(db, "b@acme.com", "auditor", organization.id, None)
        InvitationService.cancel_invitation(db, first.id)

        pending = InvitationService.list_organization_invitations(db, organization.id, status="pending")
        everything = InvitationService.list_organization_invitations(db, organization.id)

        assert [i.email for i in pending] == ["b@acme.com"]
        assert len(everything) == 2

    def test_expire_stale_invitations(self, db, organization):
        stale = InvitationService.create_invitation(db, "a@acme.com", "operador", organization.id, None)
        fresh = InvitationService.create_invitation(db, "b@acme.com", "operador", organization.id, None)
        stale.expires_at = datetime.utcnow() - timedelta(days=1)
        db.commit()

        count = InvitationService.expire_stale_invitations(db)

        db.refresh(stale)
        db.refresh(fresh)
        assert count == 1
        assert stale.status == "expired"
        assert fresh.status == "pending"
        assert db.query(Invitation).count() == 2
