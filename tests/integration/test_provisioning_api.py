"""API tests for organization bootstrap, invitations and user administration"""

import pyotp
import pytest
from datetime import datetime, timedelta

from src.database.models import Identity, Invitation, Organization

BOOTSTRAP_URL = "/api/v1/organizations/bootstrap"
ACCEPT_URL = "/api/v1/invitations/accept"


def bootstrap_body(**overrides):
    body = {
        "organizationName": "Acme",
        "organizationSlug": "acme",
        "adminName": "A. Admin",
        "adminEmail": "a@acme.com",
    }
    body.update(overrides)
    return body


def onboard_acme_admin(client):
    """Bootstrap Acme and accept its admin invitation; returns (org id, identity id)."""
    created = client.post(BOOTSTRAP_URL, json=bootstrap_body()).json()
    accepted = client.post(ACCEPT_URL, json={
        "invitationId": created["invitationId"],
        "name": "A. Admin",
        "password": "s3cret1",
    }).json()
    return created["organizationId"], accepted["identityId"]


def login(client, email, password="s3cret1"):
    response = client.post("/api/v1/auth/login", json={"email": email, "password": password})
    assert response.status_code == 200
    return {"Authorization": f"Bearer {response.json()['accessToken']}"}


@pytest.mark.integration
class TestBootstrapFlow:

    def test_health(self, client):
        response = client.get("/health")

        assert response.status_code == 200
        assert response.json()["service"] == "stockpass"

    def test_bootstrap_accept_login(self, client, db, email_sender):
        response = client.post(BOOTSTRAP_URL, json=bootstrap_body())

        assert response.status_code == 201
        created = response.json()
        assert set(created) == {"organizationId", "invitationId"}
        invite_email = email_sender.get_latest_email("a@acme.com")
        assert f"accept-invite?id={created['invitationId']}" in invite_email["body"]

        details = client.get(f"/api/v1/invitations/{created['invitationId']}/details")
        assert details.status_code == 200
        assert details.json()["organizationName"] == "Acme"
        assert details.json()["name"] == "A. Admin"
        assert details.json()["valid"] is True

        response = client.post(ACCEPT_URL, json={
            "invitationId": created["invitationId"],
            "name": "A. Admin",
            "password": "s3cret1",
        })
        assert response.status_code == 200
        identity_id = response.json()["identityId"]

        me = client.get("/api/v1/auth/me", headers=login(client, "a@acme.com"))
        assert me.status_code == 200
        assert me.json()["identityId"] == identity_id
        assert me.json()["organizationId"] == created["organizationId"]
        assert me.json()["highestRole"] == "admin"

    def test_second_bootstrap_requires_admin(self, client):
        client.post(BOOTSTRAP_URL, json=bootstrap_body())

        response = client.post(BOOTSTRAP_URL, json=bootstrap_body(organizationSlug="globex"))

        assert response.status_code == 403
        assert response.json()["detail"]["code"] == "forbidden"

    def test_duplicate_slug(self, client, db):
        _, _ = onboard_acme_admin(client)
        headers = login(client, "a@acme.com")

        response = client.post(BOOTSTRAP_URL, json=bootstrap_body(adminEmail="b@acme.com"), headers=headers)

        assert response.status_code == 409
        assert response.json()["detail"]["code"] == "duplicate_slug"
        assert db.query(Organization).count() == 1

    def test_invalid_payload_lists_every_field(self, client):
        response = client.post(BOOTSTRAP_URL, json={"organizationSlug": "Not A Slug"})

        assert response.status_code == 400
        detail = response.json()["detail"]
        fields = {error["field"] for error in detail["errors"]}
        assert {"organizationName", "organizationSlug", "adminName", "adminEmail"} <= fields

    def test_missing_body(self, client):
        response = client.post(BOOTSTRAP_URL)

        assert response.status_code == 400


@pytest.mark.integration
class TestAcceptInvitation:

    def test_replay_is_conflict(self, client):
        created = client.post(BOOTSTRAP_URL, json=bootstrap_body()).json()
        body = {"invitationId": created["invitationId"], "name": "A. Admin", "password": "s3cret1"}
        client.post(ACCEPT_URL, json=body)

        response = client.post(ACCEPT_URL, json=body)

        assert response.status_code == 409
        assert response.json()["detail"]["code"] == "already_used"

    def test_expired_invitation(self, client, db):
        created = client.post(BOOTSTRAP_URL, json=bootstrap_body()).json()
        invitation = db.query(Invitation).one()
        invitation.expires_at = datetime.utcnow() - timedelta(hours=1)
        db.commit()

        response = client.post(ACCEPT_URL, json={
            "invitationId": created["invitationId"],
            "name": "A. Admin",
            "password": "s3cret1",
        })

        assert response.status_code == 410
        assert db.query(Identity).count() == 0

    def test_unknown_invitation(self, client):
        response = client.post(ACCEPT_URL, json={"invitationId": "nope", "name": "X", "password": "s3cret1"})

        assert response.status_code == 404


@pytest.mark.integration
class TestInvitationManagement:

    def test_resend_requires_authentication(self, client):
        response = client.post("/api/v1/invitations/resend", json={"invitationId": "x"})

        assert response.status_code == 401

    def test_invite_resend_cancel(self, client, db, email_sender):
        organization_id, _ = onboard_acme_admin(client)
        headers = login(client, "a@acme.com")

        response = client.post(
            "/api/v1/invitations",
            json={"organizationId": organization_id, "email": "op@acme.com", "role": "operador"},
            headers=headers,
        )
        assert response.status_code == 201
        invitation_id = response.json()["id"]

        email_sender.clear()
        response = client.post("/api/v1/invitations/resend", json={"invitationId": invitation_id}, headers=headers)
        assert response.status_code == 200
        assert response.json() == {"email": "op@acme.com"}
        assert email_sender.get_latest_email("op@acme.com") is not None

        listed = client.get(
            "/api/v1/invitations",
            params={"organizationId": organization_id, "status": "pending"},
            headers=headers,
        )
        assert [i["id"] for i in listed.json()] == [invitation_id]

        response = client.delete(f"/api/v1/invitations/{invitation_id}", headers=headers)
        assert response.status_code == 200
        assert response.json()["status"] == "cancelled"

    def test_duplicate_open_invitation(self, client):
        organization_id, _ = onboard_acme_admin(client)
        headers = login(client, "a@acme.com")
        body = {"organizationId": organization_id, "email": "op@acme.com"}
        client.post("/api/v1/invitations", json=body, headers=headers)

        response = client.post("/api/v1/invitations", json=body, headers=headers)

        assert response.status_code == 409

    def test_new_member_notifies_admins(self, client, email_sender):
        organization_id, _ = onboard_acme_admin(client)
        headers = login(client, "a@acme.com")
        invitation = client.post(
            "/api/v1/invitations",
            json={"organizationId": organization_id, "email": "op@acme.com"},
            headers=headers,
        ).json()

        client.post(ACCEPT_URL, json={"invitationId": invitation["id"], "name": "Op", "password": "s3cret1"})

        notice = email_sender.get_latest_email("a@acme.com")
        assert notice["subject"] == "Novo Usuário Cadastrado - StockMaster"


@pytest.mark.integration
class TestUserAdministration:

    def test_admin_lists_updates_and_deletes(self, client, make_identity):
        onboard_acme_admin(client)
        headers = login(client, "a@acme.com")
        target = make_identity("worker@acme.com", role="operador")

        listed = client.get("/api/v1/users", params={"perPage": 10}, headers=headers)
        assert listed.status_code == 200
        assert {u["email"] for u in listed.json()["users"]} == {"a@acme.com", "worker@acme.com"}

        response = client.post(
            "/api/v1/users/update",
            json={"targetUserId": target.id, "password": "newpass1"},
            headers=headers,
        )
        assert response.status_code == 200
        login(client, "worker@acme.com", "newpass1")

        response = client.post("/api/v1/users/delete", json={"targetUserId": target.id}, headers=headers)
        assert response.status_code == 200
        assert response.json() == {"success": True}

    def test_operator_is_forbidden(self, client, make_identity, auth_headers):
        operator = make_identity("op@acme.com", role="operador")
        target = make_identity("worker@acme.com")

        response = client.post(
            "/api/v1/users/delete",
            json={"targetUserId": target.id},
            headers=auth_headers(operator),
        )

        assert response.status_code == 403

    def test_admin_cannot_delete_self(self, client):
        _, identity_id = onboard_acme_admin(client)

        response = client.post(
            "/api/v1/users/delete",
            json={"targetUserId": identity_id},
            headers=login(client, "a@acme.com"),
        )

        assert response.status_code == 403

    def test_reset_mfa(self, client, credentials, make_identity):
        onboard_acme_admin(client)
        target = make_identity("worker@acme.com")
        credentials.enroll_factor(target.id, "phone")

        response = client.post(
            "/api/v1/users/reset-mfa",
            json={"targetUserId": target.id},
            headers=login(client, "a@acme.com"),
        )

        assert response.status_code == 200
        assert response.json() == {"factorsRemoved": 1}


@pytest.mark.integration
class TestAuth:

    def test_wrong_password(self, client, make_identity):
        make_identity("ana@acme.com")

        response = client.post("/api/v1/auth/login", json={"email": "ana@acme.com", "password": "nope"})

        assert response.status_code == 401

    def test_me_requires_token(self, client):
        assert client.get("/api/v1/auth/me").status_code == 401

    def test_mfa_enrollment_flow(self, client, make_identity, auth_headers):
        identity = make_identity("ana@acme.com")
        headers = auth_headers(identity)

        enrolled = client.post("/api/v1/auth/mfa/enroll", json={"friendlyName": "phone"}, headers=headers)
        assert enrolled.status_code == 201
        factor_id = enrolled.json()["factorId"]
        secret = enrolled.json()["secret"]

        challenge = client.post("/api/v1/auth/mfa/challenge", json={"factorId": factor_id}, headers=headers)
        challenge_id = challenge.json()["challengeId"]

        verified = client.post(
            "/api/v1/auth/mfa/verify",
            json={"factorId": factor_id, "challengeId": challenge_id, "code": pyotp.TOTP(secret).now()},
            headers=headers,
        )
        assert verified.status_code == 200
        assert verified.json()["status"] == "verified"

        factors = client.get("/api/v1/auth/mfa/factors", headers=headers).json()
        assert [f["friendlyName"] for f in factors] == ["phone"]
