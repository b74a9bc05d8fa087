"""Unit tests for the GoTrue admin API backend, using an httpx mock transport"""

import json

import httpx
import pytest

from src.services.credentials import (
    CredentialError,
    GoTrueCredentialBackend,
    IdentityExistsError,
    IdentityNotFoundError,
    InvalidCredentialsError,
)
from src.services.credentials.gotrue_backend import UnsupportedOperationError

BASE_URL = "https://auth.example.com/auth/v1"


def gotrue_user(user_id="u-1", email="ana@acme.com", **metadata):
    return {
        "id": user_id,
        "email": email,
        "user_metadata": metadata,
        "email_confirmed_at": "2026-01-01T00:00:00Z",
        "created_at": "2026-01-01T00:00:00Z",
    }


def make_backend(handler):
    client = httpx.Client(transport=httpx.MockTransport(handler))
    return GoTrueCredentialBackend(base_url=BASE_URL, service_role_key="service-key", client=client)


@pytest.mark.unit
class TestGoTrueBackend:

    def test_requires_configuration(self, monkeypatch):
        from src.config import settings
        monkeypatch.setattr(settings, "GOTRUE_URL", "")
        monkeypatch.setattr(settings, "GOTRUE_SERVICE_ROLE_KEY", "")

        with pytest.raises(CredentialError):
            GoTrueCredentialBackend()

    def test_create_identity_sends_service_key(self):
        seen = {}

        def handler(request):
            seen["auth"] = request.headers["Authorization"]
            seen["path"] = request.url.path
            seen["body"] = json.loads(request.content)
            return httpx.Response(200, json=gotrue_user(name="Ana"))

        record = make_backend(handler).create_identity("Ana@Acme.com", "s3cret1", {"name": "Ana"}, True)

        assert seen["auth"] == "Bearer service-key"
        assert seen["path"] == "/auth/v1/admin/users"
        assert seen["body"]["email"] == "ana@acme.com"
        assert seen["body"]["email_confirm"] is True
        assert record.id == "u-1"
        assert record.name == "Ana"
        assert record.email_confirmed is True

    def test_create_existing_email(self):
        def handler(request):
            return httpx.Response(422, json={"error_code": "email_exists", "msg": "exists"})

        with pytest.raises(IdentityExistsError):
            make_backend(handler).create_identity("ana@acme.com", "s3cret1")

    def test_get_missing_identity_is_none(self):
        backend = make_backend(lambda request: httpx.Response(404, json={"msg": "User not found"}))

        assert backend.get_identity("missing") is None

    def test_delete_missing_identity(self):
        backend = make_backend(lambda request: httpx.Response(404, json={"msg": "User not found"}))

        with pytest.raises(IdentityNotFoundError):
            backend.delete_identity("missing")

    def test_server_error_is_credential_error(self):
        backend = make_backend(lambda request: httpx.Response(500, json={"msg": "boom"}))

        with pytest.raises(CredentialError):
            backend.update_identity("u-1", password="s3cret1")

    def test_transport_failure_is_credential_error(self):
        def handler(request):
            raise httpx.ConnectError("connection refused")

        with pytest.raises(CredentialError):
            make_backend(handler).list_identities()

    def test_find_identity_by_email_scans_users(self):
        def handler(request):
            assert request.url.params["per_page"] == "1000"
            return httpx.Response(200, json={"users": [
                gotrue_user("u-1", "other@acme.com"),
                gotrue_user("u-2", "ana@acme.com"),
            ]})

        backend = make_backend(handler)

        assert backend.find_identity_by_email("ANA@acme.com").id == "u-2"
        assert backend.find_identity_by_email("nobody@acme.com") is None

    def test_authenticate(self):
        def handler(request):
            assert request.url.params["grant_type"] == "password"
            body = json.loads(request.content)
            if body["password"] != "s3cret1":
                return httpx.Response(400, json={"error": "invalid_grant"})
            return httpx.Response(200, json={"access_token": "t", "user": gotrue_user()})

        backend = make_backend(handler)

        assert backend.authenticate("ana@acme.com", "s3cret1").id == "u-1"
        with pytest.raises(InvalidCredentialsError):
            backend.authenticate("ana@acme.com", "wrong")

    def test_list_and_delete_factors(self):
        deleted = []

        def handler(request):
            if request.method == "DELETE":
                deleted.append(request.url.path.rsplit("/", 1)[-1])
                return httpx.Response(200, json={})
            return httpx.Response(200, json=[
                {"id": "f-1", "factor_type": "totp", "status": "verified", "friendly_name": "phone"},
            ])

        backend = make_backend(handler)
        factors = backend.list_factors("u-1")
        backend.delete_factor("u-1", factors[0].id)

        assert factors[0].status == "verified"
        assert deleted == ["f-1"]

    def test_factor_enrollment_is_unsupported(self):
        backend = make_backend(lambda request: httpx.Response(200, json={}))

        with pytest.raises(UnsupportedOperationError):
            backend.enroll_factor("u-1")
