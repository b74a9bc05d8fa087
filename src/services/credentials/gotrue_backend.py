"""Credential backend backed by the Supabase Auth (GoTrue) admin REST API."""

from datetime import datetime
from typing import Any, Dict, List, Optional

import httpx
import structlog

from src.config import settings
from .base import (
    CredentialBackend,
    CredentialError,
    FactorEnrollment,
    FactorRecord,
    IdentityExistsError,
    IdentityNotFoundError,
    IdentityPage,
    IdentityRecord,
    InvalidCredentialsError,
)

logger = structlog.get_logger()

# Page size used when scanning for an email; the admin API has no email filter
SCAN_PAGE_SIZE = 1000


class UnsupportedOperationError(CredentialError):
    """Raised for operations GoTrue only exposes to the identity itself."""
    pass


def _parse_timestamp(value: Optional[str]) -> Optional[datetime]:
    if not value:
        return None
    try:
        return datetime.fromisoformat(value.replace("Z", "+00:00"))
    except ValueError:
        return None


def _to_record(user: Dict[str, Any]) -> IdentityRecord:
    metadata = dict(user.get("user_metadata") or {})
    if user.get("phone") and "phone" not in metadata:
        metadata["phone"] = user["phone"]
    return IdentityRecord(
        id=user["id"],
        email=user.get("email") or "",
        metadata=metadata,
        email_confirmed=bool(user.get("email_confirmed_at")),
        created_at=_parse_timestamp(user.get("created_at")),
    )


def _to_factor(identity_id: str, factor: Dict[str, Any]) -> FactorRecord:
    return FactorRecord(
        id=factor["id"],
        identity_id=identity_id,
        factor_type=factor.get("factor_type", "totp"),
        status=factor.get("status", "unverified"),
        friendly_name=factor.get("friendly_name"),
    )


class GoTrueCredentialBackend(CredentialBackend):
    """Admin client for a GoTrue server authenticated with the service role key.

    A preconfigured ``httpx.Client`` may be passed in (tests use one with a
    mock transport); otherwise one is built from settings.
    """

    def __init__(
        self,
        base_url: Optional[str] = None,
        service_role_key: Optional[str] = None,
        client: Optional[httpx.Client] = None,
    ):
        self.base_url = (base_url or settings.GOTRUE_URL).rstrip("/")
        self.service_role_key = service_role_key or settings.GOTRUE_SERVICE_ROLE_KEY
        if not self.base_url or not self.service_role_key:
            raise CredentialError("GOTRUE_URL and GOTRUE_SERVICE_ROLE_KEY must be set")
        self.client = client or httpx.Client(timeout=settings.GOTRUE_TIMEOUT_SECONDS)

    def _request(self, method: str, path: str, **kwargs) -> httpx.Response:
        headers = {
            "Authorization": f"Bearer {self.service_role_key}",
            "apikey": self.service_role_key,
            "Content-Type": "application/json",
        }
        try:
            return self.client.request(method, f"{self.base_url}{path}", headers=headers, **kwargs)
        except httpx.TimeoutException as e:
            logger.error("gotrue_timeout", method=method, path=path)
            raise CredentialError("Credential service timed out") from e
        except httpx.HTTPError as e:
            logger.error("gotrue_request_failed", method=method, path=path, error=str(e))
            raise CredentialError(f"Credential service unreachable: {e}") from e

    @staticmethod
    def _error_message(response: httpx.Response) -> str:
        try:
            data = response.json()
        except ValueError:
            return response.text
        return data.get("msg") or data.get("message") or data.get("error_description") or str(data)

    @staticmethod
    def _is_email_conflict(response: httpx.Response) -> bool:
        if response.status_code not in (400, 409, 422):
            return False
        try:
            data = response.json()
        except ValueError:
            return False
        if data.get("error_code") in ("email_exists", "user_already_exists"):
            return True
        return "already been registered" in (data.get("msg") or data.get("message") or "")

    def _raise_for_status(self, response: httpx.Response, event: str, **context) -> None:
        if response.is_success:
            return
        message = self._error_message(response)
        logger.error(event, status_code=response.status_code, error=message, **context)
        if response.status_code == 404:
            raise IdentityNotFoundError(message)
        raise CredentialError(message)

    def create_identity(
        self,
        email: str,
        password: str,
        metadata: Optional[Dict[str, Any]] = None,
        email_confirmed: bool = False,
    ) -> IdentityRecord:
        email = email.lower().strip()
        response = self._request("POST", "/admin/users", json={
            "email": email,
            "password": password,
            "email_confirm": email_confirmed,
            "user_metadata": metadata or {},
        })
        if self._is_email_conflict(response):
            raise IdentityExistsError(f"An identity with email {email} already exists")
        self._raise_for_status(response, "gotrue_create_user_failed", email=email)
        record = _to_record(response.json())
        logger.info("identity_created", identity_id=record.id)
        return record

    def get_identity(self, identity_id: str) -> Optional[IdentityRecord]:
        response = self._request("GET", f"/admin/users/{identity_id}")
        if response.status_code == 404:
            return None
        self._raise_for_status(response, "gotrue_get_user_failed", identity_id=identity_id)
        return _to_record(response.json())

    def find_identity_by_email(self, email: str) -> Optional[IdentityRecord]:
        email = email.lower().strip()
        page = 1
        while True:
            batch = self.list_identities(page=page, per_page=SCAN_PAGE_SIZE)
            for record in batch.users:
                if record.email.lower() == email:
                    return record
            if len(batch.users) < SCAN_PAGE_SIZE:
                return None
            page += 1

    def update_identity(
        self,
        identity_id: str,
        email: Optional[str] = None,
        password: Optional[str] = None,
        metadata: Optional[Dict[str, Any]] = None,
    ) -> IdentityRecord:
        body: Dict[str, Any] = {}
        if email is not None:
            body["email"] = email.lower().strip()
        if password is not None:
            body["password"] = password
        if metadata:
            # GoTrue merges user_metadata keys into the stored metadata
            body["user_metadata"] = metadata
        response = self._request("PUT", f"/admin/users/{identity_id}", json=body)
        if self._is_email_conflict(response):
            raise IdentityExistsError(f"An identity with email {email} already exists")
        self._raise_for_status(response, "gotrue_update_user_failed", identity_id=identity_id)
        return _to_record(response.json())

    def delete_identity(self, identity_id: str) -> None:
        response = self._request("DELETE", f"/admin/users/{identity_id}")
        self._raise_for_status(response, "gotrue_delete_user_failed", identity_id=identity_id)
        logger.info("identity_deleted", identity_id=identity_id)

    def list_identities(
        self,
        page: int = 1,
        per_page: int = 100,
        ids: Optional[List[str]] = None,
    ) -> IdentityPage:
        response = self._request("GET", "/admin/users", params={"page": page, "per_page": per_page})
        self._raise_for_status(response, "gotrue_list_users_failed", page=page)
        data = response.json()
        users = [_to_record(u) for u in data.get("users", [])]
        if ids is not None:
            wanted = set(ids)
            users = [u for u in users if u.id in wanted]
        return IdentityPage(users=users, page=page, per_page=per_page, total=data.get("total"))

    def authenticate(self, email: str, password: str) -> IdentityRecord:
        response = self._request(
            "POST",
            "/token",
            params={"grant_type": "password"},
            json={"email": email.lower().strip(), "password": password},
        )
        if response.status_code in (400, 401):
            raise InvalidCredentialsError("Invalid email or password")
        self._raise_for_status(response, "gotrue_token_failed")
        return _to_record(response.json()["user"])

    def enroll_factor(self, identity_id: str, friendly_name: Optional[str] = None) -> FactorEnrollment:
        raise UnsupportedOperationError("Factor enrollment is performed by the client against GoTrue")

    def challenge_factor(self, identity_id: str, factor_id: str) -> str:
        raise UnsupportedOperationError("Factor challenges are performed by the client against GoTrue")

    def verify_factor(self, identity_id: str, factor_id: str, challenge_id: str, code: str) -> FactorRecord:
        raise UnsupportedOperationError("Factor verification is performed by the client against GoTrue")

    def list_factors(self, identity_id: str) -> List[FactorRecord]:
        response = self._request("GET", f"/admin/users/{identity_id}/factors")
        self._raise_for_status(response, "gotrue_list_factors_failed", identity_id=identity_id)
        return [_to_factor(identity_id, f) for f in response.json() or []]

    def delete_factor(self, identity_id: str, factor_id: str) -> None:
        response = self._request("DELETE", f"/admin/users/{identity_id}/factors/{factor_id}")
        self._raise_for_status(
            response, "gotrue_delete_factor_failed", identity_id=identity_id, factor_id=factor_id
        )
