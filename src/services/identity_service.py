"""Identity resolution against the credential subsystem"""

from dataclasses import dataclass
from typing import Any, Dict, Optional

import structlog

from src.errors import UpstreamFailureError
from src.services.credentials import CredentialBackend, CredentialError, IdentityExistsError

logger = structlog.get_logger()


@dataclass
class ResolvedIdentity:
    identity_id: str
    is_new_identity: bool


class IdentityService:
    """Find-or-create identities by email.

    Callers never pre-check existence: an email invited to a second
    organization, or a retry after a partial failure, resolves to the
    identity that already exists.
    """

    def __init__(self, credentials: CredentialBackend):
        self.credentials = credentials

    def resolve_identity(
        self,
        email: str,
        name: str,
        password: str,
        phone: Optional[str] = None,
    ) -> ResolvedIdentity:
        """
        Resolve an email to an identity with the given password and name.

        Existing identities have their password and name metadata updated in
        place. New identities are created with the email pre-verified.

        Raises:
            UpstreamFailureError: If the credential subsystem fails
        """
        email = email.lower().strip()
        metadata: Dict[str, Any] = {"name": name}
        if phone:
            metadata["phone"] = phone

        try:
            existing = self.credentials.find_identity_by_email(email)
            if existing:
                return self._update_existing(existing.id, password, metadata)

            try:
                created = self.credentials.create_identity(
                    email=email,
                    password=password,
                    metadata=metadata,
                    email_confirmed=True,
                )
            except IdentityExistsError:
                # Lost a race with a concurrent acceptance for the same email
                existing = self.credentials.find_identity_by_email(email)
                if not existing:
                    raise
                logger.info("identity_create_race_resolved", identity_id=existing.id)
                return self._update_existing(existing.id, password, metadata)
        except CredentialError as e:
            logger.error("identity_resolution_failed", error=str(e))
            raise UpstreamFailureError(f"Credential subsystem error: {e}") from e

        logger.info("identity_resolved", identity_id=created.id, is_new_identity=True)
        return ResolvedIdentity(identity_id=created.id, is_new_identity=True)

    def _update_existing(self, identity_id: str, password: str, metadata: Dict[str, Any]) -> ResolvedIdentity:
        self.credentials.update_identity(identity_id, password=password, metadata=metadata)
        logger.info("identity_resolved", identity_id=identity_id, is_new_identity=False)
        return ResolvedIdentity(identity_id=identity_id, is_new_identity=False)
