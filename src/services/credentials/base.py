"""Abstract credential subsystem interface.

Identities (email, password, second factors) live in a credential subsystem
that is separate from the tenant tables. Provisioning code talks to it only
through CredentialBackend.
"""

from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from datetime import datetime
from typing import Any, Dict, List, Optional


@dataclass
class IdentityRecord:
    """An identity as reported by the credential subsystem.

    Attributes:
        id: Identity id, referenced as user_id by tenant tables
        email: Login email, unique across the subsystem
        metadata: Free-form user metadata (name, phone)
        email_confirmed: Whether the email is verified
        created_at: Creation timestamp if the backend reports one
    """
    id: str
    email: str
    metadata: Dict[str, Any] = field(default_factory=dict)
    email_confirmed: bool = False
    created_at: Optional[datetime] = None

    @property
    def phone(self) -> Optional[str]:
        return self.metadata.get("phone")

    @property
    def name(self) -> Optional[str]:
        return self.metadata.get("name")


@dataclass
class FactorRecord:
    """A second factor enrolled for an identity."""
    id: str
    identity_id: str
    factor_type: str = "totp"
    status: str = "unverified"
    friendly_name: Optional[str] = None


@dataclass
class FactorEnrollment:
    """Material returned once when a TOTP factor is enrolled."""
    factor_id: str
    secret: str
    uri: str
    qr_code: Optional[str] = None


@dataclass
class IdentityPage:
    users: List[IdentityRecord]
    page: int
    per_page: int
    total: Optional[int] = None


class CredentialError(Exception):
    """Base exception for credential subsystem failures."""
    pass


class IdentityExistsError(CredentialError):
    """Raised when creating an identity whose email is already registered."""
    pass


class IdentityNotFoundError(CredentialError):
    """Raised when an identity or factor does not exist."""
    pass


class InvalidCredentialsError(CredentialError):
    """Raised when authentication or factor verification fails."""
    pass


class CredentialBackend(ABC):
    """Abstract interface for credential subsystems.

    Implementations: LocalCredentialBackend (own tables) and
    GoTrueCredentialBackend (Supabase Auth admin API).
    """

    @abstractmethod
    def create_identity(
        self,
        email: str,
        password: str,
        metadata: Optional[Dict[str, Any]] = None,
        email_confirmed: bool = False,
    ) -> IdentityRecord:
        """Create an identity.

        Raises:
            IdentityExistsError: If the email is already registered
            CredentialError: On any other failure
        """
        pass

    @abstractmethod
    def get_identity(self, identity_id: str) -> Optional[IdentityRecord]:
        pass

    @abstractmethod
    def find_identity_by_email(self, email: str) -> Optional[IdentityRecord]:
        """Look up an identity by email (case-insensitive)."""
        pass

    @abstractmethod
    def update_identity(
        self,
        identity_id: str,
        email: Optional[str] = None,
        password: Optional[str] = None,
        metadata: Optional[Dict[str, Any]] = None,
    ) -> IdentityRecord:
        """Update the given fields; metadata keys are merged into existing metadata.

        Raises:
            IdentityNotFoundError: If the identity does not exist
            IdentityExistsError: If the new email belongs to another identity
        """
        pass

    @abstractmethod
    def delete_identity(self, identity_id: str) -> None:
        """Delete an identity and its factors.

        Raises:
            IdentityNotFoundError: If the identity does not exist
        """
        pass

    @abstractmethod
    def list_identities(
        self,
        page: int = 1,
        per_page: int = 100,
        ids: Optional[List[str]] = None,
    ) -> IdentityPage:
        """List identities, optionally restricted to ``ids``."""
        pass

    @abstractmethod
    def authenticate(self, email: str, password: str) -> IdentityRecord:
        """Check a password login.

        Raises:
            InvalidCredentialsError: If the email or password is wrong
        """
        pass

    @abstractmethod
    def enroll_factor(self, identity_id: str, friendly_name: Optional[str] = None) -> FactorEnrollment:
        pass

    @abstractmethod
    def challenge_factor(self, identity_id: str, factor_id: str) -> str:
        """Open a verification challenge and return its id."""
        pass

    @abstractmethod
    def verify_factor(self, identity_id: str, factor_id: str, challenge_id: str, code: str) -> FactorRecord:
        """Verify a TOTP code against an open challenge.

        Raises:
            InvalidCredentialsError: If the code or challenge is invalid
        """
        pass

    @abstractmethod
    def list_factors(self, identity_id: str) -> List[FactorRecord]:
        pass

    @abstractmethod
    def delete_factor(self, identity_id: str, factor_id: str) -> None:
        """Remove a factor.

        Raises:
            IdentityNotFoundError: If the factor does not exist
        """
        pass
