"""Credential subsystem adapters.

This module provides the abstract credential interface and the
implementations selected by CREDENTIAL_BACKEND (local tables or GoTrue).
"""

from sqlalchemy.orm import Session

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
from .local_backend import LocalCredentialBackend
from .gotrue_backend import GoTrueCredentialBackend, UnsupportedOperationError

__all__ = [
    "CredentialBackend",
    "CredentialError",
    "FactorEnrollment",
    "FactorRecord",
    "IdentityExistsError",
    "IdentityNotFoundError",
    "IdentityPage",
    "IdentityRecord",
    "InvalidCredentialsError",
    "UnsupportedOperationError",
    "LocalCredentialBackend",
    "GoTrueCredentialBackend",
    "get_credential_backend",
]


def get_credential_backend(db: Session) -> CredentialBackend:
    """Build the configured credential backend for a request."""
    backend = settings.CREDENTIAL_BACKEND.lower()
    if backend == "local":
        return LocalCredentialBackend(db)
    if backend == "gotrue":
        return GoTrueCredentialBackend()
    raise ValueError(f"Unknown CREDENTIAL_BACKEND: {settings.CREDENTIAL_BACKEND}")
