"""Credential backend storing identities in the service's own database."""

from datetime import datetime, timedelta
from typing import Any, Dict, List, Optional

import structlog
from sqlalchemy.exc import IntegrityError, SQLAlchemyError
from sqlalchemy.orm import Session

from src.database.models import Identity, IdentityFactor, IdentityFactorChallenge
from src.security.encryption import decrypt_data, encrypt_data
from src.security.password import hash_password, verify_password
from src.security.two_fa import generate_qr_code, generate_totp_secret, get_totp_uri, verify_totp_code
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

# Challenges must be answered within this window
CHALLENGE_TTL_SECONDS = 300


def _to_record(identity: Identity) -> IdentityRecord:
    return IdentityRecord(
        id=identity.id,
        email=identity.email,
        metadata=dict(identity.user_metadata or {}),
        email_confirmed=identity.email_confirmed_at is not None,
        created_at=identity.created_at,
    )


def _to_factor(factor: IdentityFactor) -> FactorRecord:
    return FactorRecord(
        id=factor.id,
        identity_id=factor.identity_id,
        factor_type=factor.factor_type,
        status=factor.status,
        friendly_name=factor.friendly_name,
    )


class LocalCredentialBackend(CredentialBackend):
    """Identities in the ``identities`` table, bcrypt passwords, TOTP factors.

    Every mutation commits on its own; the backend never shares a transaction
    with tenant tables.
    """

    def __init__(self, db: Session):
        self.db = db

    def _commit(self, event: str, **context) -> None:
        try:
            self.db.commit()
        except IntegrityError:
            self.db.rollback()
            raise
        except SQLAlchemyError as e:
            self.db.rollback()
            logger.error(event, error=str(e), **context)
            raise CredentialError(f"Credential store failure: {e}") from e

    def _get(self, identity_id: str) -> Identity:
        identity = self.db.query(Identity).filter(Identity.id == identity_id).first()
        if not identity:
            raise IdentityNotFoundError(f"Identity {identity_id} not found")
        return identity

    def _get_factor(self, identity_id: str, factor_id: str) -> IdentityFactor:
        factor = self.db.query(IdentityFactor).filter(
            IdentityFactor.id == factor_id,
            IdentityFactor.identity_id == identity_id,
        ).first()
        if not factor:
            raise IdentityNotFoundError(f"Factor {factor_id} not found")
        return factor

    def create_identity(
        self,
        email: str,
        password: str,
        metadata: Optional[Dict[str, Any]] = None,
        email_confirmed: bool = False,
    ) -> IdentityRecord:
        email = email.lower().strip()
        identity = Identity(
            email=email,
            password_hash=hash_password(password),
            user_metadata=dict(metadata or {}),
            email_confirmed_at=datetime.utcnow() if email_confirmed else None,
        )
        self.db.add(identity)
        try:
            self._commit("identity_create_failed", email=email)
        except IntegrityError as e:
            raise IdentityExistsError(f"An identity with email {email} already exists") from e
        self.db.refresh(identity)
        logger.info("identity_created", identity_id=identity.id)
        return _to_record(identity)

    def get_identity(self, identity_id: str) -> Optional[IdentityRecord]:
        identity = self.db.query(Identity).filter(Identity.id == identity_id).first()
        return _to_record(identity) if identity else None

    def find_identity_by_email(self, email: str) -> Optional[IdentityRecord]:
        identity = self.db.query(Identity).filter(Identity.email == email.lower().strip()).first()
        return _to_record(identity) if identity else None

    def update_identity(
        self,
        identity_id: str,
        email: Optional[str] = None,
        password: Optional[str] = None,
        metadata: Optional[Dict[str, Any]] = None,
    ) -> IdentityRecord:
        identity = self._get(identity_id)
        if email is not None:
            identity.email = email.lower().strip()
        if password is not None:
            identity.password_hash = hash_password(password)
        if metadata:
            # Reassign so the JSON column is flagged dirty
            identity.user_metadata = {**(identity.user_metadata or {}), **metadata}
        try:
            self._commit("identity_update_failed", identity_id=identity_id)
        except IntegrityError as e:
            raise IdentityExistsError(f"An identity with email {email} already exists") from e
        self.db.refresh(identity)
        return _to_record(identity)

    def delete_identity(self, identity_id: str) -> None:
        identity = self._get(identity_id)
        self.db.delete(identity)
        self._commit("identity_delete_failed", identity_id=identity_id)
        logger.info("identity_deleted", identity_id=identity_id)

    def list_identities(
        self,
        page: int = 1,
        per_page: int = 100,
        ids: Optional[List[str]] = None,
    ) -> IdentityPage:
        query = self.db.query(Identity)
        if ids is not None:
            query = query.filter(Identity.id.in_(ids))
        total = query.count()
        rows = (
            query.order_by(Identity.created_at, Identity.id)
            .offset((page - 1) * per_page)
            .limit(per_page)
            .all()
        )
        return IdentityPage(users=[_to_record(i) for i in rows], page=page, per_page=per_page, total=total)

    def authenticate(self, email: str, password: str) -> IdentityRecord:
        identity = self.db.query(Identity).filter(Identity.email == email.lower().strip()).first()
        if not identity or not verify_password(password, identity.password_hash):
            raise InvalidCredentialsError("Invalid email or password")
        return _to_record(identity)

    def enroll_factor(self, identity_id: str, friendly_name: Optional[str] = None) -> FactorEnrollment:
        identity = self._get(identity_id)
        secret = generate_totp_secret()
        factor = IdentityFactor(
            identity_id=identity.id,
            factor_type="totp",
            friendly_name=friendly_name,
            secret=encrypt_data(secret),
            status="unverified",
        )
        self.db.add(factor)
        self._commit("factor_enroll_failed", identity_id=identity_id)
        self.db.refresh(factor)

        uri = get_totp_uri(secret, identity.email)
        return FactorEnrollment(factor_id=factor.id, secret=secret, uri=uri, qr_code=generate_qr_code(uri))

    def challenge_factor(self, identity_id: str, factor_id: str) -> str:
        factor = self._get_factor(identity_id, factor_id)
        challenge = IdentityFactorChallenge(
            factor_id=factor.id,
            expires_at=datetime.utcnow() + timedelta(seconds=CHALLENGE_TTL_SECONDS),
        )
        self.db.add(challenge)
        self._commit("factor_challenge_failed", factor_id=factor_id)
        self.db.refresh(challenge)
        return challenge.id

    def verify_factor(self, identity_id: str, factor_id: str, challenge_id: str, code: str) -> FactorRecord:
        factor = self._get_factor(identity_id, factor_id)
        challenge = self.db.query(IdentityFactorChallenge).filter(
            IdentityFactorChallenge.id == challenge_id,
            IdentityFactorChallenge.factor_id == factor.id,
        ).first()
        if not challenge or challenge.verified_at is not None:
            raise InvalidCredentialsError("Invalid challenge")
        if datetime.utcnow() >= challenge.expires_at:
            raise InvalidCredentialsError("Challenge has expired")
        if not verify_totp_code(decrypt_data(factor.secret), code):
            raise InvalidCredentialsError("Invalid verification code")

        challenge.verified_at = datetime.utcnow()
        factor.status = "verified"
        self._commit("factor_verify_failed", factor_id=factor_id)
        self.db.refresh(factor)
        return _to_factor(factor)

    def list_factors(self, identity_id: str) -> List[FactorRecord]:
        factors = self.db.query(IdentityFactor).filter(
            IdentityFactor.identity_id == identity_id
        ).order_by(IdentityFactor.created_at).all()
        return [_to_factor(f) for f in factors]

    def delete_factor(self, identity_id: str, factor_id: str) -> None:
        factor = self._get_factor(identity_id, factor_id)
        self.db.delete(factor)
        self._commit("factor_delete_failed", factor_id=factor_id)
