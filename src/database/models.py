"""SQLAlchemy models"""

from enum import Enum
from sqlalchemy import Column, String, Boolean, Text, ForeignKey, TIMESTAMP, JSON, UniqueConstraint
import sqlalchemy as sa
from sqlalchemy.orm import relationship
from sqlalchemy.sql import func
from src.database.database import Base
import uuid


def generate_id():
    """Generate a unique ID"""
    return str(uuid.uuid4())


class InvitationStatus(str, Enum):
    """Invitation lifecycle status"""

    PENDING = "pending"
    ACCEPTED = "accepted"
    EXPIRED = "expired"
    CANCELLED = "cancelled"


class Organization(Base):
    """Organization (tenant) model"""
    __tablename__ = "organizations"

    id = Column(String, primary_key=True, default=generate_id)
    name = Column(String, nullable=False)
    slug = Column(String(100), unique=True, nullable=False)
    active = Column(Boolean, default=True, nullable=False)
    created_at = Column(TIMESTAMP, server_default=func.now())
    updated_at = Column(TIMESTAMP, server_default=func.now(), onupdate=func.now())

    # Relationships
    members = relationship("OrganizationMember", back_populates="organization", cascade="all, delete-orphan")
    invitations = relationship("Invitation", back_populates="organization", cascade="all, delete-orphan")


class OrganizationMember(Base):
    """Link between an identity and an organization"""
    __tablename__ = "organization_members"

    id = Column(String, primary_key=True, default=generate_id)
    organization_id = Column(String, ForeignKey("organizations.id", ondelete="CASCADE"), nullable=False)
    user_id = Column(String, nullable=False, index=True)  # Credential subsystem identity id
    created_at = Column(TIMESTAMP, server_default=func.now())

    organization = relationship("Organization", back_populates="members")

    __table_args__ = (
        UniqueConstraint("organization_id", "user_id", name="uq_organization_members_org_user"),
    )


class Profile(Base):
    """
    Display and contact metadata for an identity.

    One profile per identity. organization_id is the organization the
    identity joined most recently, used as its current workspace.
    """
    __tablename__ = "profiles"

    id = Column(String, primary_key=True, default=generate_id)
    user_id = Column(String, unique=True, nullable=False)
    organization_id = Column(String, ForeignKey("organizations.id", ondelete="SET NULL"), nullable=True)
    name = Column(String, nullable=False)
    phone = Column(String(50), nullable=True)
    avatar_url = Column(Text, nullable=True)
    created_at = Column(TIMESTAMP, server_default=func.now())
    updated_at = Column(TIMESTAMP, server_default=func.now(), onupdate=func.now())


class UserRole(Base):
    """Role grant; an identity may hold several roles"""
    __tablename__ = "user_roles"

    id = Column(String, primary_key=True, default=generate_id)
    user_id = Column(String, nullable=False, index=True)
    role = Column(String(20), nullable=False)  # superadmin, admin, almoxarife, auditor, operador
    created_at = Column(TIMESTAMP, server_default=func.now())

    __table_args__ = (
        UniqueConstraint("user_id", "role", name="uq_user_roles_user_role"),
    )


class Invitation(Base):
    """
    Invitation to join an organization with a given role.

    Flow:
        1. Admin (or the organization bootstrap) creates the invitation
        2. System emails a link keyed by the invitation id
        3. Invitee opens the link, chooses name and password
        4. Identity, membership, profile and role grant are provisioned

    Rows are never deleted: they are the audit record of who was invited,
    by whom and for which role.
    """
    __tablename__ = "invitations"

    id = Column(String, primary_key=True, default=generate_id)
    organization_id = Column(String, ForeignKey("organizations.id", ondelete="CASCADE"), nullable=False)
    email = Column(String, nullable=False)
    role = Column(String(20), default="operador", nullable=False)
    phone = Column(String(50), nullable=True)
    invitee_name = Column(String, nullable=True)
    created_by = Column(String, nullable=True)  # Null only for the first bootstrapped organization
    status = Column(String(20), default=InvitationStatus.PENDING.value, nullable=False)
    expires_at = Column(TIMESTAMP, nullable=False)
    accepted_at = Column(TIMESTAMP, nullable=True)
    created_at = Column(TIMESTAMP, server_default=func.now())
    updated_at = Column(TIMESTAMP, server_default=func.now(), onupdate=func.now())

    organization = relationship("Organization", back_populates="invitations")

    __table_args__ = (
        sa.Index("ix_invitations_organization_id", "organization_id"),
        sa.Index("ix_invitations_email", "email"),
        sa.Index("ix_invitations_status", "status"),
    )


# Tables owned by the local credential backend. They stand in for an external
# credential subsystem and are never joined with the tenant tables above.

class Identity(Base):
    """Credential record: one per email, independent of any organization"""
    __tablename__ = "identities"

    id = Column(String, primary_key=True, default=generate_id)
    email = Column(String, unique=True, nullable=False)
    password_hash = Column(String, nullable=True)
    user_metadata = Column(JSON, default=dict)
    email_confirmed_at = Column(TIMESTAMP, nullable=True)
    created_at = Column(TIMESTAMP, server_default=func.now())
    updated_at = Column(TIMESTAMP, server_default=func.now(), onupdate=func.now())

    factors = relationship("IdentityFactor", back_populates="identity", cascade="all, delete-orphan")


class IdentityFactor(Base):
    """TOTP second factor enrolled for an identity"""
    __tablename__ = "identity_factors"

    id = Column(String, primary_key=True, default=generate_id)
    identity_id = Column(String, ForeignKey("identities.id", ondelete="CASCADE"), nullable=False, index=True)
    factor_type = Column(String(20), default="totp", nullable=False)
    friendly_name = Column(String, nullable=True)
    secret = Column(Text, nullable=False)  # Encrypted TOTP secret
    status = Column(String(20), default="unverified", nullable=False)  # unverified, verified
    created_at = Column(TIMESTAMP, server_default=func.now())
    updated_at = Column(TIMESTAMP, server_default=func.now(), onupdate=func.now())

    identity = relationship("Identity", back_populates="factors")
    challenges = relationship("IdentityFactorChallenge", back_populates="factor", cascade="all, delete-orphan")


class IdentityFactorChallenge(Base):
    """Pending verification attempt for a second factor"""
    __tablename__ = "identity_factor_challenges"

    id = Column(String, primary_key=True, default=generate_id)
    factor_id = Column(String, ForeignKey("identity_factors.id", ondelete="CASCADE"), nullable=False)
    expires_at = Column(TIMESTAMP, nullable=False)
    verified_at = Column(TIMESTAMP, nullable=True)
    created_at = Column(TIMESTAMP, server_default=func.now())

    factor = relationship("IdentityFactor", back_populates="challenges")
