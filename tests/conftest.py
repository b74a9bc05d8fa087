"""Pytest configuration and fixtures"""

import os

# Settings are read at import time; configure the test environment first
os.environ["APP_ENV"] = "test"
os.environ["DATABASE_URL"] = "sqlite://"
os.environ["CREDENTIAL_BACKEND"] = "local"
os.environ["RESEND_API_KEY"] = ""
os.environ.setdefault("JWT_SECRET_KEY", "test-jwt-secret-key-with-enough-length")
os.environ.setdefault("ENCRYPTION_KEY", "test-encryption-key")

import pytest
from fastapi import BackgroundTasks
from fastapi.testclient import TestClient
from sqlalchemy import create_engine
from sqlalchemy.orm import sessionmaker
from sqlalchemy.pool import StaticPool

# Disable rate limiting BEFORE importing app (which calls init_redis on startup)
from src.middleware import rate_limiting
rate_limiting.init_redis = lambda: None  # No-op to prevent Redis initialization
rate_limiting.redis_client = None

from src.database.database import Base, get_db
from src.main import app
from src.security.jwt import create_access_token
from src.services import notification_service as notification_module
from src.services.credentials import LocalCredentialBackend
from src.services.notification_service import NotificationService
from src.services.provisioning_service import ProvisioningService
from src.services.role_service import RoleService
from src.services.user_admin_service import UserAdminService
from tests.mocks.email_service import RecordingEmailSender

engine = create_engine(
    "sqlite://",
    connect_args={"check_same_thread": False},
    poolclass=StaticPool,
)
TestingSessionLocal = sessionmaker(autocommit=False, autoflush=False, bind=engine)


@pytest.fixture(scope="function")
def db():
    """Fresh in-memory schema per test."""
    Base.metadata.create_all(bind=engine)
    session = TestingSessionLocal()
    try:
        yield session
    finally:
        session.close()
        Base.metadata.drop_all(bind=engine)


@pytest.fixture
def credentials(db):
    return LocalCredentialBackend(db)


@pytest.fixture
def email_sender():
    return RecordingEmailSender()


@pytest.fixture
def notifications(email_sender):
    return NotificationService(sender=email_sender)


@pytest.fixture
def provisioning(db, credentials, notifications):
    return ProvisioningService(db, credentials, BackgroundTasks(), notifications)


@pytest.fixture
def user_admin(db, credentials):
    return UserAdminService(db, credentials)


@pytest.fixture
def make_identity(credentials, db):
    """Create an identity, optionally holding a role."""
    def _make(email, password="s3cret1", name="Test User", role=None):
        identity = credentials.create_identity(email, password, {"name": name}, email_confirmed=True)
        if role:
            RoleService(db).grant_role(identity.id, role)
        return identity
    return _make


@pytest.fixture
def superadmin(make_identity):
    return make_identity("root@stockmaster.com", name="Root", role="superadmin")


@pytest.fixture(scope="function")
def client(db, email_sender, monkeypatch):
    """Create a test client with database session and recorded emails."""
    def override_get_db():
        try:
            yield db
        finally:
            pass

    monkeypatch.setattr(notification_module.notification_service, "sender", email_sender)
    app.dependency_overrides[get_db] = override_get_db
    with TestClient(app) as test_client:
        yield test_client
    app.dependency_overrides.clear()


@pytest.fixture
def auth_headers():
    """Build bearer headers for an identity."""
    def _headers(identity):
        token = create_access_token({"sub": identity.id, "email": identity.email})
        return {"Authorization": f"Bearer {token}"}
    return _headers
