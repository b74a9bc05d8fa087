"""Unit tests for JWT security"""

import pytest
from datetime import timedelta

import jwt

from src.config import settings
from src.security.jwt import create_access_token, decode_token


@pytest.mark.unit
def test_create_and_decode_access_token():
    token = create_access_token({"sub": "user123", "email": "test@example.com"})
    decoded = decode_token(token)

    assert decoded is not None
    assert decoded["sub"] == "user123"
    assert decoded["email"] == "test@example.com"
    assert decoded["type"] == "access"


@pytest.mark.unit
def test_decode_token_invalid():
    assert decode_token("invalid.token.here") is None


@pytest.mark.unit
def test_decode_token_expired():
    token = create_access_token({"sub": "user123"}, expires_delta=timedelta(seconds=-5))

    assert decode_token(token) is None


@pytest.mark.unit
def test_decode_token_wrong_secret():
    token = jwt.encode({"sub": "user123"}, "another-secret-key-of-sufficient-length", algorithm=settings.JWT_ALGORITHM)

    assert decode_token(token) is None


@pytest.mark.unit
def test_decode_token_ignores_audience():
    """Tokens minted by the hosted auth server carry aud=authenticated"""
    token = jwt.encode(
        {"sub": "user123", "aud": "authenticated"},
        settings.JWT_SECRET_KEY,
        algorithm=settings.JWT_ALGORITHM,
    )

    decoded = decode_token(token)

    assert decoded is not None
    assert decoded["sub"] == "user123"
