"""Encryption of secrets held at rest (TOTP seeds)"""

import base64

from cryptography.fernet import Fernet
from cryptography.hazmat.primitives import hashes
from cryptography.hazmat.primitives.kdf.pbkdf2 import PBKDF2HMAC

from src.config import settings


def get_encryption_key() -> bytes:
    """Derive the Fernet key from ENCRYPTION_KEY"""
    kdf = PBKDF2HMAC(
        algorithm=hashes.SHA256(),
        length=32,
        salt=b"stockpass_salt",
        iterations=100000,
    )
    return base64.urlsafe_b64encode(kdf.derive(settings.ENCRYPTION_KEY.encode()))


def encrypt_data(data: str) -> str:
    """Encrypt a secret for storage"""
    return Fernet(get_encryption_key()).encrypt(data.encode()).decode()


def decrypt_data(encrypted_data: str) -> str:
    """Decrypt a stored secret"""
    return Fernet(get_encryption_key()).decrypt(encrypted_data.encode()).decode()
