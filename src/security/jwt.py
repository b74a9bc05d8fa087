"""JWT access tokens for authenticated callers"""

from datetime import datetime, timedelta, timezone
from typing import Any, Dict, Optional

import jwt

from src.config import settings


def create_access_token(data: Dict[str, Any], expires_delta: Optional[timedelta] = None) -> str:
    """
    Create a signed access token.

    ``data`` must carry ``sub`` (the identity id); any other claims are copied
    into the payload as-is.
    """
    now = datetime.now(timezone.utc)
    expire = now + (expires_delta or timedelta(minutes=settings.ACCESS_TOKEN_EXPIRE_MINUTES))
    payload = dict(data)
    payload.update({
        "exp": int(expire.timestamp()),
        "iat": int(now.timestamp()),
        "type": "access",
    })
    return jwt.encode(payload, settings.JWT_SECRET_KEY, algorithm=settings.JWT_ALGORITHM)


def decode_token(token: str) -> Optional[Dict[str, Any]]:
    """
    Decode and validate a token.

    Tokens issued by the GoTrue credential backend are signed with the same
    secret and carry an ``aud`` claim, which is not checked here.

    Returns:
        The payload, or None if the token is invalid or expired
    """
    try:
        return jwt.decode(
            token,
            settings.JWT_SECRET_KEY,
            algorithms=[settings.JWT_ALGORITHM],
            options={"verify_aud": False},
        )
    except jwt.InvalidTokenError:
        return None
