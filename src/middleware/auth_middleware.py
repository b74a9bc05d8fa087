"""Authentication middleware"""

from typing import Optional

from fastapi import Depends, HTTPException, Request, status
from fastapi.security import HTTPAuthorizationCredentials, HTTPBearer

from src.security.jwt import decode_token

security = HTTPBearer(auto_error=False)


class AuthContext:
    """Authentication context"""
    def __init__(
        self,
        identity_id: Optional[str] = None,
        email: Optional[str] = None,
        auth_type: str = "none",
    ):
        self.identity_id = identity_id
        self.email = email
        self.auth_type = auth_type

    @property
    def is_authenticated(self) -> bool:
        return self.identity_id is not None


async def get_auth_context(request: Request) -> AuthContext:
    """Get authentication context from the bearer token - use as dependency"""
    credentials: Optional[HTTPAuthorizationCredentials] = await security(request)
    if credentials:
        payload = decode_token(credentials.credentials)
        if payload and payload.get("sub") and payload.get("type", "access") == "access":
            return AuthContext(identity_id=payload["sub"], email=payload.get("email"), auth_type="jwt")
    return AuthContext(auth_type="none")


async def require_identity(auth_context: AuthContext = Depends(get_auth_context)) -> AuthContext:
    """Dependency that rejects anonymous callers with 401"""
    if not auth_context.is_authenticated:
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Authentication required",
            headers={"WWW-Authenticate": "Bearer"},
        )
    return auth_context

