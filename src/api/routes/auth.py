"""Authentication and self-service second factor routes"""

from typing import Any, List

import structlog
from fastapi import APIRouter, Body, Depends, HTTPException, status
from sqlalchemy.orm import Session

from src.api.dependencies import get_credentials, to_http_exception
from src.config import settings
from src.database.database import get_db
from src.database.models import Profile
from src.errors import ProvisioningError
from src.middleware.auth_middleware import AuthContext, require_identity
from src.middleware.rate_limiting import rate_limit
from src.schemas.provisioning import (
    FactorChallengeRequest,
    FactorChallengeResponse,
    FactorEnrollRequest,
    FactorEnrollResponse,
    FactorResponse,
    FactorVerifyRequest,
    LoginRequest,
    MeResponse,
    TokenResponse,
    load_request,
)
from src.security.jwt import create_access_token
from src.services.credentials import (
    CredentialBackend,
    CredentialError,
    IdentityNotFoundError,
    InvalidCredentialsError,
    UnsupportedOperationError,
)
from src.services.role_service import RoleService

logger = structlog.get_logger()

router = APIRouter()

RATE_LIMIT_LOGIN = rate_limit("auth:login", limit=10, window=60)
RATE_LIMIT_MFA_VERIFY = rate_limit("auth:mfa_verify", limit=10, window=60)


def _credential_http_error(e: CredentialError) -> HTTPException:
    if isinstance(e, InvalidCredentialsError):
        return HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail=str(e))
    if isinstance(e, IdentityNotFoundError):
        return HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail=str(e))
    if isinstance(e, UnsupportedOperationError):
        return HTTPException(status_code=status.HTTP_501_NOT_IMPLEMENTED, detail=str(e))
    return HTTPException(status_code=status.HTTP_502_BAD_GATEWAY, detail=str(e))


@router.post("/login", response_model=TokenResponse)
async def login(
    payload: Any = Body(None),
    credentials: CredentialBackend = Depends(get_credentials),
    _rate_limit: None = Depends(RATE_LIMIT_LOGIN),
):
    """Exchange email and password for an access token"""
    try:
        request = load_request(LoginRequest, payload)
    except ProvisioningError as e:
        raise to_http_exception(e)

    try:
        identity = credentials.authenticate(request.email, request.password)
    except InvalidCredentialsError:
        logger.info("login_failed")
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Invalid email or password",
        )
    except CredentialError as e:
        raise _credential_http_error(e)

    token = create_access_token({"sub": identity.id, "email": identity.email})
    logger.info("login_succeeded", identity_id=identity.id)
    return TokenResponse(
        access_token=token,
        expires_in=settings.ACCESS_TOKEN_EXPIRE_MINUTES * 60,
        identity_id=identity.id,
    )


@router.get("/me", response_model=MeResponse)
async def get_me(
    auth_context: AuthContext = Depends(require_identity),
    db: Session = Depends(get_db),
    credentials: CredentialBackend = Depends(get_credentials),
):
    """Current identity with its roles and current organization"""
    try:
        identity = credentials.get_identity(auth_context.identity_id)
    except CredentialError as e:
        raise _credential_http_error(e)
    if not identity:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="User not found")

    profile = db.query(Profile).filter(Profile.user_id == identity.id).first()
    role_service = RoleService(db)
    return MeResponse(
        identity_id=identity.id,
        email=identity.email,
        name=profile.name if profile else identity.name,
        organization_id=profile.organization_id if profile else None,
        roles=role_service.get_user_roles(identity.id),
        highest_role=role_service.get_highest_role(identity.id),
    )


@router.get("/mfa/factors", response_model=List[FactorResponse])
async def list_factors(
    auth_context: AuthContext = Depends(require_identity),
    credentials: CredentialBackend = Depends(get_credentials),
):
    try:
        factors = credentials.list_factors(auth_context.identity_id)
    except CredentialError as e:
        raise _credential_http_error(e)
    return [
        FactorResponse(id=f.id, factor_type=f.factor_type, status=f.status, friendly_name=f.friendly_name)
        for f in factors
    ]


@router.post("/mfa/enroll", status_code=status.HTTP_201_CREATED, response_model=FactorEnrollResponse)
async def enroll_factor(
    payload: Any = Body(None),
    auth_context: AuthContext = Depends(require_identity),
    credentials: CredentialBackend = Depends(get_credentials),
):
    """Start TOTP enrollment; the factor is unverified until /mfa/verify succeeds"""
    try:
        request = load_request(FactorEnrollRequest, payload or {})
    except ProvisioningError as e:
        raise to_http_exception(e)

    try:
        enrollment = credentials.enroll_factor(auth_context.identity_id, request.friendly_name)
    except CredentialError as e:
        raise _credential_http_error(e)

    logger.info("mfa_factor_enrolled", identity_id=auth_context.identity_id, factor_id=enrollment.factor_id)
    return FactorEnrollResponse(
        factor_id=enrollment.factor_id,
        secret=enrollment.secret,
        uri=enrollment.uri,
        qr_code=enrollment.qr_code,
    )


@router.post("/mfa/challenge", response_model=FactorChallengeResponse)
async def challenge_factor(
    payload: Any = Body(None),
    auth_context: AuthContext = Depends(require_identity),
    credentials: CredentialBackend = Depends(get_credentials),
):
    try:
        request = load_request(FactorChallengeRequest, payload)
    except ProvisioningError as e:
        raise to_http_exception(e)

    try:
        challenge_id = credentials.challenge_factor(auth_context.identity_id, request.factor_id)
    except CredentialError as e:
        raise _credential_http_error(e)
    return FactorChallengeResponse(challenge_id=challenge_id)


@router.post("/mfa/verify", response_model=FactorResponse)
async def verify_factor(
    payload: Any = Body(None),
    auth_context: AuthContext = Depends(require_identity),
    credentials: CredentialBackend = Depends(get_credentials),
    _rate_limit: None = Depends(RATE_LIMIT_MFA_VERIFY),
):
    try:
        request = load_request(FactorVerifyRequest, payload)
    except ProvisioningError as e:
        raise to_http_exception(e)

    try:
        factor = credentials.verify_factor(
            auth_context.identity_id,
            request.factor_id,
            request.challenge_id,
            request.code,
        )
    except CredentialError as e:
        logger.info("mfa_verify_failed", identity_id=auth_context.identity_id, factor_id=request.factor_id)
        raise _credential_http_error(e)

    logger.info("mfa_factor_verified", identity_id=auth_context.identity_id, factor_id=factor.id)
    return FactorResponse(
        id=factor.id,
        factor_type=factor.factor_type,
        status=factor.status,
        friendly_name=factor.friendly_name,
    )
