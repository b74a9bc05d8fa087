"""Request and response schemas for provisioning entry points.

Wire format is camelCase (``organizationSlug``, ``targetUserId``); snake_case
names are accepted too. Unknown fields are rejected.
"""

from datetime import datetime
from typing import Any, List, Optional, Type, TypeVar

from pydantic import BaseModel, ConfigDict, EmailStr, Field, model_validator
from pydantic import ValidationError as PydanticValidationError
from pydantic.alias_generators import to_camel

from src.errors import ValidationError
from src.templates.role_definitions import AppRole

SLUG_PATTERN = r"^[a-z0-9]+(?:-[a-z0-9]+)*$"

T = TypeVar("T", bound=BaseModel)


class CamelModel(BaseModel):
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)


class RequestModel(CamelModel):
    model_config = ConfigDict(
        alias_generator=to_camel,
        populate_by_name=True,
        extra="forbid",
        str_strip_whitespace=True,
    )


def load_request(model_cls: Type[T], payload: Any) -> T:
    """
    Validate a raw request body.

    Raises:
        ValidationError: One error listing every problem in the payload
    """
    try:
        return model_cls.model_validate(payload)
    except PydanticValidationError as e:
        errors = [
            {
                "field": ".".join(str(part) for part in err["loc"]) or "body",
                "message": err["msg"],
            }
            for err in e.errors()
        ]
        raise ValidationError("Invalid request", errors=errors) from e


# Requests

class BootstrapOrganizationRequest(RequestModel):
    organization_name: str = Field(..., min_length=1, max_length=200)
    organization_slug: str = Field(..., min_length=1, max_length=100, pattern=SLUG_PATTERN)
    admin_name: str = Field(..., min_length=1, max_length=200)
    admin_email: EmailStr
    admin_phone: Optional[str] = Field(None, max_length=50)
    app_url: Optional[str] = Field(None, max_length=255)


class AcceptInvitationRequest(RequestModel):
    invitation_id: str = Field(..., min_length=1)
    name: str = Field(..., min_length=1, max_length=200)
    password: str = Field(..., min_length=6, max_length=100)


class ResendInvitationRequest(RequestModel):
    invitation_id: str = Field(..., min_length=1)
    app_url: Optional[str] = Field(None, max_length=255)


class InviteMemberRequest(RequestModel):
    organization_id: str = Field(..., min_length=1)
    email: EmailStr
    name: Optional[str] = Field(None, max_length=200)
    role: AppRole = AppRole.OPERADOR
    phone: Optional[str] = Field(None, max_length=50)
    app_url: Optional[str] = Field(None, max_length=255)


class TargetUserRequest(RequestModel):
    target_user_id: str = Field(..., min_length=1)


class UpdateUserRequest(TargetUserRequest):
    email: Optional[EmailStr] = None
    password: Optional[str] = Field(None, min_length=6, max_length=100)

    @model_validator(mode="after")
    def require_change(self) -> "UpdateUserRequest":
        if self.email is None and self.password is None:
            raise ValueError("At least one of email or password must be provided")
        return self


class LoginRequest(RequestModel):
    email: EmailStr
    password: str = Field(..., min_length=1, max_length=100)


class FactorChallengeRequest(RequestModel):
    factor_id: str = Field(..., min_length=1)


class FactorVerifyRequest(RequestModel):
    factor_id: str = Field(..., min_length=1)
    challenge_id: str = Field(..., min_length=1)
    code: str = Field(..., min_length=6, max_length=10)


class FactorEnrollRequest(RequestModel):
    friendly_name: Optional[str] = Field(None, max_length=100)


# Responses

class BootstrapOrganizationResponse(CamelModel):
    organization_id: str
    invitation_id: str


class AcceptInvitationResponse(CamelModel):
    identity_id: str


class ResendInvitationResponse(CamelModel):
    email: str


class SuccessResponse(CamelModel):
    success: bool = True


class ResetMfaResponse(CamelModel):
    factors_removed: int


class InvitationResponse(CamelModel):
    id: str
    organization_id: str
    email: str
    invitee_name: Optional[str] = None
    role: str
    status: str
    created_by: Optional[str] = None
    expires_at: datetime
    accepted_at: Optional[datetime] = None
    created_at: Optional[datetime] = None

    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True, from_attributes=True)


class InvitationDetailsResponse(CamelModel):
    """Public view of an invitation for the accept page"""
    id: str
    email: str
    role: str
    role_display_name: str
    organization_name: str
    name: Optional[str] = None
    status: str
    expires_at: datetime
    valid: bool


class IdentitySummary(CamelModel):
    id: str
    email: str
    created_at: Optional[datetime] = None
    phone: Optional[str] = None


class IdentityListResponse(CamelModel):
    users: List[IdentitySummary]
    page: int
    per_page: int


class TokenResponse(CamelModel):
    access_token: str
    token_type: str = "bearer"
    expires_in: int
    identity_id: str


class MeResponse(CamelModel):
    identity_id: str
    email: str
    name: Optional[str] = None
    organization_id: Optional[str] = None
    roles: List[str]
    highest_role: Optional[str] = None


class FactorResponse(CamelModel):
    id: str
    factor_type: str
    status: str
    friendly_name: Optional[str] = None


class FactorEnrollResponse(CamelModel):
    factor_id: str
    secret: str
    uri: str
    qr_code: Optional[str] = None


class FactorChallengeResponse(CamelModel):
    challenge_id: str
