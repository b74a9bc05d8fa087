"""Domain errors raised by provisioning services.

Routes translate these into HTTP responses using ``status_code``; services
never build HTTP responses themselves.
"""

from dataclasses import dataclass, field
from typing import List, Optional


class ProvisioningError(Exception):
    """Base class for every error a provisioning operation can raise."""

    status_code: int = 500
    code: str = "provisioning_error"

    def __init__(self, message: str):
        super().__init__(message)
        self.message = message

    def to_detail(self) -> dict:
        return {"code": self.code, "message": self.message}


class ValidationError(ProvisioningError):
    """Request payload failed validation; ``errors`` lists every problem found."""

    status_code = 400
    code = "validation_error"

    def __init__(self, message: str = "Invalid request", errors: Optional[List[dict]] = None):
        super().__init__(message)
        self.errors = errors or []

    def to_detail(self) -> dict:
        detail = super().to_detail()
        detail["errors"] = self.errors
        return detail


class NotFoundError(ProvisioningError):
    status_code = 404
    code = "not_found"


class ConflictError(ProvisioningError):
    status_code = 409
    code = "conflict"


class DuplicateSlugError(ConflictError):
    code = "duplicate_slug"

    def __init__(self, slug: str):
        super().__init__(f"Organization slug '{slug}' is already in use")
        self.slug = slug


class AlreadyUsedError(ConflictError):
    code = "already_used"

    def __init__(self, message: str = "Invitation has already been used or cancelled"):
        super().__init__(message)


class ExpiredError(ProvisioningError):
    status_code = 410
    code = "expired"

    def __init__(self, message: str = "Invitation has expired"):
        super().__init__(message)


class ForbiddenError(ProvisioningError):
    status_code = 403
    code = "forbidden"

    def __init__(self, message: str = "Insufficient privileges"):
        super().__init__(message)


class UpstreamFailureError(ProvisioningError):
    """A collaborator (credential subsystem or relational store) failed."""

    status_code = 502
    code = "upstream_failure"


@dataclass
class PartialSuccess:
    """Outcome of a fan-out side effect where some deliveries failed."""

    delivered: int = 0
    failed: int = 0
    failures: List[str] = field(default_factory=list)

    @property
    def complete(self) -> bool:
        return self.failed == 0
