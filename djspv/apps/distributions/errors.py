from __future__ import annotations

from typing import Any, Optional

from .allocation import AllocationError

__all__ = [
    'AllocationError',
    'DistributionError',
    'DistributionNotFoundError',
    'InvestorNotFoundError',
    'RoleForbiddenError',
    'DistributionValidationError',
    'PaymentValidationError',
    'DistributionConflictError',
    'ApprovalConflictError',
    'StatusConflictError',
    'PaymentConflictError',
]


class DistributionError(Exception):
    """Base exception for distribution ledger operations."""

    code = "DISTRIBUTION_ERROR"

    def __init__(self, detail: Optional[str] = None, *, code: Optional[str] = None):
        if code:
            self.code = code
        self.detail = detail or self.code
        super().__init__(self.detail)

    def as_payload(self) -> dict[str, Any]:
        return {'code': self.code, 'detail': self.detail}


class DistributionNotFoundError(DistributionError):
    """Raised when the distribution id does not resolve."""

    code = "DISTRIBUTION_NOT_FOUND"


class InvestorNotFoundError(DistributionError):
    """Raised when the investor has no row in the distribution."""

    code = "INVESTOR_NOT_FOUND"


class RoleForbiddenError(DistributionError):
    """Raised when the caller's role may not perform the operation."""

    code = "ROLE_FORBIDDEN"


class DistributionValidationError(DistributionError):
    """Client-correctable input problems, rejected before any write."""

    code = "VALIDATION_ERROR"


class PaymentValidationError(DistributionValidationError):
    code = "PAYMENT_REFERENCE_REQUIRED"


class DistributionConflictError(DistributionError):
    """The aggregate is not in a state that allows the write."""

    code = "CONFLICT"


class ApprovalConflictError(DistributionConflictError):
    """
    Out-of-order or duplicate approval. ``missing_stage`` names the prerequisite
    that has not been granted; ``approval`` carries the unchanged record on a
    duplicate submission.
    """

    code = "APPROVAL_CONFLICT"

    def __init__(
        self,
        detail: Optional[str] = None,
        *,
        code: Optional[str] = None,
        missing_stage: Optional[str] = None,
        approval: Optional[dict] = None,
    ):
        super().__init__(detail, code=code)
        self.missing_stage = missing_stage
        self.approval = approval

    def as_payload(self) -> dict[str, Any]:
        payload = super().as_payload()
        if self.missing_stage:
            payload['missingStage'] = self.missing_stage
        if self.approval is not None:
            payload['approval'] = self.approval
        return payload


class StatusConflictError(DistributionConflictError):
    code = "STATUS_CONFLICT"

    def __init__(self, detail: Optional[str] = None, *, code: Optional[str] = None, status: Optional[str] = None):
        super().__init__(detail, code=code)
        self.status = status

    def as_payload(self) -> dict[str, Any]:
        payload = super().as_payload()
        if self.status:
            payload['status'] = self.status
        return payload


class PaymentConflictError(DistributionConflictError):
    code = "PAYMENT_CONFLICT"
