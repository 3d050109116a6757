"""
Billing error taxonomy.

Every error raised by the billing services carries a human readable message,
a stable machine readable ``error_code`` and optional ``details`` so the HTTP
layer can tell the kinds apart without parsing messages.
"""
from typing import Any, Dict, Optional


class BillingError(Exception):
    """Base class for errors raised by the billing services."""

    default_code = "BILLING_ERROR"

    def __init__(
        self,
        message: str,
        error_code: Optional[str] = None,
        details: Optional[Dict[str, Any]] = None,
    ):
        self.message = message
        self.error_code = error_code or self.default_code
        self.details = details or {}
        super().__init__(self.message)


class BillingValidationError(BillingError):
    """Missing required fields or amounts that cannot be billed."""

    default_code = "VALIDATION_ERROR"


class DuplicateBillError(BillingError):
    """A bill already exists for the (room, tenant, billing month) tuple."""

    default_code = "DUPLICATE_BILL"


class NotFoundError(BillingError):
    """A referenced room, tenant, building or bill does not exist."""

    default_code = "NOT_FOUND"


class AlreadyPaidError(BillingError):
    """The bill is already paid."""

    default_code = "ALREADY_PAID"


class SideEffectFailure(BillingError):
    """Document rendering or notification delivery failed.

    Only ever logged; never surfaced as the failure of a bill operation.
    """

    default_code = "SIDE_EFFECT_FAILED"
