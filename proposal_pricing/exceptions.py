"""
Error taxonomy for the pricing engine.

None of these escape the PricingOrchestrator: they are raised inside the
engine and converted into ActionResult values or listener notifications.
"""

from __future__ import annotations

from typing import TYPE_CHECKING

from proposal_pricing.models.enums import PricingErrorKind

if TYPE_CHECKING:
    from proposal_pricing.models.schemas import ApprovalStatusResult, PendingDiscount


class PricingError(Exception):
    """Base class; every subclass carries a PricingErrorKind."""

    kind: PricingErrorKind = PricingErrorKind.RECOMPUTE_FAILED


class PermissionUnavailable(PricingError):
    """Permission data for the acting user has not loaded (or never will)."""

    kind = PricingErrorKind.PERMISSION_UNAVAILABLE


class ApprovalRequired(PricingError):
    """The requested discount exceeds the user's authority and was suspended."""

    kind = PricingErrorKind.APPROVAL_REQUIRED

    def __init__(self, pending: PendingDiscount, max_percent: float):
        self.pending = pending
        self.max_percent = max_percent
        super().__init__(
            f"Discount of {pending.discount_percent:.1f}% exceeds your limit of "
            f"{max_percent:.1f}% and needs manager approval"
        )


class ApprovalRejected(PricingError):
    """A manager rejected the pending discount; the prior pricing is kept."""

    kind = PricingErrorKind.APPROVAL_REJECTED

    def __init__(self, pending: PendingDiscount, result: ApprovalStatusResult):
        self.pending = pending
        self.result = result
        approver = result.approver_name or "a manager"
        message = f"Discount of ${pending.requested_value:,.2f} was rejected by {approver}"
        if result.notes:
            message += f": {result.notes}"
        super().__init__(message)


class InvalidNumericInput(PricingError, ValueError):
    kind = PricingErrorKind.INVALID_NUMERIC_INPUT


class UnknownItem(PricingError):
    """An edit named a discount, adder or financing plan the session does not have."""

    kind = PricingErrorKind.UNKNOWN_ITEM


class PersistenceFailure(PricingError):
    """An external save failed. Retryable; in-memory pricing is untouched."""

    kind = PricingErrorKind.PERSISTENCE_FAILURE

    def __init__(self, operation: str, cause: Exception):
        self.operation = operation
        self.cause = cause
        super().__init__(f"{operation} failed: {cause}")
