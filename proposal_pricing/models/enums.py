from enum import Enum


class DiscountCategory(str, Enum):
    CUSTOMER_TYPE = "CustomerType"
    LOYALTY = "Loyalty"
    BUNDLE = "Bundle"


class ApprovalStatus(str, Enum):
    PENDING = "pending"
    APPROVED = "approved"
    REJECTED = "rejected"


class GateState(str, Enum):
    IDLE = "IDLE"
    PENDING = "PENDING"
    APPROVED = "APPROVED"
    REJECTED = "REJECTED"


class OrchestratorState(str, Enum):
    IDLE = "IDLE"
    RECOMPUTING = "RECOMPUTING"
    AWAITING_APPROVAL = "AWAITING_APPROVAL"


class PaymentMode(str, Enum):
    PAYMENT_FACTOR = "payment_factor"
    AMORTIZATION = "amortization"


class PendingKind(str, Enum):
    """Which edit produced a discount that needs manager sign-off."""
    MANUAL_OVERRIDE = "manual_override"
    TOTAL_OVERRIDE = "total_override"
    DISCOUNT_AMOUNT = "discount_amount"


class PricingErrorKind(str, Enum):
    PERMISSION_UNAVAILABLE = "PermissionUnavailable"
    APPROVAL_REQUIRED = "ApprovalRequired"
    APPROVAL_REJECTED = "ApprovalRejected"
    INVALID_NUMERIC_INPUT = "InvalidNumericInput"
    PERSISTENCE_FAILURE = "PersistenceFailure"
    UNKNOWN_ITEM = "UnknownItem"
    RECOMPUTE_FAILED = "RecomputeFailed"


class ActivityAction(str, Enum):
    REQUEST_DISCOUNT = "request_discount"
    APPROVE_DISCOUNT = "approve_discount"
    REJECT_DISCOUNT = "reject_discount"
    UPDATE_PRICING = "update_pricing"
    UPDATE_FINANCING = "update_financing"


class UserRole(str, Enum):
    REP = "rep"
    MANAGER = "manager"
    ADMIN = "admin"
