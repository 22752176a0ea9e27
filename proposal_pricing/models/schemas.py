"""
Record schemas exchanged between the engine and its collaborators.

Field names are snake_case in Python and camelCase at the JSON boundary
(``model_dump(by_alias=True)``); both spellings are accepted on input.
"""

from __future__ import annotations

from datetime import datetime, timezone
from typing import Any, Optional

from pydantic import BaseModel, ConfigDict, Field, field_validator, model_validator
from pydantic.alias_generators import to_camel

from proposal_pricing.utils.numeric import coerce_amount
from .enums import (
    ActivityAction,
    ApprovalStatus,
    DiscountCategory,
    PaymentMode,
    PendingKind,
    PricingErrorKind,
    UserRole,
)


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


class PricingModel(BaseModel):
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)


# ── Discount catalog ─────────────────────────────────────


class DiscountType(PricingModel):
    """A named, togglable discount. ``amount`` is zero whenever it is disabled."""
    id: str
    name: str
    category: DiscountCategory
    default_amount: float = 0.0
    is_enabled: bool = False
    amount: float = 0.0
    percentage_of_subtotal: Optional[float] = None  # amount follows the subtotal when set
    amount_edited: bool = False  # typed amount in place of the catalog rule
    priority: int = 0
    is_system_generated: bool = False
    description: str = ""

    @model_validator(mode="after")
    def _zero_when_disabled(self) -> "DiscountType":
        if not self.is_enabled:
            self.amount = 0.0
        return self

    def enable(self, amount: float) -> None:
        self.is_enabled = True
        self.amount = amount
        self.amount_edited = False

    def disable(self) -> None:
        self.is_enabled = False
        self.amount = 0.0
        self.amount_edited = False


# ── Line items ───────────────────────────────────────────


class CustomAdder(PricingModel):
    """User-added line item that increases the subtotal."""
    id: Optional[int] = None
    category: str = ""
    description: str = ""
    cost: float = 0.0

    @field_validator("cost", mode="before")
    @classmethod
    def _coerce_cost(cls, value: Any) -> float:
        return coerce_amount(value)


# ── Financing ────────────────────────────────────────────


class FinancingPlan(PricingModel):
    id: int
    provider: str
    plan_number: str
    plan_name: str = ""
    interest_rate: float = 0.0
    term_months: int = 0
    payment_factor: float = 0.0
    merchant_fee: float = 0.0  # percent of the financed total, paid by the contractor
    notes: str = ""
    is_active: bool = True

    @property
    def display_name(self) -> str:
        return f"{self.provider} - {self.plan_name}"


class PaymentQuote(PricingModel):
    mode: PaymentMode
    monthly_payment: float
    term_months: int
    interest_rate: float
    payment_factor: Optional[float] = None
    merchant_fee_percent: float = 0.0
    merchant_fee_amount: float = 0.0
    net_settlement: float = 0.0


# ── Users & approvals ────────────────────────────────────


class UserPermissions(PricingModel):
    user_id: Optional[int] = None
    max_discount_percent: float
    can_approve_discounts: bool = False
    role: UserRole = UserRole.REP


class PendingDiscount(PricingModel):
    """A discount change suspended by the approval gate."""
    kind: PendingKind
    discount_type_id: Optional[str] = None
    original_value: float
    requested_value: float
    requested_total: Optional[float] = None  # typed total, for total overrides
    discount_percent: float
    requested_by: Optional[int] = None
    requested_at: datetime = Field(default_factory=_utcnow)


class ApprovalRequest(PricingModel):
    id: int
    proposal_id: int
    requestor_id: Optional[int] = None
    approver_id: Optional[int] = None
    request_type: str = "discount"
    original_value: float
    requested_value: float
    discount_percent: float = 0.0
    status: ApprovalStatus = ApprovalStatus.PENDING
    approver_name: Optional[str] = None
    notes: Optional[str] = None
    discount_snapshot: list[dict[str, Any]] = []
    created_at: datetime = Field(default_factory=_utcnow)
    updated_at: Optional[datetime] = None


class CreatedApproval(PricingModel):
    request_id: int
    approver_name: str = ""


class ApprovalStatusResult(PricingModel):
    status: ApprovalStatus
    notes: Optional[str] = None
    approver_name: Optional[str] = None


# ── Audit ────────────────────────────────────────────────


class DiscountLogEntry(PricingModel):
    """Append-only record of one discount value change."""
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True, frozen=True)

    timestamp: datetime = Field(default_factory=_utcnow)
    user_id: Optional[int] = None
    discount_type: str
    previous_value: float
    new_value: float


class ActivityEntry(PricingModel):
    proposal_id: Optional[int] = None
    user_id: Optional[int] = None
    action: ActivityAction
    details: str = ""
    previous: dict[str, Any] = {}
    new: dict[str, Any] = {}
    timestamp: datetime = Field(default_factory=_utcnow)


# ── Orchestrator results ─────────────────────────────────


class ActionResult(PricingModel):
    """Outcome of one orchestrator operation; never an exception."""
    action: str
    applied: bool = False
    queued: bool = False
    approval_required: bool = False
    pending_discount: Optional[PendingDiscount] = None
    request_id: Optional[int] = None
    error: Optional[PricingErrorKind] = None
    retryable: bool = False
    message: str = ""
