"""
PricingState — the single authoritative record for one proposal-editing session.

Design rules:
  1. Only the PricingOrchestrator mutates it, one queued job at a time.
  2. ``discount`` and ``total`` are derived, never set: discount is the sum of
     enabled discount types plus any manual override amount, and total is
     ``subtotal - discount`` unless the pricing override is enabled.
  3. ``discount_log`` is append-only.
"""

from __future__ import annotations

from typing import Any, Optional

from pydantic import Field, computed_field

from proposal_pricing.utils.numeric import round_cents
from .enums import PaymentMode
from .schemas import CustomAdder, DiscountLogEntry, DiscountType, PricingModel


class PricingState(PricingModel):
    """Aggregate root published to the embedding proposal form."""

    # ── Identity ─────────────────────────────────────────
    proposal_id: Optional[int] = None
    state_version: int = 0

    # ── Subtotal inputs ──────────────────────────────────
    selected_services: list[str] = []
    service_prices: dict[str, float] = {}  # priced subtotal per service, from the form
    custom_adders: list[CustomAdder] = []
    subtotal: float = 0.0

    # ── Discount composition ─────────────────────────────
    discount_types: list[DiscountType] = []
    manual_discount: Optional[float] = None
    manual_override_active: bool = False
    auto_bundle_suppressed: bool = False

    # ── Pricing override (user types the total) ──────────
    pricing_override_enabled: bool = False
    override_total: float = 0.0

    # ── Financing ────────────────────────────────────────
    financing_plan_id: Optional[int] = None
    financing_plan_name: str = ""
    financing_term: int = 60
    interest_rate: float = 5.99
    merchant_fee: float = 0.0
    financing_notes: str = ""
    payment_mode: PaymentMode = PaymentMode.AMORTIZATION
    monthly_payment: float = 0.0
    net_settlement: float = 0.0

    # ── Audit trail (append-only) ────────────────────────
    discount_log: list[DiscountLogEntry] = Field(default_factory=list)

    # ── Derived ──────────────────────────────────────────

    @computed_field  # type: ignore[prop-decorator]
    @property
    def discount(self) -> float:
        enabled = sum(d.amount for d in self.discount_types if d.is_enabled)
        return round_cents(enabled + (self.manual_discount or 0.0))

    @computed_field  # type: ignore[prop-decorator]
    @property
    def total(self) -> float:
        if self.pricing_override_enabled:
            return round_cents(self.override_total)
        return round_cents(self.subtotal - self.discount)

    # ── Helpers ──────────────────────────────────────────

    def find_discount(self, discount_id: str) -> Optional[DiscountType]:
        for discount_type in self.discount_types:
            if discount_type.id == discount_id:
                return discount_type
        return None

    def enabled_discounts(self) -> list[DiscountType]:
        return [d for d in self.discount_types if d.is_enabled]

    def system_discount_total(self) -> float:
        return sum(d.amount for d in self.discount_types if d.is_enabled and d.is_system_generated)

    def discount_amounts(self) -> dict[str, float]:
        """Current value of every discount source, keyed by discount type id."""
        amounts = {d.id: d.amount for d in self.discount_types}
        amounts["manual-override"] = self.manual_discount or 0.0
        return amounts

    def add_log(
        self,
        user_id: Optional[int],
        discount_type: str,
        previous_value: float,
        new_value: float,
    ) -> None:
        self.discount_log.append(
            DiscountLogEntry(
                user_id=user_id,
                discount_type=discount_type,
                previous_value=previous_value,
                new_value=new_value,
            )
        )

    def next_adder_id(self) -> int:
        return max((a.id or 0 for a in self.custom_adders), default=0) + 1

    def to_record(self) -> dict[str, Any]:
        """JSON-shaped snapshot for the proposal record."""
        return self.model_dump(mode="json", by_alias=True)
