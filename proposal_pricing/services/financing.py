"""
Financing — monthly payment math and the financing-plan catalog.

Two interchangeable payment formulas:
  - payment-factor mode, authoritative once a plan is selected
  - fixed-rate amortization, the fallback when no plan is chosen
The merchant fee is a contractor-side cost: it reduces the net settlement
but never the customer-facing total.
"""

from __future__ import annotations

import logging
from typing import Iterable, Optional

from proposal_pricing.models.enums import PaymentMode
from proposal_pricing.models.schemas import FinancingPlan, PaymentQuote
from proposal_pricing.utils.numeric import round_cents

logger = logging.getLogger(__name__)

DEFAULT_ADDON_TERM_MONTHS = 60


# ── FinancingCalculator ──────────────────────────────────

def monthly_payment_with_factor(total: float, payment_factor: float) -> float:
    """Payment-factor mode: ``total × factor / 100``."""
    return total * (payment_factor / 100)


def amortized_monthly_payment(total: float, term_months: int, annual_rate: float) -> float:
    """Standard fixed-rate amortization; ``total / n`` when the rate is zero."""
    if term_months <= 0:
        return 0.0
    r = annual_rate / 100 / 12
    if r == 0:
        return total / term_months
    return total * r / (1 - (1 + r) ** -term_months)


def net_settlement(total: float, merchant_fee_percent: float) -> float:
    """What the contractor receives after the lender's merchant fee."""
    return total - total * merchant_fee_percent / 100


def addon_monthly_impact(
    addon_price: float,
    payment_factor: Optional[float] = None,
    term_months: Optional[int] = None,
) -> float:
    """Monthly cost of an add-on: factor when known, else a flat split over the term."""
    if payment_factor and payment_factor > 0:
        return monthly_payment_with_factor(addon_price, payment_factor)
    term = term_months or DEFAULT_ADDON_TERM_MONTHS
    return addon_price / term


def quote(
    total: float,
    plan: Optional[FinancingPlan],
    term_months: int,
    interest_rate: float,
) -> PaymentQuote:
    """Monthly payment for ``total`` under the selected plan or the fallback terms."""
    if plan is not None:
        fee = plan.merchant_fee
        return PaymentQuote(
            mode=PaymentMode.PAYMENT_FACTOR,
            monthly_payment=round_cents(monthly_payment_with_factor(total, plan.payment_factor)),
            term_months=plan.term_months,
            interest_rate=plan.interest_rate,
            payment_factor=plan.payment_factor,
            merchant_fee_percent=fee,
            merchant_fee_amount=round_cents(total * fee / 100),
            net_settlement=round_cents(net_settlement(total, fee)),
        )
    return PaymentQuote(
        mode=PaymentMode.AMORTIZATION,
        monthly_payment=round_cents(amortized_monthly_payment(total, term_months, interest_rate)),
        term_months=term_months,
        interest_rate=interest_rate,
        net_settlement=round_cents(total),
    )


# ── FinancingCatalog ─────────────────────────────────────

class FinancingCatalog:
    """Read-only, deduplicated list of active financing plans."""

    def __init__(self, plans: Iterable[FinancingPlan] = ()):
        self._plans = self.deduplicate(p for p in plans if p.is_active)

    @staticmethod
    def deduplicate(plans: Iterable[FinancingPlan]) -> list[FinancingPlan]:
        """
        One plan per (provider, plan number, payment factor); a later duplicate
        replaces an earlier one. Sorted by provider, then payment factor.
        """
        unique: dict[tuple[str, str, float], FinancingPlan] = {}
        for plan in plans:
            unique[(plan.provider, plan.plan_number, plan.payment_factor)] = plan
        return sorted(unique.values(), key=lambda p: (p.provider.lower(), p.payment_factor))

    @property
    def plans(self) -> list[FinancingPlan]:
        return list(self._plans)

    @property
    def is_empty(self) -> bool:
        return not self._plans

    def get(self, plan_id: int) -> Optional[FinancingPlan]:
        for plan in self._plans:
            if plan.id == plan_id:
                return plan
        return None

    def __len__(self) -> int:
        return len(self._plans)
