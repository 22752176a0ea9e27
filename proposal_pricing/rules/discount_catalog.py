"""
Discount Catalog — the fixed set of named discount types a proposal starts with.

The catalog is re-seeded every time a proposal is opened; entries are never
deleted during a session, only enabled, disabled or re-priced.
"""

from __future__ import annotations

import logging
from typing import Optional

from proposal_pricing.exceptions import UnknownItem
from proposal_pricing.models.enums import DiscountCategory
from proposal_pricing.models.schemas import DiscountType
from proposal_pricing.utils.numeric import round_cents
from .rules_config import AUTO_BUNDLE_ID, PricingRulesConfig

logger = logging.getLogger(__name__)

_CATEGORY_ORDER = {
    DiscountCategory.CUSTOMER_TYPE: 0,
    DiscountCategory.LOYALTY: 1,
    DiscountCategory.BUNDLE: 2,
}


class DiscountCatalog:
    """Seeds and edits the discount-type list held by PricingState."""

    def __init__(self, config: PricingRulesConfig | None = None):
        self.config = config or PricingRulesConfig()

    def seed(self) -> list[DiscountType]:
        """Fresh, all-disabled discount list ordered by category then priority."""
        types = [
            DiscountType(
                id=s.id,
                name=s.name,
                category=s.category,
                default_amount=s.default_amount,
                percentage_of_subtotal=s.percentage_of_subtotal,
                priority=s.priority,
                is_system_generated=s.is_system_generated,
                description=s.description,
            )
            for s in self.config.discount_catalog
        ]
        types.sort(key=lambda d: (_CATEGORY_ORDER[d.category], -d.priority))
        if not any(d.id == AUTO_BUNDLE_ID for d in types):
            logger.warning(f"Discount catalog has no '{AUTO_BUNDLE_ID}' entry; bundle detection is inert")
        return types

    @staticmethod
    def find(types: list[DiscountType], discount_id: str) -> DiscountType:
        for discount_type in types:
            if discount_type.id == discount_id:
                return discount_type
        raise UnknownItem(f"Unknown discount type: {discount_id}")

    @staticmethod
    def amount_for(discount_type: DiscountType, subtotal: float) -> float:
        """Amount a discount takes when switched on."""
        if discount_type.percentage_of_subtotal is not None:
            return round_cents(subtotal * discount_type.percentage_of_subtotal / 100)
        return discount_type.default_amount

    def toggle(
        self,
        types: list[DiscountType],
        discount_id: str,
        enabled: bool,
        subtotal: float,
    ) -> DiscountType:
        """Enable a discount at its catalog amount, or disable and zero it."""
        discount_type = self.find(types, discount_id)
        if enabled:
            discount_type.enable(self.amount_for(discount_type, subtotal))
        else:
            discount_type.disable()
        return discount_type

    def set_amount(self, types: list[DiscountType], discount_id: str, amount: float) -> DiscountType:
        """
        Set an explicit dollar amount. A typed amount holds until the discount
        is switched off; a zero amount switches it off.
        """
        discount_type = self.find(types, discount_id)
        if amount > 0:
            discount_type.enable(round_cents(amount))
            discount_type.amount_edited = True
        else:
            discount_type.disable()
        return discount_type

    def refresh_percentage_amounts(self, types: list[DiscountType], subtotal: float) -> None:
        """Re-derive enabled percentage-based amounts after the subtotal moved."""
        for discount_type in types:
            if (
                discount_type.is_enabled
                and not discount_type.amount_edited
                and discount_type.percentage_of_subtotal is not None
            ):
                discount_type.amount = self.amount_for(discount_type, subtotal)

    @staticmethod
    def clear_non_system(types: list[DiscountType]) -> list[str]:
        """Disable and zero every non-system discount; return the ids that were on."""
        cleared: list[str] = []
        for discount_type in types:
            if not discount_type.is_system_generated and discount_type.is_enabled:
                discount_type.disable()
                cleared.append(discount_type.id)
        return cleared

    @staticmethod
    def auto_bundle(types: list[DiscountType]) -> Optional[DiscountType]:
        for discount_type in types:
            if discount_type.id == AUTO_BUNDLE_ID:
                return discount_type
        return None
