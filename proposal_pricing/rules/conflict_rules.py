"""
Conflict Resolver — mutual exclusion across enabled discount types.

Invariants after resolve():
  1. At most one enabled CustomerType discount.
  2. At most one enabled non-system Bundle discount (system-generated
     bundle discounts are exempt and may coexist).
Loyalty discounts stack freely. Resolution is silent and idempotent, and
never touches discounts outside the category of the change.
"""

from __future__ import annotations

import logging
from typing import Any

from proposal_pricing.models.enums import DiscountCategory
from proposal_pricing.models.schemas import DiscountType

logger = logging.getLogger(__name__)

EXCLUSIVE_CATEGORIES = (DiscountCategory.CUSTOMER_TYPE, DiscountCategory.BUNDLE)


def _competes(discount_type: DiscountType, category: DiscountCategory) -> bool:
    """True when the discount takes part in ``category``'s exclusivity."""
    return discount_type.category == category and not discount_type.is_system_generated


class ConflictResolver:
    """Enforces the mutual-exclusion invariants on a discount-type list."""

    def resolve(self, types: list[DiscountType], changed_id: str) -> list[DiscountType]:
        """
        Return a corrected copy of ``types`` after ``changed_id`` changed.
        The changed discount wins if it is enabled; otherwise the highest
        priority enabled sibling is kept.
        """
        resolved = [t.model_copy(deep=True) for t in types]
        changed = next((t for t in resolved if t.id == changed_id), None)
        if changed is None or changed.category not in EXCLUSIVE_CATEGORIES:
            return resolved
        if not _competes(changed, changed.category):
            return resolved
        self._resolve_category(resolved, changed.category, changed)
        return resolved

    def resolve_all(self, types: list[DiscountType]) -> list[DiscountType]:
        """Resolve every exclusive category without a preferred winner."""
        resolved = [t.model_copy(deep=True) for t in types]
        for category in EXCLUSIVE_CATEGORIES:
            self._resolve_category(resolved, category, None)
        return resolved

    def violations(self, types: list[DiscountType]) -> list[dict[str, Any]]:
        """
        Report invariant violations without fixing them.
        Returns list of violations: {rule, detail, severity}.
        """
        found: list[dict[str, Any]] = []
        for category in EXCLUSIVE_CATEGORIES:
            enabled = [t.id for t in types if _competes(t, category) and t.is_enabled]
            if len(enabled) > 1:
                found.append({
                    "rule": "exclusive_category",
                    "detail": f"{category.value} allows one discount, enabled: {', '.join(enabled)}",
                    "severity": "medium",
                })
        return found

    @staticmethod
    def _resolve_category(
        types: list[DiscountType],
        category: DiscountCategory,
        preferred: DiscountType | None,
    ) -> None:
        enabled = [t for t in types if _competes(t, category) and t.is_enabled]
        if len(enabled) <= 1:
            return
        if preferred is not None and preferred.is_enabled:
            winner = preferred
        else:
            winner = max(enabled, key=lambda t: t.priority)
        for loser in enabled:
            if loser is not winner:
                logger.info(f"Disabling '{loser.id}': '{winner.id}' is already applied in {category.value}")
                loser.disable()
