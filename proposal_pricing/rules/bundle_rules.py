"""
Bundle Detector — automatic discount for qualifying service combinations.

The detected amount is written into the catalog's ``auto-bundle`` entry so it
flows through conflict resolution like any other discount type.
"""

from __future__ import annotations

import logging
from typing import Callable, Iterable

from proposal_pricing.models.schemas import DiscountType
from proposal_pricing.utils.numeric import round_cents
from .discount_catalog import DiscountCatalog
from .rules_config import BundleRule

logger = logging.getLogger(__name__)

PricedSubtotal = Callable[[str], float]


class BundleDetector:
    """Evaluates the bundle rule table against the selected services."""

    def __init__(self, rules: list[BundleRule]):
        self.rules = rules

    def applicable_rules(self, services: Iterable[str]) -> list[BundleRule]:
        selected = set(services)
        return [
            rule for rule in self.rules
            if set(rule.required_services) <= selected and len(selected) >= rule.min_services
        ]

    def detect(self, services: Iterable[str], priced_subtotal: PricedSubtotal) -> float:
        """Sum of every applicable rule's share of its basis services. Never negative."""
        selected = list(dict.fromkeys(services))
        amount = 0.0
        for rule in self.applicable_rules(selected):
            basis = sum(max(priced_subtotal(s), 0.0) for s in rule.basis_services)
            share = rule.rate * basis
            logger.debug(f"Bundle rule '{rule.name}' applies: {rule.rate:.0%} of ${basis:,.2f} = ${share:,.2f}")
            amount += share
        return round_cents(max(amount, 0.0))

    def apply(
        self,
        types: list[DiscountType],
        services: Iterable[str],
        priced_subtotal: PricedSubtotal,
    ) -> float:
        """Write the detected amount into the auto-bundle entry and return it."""
        entry = DiscountCatalog.auto_bundle(types)
        amount = self.detect(services, priced_subtotal)
        if entry is None:
            return amount
        if amount > 0:
            entry.enable(amount)
        else:
            entry.disable()
        return amount
