"""Pricing rules — discount catalog, bundle detection, conflict resolution."""

from .rules_config import AUTO_BUNDLE_ID, BundleRule, PricingRulesConfig, RulesConfigStore
from .discount_catalog import DiscountCatalog
from .bundle_rules import BundleDetector
from .conflict_rules import ConflictResolver

__all__ = [
    "AUTO_BUNDLE_ID",
    "BundleRule",
    "PricingRulesConfig",
    "RulesConfigStore",
    "DiscountCatalog",
    "BundleDetector",
    "ConflictResolver",
]
