"""
Rules Config Store — loads/saves pricing rule tables from MongoDB.

Company-level setting: rules are configured once by admin and cached.
Falls back to built-in defaults in mock mode or when MongoDB is empty.
"""

from __future__ import annotations

import logging
from typing import Any, Optional

from pydantic import BaseModel

from proposal_pricing.config import Settings, get_settings
from proposal_pricing.models.enums import DiscountCategory
from proposal_pricing.persistence.mongo_client import MongoClient

logger = logging.getLogger(__name__)

AUTO_BUNDLE_ID = "auto-bundle"


# ── Config models ────────────────────────────────────────

class BundleRule(BaseModel):
    """
    One row of the bundle table: applies when every ``required_services``
    entry is selected and at least ``min_services`` services are selected;
    discounts ``rate`` of the priced subtotal of ``basis_services``.
    """
    name: str
    required_services: list[str]
    min_services: int = 0
    rate: float
    basis_services: list[str]


class DiscountSeed(BaseModel):
    """Catalog entry as configured by admin."""
    id: str
    name: str
    category: DiscountCategory
    default_amount: float = 0.0
    percentage_of_subtotal: Optional[float] = None
    priority: int = 0
    is_system_generated: bool = False
    description: str = ""


class PricingRulesConfig(BaseModel):
    """Service base prices, bundle rules and the discount catalog seed."""
    service_base_prices: dict[str, float] = {
        "roofing": 12500.0,
        "hvac": 8500.0,
        "windows-doors": 6800.0,
        "garage-doors": 2200.0,
        "paint": 4500.0,
    }
    bundle_rules: list[BundleRule] = [
        BundleRule(
            name="Roof + Windows Bundle",
            required_services=["roofing", "windows-doors"],
            rate=0.05,
            basis_services=["roofing", "windows-doors"],
        ),
        BundleRule(
            name="HVAC Combo",
            required_services=["hvac"],
            min_services=2,
            rate=0.03,
            basis_services=["hvac"],
        ),
    ]
    discount_catalog: list[DiscountSeed] = [
        DiscountSeed(id="senior", name="Senior Discount",
                     category=DiscountCategory.CUSTOMER_TYPE, default_amount=1000.0, priority=40),
        DiscountSeed(id="military", name="Military Discount",
                     category=DiscountCategory.CUSTOMER_TYPE, default_amount=1000.0, priority=30),
        DiscountSeed(id="first-responder", name="First Responder Discount",
                     category=DiscountCategory.CUSTOMER_TYPE, default_amount=750.0, priority=20),
        DiscountSeed(id="educator", name="Educator Discount",
                     category=DiscountCategory.CUSTOMER_TYPE, default_amount=500.0, priority=10),
        DiscountSeed(id="returning-customer", name="Returning Customer",
                     category=DiscountCategory.LOYALTY, default_amount=500.0, priority=20),
        DiscountSeed(id="referral", name="Referral Credit",
                     category=DiscountCategory.LOYALTY, default_amount=250.0, priority=10),
        DiscountSeed(id=AUTO_BUNDLE_ID, name="Smart Bundle Savings",
                     category=DiscountCategory.BUNDLE, is_system_generated=True, priority=100,
                     description="Applied automatically for qualifying service combinations"),
        DiscountSeed(id="complete-home-bundle", name="Complete Home Bundle",
                     category=DiscountCategory.BUNDLE, default_amount=2000.0, priority=20),
        DiscountSeed(id="multi-service-bundle", name="Multi-Service Bundle",
                     category=DiscountCategory.BUNDLE, percentage_of_subtotal=3.0, priority=10),
    ]


# ── Store class ──────────────────────────────────────────

class RulesConfigStore:
    """
    Loads the pricing rules from MongoDB. Falls back to defaults on first run.
    Cached after first load for the lifetime of the store.
    """

    def __init__(self, settings: Settings | None = None, mongo: MongoClient | None = None):
        self.settings = settings or get_settings()
        self._mongo = mongo or MongoClient(self.settings)
        self._cache: dict[str, Any] = {}

    def _load_config(self, rule_type: str, model_cls: type[BaseModel]) -> BaseModel:
        """Load from MongoDB or return defaults."""
        if rule_type in self._cache:
            return self._cache[rule_type]

        if not self.settings.mock_mode:
            try:
                db = self._mongo.get_database()
                doc = db.rules_config.find_one({"rule_type": rule_type})
                if doc and "config" in doc:
                    config = model_cls(**doc["config"])
                    self._cache[rule_type] = config
                    return config
            except Exception as e:
                logger.warning(f"Failed loading {rule_type} from MongoDB, using defaults: {e}")

        config = model_cls()
        self._cache[rule_type] = config
        return config

    def get_pricing_config(self) -> PricingRulesConfig:
        return self._load_config("pricing", PricingRulesConfig)  # type: ignore[return-value]

    def update_config(self, rule_type: str, config_dict: dict[str, Any]) -> bool:
        """Admin: save/update a rule config in MongoDB."""
        db = self._mongo.get_database()
        if db is None:
            logger.error("Cannot update config — MongoDB not available")
            return False

        db.rules_config.update_one(
            {"rule_type": rule_type},
            {"$set": {"rule_type": rule_type, "config": config_dict}},
            upsert=True,
        )
        # Invalidate cache
        self._cache.pop(rule_type, None)
        logger.info(f"Updated {rule_type} config in MongoDB")
        return True

    def close(self) -> None:
        self._mongo.close()
