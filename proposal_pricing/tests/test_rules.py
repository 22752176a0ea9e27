"""
Tests: discount catalog, bundle detection and conflict resolution.

Run with:
    pytest proposal_pricing/tests/test_rules.py -v
"""

import pytest
from proposal_pricing.exceptions import UnknownItem
from proposal_pricing.models.enums import DiscountCategory
from proposal_pricing.rules import (
    AUTO_BUNDLE_ID,
    BundleDetector,
    ConflictResolver,
    DiscountCatalog,
    PricingRulesConfig,
    RulesConfigStore,
)
from proposal_pricing.config import Settings


def _priced(prices):
    return lambda service: prices.get(service, 0.0)


class TestDiscountCatalog:
    def test_seed_is_all_disabled(self):
        types = DiscountCatalog().seed()
        assert len(types) == 9
        assert all(not t.is_enabled and t.amount == 0 for t in types)

    def test_seed_ordered_by_category_then_priority(self):
        types = DiscountCatalog().seed()
        assert [t.category for t in types[:4]] == [DiscountCategory.CUSTOMER_TYPE] * 4
        assert types[0].id == "senior"
        assert types[-1].category == DiscountCategory.BUNDLE
        assert [t.id for t in types if t.category == DiscountCategory.BUNDLE][0] == AUTO_BUNDLE_ID

    def test_toggle_on_uses_default_amount(self):
        catalog = DiscountCatalog()
        types = catalog.seed()
        senior = catalog.toggle(types, "senior", True, subtotal=20000)
        assert senior.is_enabled
        assert senior.amount == 1000.0

    def test_toggle_off_zeroes_amount(self):
        catalog = DiscountCatalog()
        types = catalog.seed()
        catalog.toggle(types, "referral", True, subtotal=20000)
        referral = catalog.toggle(types, "referral", False, subtotal=20000)
        assert not referral.is_enabled
        assert referral.amount == 0.0

    def test_percentage_discount_follows_subtotal(self):
        catalog = DiscountCatalog()
        types = catalog.seed()
        multi = catalog.toggle(types, "multi-service-bundle", True, subtotal=10000)
        assert multi.amount == 300.0
        catalog.refresh_percentage_amounts(types, 20000)
        assert multi.amount == 600.0

    def test_typed_amount_keeps_catalog_rate(self):
        catalog = DiscountCatalog()
        types = catalog.seed()
        multi = catalog.set_amount(types, "multi-service-bundle", 500)
        assert multi.amount_edited
        assert multi.percentage_of_subtotal == 3.0

        catalog.refresh_percentage_amounts(types, 20000)
        assert multi.amount == 500.0

        catalog.toggle(types, "multi-service-bundle", False, subtotal=28000)
        catalog.toggle(types, "multi-service-bundle", True, subtotal=28000)
        assert multi.amount == 840.0
        assert not multi.amount_edited

    def test_set_amount_zero_disables(self):
        catalog = DiscountCatalog()
        types = catalog.seed()
        catalog.set_amount(types, "complete-home-bundle", 1500)
        assert catalog.find(types, "complete-home-bundle").amount == 1500.0
        catalog.set_amount(types, "complete-home-bundle", 0)
        assert not catalog.find(types, "complete-home-bundle").is_enabled

    def test_unknown_discount_raises(self):
        with pytest.raises(UnknownItem):
            DiscountCatalog.find(DiscountCatalog().seed(), "no-such-discount")

    def test_clear_non_system_keeps_auto_bundle(self):
        catalog = DiscountCatalog()
        types = catalog.seed()
        catalog.toggle(types, "senior", True, 20000)
        catalog.toggle(types, "referral", True, 20000)
        DiscountCatalog.auto_bundle(types).enable(1400)

        cleared = DiscountCatalog.clear_non_system(types)

        assert sorted(cleared) == ["referral", "senior"]
        assert DiscountCatalog.auto_bundle(types).amount == 1400


class TestBundleDetector:
    def test_roof_and_windows_bundle(self):
        detector = BundleDetector(PricingRulesConfig().bundle_rules)
        amount = detector.detect(["roofing", "windows-doors"], _priced({"roofing": 20000, "windows-doors": 8000}))
        assert amount == 1400.0

    def test_hvac_needs_a_second_service(self):
        detector = BundleDetector(PricingRulesConfig().bundle_rules)
        prices = _priced({"hvac": 10000, "paint": 4000})
        assert detector.detect(["hvac"], prices) == 0.0
        assert detector.detect(["hvac", "paint"], prices) == 300.0

    def test_rules_stack(self):
        detector = BundleDetector(PricingRulesConfig().bundle_rules)
        prices = _priced({"roofing": 20000, "windows-doors": 8000, "hvac": 10000})
        assert detector.detect(["roofing", "windows-doors", "hvac"], prices) == 1700.0

    def test_duplicate_services_count_once(self):
        detector = BundleDetector(PricingRulesConfig().bundle_rules)
        prices = _priced({"hvac": 10000})
        assert detector.detect(["hvac", "hvac"], prices) == 0.0

    def test_never_negative(self):
        detector = BundleDetector(PricingRulesConfig().bundle_rules)
        prices = _priced({"roofing": -5000, "windows-doors": -100})
        assert detector.detect(["roofing", "windows-doors"], prices) == 0.0

    def test_apply_enables_and_disables_auto_bundle(self):
        detector = BundleDetector(PricingRulesConfig().bundle_rules)
        types = DiscountCatalog().seed()
        prices = _priced({"roofing": 20000, "windows-doors": 8000})

        detector.apply(types, ["roofing", "windows-doors"], prices)
        assert DiscountCatalog.auto_bundle(types).is_enabled
        assert DiscountCatalog.auto_bundle(types).amount == 1400.0

        detector.apply(types, ["roofing"], prices)
        assert not DiscountCatalog.auto_bundle(types).is_enabled
        assert DiscountCatalog.auto_bundle(types).amount == 0.0


class TestConflictResolver:
    def _types_with(self, *enabled_ids):
        catalog = DiscountCatalog()
        types = catalog.seed()
        for discount_id in enabled_ids:
            catalog.toggle(types, discount_id, True, subtotal=20000)
        return types

    def test_latest_customer_type_wins(self):
        types = self._types_with("senior", "military")
        resolved = ConflictResolver().resolve(types, "military")
        enabled = [t.id for t in resolved if t.is_enabled]
        assert enabled == ["military"]

    def test_does_not_mutate_input(self):
        types = self._types_with("senior", "military")
        ConflictResolver().resolve(types, "military")
        assert DiscountCatalog.find(types, "senior").is_enabled

    def test_loyalty_discounts_stack(self):
        types = self._types_with("returning-customer", "referral")
        resolved = ConflictResolver().resolve(types, "referral")
        assert {t.id for t in resolved if t.is_enabled} == {"returning-customer", "referral"}

    def test_auto_bundle_coexists_with_one_bundle(self):
        types = self._types_with("complete-home-bundle")
        DiscountCatalog.auto_bundle(types).enable(1400)
        resolved = ConflictResolver().resolve(types, "complete-home-bundle")
        assert {t.id for t in resolved if t.is_enabled} == {AUTO_BUNDLE_ID, "complete-home-bundle"}

    def test_bundle_mutual_exclusion(self):
        types = self._types_with("complete-home-bundle", "multi-service-bundle")
        resolved = ConflictResolver().resolve(types, "multi-service-bundle")
        enabled = [t.id for t in resolved if t.is_enabled]
        assert enabled == ["multi-service-bundle"]

    def test_disabled_change_keeps_highest_priority(self):
        types = self._types_with("senior", "educator")
        DiscountCatalog.find(types, "military").disable()
        resolved = ConflictResolver().resolve(types, "military")
        assert [t.id for t in resolved if t.is_enabled] == ["senior"]

    def test_resolve_is_idempotent(self):
        resolver = ConflictResolver()
        types = self._types_with("senior", "military", "complete-home-bundle", "referral")
        once = resolver.resolve(types, "military")
        twice = resolver.resolve(once, "military")
        assert [t.model_dump() for t in once] == [t.model_dump() for t in twice]

    def test_violations_reported(self):
        types = self._types_with("senior", "military")
        violations = ConflictResolver().violations(types)
        assert len(violations) == 1
        assert violations[0]["rule"] == "exclusive_category"
        assert "senior" in violations[0]["detail"]

    def test_resolve_all_clears_violations(self):
        resolver = ConflictResolver()
        types = self._types_with("senior", "military", "complete-home-bundle", "multi-service-bundle")
        assert resolver.violations(resolver.resolve_all(types)) == []


class TestRulesConfigStore:
    def test_mock_mode_uses_defaults(self):
        store = RulesConfigStore(Settings(mock_mode=True))
        config = store.get_pricing_config()
        assert config.service_base_prices["roofing"] == 12500.0
        assert store.get_pricing_config() is config

    def test_loads_stored_config(self):
        mongo = FakeMongo({"pricing": {"service_base_prices": {"roofing": 15000.0}}})
        store = RulesConfigStore(Settings(mock_mode=False), mongo=mongo)
        config = store.get_pricing_config()
        assert config.service_base_prices == {"roofing": 15000.0}
        # Unset sections keep their defaults
        assert len(config.bundle_rules) == 2

    def test_missing_document_falls_back_to_defaults(self):
        store = RulesConfigStore(Settings(mock_mode=False), mongo=FakeMongo({}))
        assert store.get_pricing_config().service_base_prices["paint"] == 4500.0

    def test_update_invalidates_cache(self):
        mongo = FakeMongo({})
        store = RulesConfigStore(Settings(mock_mode=False), mongo=mongo)
        assert store.get_pricing_config().service_base_prices["hvac"] == 8500.0

        assert store.update_config("pricing", {"service_base_prices": {"hvac": 9000.0}})
        assert store.get_pricing_config().service_base_prices == {"hvac": 9000.0}

        store.close()
        assert mongo.closed

    def test_update_without_database(self):
        store = RulesConfigStore(Settings(mock_mode=True))
        assert store.update_config("pricing", {}) is False


class FakeRulesCollection:
    def __init__(self, configs):
        self.docs = {k: {"rule_type": k, "config": v} for k, v in configs.items()}

    def find_one(self, query):
        return self.docs.get(query["rule_type"])

    def update_one(self, query, update, upsert=False):
        self.docs[query["rule_type"]] = dict(update["$set"])


class FakeMongo:
    def __init__(self, configs):
        self.db = type("FakeDatabase", (), {})()
        self.db.rules_config = FakeRulesCollection(configs)
        self.closed = False

    def get_database(self):
        return self.db

    def close(self):
        self.closed = True
