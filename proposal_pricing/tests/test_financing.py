"""
Tests: financing calculator, plan catalog and money helpers.

Run with:
    pytest proposal_pricing/tests/test_financing.py -v
"""

import pytest
from proposal_pricing.exceptions import InvalidNumericInput
from proposal_pricing.models.enums import PaymentMode
from proposal_pricing.models.schemas import FinancingPlan
from proposal_pricing.services import financing
from proposal_pricing.services.backend import DEFAULT_FINANCING_PLANS
from proposal_pricing.services.financing import FinancingCatalog
from proposal_pricing.utils.numeric import coerce_amount, discount_percent, money_equal, parse_amount


def _plan(plan_id, provider, plan_number, factor, **kwargs):
    return FinancingPlan(
        id=plan_id, provider=provider, plan_number=plan_number,
        plan_name=kwargs.pop("plan_name", f"Plan {plan_number}"),
        payment_factor=factor, **kwargs,
    )


class TestMonthlyPayment:
    def test_payment_factor(self):
        assert financing.monthly_payment_with_factor(10000, 3.5) == pytest.approx(350.0)

    def test_amortization_zero_rate_splits_evenly(self):
        assert financing.amortized_monthly_payment(12000, 60, 0) == pytest.approx(200.0)

    def test_amortization_standard(self):
        payment = financing.amortized_monthly_payment(10000, 60, 5.99)
        assert payment == pytest.approx(193.28, abs=0.05)

    def test_amortization_zero_term(self):
        assert financing.amortized_monthly_payment(10000, 0, 5.99) == 0.0

    def test_net_settlement_deducts_merchant_fee(self):
        assert financing.net_settlement(10000, 9.0) == pytest.approx(9100.0)

    def test_addon_impact_uses_factor(self):
        assert financing.addon_monthly_impact(1000, payment_factor=2.0) == pytest.approx(20.0)

    def test_addon_impact_falls_back_to_term(self):
        assert financing.addon_monthly_impact(1200, payment_factor=0) == pytest.approx(20.0)
        assert financing.addon_monthly_impact(1200, term_months=12) == pytest.approx(100.0)


class TestQuote:
    def test_plan_selected_uses_factor(self):
        mosaic = next(p for p in DEFAULT_FINANCING_PLANS if p.provider == "Mosaic")
        quote = financing.quote(10000, mosaic, term_months=60, interest_rate=5.99)
        assert quote.mode == PaymentMode.PAYMENT_FACTOR
        assert quote.monthly_payment == 350.0
        assert quote.term_months == mosaic.term_months
        assert quote.net_settlement == 9100.0

    def test_no_plan_amortizes(self):
        quote = financing.quote(12000, None, term_months=60, interest_rate=0)
        assert quote.mode == PaymentMode.AMORTIZATION
        assert quote.monthly_payment == 200.0
        assert quote.payment_factor is None

    def test_payment_rounded_to_cents(self):
        quote = financing.quote(1000, None, term_months=3, interest_rate=0)
        assert quote.monthly_payment == 333.33


class TestFinancingCatalog:
    def test_later_duplicate_wins(self):
        plans = [
            _plan(1, "GreenSky", "1519", 3.0, plan_name="Old name"),
            _plan(2, "GreenSky", "1519", 3.0, plan_name="New name"),
        ]
        catalog = FinancingCatalog(plans)
        assert len(catalog) == 1
        assert catalog.plans[0].plan_name == "New name"

    def test_same_plan_number_different_factor_kept(self):
        plans = [_plan(1, "GreenSky", "1519", 3.0), _plan(2, "GreenSky", "1519", 2.5)]
        assert len(FinancingCatalog(plans)) == 2

    def test_sorted_by_provider_then_factor(self):
        plans = [
            _plan(1, "Service Finance", "A", 1.9),
            _plan(2, "GreenSky", "B", 3.0),
            _plan(3, "GreenSky", "C", 1.3),
        ]
        assert [p.id for p in FinancingCatalog(plans).plans] == [3, 2, 1]

    def test_inactive_plans_dropped(self):
        plans = [_plan(1, "Mosaic", "M", 3.5, is_active=False), _plan(2, "Mosaic", "N", 2.0)]
        catalog = FinancingCatalog(plans)
        assert catalog.get(1) is None
        assert catalog.get(2) is not None

    def test_empty_catalog(self):
        assert FinancingCatalog().is_empty

    def test_display_name(self):
        assert _plan(1, "Mosaic", "M", 3.5, plan_name="0% for 36").display_name == "Mosaic - 0% for 36"


class TestNumericInput:
    @pytest.mark.parametrize("raw, expected", [
        ("1,400", 1400.0),
        ("$2,000.50", 2000.5),
        (" 75 ", 75.0),
        (12, 12.0),
    ])
    def test_parse_amount(self, raw, expected):
        assert parse_amount(raw) == expected

    @pytest.mark.parametrize("raw", ["", "abc", None, "-5", float("nan"), float("inf"), True])
    def test_invalid_amount_rejected(self, raw):
        with pytest.raises(InvalidNumericInput):
            parse_amount(raw)

    @pytest.mark.parametrize("raw", ["", "abc", None, "-5", float("nan")])
    def test_invalid_amount_coerced_to_zero(self, raw):
        assert coerce_amount(raw) == 0.0

    def test_money_equal_within_a_cent(self):
        assert money_equal(100.0, 100.01)
        assert not money_equal(100.0, 100.02)

    def test_discount_percent(self):
        assert discount_percent(2000, 10000) == pytest.approx(20.0)
        assert discount_percent(500, 0) == 100.0
        assert discount_percent(0, 0) == 0.0
