"""
Pricing: subtotal, discount, tax, shipping and rounding modes.

Pure domain tests -- no database.
"""

from decimal import Decimal

import pytest

from checkout_kernel.db.types import round_money, round_with_mode
from checkout_kernel.domain.cart import SnapshotLine
from checkout_kernel.domain.collaborators import (
    DiscountRule,
    PercentageTaxCalculator,
    StaticDiscountValidator,
    ThresholdShippingCalculator,
)
from checkout_kernel.domain.pricing import compute_subtotal, price_cart
from checkout_kernel.exceptions import InvalidDiscountCodeError

TAX_18 = PercentageTaxCalculator(Decimal("18"))
SHIP_50_UNDER_5000 = ThresholdShippingCalculator(Decimal("5000"), Decimal("50"))


def _lines(*specs):
    return [SnapshotLine(v, q, Decimal(p)) for v, q, p in specs]


def _price(lines, **kwargs):
    kwargs.setdefault("tax_calculator", TAX_18)
    kwargs.setdefault("shipping_calculator", SHIP_50_UNDER_5000)
    return price_cart(lines, shipping_address_id="addr-1", **kwargs)


class TestPriceCart:
    def test_basic_breakdown(self):
        breakdown = _price(_lines(("V-A", 2, "1000.00")))

        assert breakdown.subtotal == Decimal("2000.00")
        assert breakdown.discount_amount == Decimal("0.00")
        assert breakdown.tax_amount == Decimal("360.00")
        assert breakdown.shipping_charge == Decimal("50.00")
        assert breakdown.total_amount == Decimal("2410.00")

    def test_free_shipping_at_threshold(self):
        breakdown = _price(_lines(("V-A", 2, "2500.00")))

        assert breakdown.subtotal == Decimal("5000.00")
        assert breakdown.shipping_charge == Decimal("0.00")
        assert breakdown.total_amount == Decimal("5900.00")

    def test_percentage_discount_reduces_taxable_amount(self):
        discounts = StaticDiscountValidator({"SAVE10": DiscountRule(percentage=Decimal("10"))})
        breakdown = _price(
            _lines(("V-A", 2, "1000.00")),
            discount_code="SAVE10",
            discount_validator=discounts,
        )

        assert breakdown.discount_amount == Decimal("200.00")
        assert breakdown.tax_amount == Decimal("324.00")
        assert breakdown.total_amount == Decimal("2174.00")

    def test_shipping_threshold_uses_post_discount_amount(self):
        discounts = StaticDiscountValidator({"SAVE10": DiscountRule(percentage=Decimal("10"))})
        breakdown = _price(
            _lines(("V-A", 2, "2500.00")),
            discount_code="SAVE10",
            discount_validator=discounts,
        )

        # 5000 - 500 = 4500 is below the threshold
        assert breakdown.shipping_charge == Decimal("50.00")

    def test_discount_capped_at_subtotal(self):
        discounts = StaticDiscountValidator({"BIG": DiscountRule(amount=Decimal("999"))})
        breakdown = _price(
            _lines(("V-A", 1, "10.00")),
            discount_code="BIG",
            discount_validator=discounts,
        )

        assert breakdown.discount_amount == Decimal("10.00")
        assert breakdown.tax_amount == Decimal("0.00")

    def test_rejected_discount_code_raises(self):
        discounts = StaticDiscountValidator({})
        with pytest.raises(InvalidDiscountCodeError) as exc_info:
            _price(
                _lines(("V-A", 1, "10.00")),
                discount_code="NOPE",
                discount_validator=discounts,
            )
        assert exc_info.value.discount_code == "NOPE"

    def test_minimum_subtotal_enforced(self):
        discounts = StaticDiscountValidator({
            "FLAT100": DiscountRule(amount=Decimal("100"), min_subtotal=Decimal("500")),
        })
        with pytest.raises(InvalidDiscountCodeError):
            _price(
                _lines(("V-A", 1, "100.00")),
                discount_code="flat100",
                discount_validator=discounts,
            )

    def test_amounts_use_two_decimal_places(self):
        breakdown = _price(_lines(("V-A", 3, "0.33")))

        assert breakdown.subtotal == Decimal("0.99")
        # 0.99 * 18% = 0.1782 -> 0.18
        assert breakdown.tax_amount == Decimal("0.18")
        for amount in (
            breakdown.subtotal,
            breakdown.tax_amount,
            breakdown.shipping_charge,
            breakdown.total_amount,
        ):
            assert amount.as_tuple().exponent == -2


class TestRoundingModes:
    def test_floor_rounds_tax_down_to_whole_units(self):
        breakdown = _price(_lines(("V-A", 1, "99.99")), rounding="floor")

        # 99.99 -> 99, tax 17.82 -> 17
        assert breakdown.subtotal == Decimal("99.00")
        assert breakdown.tax_amount == Decimal("17.00")

    def test_ceil_rounds_up_to_whole_units(self):
        breakdown = _price(_lines(("V-A", 1, "99.01")), rounding="ceil")

        assert breakdown.subtotal == Decimal("100.00")
        assert breakdown.tax_amount == Decimal("18.00")

    def test_round_half_up(self):
        assert round_with_mode(Decimal("1.005"), "round") == Decimal("1.01")
        assert round_money(Decimal("2.345")) == Decimal("2.35")

    def test_unknown_mode_rejected(self):
        with pytest.raises(ValueError):
            round_with_mode(Decimal("1"), "banker")


def test_compute_subtotal_of_empty_is_zero():
    assert compute_subtotal([]) == Decimal("0")
