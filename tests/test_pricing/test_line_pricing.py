"""
Tests for the line pricing calculator.
"""

from decimal import Decimal

import pytest

from app.errors import InvalidArgument
from app.pricing.line_pricing import (
    ceil_to_increment,
    compute_line_total,
    price_line,
    round_money,
    to_decimal,
    validate_billable_pages,
)


class TestCeilToIncrement:
    """Rounding is always up to the next $2.50."""

    def test_rounds_up(self):
        assert ceil_to_increment(Decimal("149.50")) == Decimal("150.00")

    def test_exact_multiple_unchanged(self):
        assert ceil_to_increment(Decimal("150.00")) == Decimal("150.00")

    def test_one_cent_over_goes_to_next_step(self):
        assert ceil_to_increment(Decimal("150.01")) == Decimal("152.50")

    def test_zero(self):
        assert ceil_to_increment(Decimal("0")) == Decimal("0")

    def test_custom_increment(self):
        assert ceil_to_increment(Decimal("11"), Decimal("5")) == Decimal("15")

    def test_non_positive_increment_rejected(self):
        with pytest.raises(InvalidArgument):
            ceil_to_increment(Decimal("10"), Decimal("0"))

    @pytest.mark.parametrize("raw", ["0.01", "2.49", "2.50", "63.70", "97.75", "1234.56"])
    def test_result_is_multiple_and_within_one_step(self, raw):
        value = Decimal(raw)
        rounded = ceil_to_increment(value)
        assert rounded % Decimal("2.50") == 0
        assert value <= rounded < value + Decimal("2.50")


class TestComputeLineTotal:

    def test_medium_complexity_with_certification(self):
        total = compute_line_total(2, Decimal("65"), Decimal("1.0"), Decimal("1.15"), Decimal("30"))
        assert total == Decimal("180.00")

    def test_breakdown(self):
        price = price_line(2, Decimal("65"), Decimal("1.0"), Decimal("1.15"), Decimal("30"))
        assert price.translation_cost == Decimal("150.00")
        assert price.certification_price == Decimal("30.00")
        assert price.line_total == Decimal("180.00")

    def test_certification_added_after_rounding(self):
        # 1 × 65 × 1.15 = 74.75 → 75.00; +12.34 is not re-rounded
        total = compute_line_total(1, Decimal("65"), 1, Decimal("1.15"), Decimal("12.34"))
        assert total == Decimal("87.34")

    def test_zero_billable_pages_is_certification_only(self):
        assert compute_line_total(0, Decimal("65"), 1, 1, Decimal("30")) == Decimal("30.00")

    def test_no_certification(self):
        assert compute_line_total(Decimal("0.5"), Decimal("65"), 1, 1) == Decimal("32.50")

    def test_float_inputs_do_not_cross_a_step(self):
        # 1.15 as a float is 1.149999...; must still land on 75.00
        assert compute_line_total(1, 65.0, 1.0, 1.15) == Decimal("75.00")

    def test_language_multiplier_applies_to_translation_only(self):
        price = price_line(1, Decimal("65"), Decimal("1.25"), 1, Decimal("30"))
        assert price.translation_cost == Decimal("82.50")
        assert price.line_total == Decimal("112.50")

    @pytest.mark.parametrize("field", range(5))
    def test_negative_inputs_rejected(self, field):
        args = [Decimal("1"), Decimal("65"), Decimal("1"), Decimal("1"), Decimal("0")]
        args[field] = Decimal("-1")
        with pytest.raises(InvalidArgument):
            compute_line_total(*args)


class TestToDecimal:

    def test_none_is_zero(self):
        assert to_decimal(None) == Decimal("0")

    def test_bool_rejected(self):
        with pytest.raises(InvalidArgument):
            to_decimal(True)

    def test_garbage_rejected(self):
        with pytest.raises(InvalidArgument):
            to_decimal("twelve")

    def test_round_money_half_up(self):
        assert round_money(Decimal("19.245")) == Decimal("19.25")


class TestValidateBillablePages:

    def test_half_page_ok(self):
        assert validate_billable_pages(Decimal("0.5")) == Decimal("0.5")

    def test_below_half_rejected(self):
        with pytest.raises(InvalidArgument):
            validate_billable_pages(Decimal("0.25"))

    def test_not_half_page_multiple_rejected(self):
        with pytest.raises(InvalidArgument):
            validate_billable_pages(Decimal("1.3"))
