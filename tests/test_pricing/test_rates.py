"""
Tests for the rate table and multiplier resolver.
"""

from decimal import Decimal
from types import SimpleNamespace
import uuid

import pytest

from app.errors import InvalidArgument
from app.pricing.rates import complexity_multiplier, resolve_language_rate, tier_label


class TestComplexityMultiplier:

    @pytest.mark.parametrize("value, expected", [
        ("easy", "1.00"),
        ("low", "1.00"),
        ("medium", "1.15"),
        ("hard", "1.25"),
        ("high", "1.25"),
    ])
    def test_table(self, value, expected):
        assert complexity_multiplier(value) == Decimal(expected)

    def test_case_insensitive(self):
        assert complexity_multiplier("  MEDIUM ") == Decimal("1.15")

    @pytest.mark.parametrize("value", [None, "", "extreme"])
    def test_missing_or_unknown_is_one(self, value):
        assert complexity_multiplier(value) == Decimal("1.00")


class TestResolveLanguageRate:

    def _language(self, tier=2, multiplier="1.25"):
        return SimpleNamespace(id=uuid.uuid4(), tier=tier, multiplier=Decimal(multiplier))

    def test_tier_default(self):
        rate = resolve_language_rate(self._language())
        assert rate.multiplier == Decimal("1.25")
        assert rate.tier == 2
        assert rate.tier_label == "Complex Script"
        assert not rate.is_override

    def test_override_wins(self):
        rate = resolve_language_rate(self._language(), Decimal("1.40"))
        assert rate.multiplier == Decimal("1.40")
        assert rate.tier_default_multiplier == Decimal("1.25")
        assert rate.is_override

    def test_no_language_is_one(self):
        rate = resolve_language_rate(None)
        assert rate.multiplier == Decimal("1.00")
        assert rate.tier is None

    def test_override_must_be_positive(self):
        with pytest.raises(InvalidArgument):
            resolve_language_rate(self._language(), Decimal("0"))

    def test_tier_labels(self):
        assert tier_label(1) == "Standard"
        assert tier_label(3) == "Rare/Specialized"
        assert tier_label(None) is None
