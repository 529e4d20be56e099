"""
Tests for billable page rules.
"""

from decimal import Decimal

from app.pricing.billing_rules import (
    BillingRuleRegistry,
    PageCountRule,
    WordCountRule,
    build_default_registry,
    normalize_document_type,
)


class TestWordCountRule:

    def test_rounds_up_to_half_page(self):
        # 300 / 225 = 1.33 → 1.5
        assert WordCountRule(225).billable_pages(1, 300) == Decimal("1.5")

    def test_exact_page(self):
        assert WordCountRule(225).billable_pages(3, 450) == Decimal("2")

    def test_minimum_half_page(self):
        assert WordCountRule(225).billable_pages(1, 10) == Decimal("0.5")
        assert WordCountRule(225).billable_pages(0, 0) == Decimal("0.5")

    def test_no_words_falls_back_to_pages(self):
        assert WordCountRule(225).billable_pages(10, 0) == Decimal("10")
        assert WordCountRule(225).billable_pages(1, None) == Decimal("1")


class TestRegistry:

    def test_default_is_page_count(self):
        registry = BillingRuleRegistry()
        assert registry.billable_pages("passport", 3, 1000) == Decimal("3")

    def test_registered_type_normalised(self):
        registry = BillingRuleRegistry()
        registry.register("Bank Statement", WordCountRule(225))
        assert isinstance(registry.rule_for("bank-statement"), WordCountRule)
        assert isinstance(registry.rule_for(None), PageCountRule)

    def test_empty_unit_bills_nothing(self):
        assert BillingRuleRegistry().billable_pages("passport", 0, 0) == Decimal("0")

    def test_default_registry_word_types(self):
        registry = build_default_registry()
        assert registry.billable_pages("transcript", 4, 500) == Decimal("2.5")
        assert registry.billable_pages("birth_certificate", 2, 500) == Decimal("2")

    def test_blank_scan_of_word_based_type_bills_pages(self):
        assert build_default_registry().billable_pages("bank_statement", 10, 0) == Decimal("10")

    def test_normalize(self):
        assert normalize_document_type(" Medical-Record ") == "medical_record"
        assert normalize_document_type("") is None
