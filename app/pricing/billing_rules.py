"""
Billable page rules.

Billable pages default to the physical page count. Some document types are
billed by volume of text instead (words / WORDS_PER_PAGE, rounded up to the
next half page). Rules are looked up by normalised document type and can be
registered at runtime.
"""

from decimal import Decimal, ROUND_CEILING
from typing import Optional, Protocol

from app.config import settings
from app.pricing.line_pricing import HALF_PAGE


class BillingRule(Protocol):
    name: str

    def billable_pages(self, page_count: int, word_count: int) -> Decimal:
        ...


class PageCountRule:
    """One billable page per physical page."""

    name = "page_count"

    def billable_pages(self, page_count: int, word_count: int) -> Decimal:
        return Decimal(max(page_count or 0, 0))


class WordCountRule:
    """
    Bill by words: ceil(words / words_per_page) to the next half page, min 0.5.
    A unit with pages but no readable words bills by its page count.
    """

    name = "word_count"

    def __init__(self, words_per_page: Optional[int] = None):
        self.words_per_page = words_per_page or settings.WORDS_PER_PAGE

    def billable_pages(self, page_count: int, word_count: int) -> Decimal:
        if not word_count and page_count:
            return PageCountRule().billable_pages(page_count, word_count)
        words = Decimal(max(word_count or 0, 0))
        halves = (words / Decimal(self.words_per_page) / HALF_PAGE).to_integral_value(rounding=ROUND_CEILING)
        return max(HALF_PAGE, halves * HALF_PAGE)


def normalize_document_type(document_type: Optional[str]) -> Optional[str]:
    if not document_type:
        return None
    return document_type.strip().lower().replace(" ", "_").replace("-", "_")


class BillingRuleRegistry:
    """Document type → billing rule lookup with a page-count fallback."""

    def __init__(self, default: Optional[BillingRule] = None):
        self.default: BillingRule = default or PageCountRule()
        self._rules: dict[str, BillingRule] = {}

    def register(self, document_type: str, rule: BillingRule) -> None:
        self._rules[normalize_document_type(document_type)] = rule

    def rule_for(self, document_type: Optional[str]) -> BillingRule:
        key = normalize_document_type(document_type)
        if key is None:
            return self.default
        return self._rules.get(key, self.default)

    def billable_pages(self, document_type: Optional[str], page_count: int, word_count: int) -> Decimal:
        """
        Billable pages for a unit of work. Empty units (no pages, no words)
        bill zero; everything else bills at least half a page.
        """
        if not page_count and not word_count:
            return Decimal("0")
        pages = self.rule_for(document_type).billable_pages(page_count, word_count)
        return max(pages, HALF_PAGE)


def build_default_registry() -> BillingRuleRegistry:
    registry = BillingRuleRegistry()
    word_rule = WordCountRule()
    for doc_type in settings.WORD_BASED_DOCUMENT_TYPES.split(","):
        if doc_type.strip():
            registry.register(doc_type, word_rule)
    return registry


billing_rules = build_default_registry()
