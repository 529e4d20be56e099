"""
Rate table and multiplier resolver.

The complexity table below is the only place complexity multipliers are
defined. Every pricing path (records, groups, batch certification) reads it
through complexity_multiplier().
"""

from decimal import Decimal
from typing import Optional

from pydantic import BaseModel

from app.models.enums import Complexity
from app.pricing.line_pricing import to_decimal
from app.errors import InvalidArgument


COMPLEXITY_MULTIPLIERS: dict[str, Decimal] = {
    Complexity.EASY.value: Decimal("1.00"),
    Complexity.LOW.value: Decimal("1.00"),
    Complexity.MEDIUM.value: Decimal("1.15"),
    Complexity.HARD.value: Decimal("1.25"),
    Complexity.HIGH.value: Decimal("1.25"),
}

DEFAULT_COMPLEXITY_MULTIPLIER = Decimal("1.00")

TIER_LABELS = {
    1: "Standard",
    2: "Complex Script",
    3: "Rare/Specialized",
}


class LanguageRate(BaseModel):
    language_id: Optional[str] = None
    tier: Optional[int] = None
    tier_label: Optional[str] = None
    multiplier: Decimal = Decimal("1.00")
    tier_default_multiplier: Optional[Decimal] = None
    is_override: bool = False


def normalize_complexity(value: Optional[str]) -> Optional[str]:
    """Lower-case and trim a complexity string; None for blanks."""
    if value is None:
        return None
    cleaned = str(value).strip().lower()
    return cleaned or None


def complexity_multiplier(value: Optional[str]) -> Decimal:
    """Multiplier for a complexity string. Unknown or missing → 1.00."""
    key = normalize_complexity(value)
    if key is None:
        return DEFAULT_COMPLEXITY_MULTIPLIER
    return COMPLEXITY_MULTIPLIERS.get(key, DEFAULT_COMPLEXITY_MULTIPLIER)


def tier_label(tier: Optional[int]) -> Optional[str]:
    if tier is None:
        return None
    return TIER_LABELS.get(tier, f"Tier {tier}")


def resolve_language_rate(language, override=None) -> LanguageRate:
    """
    Resolve {tier, multiplier} for a source language row.

    `language` is a resolved Language row (the reference provider raises
    ReferenceNotFound for unknown ids before this is reached) or None when
    the quote has no source language yet. A staff override always wins.
    """
    override_dec = None
    if override is not None:
        override_dec = to_decimal(override, "language_multiplier_override")
        if override_dec <= 0:
            raise InvalidArgument(
                "Language multiplier override must be positive",
                target_type="quote",
                details={"language_multiplier_override": str(override_dec)},
            )

    if language is None:
        return LanguageRate(
            multiplier=override_dec if override_dec is not None else Decimal("1.00"),
            is_override=override_dec is not None,
        )

    tier_default = to_decimal(language.multiplier, "multiplier")
    return LanguageRate(
        language_id=str(language.id),
        tier=language.tier,
        tier_label=tier_label(language.tier),
        multiplier=override_dec if override_dec is not None else tier_default,
        tier_default_multiplier=tier_default,
        is_override=override_dec is not None,
    )
