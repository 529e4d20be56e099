"""
Line pricing calculator.

    raw      = billable_pages × base_rate × language_multiplier × complexity_multiplier
    rounded  = ceil(raw / 2.50) × 2.50
    line     = cents(rounded + certification_price)

Rounding is always UP to the next $2.50 (pricing floor); exact multiples stay
put. Certification is added after rounding and is never multiplied.
"""

from decimal import Decimal, InvalidOperation, ROUND_CEILING, ROUND_HALF_UP
from typing import Optional, Union

from pydantic import BaseModel

from app.config import settings
from app.errors import InvalidArgument

Number = Union[Decimal, int, float, str]

CENT = Decimal("0.01")
HALF_PAGE = Decimal("0.5")


class LinePrice(BaseModel):
    translation_cost: Decimal
    certification_price: Decimal
    line_total: Decimal


def to_decimal(value: Optional[Number], field: str = "value") -> Decimal:
    """
    Coerce a numeric input to Decimal.
    Floats go through str() so 1.15 stays 1.15 rather than 1.149999...
    """
    if value is None:
        return Decimal("0")
    if isinstance(value, Decimal):
        return value
    if isinstance(value, bool):
        raise InvalidArgument(f"{field} must be numeric", details={field: value})
    try:
        if isinstance(value, float):
            return Decimal(str(value))
        return Decimal(value)
    except (InvalidOperation, ValueError, TypeError):
        raise InvalidArgument(f"{field} must be numeric", details={field: str(value)})


def round_money(amount: Number) -> Decimal:
    """Round to cents, half-up."""
    return to_decimal(amount, "amount").quantize(CENT, rounding=ROUND_HALF_UP)


def ceil_to_increment(amount: Number, increment: Optional[Number] = None) -> Decimal:
    """Round UP to the next multiple of `increment` (default $2.50)."""
    inc = to_decimal(increment if increment is not None else settings.PRICE_ROUNDING_INCREMENT, "increment")
    if inc <= 0:
        raise InvalidArgument("Rounding increment must be positive", details={"increment": str(inc)})
    value = to_decimal(amount, "amount")
    steps = (value / inc).to_integral_value(rounding=ROUND_CEILING)
    return steps * inc


def _non_negative(value: Optional[Number], field: str) -> Decimal:
    dec = to_decimal(value, field)
    if dec < 0:
        raise InvalidArgument(f"{field} must not be negative", details={field: str(dec)})
    return dec


def price_line(
    billable_pages: Number,
    base_rate: Number,
    language_multiplier: Number,
    complexity_multiplier: Number,
    certification_price: Optional[Number] = None,
) -> LinePrice:
    """Compute a line total and its translation/certification breakdown."""
    pages = _non_negative(billable_pages, "billable_pages")
    rate = _non_negative(base_rate, "base_rate")
    lang = _non_negative(language_multiplier, "language_multiplier")
    cplx = _non_negative(complexity_multiplier, "complexity_multiplier")
    cert = _non_negative(certification_price, "certification_price")

    raw = pages * rate * lang * cplx
    translation_cost = round_money(ceil_to_increment(raw))
    cert = round_money(cert)

    return LinePrice(
        translation_cost=translation_cost,
        certification_price=cert,
        line_total=round_money(translation_cost + cert),
    )


def compute_line_total(
    billable_pages: Number,
    base_rate: Number,
    language_multiplier: Number,
    complexity_multiplier: Number,
    certification_price: Optional[Number] = None,
) -> Decimal:
    """Rounded line total for one billable unit (record or group)."""
    return price_line(
        billable_pages, base_rate, language_multiplier, complexity_multiplier, certification_price,
    ).line_total


def validate_billable_pages(value: Number, field: str = "billable_pages") -> Decimal:
    """Billable pages on a record: at least 0.5 and a multiple of 0.5."""
    pages = to_decimal(value, field)
    if pages < HALF_PAGE:
        raise InvalidArgument(
            f"{field} must be at least 0.5",
            details={field: str(pages)},
        )
    if (pages / HALF_PAGE) != (pages / HALF_PAGE).to_integral_value():
        raise InvalidArgument(
            f"{field} must be in half-page increments",
            details={field: str(pages)},
        )
    return pages
