"""
Quote-level totals arithmetic.

Evaluation order is fixed:
    pre_tax = subtotal + rush + delivery - discount + surcharge
    tax     = pre_tax × tax_rate
    total   = pre_tax + tax
Percentage rush/discount/surcharge amounts are taken against the document
subtotal, never against a running total. Every intermediate is rounded to
cents.
"""

from decimal import Decimal
from typing import Iterable, Optional

from pydantic import BaseModel

from app.config import settings
from app.errors import InvalidArgument
from app.models.enums import AdjustmentValueType
from app.pricing.line_pricing import Number, round_money, to_decimal


class LineItem(BaseModel):
    """One contributor to the document subtotal."""
    kind: str  # "record" | "group" | "quote_certification"
    item_id: str
    line_total: Decimal
    certification_price: Decimal = Decimal("0.00")


class QuoteAdjustments(BaseModel):
    is_rush: bool = False
    delivery_fee: Decimal = Decimal("0.00")
    has_discount: bool = False
    discount_type: Optional[str] = None
    discount_value: Optional[Decimal] = None
    has_surcharge: bool = False
    surcharge_type: Optional[str] = None
    surcharge_value: Optional[Decimal] = None
    tax_rate: Decimal = Decimal("0.05")


class QuotePricing(BaseModel):
    document_subtotal: Decimal
    translation_total: Decimal
    certification_total: Decimal
    is_rush: bool
    rush_fee: Decimal
    delivery_fee: Decimal
    discount_amount: Decimal
    surcharge_amount: Decimal
    pre_tax_total: Decimal
    tax_rate: Decimal
    tax_amount: Decimal
    total: Decimal
    line_item_count: int = 0


def adjustment_amount(
    enabled: bool,
    value_type: Optional[str],
    value: Optional[Number],
    subtotal: Decimal,
    field: str,
) -> Decimal:
    """Amount of a discount or surcharge; percentages apply to the subtotal."""
    if not enabled or value is None:
        return Decimal("0.00")
    amount = to_decimal(value, field)
    if amount < 0:
        raise InvalidArgument(f"{field} must not be negative", target_type="quote", details={field: str(amount)})
    if value_type == AdjustmentValueType.PERCENTAGE.value:
        if amount > 100:
            raise InvalidArgument(f"{field} percentage must not exceed 100", target_type="quote",
                                  details={field: str(amount)})
        return round_money(subtotal * amount / Decimal("100"))
    if value_type in (None, AdjustmentValueType.FIXED.value):
        return round_money(amount)
    raise InvalidArgument(f"Unknown {field} type: {value_type}", target_type="quote",
                          details={"type": value_type})


def compute_quote_totals(lines: Iterable[LineItem], adjustments: QuoteAdjustments) -> QuotePricing:
    lines = list(lines)
    subtotal = round_money(sum((l.line_total for l in lines), Decimal("0")))
    certification_total = round_money(sum((l.certification_price for l in lines), Decimal("0")))
    translation_total = round_money(subtotal - certification_total)

    rush_fee = round_money(subtotal * settings.RUSH_FEE_RATE) if adjustments.is_rush else Decimal("0.00")
    delivery_fee = round_money(adjustments.delivery_fee or 0)
    if delivery_fee < 0:
        raise InvalidArgument("delivery fee must not be negative", target_type="quote")

    discount = adjustment_amount(
        adjustments.has_discount, adjustments.discount_type, adjustments.discount_value,
        subtotal, "discount_value",
    )
    surcharge = adjustment_amount(
        adjustments.has_surcharge, adjustments.surcharge_type, adjustments.surcharge_value,
        subtotal, "surcharge_value",
    )

    # A discount never takes the quote below zero
    ceiling = subtotal + rush_fee + delivery_fee + surcharge
    discount = min(discount, ceiling)

    tax_rate = to_decimal(adjustments.tax_rate, "tax_rate")
    if tax_rate < 0:
        raise InvalidArgument("tax_rate must not be negative", target_type="quote")

    pre_tax = round_money(subtotal + rush_fee + delivery_fee - discount + surcharge)
    tax_amount = round_money(pre_tax * tax_rate)
    total = round_money(pre_tax + tax_amount)

    return QuotePricing(
        document_subtotal=subtotal,
        translation_total=translation_total,
        certification_total=certification_total,
        is_rush=adjustments.is_rush,
        rush_fee=rush_fee,
        delivery_fee=delivery_fee,
        discount_amount=discount,
        surcharge_amount=surcharge,
        pre_tax_total=pre_tax,
        tax_rate=tax_rate,
        tax_amount=tax_amount,
        total=total,
        line_item_count=len(lines),
    )
