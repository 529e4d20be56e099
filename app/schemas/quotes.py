"""
Pydantic request/response schemas for the /api/v1/quotes endpoints.
"""

import uuid
from datetime import datetime
from decimal import Decimal
from typing import Literal, Optional

from pydantic import BaseModel, Field

from app.pricing.quote_totals import QuotePricing


# ── Request Schemas ──────────────────────────────────────────

class TranslationSettingsUpdate(BaseModel):
    """Only the fields sent are changed."""
    source_language_id: Optional[uuid.UUID] = None
    target_language_id: Optional[uuid.UUID] = None
    intended_use_id: Optional[uuid.UUID] = None
    country_of_issue: Optional[str] = Field(default=None, min_length=2, max_length=2)
    language_multiplier_override: Optional[Decimal] = Field(default=None, gt=0)
    reset_override: bool = False


class AdjustmentsUpdate(BaseModel):
    """Only the fields sent are changed."""
    is_rush: Optional[bool] = None
    delivery_option_id: Optional[uuid.UUID] = None
    has_discount: Optional[bool] = None
    discount_type: Optional[Literal["fixed", "percentage"]] = None
    discount_value: Optional[Decimal] = Field(default=None, ge=0)
    discount_reason: Optional[str] = None
    has_surcharge: Optional[bool] = None
    surcharge_type: Optional[Literal["fixed", "percentage"]] = None
    surcharge_value: Optional[Decimal] = Field(default=None, ge=0)
    surcharge_reason: Optional[str] = None
    tax_rate_id: Optional[uuid.UUID] = None


class QuoteCreate(BaseModel):
    translation: TranslationSettingsUpdate = Field(default_factory=TranslationSettingsUpdate)
    adjustments: AdjustmentsUpdate = Field(default_factory=AdjustmentsUpdate)


# ── Response Schemas ─────────────────────────────────────────

class TranslationSettings(BaseModel):
    source_language_id: Optional[uuid.UUID] = None
    target_language_id: Optional[uuid.UUID] = None
    intended_use_id: Optional[uuid.UUID] = None
    country_of_issue: Optional[str] = None
    language_tier: Optional[int] = None
    language_multiplier: Decimal
    language_multiplier_override: Optional[Decimal] = None

    model_config = {"from_attributes": True}


class QuoteDetail(BaseModel):
    id: uuid.UUID
    quote_number: Optional[str] = None
    status: str
    translation: TranslationSettings
    delivery_option_id: Optional[uuid.UUID] = None
    discount_type: Optional[str] = None
    discount_value: Optional[Decimal] = None
    surcharge_type: Optional[str] = None
    surcharge_value: Optional[Decimal] = None
    tax_rate_id: Optional[uuid.UUID] = None
    pricing: QuotePricing
    totals_version: int
    totals_calculated_at: Optional[datetime] = None
    created_at: datetime

    @classmethod
    def from_quote(cls, quote, pricing: QuotePricing) -> "QuoteDetail":
        return cls(
            id=quote.id,
            quote_number=quote.quote_number,
            status=quote.status,
            translation=TranslationSettings.model_validate(quote),
            delivery_option_id=quote.delivery_option_id,
            discount_type=quote.discount_type,
            discount_value=quote.discount_value,
            surcharge_type=quote.surcharge_type,
            surcharge_value=quote.surcharge_value,
            tax_rate_id=quote.tax_rate_id,
            pricing=pricing,
            totals_version=quote.totals_version,
            totals_calculated_at=quote.totals_calculated_at,
            created_at=quote.created_at,
        )


class ActivityEntry(BaseModel):
    id: uuid.UUID
    staff_id: Optional[uuid.UUID] = None
    action_type: str
    details: Optional[dict] = None
    created_at: datetime

    model_config = {"from_attributes": True}
