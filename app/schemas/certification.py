"""
Schemas for the quote-level certification batch and quote certifications.
"""

import uuid
from datetime import datetime
from decimal import Decimal
from typing import Optional

from pydantic import BaseModel, Field

from app.pricing.quote_totals import QuotePricing


class ApplyCertificationRequest(BaseModel):
    certification_type_id: uuid.UUID
    all_or_nothing: bool = False


class QuoteCertificationCreate(BaseModel):
    certification_type_id: uuid.UUID
    quantity: int = Field(default=1, ge=1)
    notes: Optional[str] = None


class QuoteCertificationUpdate(BaseModel):
    """Only the fields sent are changed."""
    certification_type_id: Optional[uuid.UUID] = None
    quantity: Optional[int] = Field(default=None, ge=1)
    notes: Optional[str] = None


class QuoteCertificationResponse(BaseModel):
    id: uuid.UUID
    quote_id: uuid.UUID
    certification_type_id: uuid.UUID
    price: Decimal
    quantity: int
    notes: Optional[str] = None
    added_by_staff_id: Optional[uuid.UUID] = None
    created_at: datetime

    model_config = {"from_attributes": True}


class QuoteCertificationChangeResponse(BaseModel):
    certification: QuoteCertificationResponse
    pricing: QuotePricing
