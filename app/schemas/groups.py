"""
Pydantic request/response schemas for document groups.
"""

import uuid
from datetime import datetime
from decimal import Decimal
from typing import Optional

from pydantic import BaseModel, Field, model_validator

from app.pricing.quote_totals import QuotePricing


# ── Request Schemas ──────────────────────────────────────────

class GroupCreate(BaseModel):
    label: Optional[str] = Field(default=None, max_length=255)
    document_type: Optional[str] = None
    complexity: Optional[str] = None
    certification_type_id: Optional[uuid.UUID] = None


class GroupUpdate(BaseModel):
    """Only the fields sent are changed."""
    label: Optional[str] = Field(default=None, max_length=255)
    document_type: Optional[str] = None
    complexity: Optional[str] = None
    certification_type_id: Optional[uuid.UUID] = None
    is_excluded: Optional[bool] = None


class AssignItemRequest(BaseModel):
    file_id: Optional[uuid.UUID] = None
    page_id: Optional[uuid.UUID] = None
    word_count_override: Optional[int] = Field(default=None, ge=0)

    @model_validator(mode="after")
    def exactly_one_target(self):
        if (self.file_id is None) == (self.page_id is None):
            raise ValueError("Exactly one of file_id or page_id is required")
        return self


# ── Response Schemas ─────────────────────────────────────────

class AssignmentResponse(BaseModel):
    id: uuid.UUID
    group_id: uuid.UUID
    file_id: Optional[uuid.UUID] = None
    page_id: Optional[uuid.UUID] = None
    sequence_order: int
    word_count_override: Optional[int] = None
    assigned_at: datetime

    model_config = {"from_attributes": True}


class GroupResponse(BaseModel):
    id: uuid.UUID
    quote_id: uuid.UUID
    group_number: int
    label: Optional[str] = None
    state: str
    document_type: Optional[str] = None
    detected_language_code: Optional[str] = None
    complexity: Optional[str] = None
    complexity_multiplier: Decimal
    language_multiplier: Decimal
    total_pages: int
    total_word_count: int
    billable_pages: Decimal
    base_rate: Decimal
    certification_type_id: Optional[uuid.UUID] = None
    certification_price: Decimal
    line_total: Decimal
    is_excluded: bool
    is_ai_suggested: bool
    ai_confidence: Optional[Decimal] = None
    analysis_status: str
    last_analyzed_at: Optional[datetime] = None
    error_message: Optional[str] = None
    items: list[AssignmentResponse] = Field(default_factory=list)

    @classmethod
    def from_group(cls, group, items, state) -> "GroupResponse":
        fields = {
            name: getattr(group, name)
            for name in cls.model_fields
            if name not in ("state", "items")
        }
        return cls(
            state=state.value,
            items=[AssignmentResponse.model_validate(item) for item in items],
            **fields,
        )


class GroupChangeResponse(BaseModel):
    group: GroupResponse
    pricing: QuotePricing
