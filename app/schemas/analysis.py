"""
Pydantic request/response schemas for analysis records.
"""

import uuid
from datetime import datetime
from decimal import Decimal
from typing import Literal, Optional, Union

from pydantic import BaseModel, Field

from app.models.tables import FileBacked
from app.pricing.quote_totals import QuotePricing


# ── Request Schemas ──────────────────────────────────────────

class ManualEntryCreate(BaseModel):
    source_file_id: Optional[uuid.UUID] = None
    manual_filename: Optional[str] = None
    detected_language_code: Optional[str] = None
    document_type: Optional[str] = None
    complexity: Optional[str] = None
    word_count: int = Field(default=0, ge=0)
    page_count: int = Field(default=1, ge=1)
    billable_pages: Optional[Decimal] = Field(default=None, ge=Decimal("0.5"))
    certification_type_id: Optional[uuid.UUID] = None


class RecordEdit(BaseModel):
    """Only the fields sent are changed."""
    detected_language_code: Optional[str] = None
    document_type: Optional[str] = None
    complexity: Optional[str] = None
    word_count: Optional[int] = Field(default=None, ge=0)
    page_count: Optional[int] = Field(default=None, ge=1)
    billable_pages: Optional[Decimal] = Field(default=None, ge=Decimal("0.5"))
    certification_type_id: Optional[uuid.UUID] = None
    is_excluded: Optional[bool] = None


# ── Response Schemas ─────────────────────────────────────────

class FileSource(BaseModel):
    kind: Literal["file"] = "file"
    file_id: uuid.UUID


class ManualSource(BaseModel):
    kind: Literal["manual"] = "manual"
    label: Optional[str] = None


class RecordResponse(BaseModel):
    id: uuid.UUID
    quote_id: uuid.UUID
    source: Union[FileSource, ManualSource]
    document_group_id: Optional[uuid.UUID] = None
    analysis_status: str
    is_staff_created: bool
    detected_language_code: Optional[str] = None
    document_type: Optional[str] = None
    complexity: Optional[str] = None
    complexity_multiplier: Optional[Decimal] = None
    language_multiplier: Optional[Decimal] = None
    word_count: Optional[int] = None
    page_count: Optional[int] = None
    billable_pages: Optional[Decimal] = None
    base_rate: Optional[Decimal] = None
    certification_type_id: Optional[uuid.UUID] = None
    certification_price: Optional[Decimal] = None
    line_total: Optional[Decimal] = None
    is_excluded: bool = False
    ai_confidence: Optional[Decimal] = None
    error_code: Optional[str] = None
    error_message: Optional[str] = None
    analyzed_at: Optional[datetime] = None

    @classmethod
    def from_record(cls, record) -> "RecordResponse":
        source = record.source
        if isinstance(source, FileBacked):
            source_model = FileSource(file_id=source.file_id)
        else:
            source_model = ManualSource(label=source.label)
        fields = {name: getattr(record, name) for name in cls.model_fields if name != "source"}
        return cls(source=source_model, **fields)


class RecordChangeResponse(BaseModel):
    record: RecordResponse
    pricing: QuotePricing
