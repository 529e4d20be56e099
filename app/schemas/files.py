"""
Pydantic request/response schemas for quote files.
"""

import uuid
from datetime import datetime
from typing import Optional

from pydantic import BaseModel, Field


class FileRegister(BaseModel):
    """A file already stored by the upload service."""
    original_filename: str = Field(min_length=1)
    storage_path: str = Field(min_length=1)
    mime_type: Optional[str] = None
    file_size_bytes: Optional[int] = Field(default=None, ge=0)
    page_word_counts: list[int] = Field(default_factory=list)


class AnalyzeSelectedRequest(BaseModel):
    file_ids: list[uuid.UUID] = Field(min_length=1)


class FileResponse(BaseModel):
    id: uuid.UUID
    quote_id: uuid.UUID
    original_filename: str
    storage_path: str
    mime_type: Optional[str] = None
    file_size_bytes: Optional[int] = None
    ai_processing_status: str
    created_at: datetime

    model_config = {"from_attributes": True}
