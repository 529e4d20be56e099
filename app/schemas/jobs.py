"""
Schemas for background job endpoints.
"""

from datetime import datetime
from typing import Any, Optional

from pydantic import BaseModel


class JobEnqueued(BaseModel):
    job_id: str
    quote_id: str
    operation: str


class JobStatus(BaseModel):
    job_id: str
    quote_id: str
    status: str
    enqueued_at: Optional[datetime] = None
    started_at: Optional[datetime] = None
    ended_at: Optional[datetime] = None
    error_message: Optional[str] = None
    result: Optional[Any] = None


class QueueStats(BaseModel):
    queue_name: str
    queued: int
    started: int
    finished: int
    failed: int
    deferred: int
    workers: int
