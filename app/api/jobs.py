"""
/api/v1/jobs endpoints.
Background analysis batches, queue statistics and job status.
"""

import uuid
from typing import Optional

from fastapi import APIRouter, Depends, HTTPException, status
from redis import Redis
from sqlalchemy.ext.asyncio import AsyncSession

from app.config import settings
from app.dependencies import get_db, get_staff_id, verify_api_key
from app.schemas.files import AnalyzeSelectedRequest
from app.schemas.jobs import JobEnqueued, JobStatus, QueueStats
from app.services.lookup import get_quote
from app.worker.jobs import enqueue_file_analysis, enqueue_group_analysis

router = APIRouter(prefix="/api/v1/jobs", tags=["jobs"], dependencies=[Depends(verify_api_key)])


def _get_redis() -> Redis:
    """Get a Redis connection."""
    return Redis.from_url(settings.REDIS_URL)


@router.post(
    "/quotes/{quote_id}/analyze-groups",
    response_model=JobEnqueued,
    status_code=status.HTTP_202_ACCEPTED,
)
async def enqueue_groups(
    quote_id: uuid.UUID,
    session: AsyncSession = Depends(get_db),
    staff_id: Optional[uuid.UUID] = Depends(get_staff_id),
):
    quote = await get_quote(session, quote_id)
    try:
        job_id = enqueue_group_analysis(str(quote.id), str(staff_id) if staff_id else None)
    except Exception as e:
        raise HTTPException(status_code=503, detail=f"Queue unavailable: {str(e)}")
    return JobEnqueued(job_id=job_id, quote_id=str(quote.id), operation="analyze_all_groups")


@router.post(
    "/quotes/{quote_id}/analyze-files",
    response_model=JobEnqueued,
    status_code=status.HTTP_202_ACCEPTED,
)
async def enqueue_files(
    quote_id: uuid.UUID,
    body: AnalyzeSelectedRequest,
    session: AsyncSession = Depends(get_db),
    staff_id: Optional[uuid.UUID] = Depends(get_staff_id),
):
    quote = await get_quote(session, quote_id)
    try:
        job_id = enqueue_file_analysis(
            str(quote.id), [str(f) for f in body.file_ids], str(staff_id) if staff_id else None,
        )
    except Exception as e:
        raise HTTPException(status_code=503, detail=f"Queue unavailable: {str(e)}")
    return JobEnqueued(job_id=job_id, quote_id=str(quote.id), operation="analyze_selected_files")


@router.get("/queue/stats", response_model=QueueStats)
async def queue_stats():
    """Get current queue statistics."""
    try:
        from rq import Queue
        from rq.worker import Worker

        conn = _get_redis()
        q = Queue(settings.QUEUE_NAME, connection=conn)
        workers = Worker.all(connection=conn)

        return QueueStats(
            queue_name=settings.QUEUE_NAME,
            queued=len(q),
            started=q.started_job_registry.count,
            finished=q.finished_job_registry.count,
            failed=q.failed_job_registry.count,
            deferred=q.deferred_job_registry.count,
            workers=len(workers),
        )
    except Exception as e:
        raise HTTPException(status_code=503, detail=f"Queue unavailable: {str(e)}")


@router.get("/{job_id}", response_model=JobStatus)
async def get_job_status(job_id: str):
    """Get the status of a background analysis job."""
    try:
        from rq.job import Job

        conn = _get_redis()
        job = Job.fetch(job_id, connection=conn)
    except Exception as e:
        raise HTTPException(status_code=404, detail=f"Job not found: {str(e)}")

    return JobStatus(
        job_id=job_id,
        quote_id=job.meta.get("quote_id", job.args[0] if job.args else ""),
        status=str(job.get_status()),
        enqueued_at=job.enqueued_at,
        started_at=job.started_at,
        ended_at=job.ended_at,
        error_message=str(job.exc_info) if job.exc_info else None,
        result=job.result if job.is_finished else None,
    )
