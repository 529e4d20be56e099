"""
RQ job functions for long-running quote analysis batches.
These are the entry points that the worker calls.
"""

import structlog
from redis import Redis
from rq import Queue

from app.config import settings

logger = structlog.get_logger(__name__)


def get_queue() -> Queue:
    """Get the analysis job queue."""
    conn = Redis.from_url(settings.REDIS_URL)
    return Queue(settings.QUEUE_NAME, connection=conn)


def _enqueue(func, quote_id: str, *args, staff_id: str | None = None) -> str:
    q = get_queue()
    job = q.enqueue(
        func,
        quote_id,
        *args,
        staff_id,
        job_timeout=settings.JOB_TIMEOUT_SECONDS,
        result_ttl=86400,  # Keep results for 24 hours
        failure_ttl=604800,  # Keep failures for 7 days
        meta={"quote_id": quote_id},
    )
    logger.info("job_enqueued", quote_id=quote_id, job_id=job.id, job_func=func.__name__)
    return job.id


def enqueue_group_analysis(quote_id: str, staff_id: str | None = None) -> str:
    """Enqueue analysis of every non-empty group of a quote. Returns the job ID."""
    return _enqueue(analyze_groups_job, quote_id, staff_id=staff_id)


def enqueue_file_analysis(quote_id: str, file_ids: list[str], staff_id: str | None = None) -> str:
    """Enqueue analysis of the selected files of a quote. Returns the job ID."""
    return _enqueue(analyze_files_job, quote_id, file_ids, staff_id=staff_id)


def analyze_groups_job(quote_id: str, staff_id: str | None = None) -> dict:
    """Runs inside the RQ worker process."""
    import asyncio

    logger.info("job_started", quote_id=quote_id, operation="analyze_all_groups")
    try:
        result = asyncio.run(_analyze_groups_async(quote_id, staff_id))
        logger.info("job_completed", quote_id=quote_id, succeeded=result["succeeded"], failed=result["failed"])
        return result
    except Exception as e:
        logger.error("job_failed", quote_id=quote_id, error=str(e))
        raise


def analyze_files_job(quote_id: str, file_ids: list[str], staff_id: str | None = None) -> dict:
    """Runs inside the RQ worker process."""
    import asyncio

    logger.info("job_started", quote_id=quote_id, operation="analyze_selected_files", files=len(file_ids))
    try:
        result = asyncio.run(_analyze_files_async(quote_id, file_ids, staff_id))
        logger.info("job_completed", quote_id=quote_id, succeeded=result["succeeded"], failed=result["failed"])
        return result
    except Exception as e:
        logger.error("job_failed", quote_id=quote_id, error=str(e))
        raise


async def _analyze_groups_async(quote_id: str, staff_id: str | None) -> dict:
    import uuid

    from app.dependencies import get_oracle, get_reference_data
    from app.models.database import async_session_factory, close_db
    from app.services.document_groups import analyze_all_groups

    try:
        async with async_session_factory() as session:
            batch = await analyze_all_groups(
                session, get_reference_data(), get_oracle(), quote_id,
                uuid.UUID(staff_id) if staff_id else None,
            )
        return batch.model_dump(mode="json")
    finally:
        await close_db()


async def _analyze_files_async(quote_id: str, file_ids: list[str], staff_id: str | None) -> dict:
    import uuid

    from app.dependencies import get_oracle, get_reference_data
    from app.models.database import async_session_factory, close_db
    from app.services.analysis_records import analyze_selected_files

    try:
        async with async_session_factory() as session:
            batch = await analyze_selected_files(
                session, get_reference_data(), get_oracle(), quote_id, file_ids,
                uuid.UUID(staff_id) if staff_id else None,
            )
        return batch.model_dump(mode="json")
    finally:
        await close_db()
