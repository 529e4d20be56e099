"""
Worker entry point for background quote analysis batches.
Run with: python -m app.worker.runner
"""

import structlog
from redis import Redis
from rq import Worker

from app.config import settings
from app.observability.logging import clear_quote_context, setup_logging

logger = structlog.get_logger(__name__)


def _log_job_failure(job, exc_type, exc_value, traceback):
    logger.error(
        "worker_job_failed",
        job_id=job.id,
        quote_id=job.meta.get("quote_id"),
        job_func=job.func_name,
        error=str(exc_value),
    )
    clear_quote_context()
    # Fall through to the default handler (moves the job to the failed registry)
    return True


def main():
    setup_logging(component="worker")

    conn = Redis.from_url(settings.REDIS_URL)
    worker = Worker(
        queues=[settings.QUEUE_NAME],
        connection=conn,
        name=f"quote-analysis-worker-{settings.APP_VERSION}",
        exception_handlers=[_log_job_failure],
    )

    logger.info("worker_starting", queue=settings.QUEUE_NAME, worker=worker.name)
    worker.work(with_scheduler=False)


if __name__ == "__main__":
    main()
