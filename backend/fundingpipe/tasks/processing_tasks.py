"""Processing tasks — drain the pending job queue in batches."""

import logging

from fundingpipe.config import get_settings
from fundingpipe.models.base import get_session_factory
from fundingpipe.services.worker import Worker
from fundingpipe.tasks.celery_app import celery_app

logger = logging.getLogger(__name__)


@celery_app.task(name="fundingpipe.tasks.processing_tasks.process_pending_jobs")
def process_pending_jobs(max_jobs: int = 25, date_range: str | None = None):
    """Claim and process up to ``max_jobs`` jobs, then return.

    Several of these may run at once; each job is claimed atomically.
    """
    settings = get_settings()
    worker = Worker(
        get_session_factory(),
        settings=settings,
        max_jobs=max_jobs,
        max_idle_polls=1,
        date_range=date_range,
    )
    stats = worker.run()
    logger.info(f"[{worker.worker_id}] Batch finished: {stats}")
    return stats
