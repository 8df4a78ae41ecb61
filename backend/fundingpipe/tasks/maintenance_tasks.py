"""Maintenance tasks — automatic retry of failed jobs."""

import logging

from fundingpipe.config import get_settings
from fundingpipe.models.base import get_session_factory
from fundingpipe.services import job_state
from fundingpipe.tasks.celery_app import celery_app

logger = logging.getLogger(__name__)


@celery_app.task(name="fundingpipe.tasks.maintenance_tasks.requeue_failed_jobs")
def requeue_failed_jobs():
    """Move FAILED jobs with attempts left back to PENDING."""
    settings = get_settings()
    db = get_session_factory()()
    try:
        requeued = job_state.requeue_failed_jobs(db, max_attempts=settings.max_processing_attempts)
        return {"requeued": requeued}
    finally:
        db.close()
