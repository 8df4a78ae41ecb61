"""Discovery orchestration tasks."""

import logging
import uuid
from datetime import date

import redis

from fundingpipe.config import get_settings
from fundingpipe.models.base import get_session_factory
from fundingpipe.models.source_agency import SourceAgency
from fundingpipe.services.discovery import default_date_range, run_agency_discovery
from fundingpipe.tasks.celery_app import celery_app

logger = logging.getLogger(__name__)

DISPATCH_LOCK_NAME = "fundingpipe:discovery-dispatch"
DISPATCH_LOCK_TIMEOUT = 600


@celery_app.task(name="fundingpipe.tasks.discovery_tasks.dispatch_discovery")
def dispatch_discovery():
    """Dispatch one discovery task per active agency.

    Only the primary instance dispatches, and only while it holds the Redis
    lock, so a second beat scheduler never inserts the same day twice.
    """
    settings = get_settings()
    if settings.instance_role != "primary":
        logger.info(f"Instance role is {settings.instance_role!r}; skipping discovery dispatch")
        return {"dispatched": 0, "skipped": "not primary"}

    lock = redis.from_url(settings.redis_url).lock(DISPATCH_LOCK_NAME, timeout=DISPATCH_LOCK_TIMEOUT)
    if not lock.acquire(blocking=False):
        logger.info("Another scheduler holds the discovery lock; skipping")
        return {"dispatched": 0, "skipped": "locked"}

    db = get_session_factory()()
    try:
        date_from, date_to = default_date_range(settings)
        agencies = db.query(SourceAgency).filter(
            SourceAgency.is_active == True,  # noqa: E712
        ).all()

        for agency in agencies:
            discover_agency.delay(str(agency.id), date_from.isoformat(), date_to.isoformat())

        logger.info(f"Dispatched {len(agencies)} discovery tasks for {date_from} to {date_to}")
        return {"dispatched": len(agencies)}

    finally:
        db.close()


@celery_app.task(name="fundingpipe.tasks.discovery_tasks.discover_agency")
def discover_agency(agency_id: str, date_from: str, date_to: str, max_pages: int | None = None):
    """Scrape a single agency for a date range."""
    db = get_session_factory()()
    try:
        agency = db.query(SourceAgency).filter(SourceAgency.id == uuid.UUID(agency_id)).first()
        if not agency:
            logger.error(f"Agency {agency_id} not found")
            return

        run = run_agency_discovery(
            db, agency, date.fromisoformat(date_from), date.fromisoformat(date_to), max_pages=max_pages,
        )
        return {
            "status": run.status,
            "jobs_found": run.jobs_found,
            "jobs_new": run.jobs_new,
            "jobs_failed": run.jobs_failed,
        }

    finally:
        db.close()
