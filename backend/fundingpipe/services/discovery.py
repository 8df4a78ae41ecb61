"""Per-agency discovery runs, shared by the Celery task and the CLI."""

import logging
import uuid
from datetime import date, datetime, timedelta, timezone

from sqlalchemy.orm import Session

from fundingpipe.config import Settings, get_settings
from fundingpipe.models.discovery_run import DiscoveryRun
from fundingpipe.models.source_agency import SourceAgency

logger = logging.getLogger(__name__)


def default_date_range(settings: Settings, today: date | None = None) -> tuple[date, date]:
    today = today or date.today()
    return today - timedelta(days=settings.discovery_lookback_days), today


def run_agency_discovery(
    db: Session,
    agency: SourceAgency,
    date_from: date,
    date_to: date,
    max_pages: int | None = None,
    settings: Settings | None = None,
    dry_run: bool = False,
    scraper_class=None,
) -> DiscoveryRun:
    """Scrape one agency and record the outcome on a DiscoveryRun.

    Failures are recorded on the run and the agency, never raised, so a loop
    over agencies moves on to the next one.
    """
    settings = settings or get_settings()

    run = DiscoveryRun(
        id=uuid.uuid4(),
        agency_id=agency.id,
        started_at=datetime.now(timezone.utc),
        status="running",
        date_from=date_from,
        date_to=date_to,
    )
    db.add(run)
    db.commit()

    try:
        if scraper_class is None:
            # Import scrapers package to trigger @register_scraper decorators
            import fundingpipe.scrapers  # noqa: F401
            from fundingpipe.scrapers.registry import get_scraper_class
            scraper_class = get_scraper_class(agency.platform)

        if not scraper_class:
            raise ValueError(f"No scraper registered for platform: {agency.platform}")

        scraper = scraper_class(
            agency=agency, db=db, date_from=date_from, date_to=date_to,
            max_pages=max_pages, run_id=run.id, settings=settings, dry_run=dry_run,
        )
        results = scraper.run()

        run.status = "success"
        run.finished_at = datetime.now(timezone.utc)
        run.jobs_found = results.get("jobs_found", 0)
        run.jobs_new = results.get("jobs_new", 0)
        run.jobs_failed = results.get("jobs_failed", 0)

        agency.last_scraped_at = datetime.now(timezone.utc)
        agency.last_success_at = datetime.now(timezone.utc)
        agency.last_job_count = results.get("jobs_found", 0)
        agency.consecutive_failures = 0

        db.commit()
        logger.info(f"[{agency.code}] Discovery finished: {results}")

    except Exception as e:
        db.rollback()
        run.status = "failed"
        run.finished_at = datetime.now(timezone.utc)
        run.error_message = str(e)[:2000]

        agency.last_scraped_at = datetime.now(timezone.utc)
        agency.consecutive_failures = (agency.consecutive_failures or 0) + 1

        db.commit()
        logger.error(f"[{agency.code}] Discovery failed: {e}")

    return run
