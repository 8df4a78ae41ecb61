"""Destructive maintenance helpers. Callers confirm before invoking."""

import logging

from sqlalchemy import func
from sqlalchemy.orm import Session

from fundingpipe.models.discovery_run import DiscoveryRun
from fundingpipe.models.extraction_log import ExtractionLog
from fundingpipe.models.scrape_job import ScrapeJob
from fundingpipe.models.structured_program import StructuredProgram

logger = logging.getLogger(__name__)

# Children before parents
PIPELINE_TABLES = (
    ("extraction_logs", ExtractionLog),
    ("scrape_jobs", ScrapeJob),
    ("structured_programs", StructuredProgram),
    ("discovery_runs", DiscoveryRun),
)


def table_counts(db: Session) -> dict[str, int]:
    return {name: db.query(func.count(model.id)).scalar() or 0 for name, model in PIPELINE_TABLES}


def clear_pipeline_tables(db: Session) -> dict[str, int]:
    """Delete every scraped and extracted row. Source agencies are kept."""
    deleted = {}
    for name, model in PIPELINE_TABLES:
        deleted[name] = db.query(model).delete(synchronize_session=False)
    db.commit()
    logger.info(f"Cleared pipeline tables: {deleted}")
    return deleted
