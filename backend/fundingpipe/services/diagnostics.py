"""Read-only pipeline diagnostics for operators."""

from datetime import datetime, timedelta, timezone

from sqlalchemy import func
from sqlalchemy.orm import Session

from fundingpipe.models.extraction_log import ExtractionLog
from fundingpipe.models.scrape_job import ProcessingStatus, ScrapeJob
from fundingpipe.models.structured_program import StructuredProgram


def queue_status(db: Session, lease_seconds: int = 900, max_attempts: int = 3, now: datetime | None = None) -> dict:
    now = now or datetime.now(timezone.utc)
    rows = db.query(
        ScrapeJob.scraping_status, ScrapeJob.processing_status, func.count(ScrapeJob.id),
    ).group_by(ScrapeJob.scraping_status, ScrapeJob.processing_status).all()

    counts = {f"{scraping}/{processing}": count for scraping, processing, count in rows}

    stale_leases = db.query(func.count(ScrapeJob.id)).filter(
        ScrapeJob.processing_status == ProcessingStatus.PROCESSING.value,
        ScrapeJob.processing_heartbeat_at < now - timedelta(seconds=lease_seconds),
    ).scalar()

    exhausted = db.query(func.count(ScrapeJob.id)).filter(
        ScrapeJob.processing_status == ProcessingStatus.FAILED.value,
        ScrapeJob.processing_attempts >= max_attempts,
    ).scalar()

    return {
        "total": sum(counts.values()),
        "by_status": counts,
        "stale_leases": stale_leases or 0,
        "attempts_exhausted": exhausted or 0,
    }


def skip_reason_breakdown(db: Session, limit: int = 20) -> dict[str, list[tuple[str, int]]]:
    """Most common ``processing_error`` values among SKIPPED and FAILED jobs."""
    breakdown = {}
    for status in (ProcessingStatus.SKIPPED, ProcessingStatus.FAILED):
        rows = db.query(ScrapeJob.processing_error, func.count(ScrapeJob.id)).filter(
            ScrapeJob.processing_status == status.value,
        ).group_by(ScrapeJob.processing_error).order_by(func.count(ScrapeJob.id).desc()).limit(limit).all()
        breakdown[status.value] = [(reason or "(no reason)", count) for reason, count in rows]
    return breakdown


def field_population_rates(db: Session) -> dict:
    total = db.query(func.count(StructuredProgram.id)).scalar() or 0

    def populated(*conditions) -> int:
        return db.query(func.count(StructuredProgram.id)).filter(*conditions).scalar() or 0

    # JSON columns are checked in Python; "[]" and "{}" differ per dialect
    programs = db.query(StructuredProgram.eligibility_criteria, StructuredProgram.industry_tags).all()
    with_eligibility = sum(1 for eligibility, _ in programs if eligibility)
    with_tags = sum(1 for _, tags in programs if tags)

    counts = {
        "deadline": populated(StructuredProgram.deadline.isnot(None)),
        "budget_amount": populated(StructuredProgram.budget_amount.isnot(None)),
        "trl": populated(StructuredProgram.min_trl.isnot(None)),
        "eligibility_criteria": with_eligibility,
        "industry_tags": with_tags,
        "semantic_enrichment": populated(StructuredProgram.semantic_enriched_at.isnot(None)),
    }
    return {
        "total": total,
        "fields": {
            name: {"count": count, "rate": round(count / total, 3) if total else 0.0}
            for name, count in counts.items()
        },
    }


def extraction_source_breakdown(db: Session) -> dict[str, dict[str, int]]:
    rows = db.query(
        ExtractionLog.field_name, ExtractionLog.data_source, func.count(ExtractionLog.id),
    ).group_by(ExtractionLog.field_name, ExtractionLog.data_source).all()

    breakdown: dict[str, dict[str, int]] = {}
    for field_name, data_source, count in rows:
        breakdown.setdefault(field_name, {})[data_source] = count
    return breakdown
