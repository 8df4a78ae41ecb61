"""Job state machine — claiming, leases and status transitions.

A job is claimed with one conditional UPDATE that only succeeds while the row
still holds the status (and, for expired leases, the heartbeat) the claimant
read. Exactly one of several racing workers sees ``rowcount == 1``.

The transition helpers mutate the ORM object and leave the commit to the
caller so that a completed job and its program are written together.
"""

import logging
import uuid
from datetime import datetime, timedelta, timezone

from sqlalchemy import or_
from sqlalchemy.orm import Session

from fundingpipe.models.scrape_job import (
    IllegalTransitionError, ProcessingStatus, ScrapeJob, ScrapingStatus, check_transition,
)
from fundingpipe.models.structured_program import StructuredProgram

logger = logging.getLogger(__name__)

CANDIDATE_BATCH = 20
MAX_ERROR_CHARS = 2000


class LeaseLostError(RuntimeError):
    """The worker's lease expired and another worker now owns the job."""


def _now() -> datetime:
    return datetime.now(timezone.utc)


def _scoped(query, date_range: str | None, job_ids: list | None):
    if date_range:
        query = query.filter(ScrapeJob.date_range == date_range)
    if job_ids:
        query = query.filter(ScrapeJob.id.in_([uuid.UUID(str(j)) for j in job_ids]))
    return query


def _load(db: Session, job_id) -> ScrapeJob:
    return db.query(ScrapeJob).populate_existing().filter(ScrapeJob.id == job_id).one()


def claim_next_job(
    db: Session,
    worker_id: str,
    *,
    date_range: str | None = None,
    job_ids: list | None = None,
    max_attempts: int = 3,
    lease_seconds: int = 900,
    now: datetime | None = None,
) -> ScrapeJob | None:
    """Claim the oldest claimable job for ``worker_id``, or return None.

    Pending jobs are tried first, then PROCESSING jobs whose heartbeat is
    older than the lease. A reclaim bumps ``processing_attempts``; a job whose
    lease expires with no attempts left is failed instead of reclaimed.
    """
    now = now or _now()
    check_transition(ProcessingStatus.PENDING, ProcessingStatus.PROCESSING)

    pending_ids = [
        row.id for row in _scoped(
            db.query(ScrapeJob.id).filter(
                ScrapeJob.scraping_status == ScrapingStatus.SCRAPED.value,
                ScrapeJob.processing_status == ProcessingStatus.PENDING.value,
            ),
            date_range, job_ids,
        ).order_by(ScrapeJob.created_at.asc()).limit(CANDIDATE_BATCH).all()
    ]

    for job_id in pending_ids:
        updated = db.query(ScrapeJob).filter(
            ScrapeJob.id == job_id,
            ScrapeJob.processing_status == ProcessingStatus.PENDING.value,
        ).update({
            "processing_status": ProcessingStatus.PROCESSING.value,
            "processing_worker": worker_id,
            "processing_started_at": now,
            "processing_heartbeat_at": now,
            "processing_error": None,
        }, synchronize_session=False)
        db.commit()

        if updated == 1:
            job = _load(db, job_id)
            logger.info(f"[{worker_id}] Claimed job {job.id}: {job.title[:60]}")
            return job
        logger.debug(f"[{worker_id}] Lost claim race for job {job_id}")

    return _reclaim_expired(db, worker_id, date_range, job_ids, max_attempts, lease_seconds, now)


def _reclaim_expired(db, worker_id, date_range, job_ids, max_attempts, lease_seconds, now):
    cutoff = now - timedelta(seconds=lease_seconds)
    stale = _scoped(
        db.query(ScrapeJob.id, ScrapeJob.processing_heartbeat_at, ScrapeJob.processing_attempts).filter(
            ScrapeJob.scraping_status == ScrapingStatus.SCRAPED.value,
            ScrapeJob.processing_status == ProcessingStatus.PROCESSING.value,
            or_(
                ScrapeJob.processing_heartbeat_at < cutoff,
                ScrapeJob.processing_heartbeat_at.is_(None),
            ),
        ),
        date_range, job_ids,
    ).order_by(ScrapeJob.created_at.asc()).limit(CANDIDATE_BATCH).all()

    for job_id, seen_heartbeat, attempts in stale:
        guard = [
            ScrapeJob.id == job_id,
            ScrapeJob.processing_status == ProcessingStatus.PROCESSING.value,
            ScrapeJob.processing_heartbeat_at.is_(None) if seen_heartbeat is None
            else ScrapeJob.processing_heartbeat_at == seen_heartbeat,
        ]

        if (attempts or 0) + 1 >= max_attempts:
            check_transition(ProcessingStatus.PROCESSING, ProcessingStatus.FAILED)
            db.query(ScrapeJob).filter(*guard).update({
                "processing_status": ProcessingStatus.FAILED.value,
                "processing_attempts": ScrapeJob.processing_attempts + 1,
                "processing_error": "Processing lease expired; attempts exhausted",
                "processed_at": now,
            }, synchronize_session=False)
            db.commit()
            logger.warning(f"[{worker_id}] Job {job_id} lease expired with no attempts left; marked FAILED")
            continue

        # Owner change only; the job stays PROCESSING
        updated = db.query(ScrapeJob).filter(*guard).update({
            "processing_worker": worker_id,
            "processing_started_at": now,
            "processing_heartbeat_at": now,
            "processing_attempts": ScrapeJob.processing_attempts + 1,
        }, synchronize_session=False)
        db.commit()

        if updated == 1:
            job = _load(db, job_id)
            logger.warning(f"[{worker_id}] Reclaimed expired lease on job {job.id}")
            return job
        logger.debug(f"[{worker_id}] Lost reclaim race for job {job_id}")

    return None


def heartbeat(db: Session, job_id, worker_id: str, now: datetime | None = None) -> bool:
    """Refresh the lease; False when the caller no longer owns the job."""
    updated = db.query(ScrapeJob).filter(
        ScrapeJob.id == job_id,
        ScrapeJob.processing_status == ProcessingStatus.PROCESSING.value,
        ScrapeJob.processing_worker == worker_id,
    ).update({"processing_heartbeat_at": now or _now()}, synchronize_session=False)
    return updated == 1


def ensure_owner(db: Session, job: ScrapeJob, worker_id: str) -> None:
    if not heartbeat(db, job.id, worker_id):
        raise LeaseLostError(f"Job {job.id} is no longer owned by {worker_id}")


def complete_job(job: ScrapeJob, program: StructuredProgram, note: str | None = None) -> None:
    """Mark COMPLETED; ``note`` records partial failures such as unreadable attachments."""
    if program.id is None:
        raise ValueError("Program must be flushed before completing a job")
    job.funding_program_id = program.id
    job.processing_status = ProcessingStatus.COMPLETED.value
    job.processing_error = note[:MAX_ERROR_CHARS] if note else None
    job.processed_at = _now()


def skip_job(job: ScrapeJob, reason: str) -> None:
    job.funding_program_id = None
    job.processing_status = ProcessingStatus.SKIPPED.value
    job.processing_error = reason[:MAX_ERROR_CHARS]
    job.processed_at = _now()


def fail_job(job: ScrapeJob, error: str) -> None:
    job.processing_status = ProcessingStatus.FAILED.value
    job.processing_attempts = (job.processing_attempts or 0) + 1
    job.processing_error = error[:MAX_ERROR_CHARS]
    job.processed_at = _now()


def requeue_job(job: ScrapeJob, max_attempts: int = 3, force: bool = False) -> bool:
    """FAILED -> PENDING while attempts remain (or when forced).

    Raises IllegalTransitionError for any other current status.
    """
    if job.scraping_status == ScrapingStatus.SCRAPING_FAILED.value:
        raise IllegalTransitionError(job.scraping_status, ProcessingStatus.PENDING)
    if job.processing_status != ProcessingStatus.FAILED.value:
        raise IllegalTransitionError(job.processing_status, ProcessingStatus.PENDING)
    if not force and (job.processing_attempts or 0) >= max_attempts:
        return False

    job.processing_status = ProcessingStatus.PENDING.value
    job.processing_worker = None
    job.processing_started_at = None
    job.processing_heartbeat_at = None
    return True


def requeue_failed_jobs(db: Session, max_attempts: int = 3, limit: int = 500) -> int:
    """Automatic retry: move failed jobs with attempts left back to PENDING."""
    jobs = db.query(ScrapeJob).filter(
        ScrapeJob.scraping_status == ScrapingStatus.SCRAPED.value,
        ScrapeJob.processing_status == ProcessingStatus.FAILED.value,
        ScrapeJob.processing_attempts < max_attempts,
    ).order_by(ScrapeJob.processed_at.asc()).limit(limit).all()

    requeued = sum(1 for job in jobs if requeue_job(job, max_attempts))
    db.commit()
    if requeued:
        logger.info(f"Requeued {requeued} failed jobs")
    return requeued
