"""Scrape job API endpoints — the job-store admin surface."""

from datetime import date
from uuid import UUID

from fastapi import APIRouter, Depends, HTTPException, Query
from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from fundingpipe.config import get_settings
from fundingpipe.models.base import get_db
from fundingpipe.models.scrape_job import IllegalTransitionError, ProcessingStatus, ScrapeJob, ScrapingStatus
from fundingpipe.schemas.scrape_job import JobResetRequest, QueueStats, ScrapeJobRead, ScrapeJobSummary
from fundingpipe.services import job_state
from fundingpipe.services.diagnostics import queue_status

router = APIRouter(prefix="/jobs", tags=["jobs"])


@router.get("", response_model=list[ScrapeJobSummary])
async def list_jobs(
    db: AsyncSession = Depends(get_db),
    skip: int = Query(0, ge=0),
    limit: int = Query(50, ge=1, le=200),
    processing_status: ProcessingStatus | None = Query(None, description="Filter by processing status"),
    scraping_status: ScrapingStatus | None = Query(None, description="Filter by scraping status"),
    agency_code: str | None = Query(None, description="Filter by agency"),
    date_range: str | None = Query(None, description="Discovery date range, e.g. '2025-01-01 to 2025-01-10'"),
    posted_from: date | None = Query(None, description="Listing posted on or after"),
    posted_to: date | None = Query(None, description="Listing posted on or before"),
):
    """List jobs with filters, oldest first."""
    query = select(ScrapeJob)

    if processing_status:
        query = query.where(ScrapeJob.processing_status == processing_status.value)
    if scraping_status:
        query = query.where(ScrapeJob.scraping_status == scraping_status.value)
    if agency_code:
        query = query.where(ScrapeJob.agency_code == agency_code)
    if date_range:
        query = query.where(ScrapeJob.date_range == date_range)
    if posted_from:
        query = query.where(ScrapeJob.listing_posted_at >= posted_from)
    if posted_to:
        query = query.where(ScrapeJob.listing_posted_at <= posted_to)

    query = query.order_by(ScrapeJob.created_at.asc()).offset(skip).limit(limit)
    result = await db.execute(query)
    return result.scalars().all()


@router.get("/stats", response_model=QueueStats)
async def get_queue_stats(db: AsyncSession = Depends(get_db)):
    """Job counts per status pair, stale leases and exhausted failures."""
    settings = get_settings()
    return await db.run_sync(
        lambda session: queue_status(
            session,
            lease_seconds=settings.processing_lease_seconds,
            max_attempts=settings.max_processing_attempts,
        )
    )


@router.get("/by-identity/{identity_key}", response_model=ScrapeJobRead)
async def get_job_by_identity(identity_key: str, db: AsyncSession = Depends(get_db)):
    result = await db.execute(select(ScrapeJob).where(ScrapeJob.identity_key == identity_key))
    job = result.scalar_one_or_none()
    if not job:
        raise HTTPException(status_code=404, detail="Job not found")
    return job


@router.get("/{job_id}", response_model=ScrapeJobRead)
async def get_job(job_id: UUID, db: AsyncSession = Depends(get_db)):
    job = await db.get(ScrapeJob, job_id)
    if not job:
        raise HTTPException(status_code=404, detail="Job not found")
    return job


@router.post("/{job_id}/reset", response_model=ScrapeJobRead)
async def reset_job(
    job_id: UUID,
    body: JobResetRequest | None = None,
    db: AsyncSession = Depends(get_db),
):
    """Put a FAILED job back to PENDING regardless of its attempt count.

    Any other status has no legal edge to PENDING and returns 409.
    """
    job = await db.get(ScrapeJob, job_id)
    if not job:
        raise HTTPException(status_code=404, detail="Job not found")

    try:
        job_state.requeue_job(job, force=True)
    except IllegalTransitionError as e:
        raise HTTPException(status_code=409, detail=str(e))

    if body and body.reset_attempts:
        job.processing_attempts = 0
    await db.commit()
    await db.refresh(job)
    return job
