"""Pydantic schemas for ScrapeJob model."""

from datetime import date, datetime
from uuid import UUID

from pydantic import BaseModel, ConfigDict

from fundingpipe.models.scrape_job import JobState


class ScrapeJobSummary(BaseModel):
    """Minimal job info for list views."""

    model_config = ConfigDict(from_attributes=True)

    id: UUID
    identity_key: str
    agency_code: str
    title: str
    announcement_url: str
    listing_posted_at: date | None = None
    listing_deadline: date | None = None
    scraping_status: str
    processing_status: str
    processing_attempts: int = 0
    created_at: datetime


class ScrapeJobRead(ScrapeJobSummary):
    """Full job output, without the stored detail-page HTML."""

    source_announcement_id: str | None = None
    ministry: str | None = None
    announcing_agency: str | None = None
    attachment_folder: str | None = None
    attachment_filenames: list[str] = []
    attachment_count: int = 0
    date_range: str | None = None
    page_number: int | None = None
    scraping_error: str | None = None
    scraped_at: datetime | None = None
    processing_error: str | None = None
    processing_worker: str | None = None
    processing_started_at: datetime | None = None
    processed_at: datetime | None = None
    funding_program_id: UUID | None = None
    state: JobState


class JobResetRequest(BaseModel):
    reset_attempts: bool = False


class QueueStats(BaseModel):
    total: int
    by_status: dict[str, int]
    stale_leases: int
    attempts_exhausted: int
