"""Pydantic schemas for SourceAgency and DiscoveryRun models."""

from datetime import date, datetime
from uuid import UUID

from pydantic import BaseModel, ConfigDict


class DiscoveryRunRead(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: UUID
    agency_id: UUID
    started_at: datetime
    finished_at: datetime | None = None
    status: str
    date_from: date | None = None
    date_to: date | None = None
    jobs_found: int = 0
    jobs_new: int = 0
    jobs_failed: int = 0
    error_message: str | None = None


class SourceAgencyRead(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: UUID
    code: str
    name: str
    platform: str
    base_url: str
    listing_path: str = ""
    is_active: bool
    last_scraped_at: datetime | None = None
    last_success_at: datetime | None = None
    last_job_count: int | None = 0
    consecutive_failures: int | None = 0


class SourceAgencyWithRuns(SourceAgencyRead):
    recent_runs: list[DiscoveryRunRead] = []
