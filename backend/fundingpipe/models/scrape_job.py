"""Scrape job model — one discovered announcement and its processing state."""

import enum

from sqlalchemy import (
    CheckConstraint, Column, Date, DateTime, ForeignKey, Index, Integer, String, Text, Uuid,
)
from sqlalchemy.orm import relationship, validates

from fundingpipe.models.base import Base, JSONType, TimestampMixin, UUIDMixin


class ScrapingStatus(str, enum.Enum):
    SCRAPED = "SCRAPED"
    SCRAPING_FAILED = "SCRAPING_FAILED"


class ProcessingStatus(str, enum.Enum):
    PENDING = "PENDING"
    PROCESSING = "PROCESSING"
    COMPLETED = "COMPLETED"
    FAILED = "FAILED"
    SKIPPED = "SKIPPED"


class JobState(str, enum.Enum):
    """Single view over scraping_status + processing_status."""

    DISCOVERY_FAILED = "DISCOVERY_FAILED"
    PENDING = "PENDING"
    PROCESSING = "PROCESSING"
    COMPLETED = "COMPLETED"
    FAILED = "FAILED"
    SKIPPED = "SKIPPED"


LEGAL_TRANSITIONS: dict[ProcessingStatus | None, frozenset[ProcessingStatus]] = {
    None: frozenset({ProcessingStatus.PENDING}),
    ProcessingStatus.PENDING: frozenset({ProcessingStatus.PROCESSING}),
    ProcessingStatus.PROCESSING: frozenset({
        ProcessingStatus.COMPLETED,
        ProcessingStatus.FAILED,
        ProcessingStatus.SKIPPED,
    }),
    ProcessingStatus.FAILED: frozenset({ProcessingStatus.PENDING}),
    ProcessingStatus.COMPLETED: frozenset(),
    ProcessingStatus.SKIPPED: frozenset(),
}


class IllegalTransitionError(ValueError):
    """Raised when a job is moved between two states with no legal edge."""

    def __init__(self, current, target):
        self.current = current
        self.target = target
        super().__init__(f"Illegal processing transition: {current} -> {target}")


def check_transition(current: str | None, target: str) -> ProcessingStatus:
    target_status = ProcessingStatus(target)
    current_status = ProcessingStatus(current) if current is not None else None
    if current_status == target_status:
        return target_status
    if target_status not in LEGAL_TRANSITIONS[current_status]:
        raise IllegalTransitionError(current_status, target_status)
    return target_status


class ScrapeJob(UUIDMixin, TimestampMixin, Base):
    __tablename__ = "scrape_jobs"

    # Identity (sha256 of announcement URL)
    identity_key = Column(String(64), unique=True, nullable=False, index=True)
    announcement_url = Column(Text, nullable=False)
    source_announcement_id = Column(String(100))

    # Listing metadata
    agency_code = Column(String(50), nullable=False, index=True)
    title = Column(Text, nullable=False)
    ministry = Column(String(255))
    announcing_agency = Column(String(255))
    listing_posted_at = Column(Date, index=True)
    listing_deadline = Column(Date)
    detail_page_data = Column(JSONType, default=dict)  # description, raw_html, attachment_urls, dates

    # Attachments
    attachment_folder = Column(Text)
    attachment_filenames = Column(JSONType, default=list)
    attachment_count = Column(Integer, default=0, nullable=False)

    # Discovery context
    date_range = Column(String(50))
    page_number = Column(Integer)
    scraping_status = Column(String(20), nullable=False, default=ScrapingStatus.SCRAPED.value)
    scraping_error = Column(Text)
    scraped_at = Column(DateTime(timezone=True))

    # Processing state
    processing_status = Column(String(20), nullable=False, default=ProcessingStatus.PENDING.value, index=True)
    processing_attempts = Column(Integer, default=0, nullable=False)
    processing_error = Column(Text)
    processing_worker = Column(String(255))
    processing_started_at = Column(DateTime(timezone=True))
    processing_heartbeat_at = Column(DateTime(timezone=True))
    processed_at = Column(DateTime(timezone=True))

    funding_program_id = Column(Uuid(as_uuid=True), ForeignKey("structured_programs.id"), index=True)

    program = relationship("StructuredProgram", back_populates="scrape_jobs")
    extraction_logs = relationship("ExtractionLog", back_populates="scrape_job")

    __table_args__ = (
        Index("idx_job_claim", "scraping_status", "processing_status", "created_at"),
        Index("idx_job_agency_posted", "agency_code", "listing_posted_at"),
        CheckConstraint(
            "processing_status != 'PROCESSING' "
            "OR (processing_worker IS NOT NULL AND processing_started_at IS NOT NULL)",
            name="ck_job_processing_has_owner",
        ),
        CheckConstraint(
            "processing_status != 'COMPLETED' OR funding_program_id IS NOT NULL",
            name="ck_job_completed_has_program",
        ),
        CheckConstraint(
            "processing_status != 'SKIPPED' OR funding_program_id IS NULL",
            name="ck_job_skipped_has_no_program",
        ),
    )

    @validates("processing_status")
    def _validate_processing_status(self, key, value):
        return check_transition(self.processing_status, value).value

    @validates("scraping_status")
    def _validate_scraping_status(self, key, value):
        return ScrapingStatus(value).value

    @property
    def state(self) -> JobState:
        if self.scraping_status == ScrapingStatus.SCRAPING_FAILED.value:
            return JobState.DISCOVERY_FAILED
        return JobState(self.processing_status or ProcessingStatus.PENDING.value)

    @property
    def description(self) -> str:
        return (self.detail_page_data or {}).get("description") or ""

    @property
    def raw_html(self) -> str:
        return (self.detail_page_data or {}).get("raw_html") or ""
