"""Job processor — turns one claimed scrape job into a structured program."""

import logging
from dataclasses import dataclass
from datetime import date
from pathlib import Path

from bs4 import BeautifulSoup
from sqlalchemy.orm import Session

from fundingpipe.extraction.base import AttachmentText, normalize_text
from fundingpipe.extraction.engine import TextExtractionEngine
from fundingpipe.fields.classification import AnnouncementType, classify_announcement
from fundingpipe.fields.extractor import (
    LISTING_METADATA, ExtractedFields, ListingMetadata, StructuredFieldExtractor, TextPortion,
)
from fundingpipe.models.extraction_log import ExtractionLog
from fundingpipe.models.scrape_job import ProcessingStatus, ScrapeJob
from fundingpipe.services import job_state
from fundingpipe.services.dedup import upsert_program

logger = logging.getLogger(__name__)


@dataclass
class ProcessingOutcome:
    job_id: str
    status: ProcessingStatus
    program_id: str | None = None
    created: bool = False
    error: str | None = None
    fields: ExtractedFields | None = None
    attachments: list[AttachmentText] | None = None


def html_to_text(raw_html: str | None) -> str:
    """Visible text of a detail page."""
    if not raw_html:
        return ""
    soup = BeautifulSoup(raw_html, "lxml")
    for tag in soup(["script", "style", "noscript"]):
        tag.decompose()
    return normalize_text(soup.get_text("\n", strip=True))


class JobProcessor:
    """Classify, extract, upsert and log one job.

    In dry-run mode everything is computed and nothing is written; the job is
    expected to be read without claiming it.
    """

    def __init__(
        self,
        db: Session,
        engine: TextExtractionEngine,
        extractor: StructuredFieldExtractor | None = None,
        worker_id: str = "worker",
        attachment_root: str | Path | None = None,
        dry_run: bool = False,
        today: date | None = None,
    ):
        self.db = db
        self.engine = engine
        self.extractor = extractor or StructuredFieldExtractor(today=today)
        self.worker_id = worker_id
        self.attachment_root = Path(attachment_root) if attachment_root else None
        self.dry_run = dry_run
        self.today = today

    def process(self, job: ScrapeJob) -> ProcessingOutcome:
        job_id = job.id
        try:
            return self._process(job)
        except job_state.LeaseLostError as e:
            self.db.rollback()
            logger.warning(f"[{self.worker_id}] {e}; dropping results")
            return ProcessingOutcome(str(job_id), ProcessingStatus.PROCESSING, error=str(e))
        except Exception as e:
            self.db.rollback()
            error = f"{type(e).__name__}: {e}"
            logger.error(f"[{self.worker_id}] Job {job_id} failed: {error}")
            if not self.dry_run:
                job = self.db.get(ScrapeJob, job_id)
                try:
                    job_state.ensure_owner(self.db, job, self.worker_id)
                except job_state.LeaseLostError as lost:
                    self.db.rollback()
                    logger.warning(f"[{self.worker_id}] {lost}; not recording failure")
                    return ProcessingOutcome(str(job_id), ProcessingStatus.PROCESSING, error=error)
                job_state.fail_job(job, error)
                self.db.commit()
            return ProcessingOutcome(str(job_id), ProcessingStatus.FAILED, error=error)

    def _process(self, job: ScrapeJob) -> ProcessingOutcome:
        metadata = ListingMetadata(
            title=job.title,
            ministry=job.ministry,
            announcing_agency=job.announcing_agency,
            description=job.description or None,
            deadline=job.listing_deadline,
            posted_at=job.listing_posted_at,
            url=job.announcement_url,
            agency_code=job.agency_code,
        )

        announcement_type = classify_announcement(
            job.title, job.description, job.announcement_url, job.agency_code,
        )
        if announcement_type != AnnouncementType.R_D_PROJECT:
            reason = f"Non-R&D announcement type: {announcement_type.value}"
            logger.info(f"[{self.worker_id}] Skipping {job.id}: {reason}")
            if not self.dry_run:
                job_state.ensure_owner(self.db, job, self.worker_id)
                job_state.skip_job(job, reason)
                self.db.commit()
            return ProcessingOutcome(str(job.id), ProcessingStatus.SKIPPED, error=reason)

        attachments = self.engine.extract_all(
            self.attachment_paths(job),
            after_each=None if self.dry_run else (lambda _: self._keep_lease(job)),
        )

        portions = []
        if job.description:
            portions.append(TextPortion(normalize_text(job.description), LISTING_METADATA, "description"))
        portions.extend(TextPortion.from_attachment(a) for a in attachments)
        page_text = html_to_text(job.raw_html)
        if page_text:
            portions.append(TextPortion(page_text, LISTING_METADATA, "detail-page"))

        extracted_any = any(a.succeeded for a in attachments)
        has_other_text = bool(job.description or page_text)
        if attachments and not extracted_any and not has_other_text:
            failures = ", ".join(f"{a.filename} ({a.error_summary})" for a in attachments)
            error = f"All attachments failed extraction: {failures}"
            if not self.dry_run:
                job_state.ensure_owner(self.db, job, self.worker_id)
                job_state.fail_job(job, error)
                self.db.commit()
            logger.error(f"[{self.worker_id}] Job {job.id}: {error}")
            return ProcessingOutcome(str(job.id), ProcessingStatus.FAILED, error=error, attachments=attachments)

        failed = [a for a in attachments if not a.succeeded]
        note = None
        if failed:
            note = "Attachments failed extraction: " + ", ".join(f"{a.filename} ({a.error_summary})" for a in failed)
            logger.warning(f"[{self.worker_id}] Job {job.id}: {note}")

        fields = self.extractor.extract(portions, metadata)
        values = fields.program_values()
        values.update(
            agency_code=job.agency_code,
            announcement_url=job.announcement_url,
            requires_manual_review=not extracted_any,
            status="EXPIRED" if fields.deadline and fields.deadline < (self.today or date.today()) else "ACTIVE",
        )

        if self.dry_run:
            logger.info(f"[DRY RUN] Job {job.id}: budget={fields.budget_amount} deadline={fields.deadline} "
                        f"trl={fields.min_trl}-{fields.max_trl} tags={fields.industry_tags}")
            return ProcessingOutcome(
                str(job.id), ProcessingStatus.COMPLETED, fields=fields, attachments=attachments,
            )

        program, created = upsert_program(self.db, values)
        for entry in fields.logs:
            self.db.add(ExtractionLog(
                scrape_job_id=job.id,
                funding_program_id=program.id,
                field_name=entry.field_name,
                data_source=entry.data_source,
                confidence=entry.confidence,
                extracted_value=entry.value,
                pattern_id=entry.pattern_id,
                sources_attempted=entry.sources_attempted,
            ))

        job_state.ensure_owner(self.db, job, self.worker_id)
        job_state.complete_job(job, program, note=note)
        self.db.commit()

        logger.info(f"[{self.worker_id}] Completed {job.id} -> program {program.id} ({'new' if created else 'existing'})")
        return ProcessingOutcome(
            str(job.id), ProcessingStatus.COMPLETED, program_id=str(program.id), created=created,
            fields=fields, attachments=attachments,
        )

    def _keep_lease(self, job: ScrapeJob) -> None:
        # Slow OCR runs must not let the lease expire
        job_state.ensure_owner(self.db, job, self.worker_id)
        self.db.commit()

    def attachment_paths(self, job: ScrapeJob) -> list[Path]:
        if not job.attachment_folder or not job.attachment_filenames:
            return []
        folder = Path(job.attachment_folder)
        if not folder.is_absolute() and self.attachment_root:
            folder = self.attachment_root / folder
        return [folder / name for name in job.attachment_filenames]
