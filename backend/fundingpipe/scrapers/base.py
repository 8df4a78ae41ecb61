"""Base discovery scraper abstract class."""

import hashlib
import logging
import uuid
from abc import ABC, abstractmethod
from datetime import date, datetime, timezone
from pathlib import Path
from typing import Any

from sqlalchemy.exc import IntegrityError

from fundingpipe.config import Settings, get_settings
from fundingpipe.models.scrape_job import ProcessingStatus, ScrapeJob, ScrapingStatus
from fundingpipe.models.source_agency import SourceAgency
from fundingpipe.scrapers.attachments import download_attachments

logger = logging.getLogger(__name__)


class BaseDiscoveryScraper(ABC):
    """Abstract base class for all agency discovery scrapers.

    Subclasses must implement:
        scrape() -> list[dict]  — walk the agency listing for the date range
        normalize(raw) -> dict  — convert one raw row to ScrapeJob columns

    A raw row that could not be fully scraped carries an ``error`` key and is
    stored as a ``SCRAPING_FAILED`` job.
    """

    def __init__(
        self,
        agency: SourceAgency,
        db,
        date_from: date,
        date_to: date,
        max_pages: int | None = None,
        run_id: uuid.UUID | None = None,
        settings: Settings | None = None,
        dry_run: bool = False,
    ):
        self.agency = agency
        self.db = db
        self.platform = agency.platform
        self.date_from = date_from
        self.date_to = date_to
        self.max_pages = max_pages
        self.run_id = run_id
        self.settings = settings or get_settings()
        self.dry_run = dry_run
        self.config = agency.config_json or {}
        # Filled by scrape() so attachments download inside the browser session
        self.cookies: dict[str, str] = {}

    @property
    def date_range(self) -> str:
        return f"{self.date_from.isoformat()} to {self.date_to.isoformat()}"

    @property
    def date_range_folder(self) -> str:
        return f"{self.date_from:%Y%m%d}_to_{self.date_to:%Y%m%d}"

    @abstractmethod
    def scrape(self) -> list[dict]:
        """Fetch raw announcement rows from the agency site."""
        ...

    @abstractmethod
    def normalize(self, raw: dict) -> dict:
        """Normalize a raw row to ScrapeJob fields.

        Must return a dict with at least:
            - title (str)
            - announcement_url (str)

        Optional fields:
            - source_announcement_id, ministry, announcing_agency
            - listing_posted_at, listing_deadline (date)
            - page_number, attachment_urls, detail_page_data (dict)
            - scraping_error (str)
        """
        ...

    def is_known(self, url: str) -> bool:
        """Whether a job for this URL exists; lets scrape() skip detail fetches."""
        key = self._hash_url(url)
        return self.db.query(ScrapeJob.id).filter(ScrapeJob.identity_key == key).first() is not None

    def run(self) -> dict[str, Any]:
        """Execute the discovery cycle: fetch, normalize, insert-or-ignore."""
        raw_listings = self.scrape()
        logger.info(f"[{self.agency.code}] Fetched {len(raw_listings)} announcements for {self.date_range}")

        jobs_found = len(raw_listings)
        jobs_new = 0
        jobs_failed = 0

        for raw in raw_listings:
            try:
                normalized = self.normalize(raw)
            except Exception as e:
                logger.warning(f"[{self.agency.code}] Failed to normalize row {raw.get('url')}: {e}")
                if raw.get("url"):
                    self._save_failed_job(raw, f"{type(e).__name__}: {e}")
                jobs_failed += 1
                continue

            try:
                result = self._save_job(normalized)
            except Exception as e:
                self.db.rollback()
                logger.warning(f"[{self.agency.code}] Failed to save {normalized['announcement_url']}: {e}")
                self._save_failed_job(raw, f"{type(e).__name__}: {e}")
                jobs_failed += 1
                continue

            if result == "new":
                jobs_new += 1
            elif result == "failed":
                jobs_failed += 1

        return {"jobs_found": jobs_found, "jobs_new": jobs_new, "jobs_failed": jobs_failed}

    def attachment_folder(self, page_number: int | None, announcement_id: str) -> Path:
        return (
            Path(self.settings.attachment_dir)
            / self.agency.code
            / self.date_range_folder
            / f"page-{page_number or 1}"
            / f"announcement-{announcement_id}"
        )

    def _save_job(self, data: dict) -> str:
        """Insert a job unless its identity key exists. Returns 'new', 'failed' or 'existing'."""
        identity_key = self._hash_url(data["announcement_url"])
        if self.db.query(ScrapeJob.id).filter(ScrapeJob.identity_key == identity_key).first():
            return "existing"

        if self.dry_run:
            logger.info(f"[DRY RUN] [{self.agency.code}] Would add: {data['title'][:60]}")
            return "failed" if data.get("scraping_error") else "new"

        if data.get("scraping_error"):
            job = self._build_job(data, identity_key)
            job.scraping_status = ScrapingStatus.SCRAPING_FAILED.value
            job.scraping_error = data["scraping_error"][:2000]
            return "failed" if self._insert(job) else "existing"

        filenames, download_errors = [], []
        folder = None
        if data.get("attachment_urls"):
            folder = self.attachment_folder(
                data.get("page_number"), data.get("source_announcement_id") or identity_key[:12],
            )
            filenames, download_errors = download_attachments(
                data["attachment_urls"], folder, cookies=self.cookies, referer=data["announcement_url"],
            )

        job = self._build_job(data, identity_key)
        job.attachment_folder = str(folder) if folder else None
        job.attachment_filenames = filenames
        job.attachment_count = len(filenames)
        if download_errors:
            # Still SCRAPED: the remaining attachments and listing text are usable
            job.scraping_error = ("Attachment download failed: " + "; ".join(download_errors))[:2000]
        return "new" if self._insert(job) else "existing"

    def _save_failed_job(self, raw: dict, error: str) -> None:
        if self.dry_run:
            return
        identity_key = self._hash_url(raw["url"])
        if self.db.query(ScrapeJob.id).filter(ScrapeJob.identity_key == identity_key).first():
            return
        job = ScrapeJob(
            identity_key=identity_key,
            announcement_url=raw["url"],
            agency_code=self.agency.code,
            title=(raw.get("title") or raw["url"])[:1000],
            date_range=self.date_range,
            page_number=raw.get("page_number"),
            detail_page_data={},
            attachment_filenames=[],
            scraping_status=ScrapingStatus.SCRAPING_FAILED.value,
            scraping_error=error[:2000],
            scraped_at=datetime.now(timezone.utc),
            processing_status=ProcessingStatus.PENDING.value,
        )
        self._insert(job)

    def _build_job(self, data: dict, identity_key: str) -> ScrapeJob:
        return ScrapeJob(
            identity_key=identity_key,
            announcement_url=data["announcement_url"],
            source_announcement_id=data.get("source_announcement_id"),
            agency_code=self.agency.code,
            title=data["title"],
            ministry=data.get("ministry"),
            announcing_agency=data.get("announcing_agency"),
            listing_posted_at=data.get("listing_posted_at"),
            listing_deadline=data.get("listing_deadline"),
            detail_page_data=data.get("detail_page_data") or {},
            attachment_filenames=[],
            date_range=self.date_range,
            page_number=data.get("page_number"),
            scraping_status=ScrapingStatus.SCRAPED.value,
            scraped_at=datetime.now(timezone.utc),
            processing_status=ProcessingStatus.PENDING.value,
        )

    def _insert(self, job: ScrapeJob) -> bool:
        """Add under a savepoint; a concurrent insert of the same key is ignored."""
        try:
            with self.db.begin_nested():
                self.db.add(job)
                self.db.flush()
            self.db.commit()
            return True
        except IntegrityError:
            self.db.rollback()
            logger.debug(f"[{self.agency.code}] Job {job.identity_key[:12]} inserted concurrently; ignoring")
            return False

    @staticmethod
    def _hash_url(url: str) -> str:
        return hashlib.sha256(url.encode()).hexdigest()
