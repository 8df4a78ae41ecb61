"""Processing worker loop — claim, process, repeat until idle or stopped."""

import logging
import os
import signal
import socket
import time
import uuid
from dataclasses import dataclass, field

from sqlalchemy.orm import Session, sessionmaker

from fundingpipe.config import Settings, get_settings
from fundingpipe.extraction.engine import TextExtractionEngine, build_default_engine
from fundingpipe.fields.extractor import StructuredFieldExtractor, build_field_extractor
from fundingpipe.models.scrape_job import ProcessingStatus, ScrapeJob, ScrapingStatus
from fundingpipe.services import job_state
from fundingpipe.services.processor import JobProcessor

logger = logging.getLogger(__name__)


def default_worker_id() -> str:
    return f"worker-{socket.gethostname()}-{os.getpid()}"


@dataclass
class WorkerStats:
    processed: int = 0
    completed: int = 0
    skipped: int = 0
    failed: int = 0
    started_at: float = field(default_factory=time.monotonic)

    def record(self, status: ProcessingStatus) -> None:
        self.processed += 1
        if status == ProcessingStatus.COMPLETED:
            self.completed += 1
        elif status == ProcessingStatus.SKIPPED:
            self.skipped += 1
        elif status == ProcessingStatus.FAILED:
            self.failed += 1

    def as_dict(self) -> dict:
        return {
            "processed": self.processed,
            "completed": self.completed,
            "skipped": self.skipped,
            "failed": self.failed,
            "elapsed_seconds": round(time.monotonic() - self.started_at, 1),
        }


class Worker:
    """Claims jobs one at a time until ``max_jobs`` or ``max_idle_polls`` is hit.

    SIGTERM/SIGINT finish the current job and then stop.
    """

    def __init__(
        self,
        session_factory: sessionmaker,
        engine: TextExtractionEngine | None = None,
        extractor: StructuredFieldExtractor | None = None,
        settings: Settings | None = None,
        worker_id: str | None = None,
        max_jobs: int | None = None,
        poll_interval: float | None = None,
        max_idle_polls: int | None = None,
        date_range: str | None = None,
        job_ids: list | None = None,
        dry_run: bool = False,
        sleep=time.sleep,
    ):
        self.settings = settings or get_settings()
        self.session_factory = session_factory
        self.engine = engine or build_default_engine(self.settings)
        self.extractor = extractor or build_field_extractor(self.settings)
        self.worker_id = worker_id or default_worker_id()
        self.max_jobs = max_jobs
        self.poll_interval = self.settings.worker_poll_interval if poll_interval is None else poll_interval
        self.max_idle_polls = self.settings.worker_max_idle_polls if max_idle_polls is None else max_idle_polls
        self.date_range = date_range
        self.job_ids = [uuid.UUID(str(j)) for j in job_ids] if job_ids else None
        self.dry_run = dry_run
        self.sleep = sleep
        self.stats = WorkerStats()
        self._stop_requested = False

    def install_signal_handlers(self) -> None:
        signal.signal(signal.SIGTERM, self._handle_signal)
        signal.signal(signal.SIGINT, self._handle_signal)

    def _handle_signal(self, signum, frame):
        logger.info(f"[{self.worker_id}] Received signal {signum}; stopping after current job")
        self._stop_requested = True

    def request_stop(self) -> None:
        self._stop_requested = True

    def run(self) -> dict:
        logger.info(f"[{self.worker_id}] Starting (max_jobs={self.max_jobs}, dry_run={self.dry_run})")
        idle_polls = 0
        dry_run_seen: set = set()

        while not self._stop_requested:
            if self.max_jobs is not None and self.stats.processed >= self.max_jobs:
                break

            db = self.session_factory()
            try:
                if self.dry_run:
                    job = self._next_unclaimed(db, dry_run_seen)
                else:
                    job = job_state.claim_next_job(
                        db, self.worker_id,
                        date_range=self.date_range,
                        job_ids=self.job_ids,
                        max_attempts=self.settings.max_processing_attempts,
                        lease_seconds=self.settings.processing_lease_seconds,
                    )

                if job is None:
                    idle_polls += 1
                    if idle_polls >= self.max_idle_polls:
                        logger.info(f"[{self.worker_id}] No work after {idle_polls} polls; exiting")
                        break
                    self.sleep(self.poll_interval)
                    continue

                idle_polls = 0
                processor = JobProcessor(
                    db, self.engine,
                    extractor=self.extractor,
                    worker_id=self.worker_id,
                    attachment_root=self.settings.attachment_dir,
                    dry_run=self.dry_run,
                )
                outcome = processor.process(job)
                self.stats.record(outcome.status)
            finally:
                db.close()

        return self.stats.as_dict()

    def _next_unclaimed(self, db: Session, seen: set) -> ScrapeJob | None:
        """Dry-run selection: the oldest pending job not yet looked at."""
        query = db.query(ScrapeJob).filter(
            ScrapeJob.scraping_status == ScrapingStatus.SCRAPED.value,
            ScrapeJob.processing_status == ProcessingStatus.PENDING.value,
        )
        if self.date_range:
            query = query.filter(ScrapeJob.date_range == self.date_range)
        if self.job_ids:
            query = query.filter(ScrapeJob.id.in_(self.job_ids))
        if seen:
            query = query.filter(ScrapeJob.id.notin_(seen))
        job = query.order_by(ScrapeJob.created_at.asc()).first()
        if job is not None:
            seen.add(job.id)
        return job


def print_stats_banner(worker_id: str, stats: dict) -> None:
    print()
    print("=" * 60)
    print(f"Worker {worker_id} finished")
    print("=" * 60)
    print(f"  Processed: {stats['processed']}")
    print(f"  Completed: {stats['completed']}")
    print(f"  Skipped:   {stats['skipped']}")
    print(f"  Failed:    {stats['failed']}")
    print(f"  Elapsed:   {stats['elapsed_seconds']}s")
