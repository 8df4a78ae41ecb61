#!/usr/bin/env python3
"""Run one processing worker until the queue is idle or it is stopped.

Start several in parallel to process faster; each job is claimed by exactly
one worker.

Usage:
    python scripts/run_worker.py
    python scripts/run_worker.py --max-jobs 50 --worker-id worker-1
    python scripts/run_worker.py --date-range "2025-01-01 to 2025-01-10"
    python scripts/run_worker.py --job-ids <uuid>,<uuid> --dry-run
"""

import argparse
import logging
import sys
from pathlib import Path

# Add backend to path for imports
script_dir = Path(__file__).resolve().parent
backend_dir = script_dir.parent / "backend"
if backend_dir.exists():
    sys.path.insert(0, str(backend_dir))
else:
    sys.path.insert(0, str(script_dir.parent))

from fundingpipe.config import get_settings
from fundingpipe.models.base import get_session_factory
from fundingpipe.services.worker import Worker, print_stats_banner

logging.basicConfig(level=logging.INFO, format="%(asctime)s %(levelname)s %(message)s")
logger = logging.getLogger(__name__)


def main(args) -> int:
    settings = get_settings()
    job_ids = [j.strip() for j in args.job_ids.split(",") if j.strip()] if args.job_ids else None

    worker = Worker(
        get_session_factory(),
        settings=settings,
        worker_id=args.worker_id,
        max_jobs=args.max_jobs,
        poll_interval=args.poll_interval,
        max_idle_polls=args.max_idle_polls,
        date_range=args.date_range,
        job_ids=job_ids,
        dry_run=args.dry_run,
    )
    worker.install_signal_handlers()

    print("=" * 60)
    print(f"Worker {worker.worker_id}")
    if args.date_range:
        print(f"Date range: {args.date_range}")
    if job_ids:
        print(f"Job ids:    {len(job_ids)}")
    if args.dry_run:
        print("DRY RUN: nothing will be written")
    print("=" * 60)

    stats = worker.run()
    print_stats_banner(worker.worker_id, stats)
    return 0


if __name__ == "__main__":
    parser = argparse.ArgumentParser(description="Process pending scrape jobs")
    parser.add_argument("--worker-id", help="Defaults to worker-<hostname>-<pid>")
    parser.add_argument("--max-jobs", type=int, help="Stop after this many jobs")
    parser.add_argument("--poll-interval", type=float, help="Seconds between polls when idle")
    parser.add_argument("--max-idle-polls", type=int, help="Exit after this many empty polls")
    parser.add_argument("--date-range", help="Only jobs discovered for this range")
    parser.add_argument("--job-ids", help="Comma-separated job ids")
    parser.add_argument("--dry-run", action="store_true", help="Extract and log without writing")
    args = parser.parse_args()

    try:
        sys.exit(main(args))
    except Exception:
        logger.exception("Worker failed")
        sys.exit(1)
