#!/usr/bin/env python3
"""Run discovery for one agency or all active agencies.

Usage:
    python scripts/run_discovery.py --agency ntis --from 2025-01-01 --to 2025-01-10
    python scripts/run_discovery.py --all --max-pages 5
    python scripts/run_discovery.py --agency ntis --dry-run
"""

import argparse
import logging
import sys
from datetime import date
from pathlib import Path

# Add backend to path for imports
# In Docker: script is at /app/scripts/, backend code is at /app/
# Locally: script is at scripts/, backend code is at backend/
script_dir = Path(__file__).resolve().parent
backend_dir = script_dir.parent / "backend"
if backend_dir.exists():
    sys.path.insert(0, str(backend_dir))
else:
    sys.path.insert(0, str(script_dir.parent))

from fundingpipe.config import get_settings
from fundingpipe.models.base import get_session_factory
from fundingpipe.models.source_agency import SourceAgency
from fundingpipe.services.discovery import default_date_range, run_agency_discovery

logging.basicConfig(level=logging.INFO, format="%(asctime)s %(levelname)s %(message)s")
logger = logging.getLogger(__name__)


def main(args) -> int:
    settings = get_settings()
    default_from, default_to = default_date_range(settings)
    date_from = date.fromisoformat(args.date_from) if args.date_from else default_from
    date_to = date.fromisoformat(args.date_to) if args.date_to else default_to

    db = get_session_factory()()
    try:
        query = db.query(SourceAgency)
        if args.agency:
            query = query.filter(SourceAgency.code == args.agency)
        else:
            query = query.filter(SourceAgency.is_active == True)  # noqa: E712
        agencies = query.order_by(SourceAgency.code).all()

        if not agencies:
            print(f"No agencies found{' for ' + args.agency if args.agency else ''}. Run seed_agencies.py first.")
            return 1

        print("=" * 60)
        print(f"Discovery: {date_from} -> {date_to}")
        print(f"Agencies:  {', '.join(a.code for a in agencies)}")
        if args.max_pages:
            print(f"Max pages: {args.max_pages}")
        if args.dry_run:
            print("DRY RUN: nothing will be written")
        print("=" * 60)

        runs = []
        for agency in agencies:
            run = run_agency_discovery(
                db, agency, date_from, date_to,
                max_pages=args.max_pages, settings=settings, dry_run=args.dry_run,
            )
            runs.append((agency.code, run))

        print()
        print("=" * 60)
        print("Discovery complete")
        print("=" * 60)
        for code, run in runs:
            line = f"  {code:<10} {run.status:<8} found={run.jobs_found} new={run.jobs_new} failed={run.jobs_failed}"
            if run.error_message:
                line += f"  error: {run.error_message[:80]}"
            print(line)
        return 0

    finally:
        db.close()


if __name__ == "__main__":
    parser = argparse.ArgumentParser(description="Discover new funding announcements")
    target = parser.add_mutually_exclusive_group(required=True)
    target.add_argument("--agency", help="Agency code, e.g. ntis")
    target.add_argument("--all", action="store_true", help="All active agencies")
    parser.add_argument("--from", dest="date_from", help="Start date (YYYY-MM-DD)")
    parser.add_argument("--to", dest="date_to", help="End date (YYYY-MM-DD)")
    parser.add_argument("--max-pages", type=int, help="Limit listing pages per agency")
    parser.add_argument("--dry-run", action="store_true", help="Scrape without writing jobs or downloading files")
    args = parser.parse_args()

    try:
        sys.exit(main(args))
    except Exception:
        logger.exception("Discovery failed")
        sys.exit(1)
