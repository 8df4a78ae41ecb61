#!/usr/bin/env python3
"""Report queue health and extraction quality.

Shows job counts per (scraping, processing) status, stale leases, the most
common skip/failure reasons, how often each structured field is populated
and which data source each field was extracted from.

Usage:
    python scripts/report_pipeline_status.py
    python scripts/report_pipeline_status.py --json
"""

import argparse
import json
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
from fundingpipe.services.diagnostics import (
    extraction_source_breakdown, field_population_rates, queue_status, skip_reason_breakdown,
)


def main(args):
    settings = get_settings()
    db = get_session_factory()()
    try:
        report = {
            "queue": queue_status(
                db,
                lease_seconds=settings.processing_lease_seconds,
                max_attempts=settings.max_processing_attempts,
            ),
            "reasons": skip_reason_breakdown(db, limit=args.limit),
            "fields": field_population_rates(db),
            "sources": extraction_source_breakdown(db),
        }
    finally:
        db.close()

    if args.json:
        print(json.dumps(report, ensure_ascii=False, indent=2))
        return

    queue = report["queue"]
    print("=" * 60)
    print(f"Queue ({queue['total']} jobs)")
    print("=" * 60)
    for status, count in sorted(queue["by_status"].items()):
        print(f"  {status:<30} {count:>6}")
    print(f"  Stale leases:        {queue['stale_leases']}")
    print(f"  Attempts exhausted:  {queue['attempts_exhausted']}")

    for status, reasons in report["reasons"].items():
        if not reasons:
            continue
        print(f"\nTop {status} reasons:")
        for reason, count in reasons:
            print(f"  {count:>5}  {reason[:90]}")

    fields = report["fields"]
    print()
    print("=" * 60)
    print(f"Field population ({fields['total']} programs)")
    print("=" * 60)
    for name, value in fields["fields"].items():
        print(f"  {name:<22} {value['count']:>6}  {value['rate'] * 100:5.1f}%")

    if report["sources"]:
        print("\nExtraction sources:")
        for field_name, sources in sorted(report["sources"].items()):
            parts = ", ".join(f"{source}={count}" for source, count in sorted(sources.items()))
            print(f"  {field_name:<22} {parts}")


if __name__ == "__main__":
    parser = argparse.ArgumentParser(description="Pipeline status report")
    parser.add_argument("--json", action="store_true", help="Print the report as JSON")
    parser.add_argument("--limit", type=int, default=20, help="Reasons to show per status")
    main(parser.parse_args())
