#!/usr/bin/env python3
"""Delete all scraped jobs, structured programs, extraction logs and discovery runs.

Source agencies (and their config) are kept. Attachment files on disk are
not touched.

Usage:
    python scripts/clear_scraped_data.py
    python scripts/clear_scraped_data.py --yes
"""

import argparse
import sys
from pathlib import Path

# Add backend to path for imports
script_dir = Path(__file__).resolve().parent
backend_dir = script_dir.parent / "backend"
if backend_dir.exists():
    sys.path.insert(0, str(backend_dir))
else:
    sys.path.insert(0, str(script_dir.parent))

from fundingpipe.models.base import get_session_factory
from fundingpipe.services.maintenance import clear_pipeline_tables, table_counts


def print_counts(counts: dict[str, int]) -> None:
    for name, count in counts.items():
        print(f"  {name:<22} {count:>8}")


def main(args) -> int:
    db = get_session_factory()()
    try:
        print("Current row counts:")
        print_counts(table_counts(db))

        if not args.yes:
            answer = input("\nType DELETE to remove all rows above: ")
            if answer.strip() != "DELETE":
                print("Aborted.")
                return 1

        deleted = clear_pipeline_tables(db)
        print()
        print("=" * 60)
        print(f"Deleted {sum(deleted.values())} rows")
        print("=" * 60)
        print_counts(table_counts(db))
        return 0
    finally:
        db.close()


if __name__ == "__main__":
    parser = argparse.ArgumentParser(description="Clear scraped pipeline data")
    parser.add_argument("--yes", action="store_true", help="Skip the confirmation prompt")
    sys.exit(main(parser.parse_args()))
