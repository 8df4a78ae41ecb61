#!/usr/bin/env python3
"""Seed source agencies.

NTIS aggregates announcements from every ministry and is active by default.
The agency boards use the generic "board" scraper; they are seeded inactive
because their row selectors and filter parameters change with site redesigns.
Check a listing page, adjust config_json and set is_active before enabling one.

Existing agencies are left untouched unless --update is given.

Usage:
    python scripts/seed_agencies.py
    python scripts/seed_agencies.py --update
"""

import argparse
import sys
import uuid
from pathlib import Path

# Add backend to path for imports
script_dir = Path(__file__).resolve().parent
backend_dir = script_dir.parent / "backend"
if backend_dir.exists():
    sys.path.insert(0, str(backend_dir))
else:
    sys.path.insert(0, str(script_dir.parent))

from fundingpipe.models.base import get_session_factory
from fundingpipe.models.source_agency import SourceAgency

AGENCIES = [
    {
        "code": "ntis",
        "name": "국가과학기술지식정보서비스 (NTIS)",
        "platform": "ntis",
        "base_url": "https://www.ntis.go.kr",
        "listing_path": "/rndgate/eg/un/ra/mng.do",
        "is_active": True,
        "config_json": {},
    },
    {
        "code": "iitp",
        "name": "정보통신기획평가원 (IITP)",
        "platform": "board",
        "base_url": "https://www.iitp.kr",
        "listing_path": "",
        "is_active": False,
        "config_json": {
            "ministry": "과학기술정보통신부",
            "row_selector": "table tbody tr",
            "columns": {"source_id": 0, "title": 1, "posted_at": 3, "deadline": 4},
            "page_param": "pageIndex",
        },
    },
    {
        "code": "keit",
        "name": "한국산업기술기획평가원 (KEIT)",
        "platform": "board",
        "base_url": "https://www.keit.re.kr",
        "listing_path": "",
        "is_active": False,
        "config_json": {
            "ministry": "산업통상자원부",
            "row_selector": "table tbody tr",
            "columns": {"source_id": 0, "title": 1, "posted_at": 3},
            "page_param": "pageIndex",
        },
    },
    {
        "code": "tipa",
        "name": "중소기업기술정보진흥원 (TIPA)",
        "platform": "board",
        "base_url": "https://www.tipa.or.kr",
        "listing_path": "",
        "is_active": False,
        "config_json": {
            "ministry": "중소벤처기업부",
            "row_selector": "table tbody tr",
            "columns": {"source_id": 0, "title": 1, "posted_at": 3},
            "page_param": "pageIndex",
        },
    },
    {
        "code": "kimst",
        "name": "해양수산과학기술진흥원 (KIMST)",
        "platform": "board",
        "base_url": "https://www.kimst.re.kr",
        "listing_path": "",
        "is_active": False,
        "config_json": {
            "ministry": "해양수산부",
            "row_selector": "table tbody tr",
            "columns": {"source_id": 0, "title": 1, "posted_at": 3},
            "page_param": "pageIndex",
        },
    },
]


def seed(update: bool = False):
    db = get_session_factory()()
    try:
        created = 0
        updated = 0
        for entry in AGENCIES:
            existing = db.query(SourceAgency).filter(SourceAgency.code == entry["code"]).first()
            if existing:
                if not update:
                    print(f"  Skipped: {entry['code']} already exists")
                    continue
                for key, value in entry.items():
                    setattr(existing, key, value)
                updated += 1
                print(f"  Updated: {entry['code']}")
                continue

            db.add(SourceAgency(id=uuid.uuid4(), **entry))
            created += 1
            print(f"  Added: {entry['code']} ({entry['platform']})")

        db.commit()
        print(f"\nDone: {created} created, {updated} updated")
    finally:
        db.close()


if __name__ == "__main__":
    parser = argparse.ArgumentParser(description="Seed source agencies")
    parser.add_argument("--update", action="store_true", help="Overwrite existing agency config")
    seed(update=parser.parse_args().update)
