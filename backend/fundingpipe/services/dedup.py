"""Content-hash deduplication and program upsert."""

import hashlib
import logging
import re
from datetime import date

from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session

from fundingpipe.models.structured_program import StructuredProgram

logger = logging.getLogger(__name__)

# Columns never overwritten on an existing program
IDENTITY_COLUMNS = {"content_hash", "title", "ministry", "announcing_agency", "deadline"}


def _normalize(value: str | None) -> str:
    return re.sub(r"\s+", " ", value or "").strip().lower()


def compute_content_hash(
    title: str,
    ministry: str | None,
    announcing_agency: str | None,
    deadline: date | None,
) -> str:
    """SHA-256 over the identifying fields of an announcement.

    Budget and other OCR-derived values are left out so that the same
    announcement scraped twice with slightly different text still collides.
    """
    parts = [
        _normalize(title),
        _normalize(ministry),
        _normalize(announcing_agency),
        deadline.isoformat() if deadline else "",
    ]
    return hashlib.sha256("|".join(parts).encode("utf-8")).hexdigest()


def _backfill_nulls(program: StructuredProgram, values: dict) -> list[str]:
    filled = []
    for column, value in values.items():
        if column in IDENTITY_COLUMNS or value in (None, [], {}):
            continue
        current = getattr(program, column)
        if current is None or current == [] or current == {}:
            setattr(program, column, value)
            filled.append(column)
    return filled


def upsert_program(db: Session, values: dict) -> tuple[StructuredProgram, bool]:
    """Return ``(program, created)`` for the announcement described by ``values``.

    An existing program with the same content hash is reused and only its null
    columns are filled in. A concurrent insert of the same hash loses on the
    unique constraint and falls back to the row that won.
    """
    content_hash = compute_content_hash(
        values["title"], values.get("ministry"), values.get("announcing_agency"), values.get("deadline"),
    )

    existing = db.query(StructuredProgram).filter(StructuredProgram.content_hash == content_hash).first()
    if existing:
        filled = _backfill_nulls(existing, values)
        if filled:
            logger.info(f"Program {existing.id} backfilled: {', '.join(filled)}")
        return existing, False

    program = StructuredProgram(content_hash=content_hash, **values)
    try:
        with db.begin_nested():
            db.add(program)
            db.flush()
    except IntegrityError:
        logger.info(f"Concurrent insert for hash {content_hash[:12]}; using existing program")
        existing = db.query(StructuredProgram).filter(StructuredProgram.content_hash == content_hash).one()
        _backfill_nulls(existing, values)
        return existing, False

    logger.info(f"Created program {program.id}: {program.title[:60]}")
    return program, True
