"""Shared fixtures: in-memory SQLite database and job/program factories."""

import hashlib
import itertools
import uuid
from datetime import datetime, timedelta, timezone

import pytest
from sqlalchemy import create_engine
from sqlalchemy.orm import sessionmaker
from sqlalchemy.pool import StaticPool

from fundingpipe.config import Settings
from fundingpipe.models import Base, ScrapeJob, SourceAgency, StructuredProgram
from fundingpipe.services.dedup import compute_content_hash

BASE_TIME = datetime(2025, 1, 1, 9, 0, tzinfo=timezone.utc)


@pytest.fixture
def engine():
    engine = create_engine(
        "sqlite://",
        connect_args={"check_same_thread": False},
        poolclass=StaticPool,
    )
    Base.metadata.create_all(engine)
    yield engine
    engine.dispose()


@pytest.fixture
def session_factory(engine):
    return sessionmaker(bind=engine, autocommit=False, autoflush=False)


@pytest.fixture
def db(session_factory):
    session = session_factory()
    yield session
    session.close()


@pytest.fixture
def settings(tmp_path):
    return Settings(
        database_url="sqlite+aiosqlite://",
        attachment_dir=str(tmp_path / "attachments"),
        discovery_page_delay=0,
        discovery_detail_delay=0,
        worker_poll_interval=0,
        worker_max_idle_polls=1,
        cloud_editor_enabled=False,
        enable_tier2_extraction=False,
        backfill_checkpoint_path=str(tmp_path / "logs" / "checkpoint.json"),
        backfill_log_path=str(tmp_path / "logs" / "backfill.jsonl"),
    )


@pytest.fixture
def agency(db):
    agency = SourceAgency(
        id=uuid.uuid4(),
        code="ntis",
        name="NTIS",
        platform="ntis",
        base_url="https://www.ntis.go.kr",
        listing_path="/rndgate/eg/un/ra/mng.do",
        is_active=True,
        config_json={},
        consecutive_failures=0,
    )
    db.add(agency)
    db.commit()
    return agency


@pytest.fixture
def make_job(db):
    """Insert a ScrapeJob; ``status`` walks the job through legal transitions."""
    counter = itertools.count(1)

    def _make(title="2025년도 인공지능 기술개발 지원사업 공고", status="PENDING", **overrides):
        n = next(counter)
        url = overrides.pop("announcement_url", f"https://www.ntis.go.kr/rndgate/eg/un/ra/view.do?roRndUid={n}")
        job = ScrapeJob(
            id=uuid.uuid4(),
            identity_key=hashlib.sha256(url.encode()).hexdigest(),
            announcement_url=url,
            agency_code=overrides.pop("agency_code", "ntis"),
            title=title,
            detail_page_data=overrides.pop("detail_page_data", {}),
            attachment_filenames=overrides.pop("attachment_filenames", []),
            created_at=overrides.pop("created_at", BASE_TIME + timedelta(minutes=n)),
            processing_status="PENDING",
            **overrides,
        )
        if status in ("PROCESSING", "FAILED", "SKIPPED"):
            job.processing_worker = job.processing_worker or "worker-test"
            job.processing_started_at = job.processing_started_at or BASE_TIME
            job.processing_status = "PROCESSING"
        if status == "FAILED":
            job.processing_status = "FAILED"
            job.processing_error = job.processing_error or "boom"
        if status == "SKIPPED":
            job.processing_status = "SKIPPED"
            job.processing_error = job.processing_error or "Non-R&D announcement type: SURVEY"
        db.add(job)
        db.commit()
        return job

    return _make


@pytest.fixture
def make_program(db):
    counter = itertools.count(1)

    def _make(title=None, **overrides):
        n = next(counter)
        title = title or f"2025년도 연구개발 지원사업 {n}차 공고"
        program = StructuredProgram(
            id=uuid.uuid4(),
            content_hash=compute_content_hash(
                title, overrides.get("ministry"), overrides.get("announcing_agency"), overrides.get("deadline"),
            ),
            title=title,
            created_at=overrides.pop("created_at", BASE_TIME + timedelta(minutes=n)),
            **overrides,
        )
        db.add(program)
        db.commit()
        return program

    return _make
