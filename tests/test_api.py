"""Tests for the REST API over an async in-memory database."""

import uuid
from datetime import date, datetime, timedelta, timezone

import pytest
import pytest_asyncio
from httpx import ASGITransport, AsyncClient
from sqlalchemy.ext.asyncio import async_sessionmaker, create_async_engine
from sqlalchemy.pool import StaticPool

from fundingpipe.main import app
from fundingpipe.models import Base, DiscoveryRun, ScrapeJob, SourceAgency, StructuredProgram
from fundingpipe.models.base import get_db
from fundingpipe.services.dedup import compute_content_hash

BASE_TIME = datetime(2025, 1, 1, 9, 0, tzinfo=timezone.utc)
TITLE = "2025년도 인공지능 기술개발 지원사업 공고"


def build_job(n, status="PENDING", **overrides):
    url = f"https://www.ntis.go.kr/rndgate/eg/un/ra/view.do?roRndUid={n}"
    job = ScrapeJob(
        id=uuid.uuid4(),
        identity_key=f"{n:064d}",
        announcement_url=url,
        agency_code="ntis",
        title=f"{TITLE} {n}",
        created_at=BASE_TIME + timedelta(minutes=n),
        processing_status="PENDING",
        **overrides,
    )
    if status in ("FAILED", "SKIPPED"):
        job.processing_worker = "worker-test"
        job.processing_started_at = BASE_TIME
        job.processing_status = "PROCESSING"
        job.processing_status = status
        job.processing_error = "boom" if status == "FAILED" else "Non-R&D announcement type: EVENT"
    return job


@pytest_asyncio.fixture
async def seeded():
    engine = create_async_engine(
        "sqlite+aiosqlite://",
        connect_args={"check_same_thread": False},
        poolclass=StaticPool,
    )
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)

    session_factory = async_sessionmaker(engine, expire_on_commit=False)

    agency = SourceAgency(
        id=uuid.uuid4(), code="ntis", name="NTIS", platform="ntis",
        base_url="https://www.ntis.go.kr", listing_path="/rndgate/eg/un/ra/mng.do",
        is_active=True, config_json={}, consecutive_failures=0, last_job_count=3,
    )
    program = StructuredProgram(
        id=uuid.uuid4(),
        content_hash=compute_content_hash(TITLE, "과학기술정보통신부", None, date(2025, 3, 15)),
        title=TITLE, ministry="과학기술정보통신부", deadline=date(2025, 3, 15),
        budget_amount=300_000_000, category="ICT", industry_tags=["ICT"], status="ACTIVE",
        trl_confidence="explicit", min_trl=4, max_trl=6, created_at=BASE_TIME,
    )
    jobs = {
        "pending": build_job(1, listing_posted_at=date(2025, 1, 2)),
        "failed": build_job(2, "FAILED", processing_attempts=3, listing_posted_at=date(2025, 1, 5)),
        "skipped": build_job(3, "SKIPPED"),
        "discovery_failed": build_job(4, scraping_status="SCRAPING_FAILED", scraping_error="timeout"),
    }

    async with session_factory() as session:
        session.add_all([agency, program, *jobs.values()])
        session.add(DiscoveryRun(
            id=uuid.uuid4(), agency_id=agency.id, started_at=BASE_TIME, finished_at=BASE_TIME,
            status="success", jobs_found=3, jobs_new=3, jobs_failed=0,
        ))
        await session.commit()

    async def override_get_db():
        async with session_factory() as session:
            try:
                yield session
                await session.commit()
            except Exception:
                await session.rollback()
                raise

    app.dependency_overrides[get_db] = override_get_db
    yield {"jobs": jobs, "program": program, "agency": agency}
    app.dependency_overrides.clear()
    await engine.dispose()


@pytest_asyncio.fixture
async def client(seeded):
    async with AsyncClient(transport=ASGITransport(app=app), base_url="http://test") as ac:
        yield ac


@pytest.mark.asyncio
async def test_health(client):
    response = await client.get("/health")
    assert response.status_code == 200
    assert response.json()["status"] == "healthy"


class TestJobsApi:
    @pytest.mark.asyncio
    async def test_list_oldest_first(self, client, seeded):
        response = await client.get("/api/v1/jobs")
        assert response.status_code == 200
        ids = [job["id"] for job in response.json()]
        assert ids == [str(seeded["jobs"][k].id) for k in ("pending", "failed", "skipped", "discovery_failed")]

    @pytest.mark.asyncio
    async def test_filters(self, client, seeded):
        failed = await client.get("/api/v1/jobs", params={"processing_status": "FAILED"})
        assert [j["id"] for j in failed.json()] == [str(seeded["jobs"]["failed"].id)]

        discovery = await client.get("/api/v1/jobs", params={"scraping_status": "SCRAPING_FAILED"})
        assert len(discovery.json()) == 1

        posted = await client.get("/api/v1/jobs", params={"posted_from": "2025-01-03"})
        assert [j["id"] for j in posted.json()] == [str(seeded["jobs"]["failed"].id)]

        assert (await client.get("/api/v1/jobs", params={"processing_status": "DONE"})).status_code == 422

    @pytest.mark.asyncio
    async def test_stats(self, client):
        stats = (await client.get("/api/v1/jobs/stats")).json()
        assert stats["total"] == 4
        assert stats["by_status"]["SCRAPED/PENDING"] == 1
        assert stats["by_status"]["SCRAPING_FAILED/PENDING"] == 1
        assert stats["attempts_exhausted"] == 1

    @pytest.mark.asyncio
    async def test_get_by_id_and_identity(self, client, seeded):
        failed = seeded["jobs"]["failed"]

        by_id = await client.get(f"/api/v1/jobs/{failed.id}")
        assert by_id.status_code == 200
        assert by_id.json()["state"] == "FAILED"
        assert by_id.json()["processing_error"] == "boom"

        by_key = await client.get(f"/api/v1/jobs/by-identity/{failed.identity_key}")
        assert by_key.json()["id"] == str(failed.id)

        discovery = await client.get(f"/api/v1/jobs/{seeded['jobs']['discovery_failed'].id}")
        assert discovery.json()["state"] == "DISCOVERY_FAILED"

        assert (await client.get(f"/api/v1/jobs/{uuid.uuid4()}")).status_code == 404
        assert (await client.get("/api/v1/jobs/by-identity/missing")).status_code == 404

    @pytest.mark.asyncio
    async def test_reset_failed_job(self, client, seeded):
        failed = seeded["jobs"]["failed"]

        response = await client.post(f"/api/v1/jobs/{failed.id}/reset", json={"reset_attempts": True})

        assert response.status_code == 200
        body = response.json()
        assert body["processing_status"] == "PENDING"
        assert body["state"] == "PENDING"
        assert body["processing_attempts"] == 0
        assert body["processing_worker"] is None

    @pytest.mark.asyncio
    async def test_reset_keeps_attempts_by_default(self, client, seeded):
        response = await client.post(f"/api/v1/jobs/{seeded['jobs']['failed'].id}/reset")
        assert response.status_code == 200
        assert response.json()["processing_attempts"] == 3

    @pytest.mark.asyncio
    async def test_reset_without_legal_edge_conflicts(self, client, seeded):
        for key in ("skipped", "pending", "discovery_failed"):
            response = await client.post(f"/api/v1/jobs/{seeded['jobs'][key].id}/reset")
            assert response.status_code == 409
            assert "Illegal processing transition" in response.json()["detail"]


class TestProgramsApi:
    @pytest.mark.asyncio
    async def test_list_and_filter(self, client):
        assert len((await client.get("/api/v1/programs")).json()) == 1
        assert (await client.get("/api/v1/programs", params={"category": "BIO_HEALTH"})).json() == []
        assert len((await client.get("/api/v1/programs", params={"needs_enrichment": True})).json()) == 1

    @pytest.mark.asyncio
    async def test_get_by_hash_and_id(self, client, seeded):
        program = seeded["program"]

        by_hash = await client.get(f"/api/v1/programs/by-hash/{program.content_hash}")
        assert by_hash.status_code == 200
        assert by_hash.json()["budget_amount"] == 300_000_000
        assert by_hash.json()["trl_confidence"] == "explicit"

        by_id = await client.get(f"/api/v1/programs/{program.id}")
        assert by_id.json()["content_hash"] == program.content_hash

        assert (await client.get(f"/api/v1/programs/{uuid.uuid4()}")).status_code == 404


class TestAgenciesApi:
    @pytest.mark.asyncio
    async def test_list(self, client):
        assert [a["code"] for a in (await client.get("/api/v1/agencies")).json()] == ["ntis"]
        assert (await client.get("/api/v1/agencies", params={"is_active": False})).json() == []

    @pytest.mark.asyncio
    async def test_detail_with_recent_runs(self, client):
        response = await client.get("/api/v1/agencies/ntis")
        assert response.status_code == 200
        runs = response.json()["recent_runs"]
        assert len(runs) == 1
        assert runs[0]["status"] == "success"
        assert (await client.get("/api/v1/agencies/kiat")).status_code == 404
