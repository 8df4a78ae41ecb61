"""Tests for job claiming, leases and status transitions."""

import uuid
from datetime import timedelta

import pytest
from sqlalchemy import event

from fundingpipe.models import ScrapeJob, StructuredProgram
from fundingpipe.models.scrape_job import IllegalTransitionError, JobState
from fundingpipe.services.job_state import (
    LeaseLostError, claim_next_job, complete_job, ensure_owner, fail_job, heartbeat,
    requeue_failed_jobs, requeue_job,
)

from conftest import BASE_TIME


class TestClaim:
    def test_claims_oldest_pending_job(self, db, make_job):
        oldest = make_job()
        make_job()

        job = claim_next_job(db, "worker-1")

        assert job.id == oldest.id
        assert job.processing_status == "PROCESSING"
        assert job.processing_worker == "worker-1"
        assert job.processing_started_at is not None
        assert job.processing_heartbeat_at is not None

    def test_two_workers_get_distinct_jobs(self, db, session_factory, make_job):
        make_job()
        make_job()
        other = session_factory()
        try:
            first = claim_next_job(db, "worker-1")
            second = claim_next_job(other, "worker-2")
            third = claim_next_job(db, "worker-1")
        finally:
            other.close()

        assert first.id != second.id
        assert third is None

    def test_contested_single_job_has_exactly_one_winner(self, db, session_factory, make_job):
        contested = make_job()
        rival = session_factory()
        rival_claims = []

        def rival_claims_first(orm_execute_state):
            # Runs after worker-1 has read its candidates, before its UPDATE
            if orm_execute_state.is_update and not rival_claims:
                rival_claims.append(claim_next_job(rival, "worker-2"))

        event.listen(db, "do_orm_execute", rival_claims_first)
        try:
            mine = claim_next_job(db, "worker-1")
        finally:
            event.remove(db, "do_orm_execute", rival_claims_first)
            rival.close()

        assert rival_claims[0].id == contested.id
        assert mine is None
        db.expire_all()
        stored = db.get(ScrapeJob, contested.id)
        assert stored.processing_worker == "worker-2"
        assert stored.processing_attempts == 0

    def test_discovery_failures_are_never_claimed(self, db, make_job):
        make_job(scraping_status="SCRAPING_FAILED", scraping_error="detail page timeout")
        assert claim_next_job(db, "worker-1") is None

    def test_scoped_to_date_range(self, db, make_job):
        make_job(date_range="2025-01-01~2025-01-31")
        wanted = make_job(date_range="2025-02-01~2025-02-28")

        job = claim_next_job(db, "worker-1", date_range="2025-02-01~2025-02-28")
        assert job.id == wanted.id

    def test_scoped_to_job_ids(self, db, make_job):
        make_job()
        wanted = make_job()
        job = claim_next_job(db, "worker-1", job_ids=[str(wanted.id)])
        assert job.id == wanted.id

    def test_live_lease_is_not_reclaimed(self, db, make_job):
        make_job(status="PROCESSING", processing_heartbeat_at=BASE_TIME)
        assert claim_next_job(db, "worker-2", now=BASE_TIME + timedelta(minutes=1)) is None

    def test_expired_lease_is_reclaimed(self, db, make_job):
        stale = make_job(status="PROCESSING", processing_worker="dead-worker",
                         processing_heartbeat_at=BASE_TIME)

        job = claim_next_job(db, "worker-2", now=BASE_TIME + timedelta(hours=2), lease_seconds=900)

        assert job.id == stale.id
        assert job.processing_status == "PROCESSING"
        assert job.processing_worker == "worker-2"
        assert job.processing_attempts == 1

    def test_expired_lease_without_attempts_left_fails(self, db, make_job):
        stale = make_job(status="PROCESSING", processing_attempts=2, processing_heartbeat_at=BASE_TIME)

        assert claim_next_job(db, "worker-2", now=BASE_TIME + timedelta(hours=2), max_attempts=3) is None

        db.expire_all()
        job = db.get(ScrapeJob, stale.id)
        assert job.processing_status == "FAILED"
        assert job.processing_attempts == 3
        assert job.processing_error == "Processing lease expired; attempts exhausted"


class TestLease:
    def test_heartbeat_only_for_owner(self, db, make_job):
        make_job()
        job = claim_next_job(db, "worker-1")

        assert heartbeat(db, job.id, "worker-1") is True
        assert heartbeat(db, job.id, "worker-2") is False
        db.commit()

    def test_ensure_owner_raises_after_takeover(self, db, make_job):
        make_job()
        job = claim_next_job(db, "worker-1")
        with pytest.raises(LeaseLostError):
            ensure_owner(db, job, "worker-2")


class TestTransitions:
    def test_pending_cannot_jump_to_completed(self, make_job):
        job = make_job()
        with pytest.raises(IllegalTransitionError):
            job.processing_status = "COMPLETED"

    def test_skipped_is_terminal(self, make_job):
        job = make_job(status="SKIPPED")
        with pytest.raises(IllegalTransitionError):
            job.processing_status = "PENDING"
        with pytest.raises(IllegalTransitionError):
            requeue_job(job)

    def test_state_view(self, make_job):
        assert make_job().state == JobState.PENDING
        assert make_job(scraping_status="SCRAPING_FAILED").state == JobState.DISCOVERY_FAILED

    def test_complete_requires_flushed_program(self, db, make_job):
        make_job()
        job = claim_next_job(db, "worker-1")
        program = StructuredProgram(title="2025년도 인공지능 기술개발 지원사업 공고", content_hash="a" * 64)

        with pytest.raises(ValueError):
            complete_job(job, program)

        db.add(program)
        db.flush()
        complete_job(job, program)
        db.commit()

        assert job.processing_status == "COMPLETED"
        assert job.funding_program_id == program.id
        assert job.processed_at is not None

    def test_fail_counts_attempt_and_truncates_error(self, db, make_job):
        make_job()
        job = claim_next_job(db, "worker-1")
        fail_job(job, "x" * 5000)
        db.commit()

        assert job.processing_status == "FAILED"
        assert job.processing_attempts == 1
        assert len(job.processing_error) == 2000


class TestRequeue:
    def test_requeue_failed_job(self, db, make_job):
        job = make_job(status="FAILED", processing_attempts=1)

        assert requeue_job(job) is True
        db.commit()

        assert job.processing_status == "PENDING"
        assert job.processing_worker is None
        assert job.processing_started_at is None

    def test_exhausted_job_needs_force(self, make_job):
        job = make_job(status="FAILED", processing_attempts=3)

        assert requeue_job(job, max_attempts=3) is False
        assert job.processing_status == "FAILED"
        assert requeue_job(job, max_attempts=3, force=True) is True
        assert job.processing_status == "PENDING"

    def test_discovery_failure_cannot_be_requeued(self, make_job):
        job = make_job(status="FAILED", scraping_status="SCRAPING_FAILED")
        with pytest.raises(IllegalTransitionError):
            requeue_job(job, force=True)

    def test_pending_job_cannot_be_requeued(self, make_job):
        with pytest.raises(IllegalTransitionError):
            requeue_job(make_job())

    def test_bulk_requeue_respects_attempts(self, db, make_job):
        retryable = make_job(status="FAILED", processing_attempts=1, processed_at=BASE_TIME)
        exhausted = make_job(status="FAILED", processing_attempts=3, processed_at=BASE_TIME)

        assert requeue_failed_jobs(db, max_attempts=3) == 1

        db.expire_all()
        assert db.get(ScrapeJob, retryable.id).processing_status == "PENDING"
        assert db.get(ScrapeJob, exhausted.id).processing_status == "FAILED"

    def test_unknown_job_ids_claim_nothing(self, db, make_job):
        make_job()
        assert claim_next_job(db, "worker-1", job_ids=[str(uuid.uuid4())]) is None
