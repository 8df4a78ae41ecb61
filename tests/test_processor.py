"""End-to-end tests for turning a claimed job into a structured program."""

import uuid
import zipfile
from datetime import date, datetime, timedelta, timezone
from types import SimpleNamespace
from unittest.mock import MagicMock, patch

from PIL import Image

from fundingpipe.extraction.engine import TextExtractionEngine
from fundingpipe.extraction.native import NativeDocumentParser
from fundingpipe.extraction.ocr import OcrExtractor
from fundingpipe.fields.extractor import StructuredFieldExtractor
from fundingpipe.fields.llm_fields import LLMFieldExtractor
from fundingpipe.models import ExtractionLog, ScrapeJob, StructuredProgram
from fundingpipe.models.scrape_job import ProcessingStatus
from fundingpipe.services.job_state import claim_next_job
from fundingpipe.services.processor import JobProcessor, html_to_text

TITLE = "2025년 인공지능 소프트웨어 기술개발 지원사업 공고"

NOTICE_PARAGRAPHS = [
    "사업목적",
    "인공지능 소프트웨어 기술개발 지원",
    "접수기간 : 2025. 1. 10.(금) ~ 2. 10.(월) 18:00",
    "지원규모 : 과제당 최대 3억원",
    "목표 기술수준: TRL 4~6 단계",
]

SCANNED_TEXT = """1. 지원대상
- 창업 7년 이내 중소기업
- 주관기관은 중소기업이어야 하며 산학연 컨소시엄 구성 필수
2. 제출서류
- 사업자등록증
"""

SECTION_XML = (
    '<?xml version="1.0" encoding="UTF-8"?>'
    '<hs:sec xmlns:hs="http://www.hancom.co.kr/hwpml/2011/section" '
    'xmlns:hp="http://www.hancom.co.kr/hwpml/2011/paragraph">{}</hs:sec>'
)


def write_notice(folder):
    body = "".join(f"<hp:p><hp:run><hp:t>{p}</hp:t></hp:run></hp:p>" for p in NOTICE_PARAGRAPHS)
    with zipfile.ZipFile(folder / "notice.hwpx", "w") as archive:
        archive.writestr("Contents/section0.xml", SECTION_XML.format(body))
    Image.new("RGB", (40, 20), "white").save(folder / "scan.png")


def engine():
    return TextExtractionEngine([NativeDocumentParser(), OcrExtractor()])


class TestHtmlToText:
    def test_scripts_are_dropped(self):
        html = "<html><body><script>var x=1;</script><p>접수마감일</p><p>2025.03.15</p></body></html>"
        assert html_to_text(html) == "접수마감일\n2025.03.15"

    def test_empty(self):
        assert html_to_text(None) == ""


class TestJobProcessor:
    def test_attachments_become_a_program(self, db, make_job, tmp_path):
        write_notice(tmp_path)
        make_job(
            title=TITLE,
            attachment_folder=str(tmp_path),
            attachment_filenames=["notice.hwpx", "scan.png"],
            attachment_count=2,
        )
        job = claim_next_job(db, "worker-1")

        with patch("pytesseract.image_to_string", return_value=SCANNED_TEXT):
            outcome = JobProcessor(db, engine(), worker_id="worker-1", today=date(2025, 1, 20)).process(job)

        assert outcome.status == ProcessingStatus.COMPLETED
        assert outcome.created is True

        program = db.get(StructuredProgram, uuid.UUID(outcome.program_id))
        assert program.budget_amount == 300_000_000
        assert program.deadline == date(2025, 2, 10)
        assert program.application_start == date(2025, 1, 10)
        assert (program.min_trl, program.max_trl) == (4, 6)
        assert program.trl_confidence == "explicit"
        assert program.category == "ICT"
        assert program.eligibility_criteria["consortium_required"] is True
        assert program.status == "ACTIVE"
        assert program.requires_manual_review is False

        db.refresh(job)
        assert job.processing_status == "COMPLETED"
        assert job.funding_program_id == program.id

        logs = {log.field_name: log for log in db.query(ExtractionLog).filter_by(scrape_job_id=job.id)}
        assert logs["budget_amount"].data_source == "native-parse"
        assert logs["budget_amount"].pattern_id == "context:per-applicant-rd"
        assert logs["eligibility_criteria"].data_source == "generic-ocr"
        assert logs["published_at"].data_source == "none"
        backends = [a["backend"] for a in logs["eligibility_criteria"].sources_attempted]
        assert backends == ["tesseract"]

    def test_survey_is_skipped(self, db, make_job):
        make_job(title="2025년 기술수요조사 공고")
        job = claim_next_job(db, "worker-1")

        outcome = JobProcessor(db, engine(), worker_id="worker-1").process(job)

        assert outcome.status == ProcessingStatus.SKIPPED
        db.refresh(job)
        assert job.processing_status == "SKIPPED"
        assert job.processing_error == "Non-R&D announcement type: SURVEY"
        assert job.funding_program_id is None
        assert db.query(StructuredProgram).count() == 0

    def test_unreadable_attachments_fail_the_job(self, db, make_job, tmp_path):
        (tmp_path / "broken.hwpx").write_bytes(b"not a zip")
        make_job(attachment_folder=str(tmp_path), attachment_filenames=["broken.hwpx"])
        job = claim_next_job(db, "worker-1")

        outcome = JobProcessor(db, TextExtractionEngine([NativeDocumentParser()]), worker_id="worker-1").process(job)

        assert outcome.status == ProcessingStatus.FAILED
        assert outcome.error.startswith("All attachments failed extraction: broken.hwpx")
        db.refresh(job)
        assert job.processing_status == "FAILED"
        assert job.processing_attempts == 1

    def test_same_announcement_from_two_jobs_is_one_program(self, db, make_job):
        detail = {"description": "사업목적\n인공지능 소프트웨어 기술개발 지원\n접수마감일 : 2025.03.15"}
        make_job(title=TITLE, detail_page_data=detail)
        make_job(title=TITLE, detail_page_data=detail)
        processor = JobProcessor(db, engine(), worker_id="worker-1", today=date(2025, 1, 20))

        first = processor.process(claim_next_job(db, "worker-1"))
        second = processor.process(claim_next_job(db, "worker-1"))

        assert first.created is True
        assert second.created is False
        assert first.program_id == second.program_id
        program = db.query(StructuredProgram).one()
        assert program.deadline == date(2025, 3, 15)
        assert program.requires_manual_review is True
        assert db.query(ScrapeJob).filter_by(processing_status="COMPLETED").count() == 2

    def test_past_deadline_is_expired(self, db, make_job):
        make_job(title=TITLE, detail_page_data={"description": "접수마감일 : 2024.12.31"})
        job = claim_next_job(db, "worker-1")

        outcome = JobProcessor(db, engine(), worker_id="worker-1", today=date(2025, 1, 20)).process(job)

        assert db.get(StructuredProgram, uuid.UUID(outcome.program_id)).status == "EXPIRED"

    def test_dry_run_writes_nothing(self, db, make_job):
        job = make_job(title=TITLE, detail_page_data={"description": "지원규모 : 과제당 최대 3억원"})

        outcome = JobProcessor(db, engine(), dry_run=True).process(job)

        assert outcome.status == ProcessingStatus.COMPLETED
        assert outcome.fields.budget_amount == 300_000_000
        assert db.query(StructuredProgram).count() == 0
        db.refresh(job)
        assert job.processing_status == "PENDING"

    def test_lost_lease_drops_results(self, db, make_job):
        make_job(title="2025년 기술수요조사 공고")
        job = claim_next_job(db, "worker-1")

        outcome = JobProcessor(db, engine(), worker_id="worker-2").process(job)

        assert outcome.status == ProcessingStatus.PROCESSING
        db.refresh(job)
        assert job.processing_status == "PROCESSING"
        assert job.processing_worker == "worker-1"

    def test_partial_attachment_failure_is_noted_on_completed_job(self, db, make_job, tmp_path):
        (tmp_path / "good.txt").write_text(
            "사업목적\n인공지능 소프트웨어 기술개발 지원\n접수마감일 : 2025.03.15", encoding="utf-8",
        )
        make_job(title=TITLE, attachment_folder=str(tmp_path), attachment_filenames=["good.txt", "missing.hwp"])
        job = claim_next_job(db, "worker-1")

        outcome = JobProcessor(
            db, TextExtractionEngine([NativeDocumentParser()]), worker_id="worker-1", today=date(2025, 1, 20),
        ).process(job)

        assert outcome.status == ProcessingStatus.COMPLETED
        db.refresh(job)
        assert job.processing_status == "COMPLETED"
        assert job.processing_error.startswith("Attachments failed extraction: missing.hwp (")
        assert "good.txt" not in job.processing_error

    def test_unexpected_error_fails_owned_job(self, db, make_job):
        make_job(title=TITLE, detail_page_data={"description": "접수마감일 : 2025.03.15"})
        job = claim_next_job(db, "worker-1")
        extractor = MagicMock()
        extractor.extract.side_effect = ValueError("unexpected layout")

        outcome = JobProcessor(db, engine(), extractor=extractor, worker_id="worker-1").process(job)

        assert outcome.status == ProcessingStatus.FAILED
        db.refresh(job)
        assert job.processing_status == "FAILED"
        assert job.processing_error == "ValueError: unexpected layout"
        assert job.processing_attempts == 1

    def test_unexpected_error_after_takeover_leaves_new_owner_alone(self, db, session_factory, make_job):
        make_job(title=TITLE, detail_page_data={"description": "접수마감일 : 2025.03.15"})
        job = claim_next_job(db, "worker-1")
        rival = session_factory()
        try:
            taken = claim_next_job(rival, "worker-2", now=datetime.now(timezone.utc) + timedelta(hours=1))
        finally:
            rival.close()
        assert taken.id == job.id

        extractor = MagicMock()
        extractor.extract.side_effect = ValueError("unexpected layout")
        outcome = JobProcessor(db, engine(), extractor=extractor, worker_id="worker-1").process(job)

        assert outcome.status == ProcessingStatus.PROCESSING
        db.refresh(job)
        assert job.processing_status == "PROCESSING"
        assert job.processing_worker == "worker-2"
        assert job.processing_attempts == 1
        assert job.processing_error is None

    def test_llm_filled_field_is_logged_with_its_source(self, db, make_job, tmp_path):
        (tmp_path / "notice.txt").write_text(
            "접수기간 : 2025.01.10 ~ 2025.02.10\n공고일 : 2025.01.05\n총 사업비 50억원", encoding="utf-8",
        )
        make_job(title=TITLE, attachment_folder=str(tmp_path), attachment_filenames=["notice.txt"])
        job = claim_next_job(db, "worker-1")
        client = MagicMock()
        client.messages.create.return_value = SimpleNamespace(
            content=[SimpleNamespace(text='{"trl_range": [4, 6]}')],
            usage=SimpleNamespace(input_tokens=500, output_tokens=20),
        )
        extractor = StructuredFieldExtractor(
            today=date(2025, 1, 20), fallback=LLMFieldExtractor(client, "test-model"),
        )

        outcome = JobProcessor(
            db, TextExtractionEngine([NativeDocumentParser()]), extractor=extractor, worker_id="worker-1",
        ).process(job)

        assert outcome.status == ProcessingStatus.COMPLETED
        program = db.get(StructuredProgram, uuid.UUID(outcome.program_id))
        assert (program.min_trl, program.max_trl) == (4, 6)
        assert program.trl_confidence == "inferred"
        logs = {log.field_name: log for log in db.query(ExtractionLog).filter_by(scrape_job_id=job.id)}
        assert logs["trl"].data_source == "llm-extract"
        assert logs["trl"].pattern_id == "llm:trl"
        assert logs["budget_amount"].data_source == "native-parse"
        client.messages.create.assert_called_once()
