"""Tests for discovery scrapers: HTML parsing, job persistence and runs."""

from datetime import date, timedelta
from unittest.mock import patch

import httpx
import pytest

from fundingpipe.models import DiscoveryRun, ScrapeJob, SourceAgency
from fundingpipe.scrapers.attachments import download_attachments, filename_from_response
from fundingpipe.scrapers.base import BaseDiscoveryScraper
from fundingpipe.scrapers.board import BoardScraper, parse_board_listing, with_query
from fundingpipe.scrapers.ntis import parse_ntis_listing
from fundingpipe.scrapers.parsing import listing_fields, parse_detail_page, parse_total_pages
from fundingpipe.services.discovery import default_date_range, run_agency_discovery

VIEW_URL = "https://www.ntis.go.kr/rndgate/eg/un/ra/view.do?roRndUid="

NTIS_LISTING_HTML = """
<html><body><div id="contents">
<p class="total">검색결과 123건</p>
<table class="basic_list"><tbody>
<tr>
  <td>1</td><td>접수중</td>
  <td><a href="/rndgate/eg/un/ra/view.do?roRndUid=1234567" title="2025년도 인공지능 기술개발 지원사업 공고">2025년도 인공지능…</a></td>
  <td>과학기술정보통신부</td><td>2025.01.02</td><td>2025.02.10</td><td>D-20</td>
</tr>
<tr>
  <td>2</td><td>마감</td><td><a href="javascript:void(0)">비공개</a></td>
  <td>산업통상자원부</td><td>2024.12.01</td><td>2024.12.31</td><td>-</td>
</tr>
<tr><td colspan="7">등록된 공고가 없습니다</td></tr>
</tbody></table>
</div></body></html>
"""

DETAIL_HTML = """
<html><body>
<h3>2025년도 인공지능 기술개발 지원사업 공고</h3>
<table>
  <tr><th>부처명</th><td>과학기술정보통신부</td></tr>
  <tr><th>공고기관명</th><td>정보통신기획평가원</td></tr>
  <tr><th>접수마감일</th><td>2025.02.10</td></tr>
  <tr><th>공고일</th><td>2025.01.02</td></tr>
</table>
<div class="content">사업목적   인공지능 기술개발</div>
<a href="/file/download?fileId=1">공고문.hwp</a>
<a href="/file/download?fileId=1">공고문.hwp</a>
<a href="https://files.example.kr/fileDown?id=9">양식.hwpx</a>
<a href="javascript:fn_download(3)">첨부</a>
</body></html>
"""

BOARD_HTML = """
<table class="board_list"><tbody>
<tr><td>10</td><td><a href="view.do?nttId=55">2025년 ICT 기술개발 과제 공고</a></td><td>IITP</td><td>2025-01-03</td></tr>
<tr><td>9</td><td><a href="javascript:void(0)">삭제된 글</a></td><td></td><td></td></tr>
</tbody></table>
"""

ROWS = [
    {
        "title": "2025년도 인공지능 기술개발 지원사업 공고",
        "url": f"{VIEW_URL}1001",
        "source_id": "1001",
        "ministry": "과학기술정보통신부",
        "posted_at": "2025.01.02",
        "deadline": "2025.02.10",
        "status": "접수중",
        "page_number": 1,
        "detail": {"description": "사업목적 인공지능 기술개발", "announcing_agency": "정보통신기획평가원"},
    },
    {
        "title": "2025년도 바이오 신약 개발 지원사업 공고",
        "url": f"{VIEW_URL}1002",
        "page_number": 1,
        "error": "Detail page fetch failed: Timeout 30000ms exceeded",
    },
    {
        "title": "2025년도 인공지능 기술개발 지원사업 공고",
        "url": f"{VIEW_URL}1001",
        "page_number": 2,
    },
]


class FakeScraper(BaseDiscoveryScraper):
    rows = ROWS

    def scrape(self):
        return [dict(row) for row in self.rows]

    def normalize(self, raw):
        return listing_fields(raw)


class FailingScraper(FakeScraper):
    def scrape(self):
        raise RuntimeError("NTIS listing timed out")


def make_scraper(cls, agency, db, settings, **kwargs):
    return cls(agency=agency, db=db, date_from=date(2025, 1, 1), date_to=date(2025, 1, 31),
               settings=settings, **kwargs)


class TestParsing:
    def test_ntis_listing_rows(self):
        rows = parse_ntis_listing(NTIS_LISTING_HTML)

        assert len(rows) == 1
        row = rows[0]
        assert row["url"] == "https://www.ntis.go.kr/rndgate/eg/un/ra/view.do?roRndUid=1234567"
        assert row["source_id"] == "1234567"
        assert row["title"] == "2025년도 인공지능 기술개발 지원사업 공고"
        assert row["status"] == "접수중"
        assert row["ministry"] == "과학기술정보통신부"
        assert row["posted_at"] == "2025.01.02"
        assert row["deadline"] == "2025.02.10"

    def test_total_pages_from_result_count(self):
        assert parse_total_pages(NTIS_LISTING_HTML) == 13
        assert parse_total_pages("<p>검색결과 0건</p>") == 0

    def test_total_pages_from_pagination(self):
        html = """<div class="paging"><a href="?pageIndex=2">2</a>
                  <a href="#" onclick="fn_search('7', '')">7</a></div>"""
        assert parse_total_pages(html) == 7
        assert parse_total_pages("<div>no paging</div>") is None

    def test_detail_page(self):
        detail = parse_detail_page(DETAIL_HTML, f"{VIEW_URL}1")

        assert detail["title"] == "2025년도 인공지능 기술개발 지원사업 공고"
        assert detail["ministry"] == "과학기술정보통신부"
        assert detail["announcing_agency"] == "정보통신기획평가원"
        assert detail["deadline"] == "2025.02.10"
        assert detail["published_at"] == "2025.01.02"
        assert detail["description"] == "사업목적 인공지능 기술개발"
        assert detail["attachment_urls"] == [
            "https://www.ntis.go.kr/file/download?fileId=1",
            "https://files.example.kr/fileDown?id=9",
        ]

    def test_listing_fields_prefer_listing_then_detail(self):
        data = listing_fields({
            "title": "  공고  제목 ",
            "url": f"{VIEW_URL}1",
            "detail": {"ministry": "산업통상자원부", "deadline": "2025.03.15", "attachment_urls": ["a"]},
        })
        assert data["title"] == "공고 제목"
        assert data["ministry"] == "산업통상자원부"
        assert data["listing_deadline"] == date(2025, 3, 15)
        assert data["attachment_urls"] == ["a"]
        assert data["scraping_error"] is None

    def test_board_listing(self):
        page_url = "https://www.iitp.kr/kr/1/business/businessNotice/list.it?pageIndex=1"
        rows = parse_board_listing(BOARD_HTML, page_url, "table.board_list tbody tr")

        assert len(rows) == 1
        assert rows[0]["url"] == "https://www.iitp.kr/kr/1/business/businessNotice/view.do?nttId=55"
        assert rows[0]["title"] == "2025년 ICT 기술개발 과제 공고"
        assert rows[0]["posted_at"] == "2025-01-03"

    def test_with_query_replaces_existing_param(self):
        assert with_query("https://a.kr/list.do?menu=3&pageIndex=1", pageIndex=4) == \
            "https://a.kr/list.do?menu=3&pageIndex=4"


class TestBoardScraper:
    def make_agency(self):
        return SourceAgency(
            code="iitp",
            name="정보통신기획평가원",
            platform="board",
            base_url="https://www.iitp.kr/",
            listing_path="/kr/1/business/list.it",
            config_json={
                "ministry": "과학기술정보통신부",
                "date_from_param": "searchStartDt",
                "date_to_param": "searchEndDt",
            },
        )

    def test_listing_page_url(self, settings):
        scraper = make_scraper(BoardScraper, self.make_agency(), None, settings)
        assert scraper.listing_page_url(2) == (
            "https://www.iitp.kr/kr/1/business/list.it"
            "?pageIndex=2&searchStartDt=2025-01-01&searchEndDt=2025-01-31"
        )

    def test_normalize_falls_back_to_agency_defaults(self, settings):
        scraper = make_scraper(BoardScraper, self.make_agency(), None, settings)
        data = scraper.normalize({"title": "2025년 ICT 기술개발 과제 공고", "url": "https://www.iitp.kr/view.do?nttId=55"})
        assert data["ministry"] == "과학기술정보통신부"
        assert data["announcing_agency"] == "정보통신기획평가원"


class TestDiscoveryScraperRun:
    def test_insert_or_ignore(self, db, agency, settings):
        result = make_scraper(FakeScraper, agency, db, settings).run()
        assert result == {"jobs_found": 3, "jobs_new": 1, "jobs_failed": 1}

        job = db.query(ScrapeJob).filter_by(source_announcement_id="1001").one()
        assert job.scraping_status == "SCRAPED"
        assert job.processing_status == "PENDING"
        assert job.listing_posted_at == date(2025, 1, 2)
        assert job.listing_deadline == date(2025, 2, 10)
        assert job.announcing_agency == "정보통신기획평가원"
        assert job.date_range == "2025-01-01 to 2025-01-31"
        assert job.description == "사업목적 인공지능 기술개발"

        failed = db.query(ScrapeJob).filter_by(announcement_url=f"{VIEW_URL}1002").one()
        assert failed.scraping_status == "SCRAPING_FAILED"
        assert failed.scraping_error.startswith("Detail page fetch failed")

        again = make_scraper(FakeScraper, agency, db, settings).run()
        assert again == {"jobs_found": 3, "jobs_new": 0, "jobs_failed": 0}
        assert db.query(ScrapeJob).count() == 2

    def test_known_url(self, db, agency, settings, make_job):
        make_job(announcement_url=f"{VIEW_URL}1001")
        scraper = make_scraper(FakeScraper, agency, db, settings)
        assert scraper.is_known(f"{VIEW_URL}1001")
        assert not scraper.is_known(f"{VIEW_URL}9999")

    def test_partial_attachment_download_keeps_job_scraped(self, db, agency, settings):
        row = {
            "title": "2025년도 소재부품 기술개발 사업 공고",
            "url": f"{VIEW_URL}1003",
            "source_id": "1003",
            "page_number": 2,
            "detail": {"attachment_urls": [
                "https://www.ntis.go.kr/file/download?fileId=1",
                "https://www.ntis.go.kr/file/download?fileId=2",
            ]},
        }
        scraper = make_scraper(FakeScraper, agency, db, settings)
        scraper.rows = [row]
        scraper.cookies = {"JSESSIONID": "abc"}

        with patch("fundingpipe.scrapers.base.download_attachments",
                   return_value=(["공고문.hwp"], ["https://www.ntis.go.kr/file/download?fileId=2: 404"])) as download:
            assert scraper.run()["jobs_new"] == 1

        assert download.call_args.kwargs["cookies"] == {"JSESSIONID": "abc"}
        assert download.call_args.kwargs["referer"] == f"{VIEW_URL}1003"
        folder = str(download.call_args.args[1])
        assert folder.endswith("ntis/20250101_to_20250131/page-2/announcement-1003")

        job = db.query(ScrapeJob).one()
        assert job.scraping_status == "SCRAPED"
        assert job.attachment_filenames == ["공고문.hwp"]
        assert job.attachment_count == 1
        assert job.scraping_error.startswith("Attachment download failed")

    def test_dry_run_inserts_nothing(self, db, agency, settings):
        result = make_scraper(FakeScraper, agency, db, settings, dry_run=True).run()
        assert result["jobs_new"] == 2
        assert result["jobs_failed"] == 1
        assert db.query(ScrapeJob).count() == 0


class TestRunAgencyDiscovery:
    def test_success_is_recorded(self, db, agency, settings):
        run = run_agency_discovery(db, agency, date(2025, 1, 1), date(2025, 1, 31),
                                   settings=settings, scraper_class=FakeScraper)

        assert run.status == "success"
        assert (run.jobs_found, run.jobs_new, run.jobs_failed) == (3, 1, 1)
        assert run.finished_at is not None
        db.refresh(agency)
        assert agency.consecutive_failures == 0
        assert agency.last_job_count == 3
        assert agency.last_success_at is not None

    def test_failure_is_recorded_not_raised(self, db, agency, settings):
        run = run_agency_discovery(db, agency, date(2025, 1, 1), date(2025, 1, 31),
                                   settings=settings, scraper_class=FailingScraper)

        assert run.status == "failed"
        assert run.error_message == "NTIS listing timed out"
        db.refresh(agency)
        assert agency.consecutive_failures == 1
        assert agency.last_success_at is None
        assert db.query(DiscoveryRun).count() == 1

    def test_unknown_platform(self, db, agency, settings):
        agency.platform = "unknown"
        db.commit()

        run = run_agency_discovery(db, agency, date(2025, 1, 1), date(2025, 1, 31), settings=settings)

        assert run.status == "failed"
        assert "No scraper registered for platform: unknown" in run.error_message

    def test_default_date_range(self, settings):
        start, end = default_date_range(settings, today=date(2025, 3, 1))
        assert end == date(2025, 3, 1)
        assert start == end - timedelta(days=settings.discovery_lookback_days)


class TestAttachments:
    def test_filename_from_rfc5987_header(self):
        header = "attachment; filename*=UTF-8''%EA%B3%B5%EA%B3%A0%EB%AC%B8.hwp"
        assert filename_from_response(header, "https://x.kr/download?id=1") == "공고문.hwp"

    def test_filename_from_latin1_mangled_header(self):
        mangled = "공고문.hwp".encode("utf-8").decode("latin-1")
        assert filename_from_response(f'attachment; filename="{mangled}"', "https://x.kr/d") == "공고문.hwp"

    def test_filename_from_percent_encoded_header(self):
        header = 'attachment; filename="%EC%96%91%EC%8B%9D.hwpx"'
        assert filename_from_response(header, "https://x.kr/d") == "양식.hwpx"

    def test_filename_falls_back_to_url(self):
        assert filename_from_response(None, "https://x.kr/files/%EA%B3%B5%EA%B3%A0.pdf") == "공고.pdf"
        assert filename_from_response('attachment; filename="a/b:c.hwp"', "https://x.kr/d") == "a_b_c.hwp"

    def test_download_attachments(self, tmp_path):
        seen_referers = []

        def handler(request):
            seen_referers.append(request.headers.get("referer"))
            if request.url.params.get("fileId") == "404":
                return httpx.Response(404)
            return httpx.Response(
                200,
                headers={"content-disposition": "attachment; filename*=UTF-8''%EA%B3%B5%EA%B3%A0%EB%AC%B8.hwp"},
                content=b"HWP Document File",
            )

        client = httpx.Client(transport=httpx.MockTransport(handler))
        urls = [
            "https://www.ntis.go.kr/file/download?fileId=1",
            "https://www.ntis.go.kr/file/download?fileId=404",
            "https://www.ntis.go.kr/file/download?fileId=2",
        ]
        saved, errors = download_attachments(urls, tmp_path / "files", referer=f"{VIEW_URL}1", client=client)

        assert saved == ["공고문.hwp", "공고문_1.hwp"]
        assert len(errors) == 1
        assert errors[0].startswith("https://www.ntis.go.kr/file/download?fileId=404")
        assert (tmp_path / "files" / "공고문.hwp").read_bytes() == b"HWP Document File"
        assert seen_referers == [f"{VIEW_URL}1"] * 3
        client.close()


@pytest.mark.parametrize("platform", ["ntis", "board"])
def test_platforms_are_registered(platform):
    import fundingpipe.scrapers  # noqa: F401
    from fundingpipe.scrapers.registry import get_scraper_class

    assert issubclass(get_scraper_class(platform), BaseDiscoveryScraper)
