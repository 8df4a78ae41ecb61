"""HTML parsing shared by the agency scrapers.

Everything here works on static HTML strings so it can be tested without a
browser.
"""

import re
from urllib.parse import urljoin

from bs4 import BeautifulSoup

from fundingpipe.fields.dates import parse_korean_date

ROWS_PER_PAGE = 10

RESULT_COUNT_RE = re.compile(r"검색결과\s*[:：]?\s*([\d,]+)\s*건")
PAGE_INDEX_RE = re.compile(r"pageIndex=(\d+)")
PAGE_CALL_RE = re.compile(r"fn_(?:search|link_page|egov_link_page)\(\s*'?(\d+)'?")

DEFAULT_DETAIL_LABELS = {
    "ministry": ["부처명", "소관부처", "주관부처"],
    "announcing_agency": ["공고기관명", "전문기관", "공고기관"],
    "deadline": ["접수마감일", "마감일", "신청마감일"],
    "published_at": ["공고일", "공고일자", "등록일"],
}
DEFAULT_ATTACHMENT_SELECTOR = "a[href*='/file/download'], a[href*='fileDown'], a[href*='download.do']"
DEFAULT_DESCRIPTION_SELECTOR = ".content, .description, .summary, .view_cont, .board_view"


def clean(text: str | None) -> str:
    return re.sub(r"\s+", " ", text or "").strip()


def parse_total_pages(html: str, rows_per_page: int = ROWS_PER_PAGE) -> int | None:
    """Page count from the "검색결과 N건" banner, else the highest pagination link."""
    soup = BeautifulSoup(html, "lxml")
    match = RESULT_COUNT_RE.search(soup.get_text(" "))
    if match:
        total = int(match.group(1).replace(",", ""))
        return max(1, -(-total // rows_per_page)) if total else 0

    pages = [int(n) for n in PAGE_INDEX_RE.findall(html)]
    pages += [int(n) for n in PAGE_CALL_RE.findall(html)]
    return max(pages) if pages else None


def value_after_label(soup: BeautifulSoup, labels: list[str]) -> str | None:
    """Text of the cell next to the first ``th``/``dt`` whose text is one of ``labels``."""
    for header in soup.find_all(["th", "dt"]):
        header_text = clean(header.get_text())
        if not any(label == header_text or header_text.startswith(label) for label in labels):
            continue
        sibling = header.find_next_sibling(["td", "dd"])
        if sibling is not None:
            value = clean(sibling.get_text(" "))
            if value:
                return value
    return None


def parse_detail_page(
    html: str,
    url: str,
    labels: dict[str, list[str]] | None = None,
    attachment_selector: str = DEFAULT_ATTACHMENT_SELECTOR,
    description_selector: str = DEFAULT_DESCRIPTION_SELECTOR,
) -> dict:
    labels = labels or DEFAULT_DETAIL_LABELS
    soup = BeautifulSoup(html, "lxml")

    title_el = soup.select_one("h2, h3, .subject, .title")
    description_el = soup.select_one(description_selector)

    attachment_urls = []
    for link in soup.select(attachment_selector):
        href = link.get("href")
        if not href or href.startswith("javascript"):
            continue
        absolute = urljoin(url, href)
        if absolute not in attachment_urls:
            attachment_urls.append(absolute)

    return {
        "title": clean(title_el.get_text()) if title_el else "",
        "ministry": value_after_label(soup, labels.get("ministry", [])),
        "announcing_agency": value_after_label(soup, labels.get("announcing_agency", [])),
        "deadline": value_after_label(soup, labels.get("deadline", [])),
        "published_at": value_after_label(soup, labels.get("published_at", [])),
        "description": clean(description_el.get_text(" ")) if description_el else None,
        "attachment_urls": attachment_urls,
        "raw_html": html,
    }


def listing_fields(raw: dict) -> dict:
    """Common ScrapeJob columns from a raw listing row plus its detail page."""
    detail = raw.get("detail") or {}
    return {
        "title": clean(raw.get("title")) or clean(detail.get("title")),
        "announcement_url": raw["url"],
        "source_announcement_id": raw.get("source_id"),
        "ministry": raw.get("ministry") or detail.get("ministry"),
        "announcing_agency": detail.get("announcing_agency") or raw.get("announcing_agency"),
        "listing_posted_at": parse_korean_date(raw.get("posted_at") or detail.get("published_at")),
        "listing_deadline": parse_korean_date(raw.get("deadline") or detail.get("deadline")),
        "page_number": raw.get("page_number"),
        "attachment_urls": detail.get("attachment_urls") or [],
        "detail_page_data": {
            "description": detail.get("description"),
            "raw_html": detail.get("raw_html"),
            "attachment_urls": detail.get("attachment_urls") or [],
            "deadline_text": detail.get("deadline") or raw.get("deadline"),
            "published_text": detail.get("published_at") or raw.get("posted_at"),
            "status": raw.get("status"),
        },
        "scraping_error": raw.get("error"),
    }
