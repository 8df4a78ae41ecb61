"""NTIS (National Science & Technology Information Service) scraper.

Listing: https://www.ntis.go.kr/rndgate/eg/un/ra/mng.do
The search form uses jQuery UI date-pickers (#searchCondition2 = from,
#searchCondition3 = to) and is submitted with fn_search(pageIndex, ''),
which also drives pagination. Each result row is a <tr> with cells:
  [번호, 현황, 공고명 (link), 부처명, 접수일, 마감일, D-day]
Detail pages are <th>/<td> tables labelled 부처명, 공고기관명, 접수마감일,
공고일; attachments link to /file/download.
"""

import asyncio
import logging
import re
from urllib.parse import urljoin

from bs4 import BeautifulSoup

from fundingpipe.scrapers.base import BaseDiscoveryScraper
from fundingpipe.scrapers.parsing import clean, listing_fields, parse_detail_page, parse_total_pages
from fundingpipe.scrapers.registry import register_scraper

logger = logging.getLogger(__name__)

NTIS_BASE = "https://www.ntis.go.kr"
NTIS_LISTING_PATH = "/rndgate/eg/un/ra/mng.do"
DEFAULT_TOTAL_PAGES = 100

DEFAULT_ROW_SELECTOR = "table.basic_list tbody tr, #contents table tbody tr"
# Cell positions within a listing row
DEFAULT_COLUMNS = {"source_id": 0, "status": 1, "title": 2, "ministry": 3, "posted_at": 4, "deadline": 5}

_ID_IN_HREF_RE = re.compile(r"(?:roRndUid|ancmId|sn)=(\d+)")

SET_DATE_SCRIPT = """([selector, year, month, day]) => {
    const $ = window.$;
    if (!$ || !$.datepicker) { throw new Error('jQuery Datepicker not available'); }
    const input = $(selector);
    if (input.length && input.datepicker) {
        input.datepicker('setDate', new Date(year, month - 1, day));
    }
}"""

SUBMIT_SCRIPT = """(pageIndex) => {
    const pageInput = document.getElementById('pageIndex');
    if (pageInput) { pageInput.value = String(pageIndex); }
    if (typeof window.fn_search === 'function') { window.fn_search(String(pageIndex), ''); }
}"""


def parse_ntis_listing(html: str, base_url: str = NTIS_BASE, row_selector: str = DEFAULT_ROW_SELECTOR,
                       columns: dict[str, int] | None = None) -> list[dict]:
    """Announcement rows of one NTIS result page."""
    columns = columns or DEFAULT_COLUMNS
    soup = BeautifulSoup(html, "lxml")
    rows = []
    for tr in soup.select(row_selector):
        cells = tr.find_all("td")
        link = tr.find("a", href=True)
        if not cells or link is None:
            continue

        href = link["href"]
        if href.startswith("javascript"):
            continue
        url = urljoin(base_url, href)

        def cell(name):
            index = columns.get(name)
            if index is None or index >= len(cells):
                return None
            return clean(cells[index].get_text(" ")) or None

        title = clean(link.get("title") or link.get_text(" ")) or cell("title")
        if not title:
            continue

        source_id = cell("source_id")
        href_id = _ID_IN_HREF_RE.search(href)
        if href_id:
            source_id = href_id.group(1)

        rows.append({
            "title": title,
            "url": url,
            "source_id": source_id,
            "status": cell("status"),
            "ministry": cell("ministry"),
            "posted_at": cell("posted_at"),
            "deadline": cell("deadline"),
        })
    return rows


@register_scraper("ntis")
class NtisScraper(BaseDiscoveryScraper):

    def scrape(self) -> list[dict]:
        return asyncio.run(self._scrape_async())

    @property
    def listing_url(self) -> str:
        if self.agency.listing_path:
            return self.agency.listing_url
        return f"{NTIS_BASE}{NTIS_LISTING_PATH}"

    async def _apply_filter(self, page, page_number: int) -> None:
        """Set the date-picker range and submit the search for ``page_number``."""
        if NTIS_LISTING_PATH not in page.url:
            await page.goto(self.listing_url, wait_until="domcontentloaded")
            await asyncio.sleep(2)

        for selector, day in (("#searchCondition2", self.date_from), ("#searchCondition3", self.date_to)):
            await page.evaluate(SET_DATE_SCRIPT, [selector, day.year, day.month, day.day])
        await asyncio.sleep(0.5)

        await page.evaluate(SUBMIT_SCRIPT, page_number)
        await page.wait_for_load_state("domcontentloaded")
        await asyncio.sleep(self.settings.discovery_page_delay)
        await page.wait_for_load_state("networkidle")

    async def _scrape_async(self) -> list[dict]:
        from fundingpipe.scrapers.browser import get_browser

        row_selector = self.config.get("row_selector", DEFAULT_ROW_SELECTOR)
        columns = self.config.get("columns", DEFAULT_COLUMNS)
        base_url = self.agency.base_url or NTIS_BASE

        logger.info(f"[{self.agency.code}] Fetching NTIS listing {self.listing_url} for {self.date_range}")

        async with get_browser(timeout=self.settings.scrape_timeout * 1000) as browser:
            page = await browser.new_page()
            # Session cookies are issued on the home page
            await page.goto(base_url, wait_until="domcontentloaded")
            await browser.apply_stealth(page)
            await asyncio.sleep(2)

            await self._apply_filter(page, 1)
            html = await page.content()
            total_pages = parse_total_pages(html)
            if total_pages is None:
                logger.warning(f"[{self.agency.code}] Could not determine total pages; defaulting to {DEFAULT_TOTAL_PAGES}")
                total_pages = DEFAULT_TOTAL_PAGES
            page_limit = min(total_pages, self.max_pages or self.settings.max_browser_pages)
            logger.info(f"[{self.agency.code}] {total_pages} result pages, scraping {page_limit}")

            detail_page = await browser.new_page()
            results = []
            for page_number in range(1, page_limit + 1):
                if page_number > 1:
                    await self._apply_filter(page, page_number)
                    html = await page.content()

                rows = parse_ntis_listing(html, base_url, row_selector, columns)
                if not rows:
                    logger.info(f"[{self.agency.code}] No rows on page {page_number}; stopping")
                    break

                for row in rows:
                    row["page_number"] = page_number
                    if self.is_known(row["url"]):
                        results.append(row)
                        continue
                    try:
                        await detail_page.goto(row["url"], wait_until="domcontentloaded")
                        await asyncio.sleep(self.settings.discovery_detail_delay)
                        row["detail"] = parse_detail_page(await detail_page.content(), row["url"])
                    except Exception as e:
                        logger.warning(f"[{self.agency.code}] Detail fetch failed for {row['url']}: {e}")
                        row["error"] = f"Detail page fetch failed: {e}"
                    results.append(row)

                logger.info(f"[{self.agency.code}] Page {page_number}/{page_limit}: {len(rows)} rows")

            self.cookies = await browser.cookies()
            return results

    def normalize(self, raw: dict) -> dict:
        return listing_fields(raw)
