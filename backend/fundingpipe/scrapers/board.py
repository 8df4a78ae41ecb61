"""Generic agency bulletin-board scraper (IITP, TIPA, KIMST and similar).

Most agency notice boards are server-rendered tables paged with a
``pageIndex`` query parameter. Everything site-specific comes from
``SourceAgency.config_json``:

    {
      "row_selector": "table.board_list tbody tr",
      "columns": {"title": 1, "posted_at": 3, "deadline": 4},
      "date_from_param": "searchStartDt",   # GET filter, or
      "date_from_selector": "#startDt",     # date <input> + search button
      "date_to_param": "searchEndDt",
      "date_to_selector": "#endDt",
      "search_button_selector": "button.btn_search",
      "date_format": "%Y-%m-%d",
      "page_param": "pageIndex",
      "attachment_selector": "a[href*='fileDown']",
      "detail_labels": {"deadline": ["접수마감"]}
    }
"""

import asyncio
import logging
from urllib.parse import parse_qsl, urlencode, urljoin, urlparse, urlunparse

from bs4 import BeautifulSoup

from fundingpipe.scrapers.base import BaseDiscoveryScraper
from fundingpipe.scrapers.parsing import (
    DEFAULT_ATTACHMENT_SELECTOR, DEFAULT_DETAIL_LABELS, clean, listing_fields, parse_detail_page,
    parse_total_pages,
)
from fundingpipe.scrapers.registry import register_scraper

logger = logging.getLogger(__name__)

DEFAULT_ROW_SELECTOR = "table tbody tr"
DEFAULT_COLUMNS = {"title": 1, "posted_at": 3}


def with_query(url: str, **params) -> str:
    parts = urlparse(url)
    query = dict(parse_qsl(parts.query))
    query.update({k: str(v) for k, v in params.items() if v is not None})
    return urlunparse(parts._replace(query=urlencode(query)))


def parse_board_listing(html: str, page_url: str, row_selector: str = DEFAULT_ROW_SELECTOR,
                        columns: dict[str, int] | None = None) -> list[dict]:
    columns = columns or DEFAULT_COLUMNS
    soup = BeautifulSoup(html, "lxml")
    rows = []
    for tr in soup.select(row_selector):
        cells = tr.find_all("td")
        link = tr.find("a", href=True)
        if not cells or link is None or link["href"].startswith("javascript"):
            continue

        values = {}
        for name, index in columns.items():
            if index < len(cells):
                values[name] = clean(cells[index].get_text(" ")) or None

        title = clean(link.get_text(" ")) or values.get("title")
        if not title:
            continue
        rows.append({
            "title": title,
            "url": urljoin(page_url, link["href"]),
            "source_id": values.get("source_id"),
            "ministry": values.get("ministry"),
            "posted_at": values.get("posted_at"),
            "deadline": values.get("deadline"),
            "status": values.get("status"),
        })
    return rows


@register_scraper("board")
class BoardScraper(BaseDiscoveryScraper):

    def scrape(self) -> list[dict]:
        return asyncio.run(self._scrape_async())

    def _format_date(self, day) -> str:
        return day.strftime(self.config.get("date_format", "%Y-%m-%d"))

    def listing_page_url(self, page_number: int, search_url: str | None = None) -> str:
        url = search_url or self.agency.listing_url
        params = {self.config.get("page_param", "pageIndex"): page_number}
        if self.config.get("date_from_param"):
            params[self.config["date_from_param"]] = self._format_date(self.date_from)
        if self.config.get("date_to_param"):
            params[self.config["date_to_param"]] = self._format_date(self.date_to)
        return with_query(url, **params)

    async def _search_with_inputs(self, page) -> str:
        """Fill the board's date inputs and submit; returns the resulting URL."""
        await page.goto(self.agency.listing_url, wait_until="domcontentloaded")
        await page.fill(self.config["date_from_selector"], self._format_date(self.date_from))
        if self.config.get("date_to_selector"):
            await page.fill(self.config["date_to_selector"], self._format_date(self.date_to))
        await page.click(self.config.get("search_button_selector", "button[type='submit']"))
        await page.wait_for_load_state("networkidle")
        return page.url

    async def _scrape_async(self) -> list[dict]:
        from fundingpipe.scrapers.browser import get_browser

        row_selector = self.config.get("row_selector", DEFAULT_ROW_SELECTOR)
        columns = self.config.get("columns", DEFAULT_COLUMNS)
        labels = {**DEFAULT_DETAIL_LABELS, **self.config.get("detail_labels", {})}
        attachment_selector = self.config.get("attachment_selector", DEFAULT_ATTACHMENT_SELECTOR)

        async with get_browser(timeout=self.settings.scrape_timeout * 1000) as browser:
            page = await browser.new_page()
            search_url = None
            if self.config.get("date_from_selector"):
                search_url = await self._search_with_inputs(page)

            detail_page = await browser.new_page()
            results = []
            page_limit = self.max_pages or self.settings.max_browser_pages
            page_number = 1
            while page_number <= page_limit:
                url = self.listing_page_url(page_number, search_url)
                await page.goto(url, wait_until="domcontentloaded")
                html = await page.content()

                if page_number == 1:
                    total_pages = parse_total_pages(html)
                    if total_pages is not None:
                        page_limit = min(page_limit, total_pages)

                rows = parse_board_listing(html, url, row_selector, columns)
                if not rows:
                    break

                for row in rows:
                    row["page_number"] = page_number
                    if self.is_known(row["url"]):
                        results.append(row)
                        continue
                    try:
                        await detail_page.goto(row["url"], wait_until="domcontentloaded")
                        await asyncio.sleep(self.settings.discovery_detail_delay)
                        row["detail"] = parse_detail_page(
                            await detail_page.content(), row["url"], labels, attachment_selector,
                        )
                    except Exception as e:
                        logger.warning(f"[{self.agency.code}] Detail fetch failed for {row['url']}: {e}")
                        row["error"] = f"Detail page fetch failed: {e}"
                    results.append(row)

                logger.info(f"[{self.agency.code}] Page {page_number}: {len(rows)} rows")
                page_number += 1
                await asyncio.sleep(self.settings.discovery_page_delay)

            self.cookies = await browser.cookies()
            return results

    def normalize(self, raw: dict) -> dict:
        data = listing_fields(raw)
        if not data["ministry"]:
            data["ministry"] = self.config.get("ministry")
        if not data["announcing_agency"]:
            data["announcing_agency"] = self.agency.name
        return data
