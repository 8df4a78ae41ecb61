"""Hosted office-editor fallback.

Opens the attachment in a cloud document editor through the stealth browser,
reads the text the editor renders and saves a screenshot of the rendered page
beside the file so the OCR backend can use it if no text comes back. Handles
HWP/HWPX files that the native parser or LibreOffice cannot open.
"""

import asyncio
import logging
from pathlib import Path

from fundingpipe.extraction.base import ExtractionError, TextExtractor, normalize_text

logger = logging.getLogger(__name__)

LOGIN_EMAIL_SELECTOR = "input[type='email'], input[name='email'], #email"
LOGIN_PASSWORD_SELECTOR = "input[type='password'], #password"
LOGIN_SUBMIT_SELECTOR = "button[type='submit'], button:has-text('로그인')"
UPLOAD_INPUT_SELECTOR = "input[type='file']"
EDITOR_READY_SELECTOR = "#hwpEditor, .hcwo-document, [class*='editor-container']"
EDITOR_TEXT_SELECTOR = "#hwpEditor, .hcwo-document, [class*='editor-container']"


class CloudEditorExtractor(TextExtractor):
    name = "cloud-editor"
    data_source = "cloud-ocr"
    extensions = frozenset({".hwp", ".hwpx", ".doc", ".docx", ".pdf"})

    def __init__(self, base_url: str, email: str | None, password: str | None,
                 enabled: bool = True, timeout_ms: int = 60000):
        self.base_url = base_url.rstrip("/")
        self.email = email
        self.password = password
        self.enabled = enabled
        self.timeout_ms = timeout_ms

    def extract(self, path: Path) -> str:
        if not self.enabled:
            raise ExtractionError("Cloud editor fallback disabled")
        if not self.email or not self.password:
            raise ExtractionError("Cloud editor credentials not configured")
        text = asyncio.run(self._extract_async(path))
        return normalize_text(text)

    async def _extract_async(self, path: Path) -> str:
        from fundingpipe.scrapers.browser import get_browser, human_delay

        try:
            async with get_browser(timeout=self.timeout_ms) as browser:
                page = await browser.new_page()
                await self._login(page)

                await page.goto(self.base_url, wait_until="domcontentloaded")
                await page.set_input_files(UPLOAD_INPUT_SELECTOR, str(path))
                await page.wait_for_selector(EDITOR_READY_SELECTOR, timeout=self.timeout_ms)
                await human_delay(3000, 5000)

                text = await page.inner_text(EDITOR_TEXT_SELECTOR)
                screenshot = path.with_suffix(".png")
                await page.screenshot(path=str(screenshot), full_page=True)
                logger.info(f"Cloud editor rendered {path.name}: {len(text or '')} chars, screenshot {screenshot.name}")
                return text or ""
        except ExtractionError:
            raise
        except Exception as e:
            raise ExtractionError(f"Cloud editor automation failed: {e}") from e

    async def _login(self, page) -> None:
        from fundingpipe.scrapers.browser import human_delay

        await page.goto(f"{self.base_url}/login", wait_until="domcontentloaded")
        await human_delay(1000, 2000)
        await page.fill(LOGIN_EMAIL_SELECTOR, self.email)
        await page.fill(LOGIN_PASSWORD_SELECTOR, self.password)
        await page.click(LOGIN_SUBMIT_SELECTOR)
        await page.wait_for_load_state("networkidle")
        if "/login" in page.url:
            raise ExtractionError("Cloud editor login rejected")
