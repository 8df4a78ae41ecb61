"""Stealth browser for JS-driven agency listing pages and the cloud editor.

Uses Patchright (Playwright fork with anti-detection patches). Context
settings match a Korean desktop Chrome so agency sites serve their normal
Korean pages.
"""

import asyncio
import logging
import random
from contextlib import asynccontextmanager

logger = logging.getLogger(__name__)

STEALTH_INIT_SCRIPT = """
// Mask navigator.webdriver
Object.defineProperty(navigator, 'webdriver', { get: () => undefined });

// Spoof navigator.platform to match Windows Chrome
Object.defineProperty(navigator, 'platform', { get: () => 'Win32' });

// Korean browser languages
Object.defineProperty(navigator, 'languages', { get: () => ['ko-KR', 'ko', 'en-US', 'en'] });

// Mock window.chrome object
window.chrome = {
    runtime: { connect: () => {}, sendMessage: () => {} },
    loadTimes: () => ({}),
    csi: () => ({})
};

// KST = UTC+9
Date.prototype.getTimezoneOffset = function() { return -540; };
"""

BROWSER_LAUNCH_ARGS = [
    "--disable-blink-features=AutomationControlled",
    "--no-sandbox",
    "--disable-dev-shm-usage",
    "--disable-infobars",
    "--disable-extensions",
    "--no-first-run",
    "--window-size=1920,1080",
]

BROWSER_CONTEXT_OPTIONS = {
    "viewport": {"width": 1920, "height": 1080},
    "device_scale_factor": 1,
    "locale": "ko-KR",
    "timezone_id": "Asia/Seoul",
    "user_agent": "Mozilla/5.0 (Windows NT 10.0; Win64; x64) AppleWebKit/537.36 (KHTML, like Gecko) Chrome/124.0.0.0 Safari/537.36",
    "color_scheme": "light",
    "accept_downloads": True,
}


class StealthBrowser:
    """Browser wrapper with anti-detection features."""

    def __init__(self, headless: bool = True, timeout: int = 30000):
        self.headless = headless
        self.timeout = timeout
        self.browser = None
        self.playwright = None
        self.context = None

    async def launch(self) -> bool:
        """Launch browser. Returns True on success."""
        try:
            from patchright.async_api import async_playwright
            self.playwright = await async_playwright().start()
            self.browser = await self.playwright.chromium.launch(
                headless=self.headless,
                args=BROWSER_LAUNCH_ARGS,
            )
            logger.info("Launched Patchright Chromium")
            return True
        except Exception as e:
            logger.error(f"Failed to launch browser: {e}")
            return False

    async def new_page(self):
        """Create a new page with stealth settings (one shared context)."""
        if not self.browser:
            raise RuntimeError("Browser not launched")
        if self.context is None:
            self.context = await self.browser.new_context(**BROWSER_CONTEXT_OPTIONS)
        page = await self.context.new_page()
        page.set_default_timeout(self.timeout)
        return page

    @staticmethod
    async def apply_stealth(page):
        """Inject stealth scripts after page load. Call after goto()."""
        await page.evaluate(STEALTH_INIT_SCRIPT)

    async def cookies(self) -> dict[str, str]:
        """Session cookies, for downloading attachments outside the browser."""
        if self.context is None:
            return {}
        return {c["name"]: c["value"] for c in await self.context.cookies()}

    async def close(self):
        if self.browser:
            await self.browser.close()
        if self.playwright:
            await self.playwright.stop()


@asynccontextmanager
async def get_browser(headless: bool = True, timeout: int = 30000):
    """Context manager for stealth browser sessions."""
    browser = StealthBrowser(headless=headless, timeout=timeout)
    try:
        if not await browser.launch():
            raise RuntimeError("Failed to launch stealth browser")
        yield browser
    finally:
        await browser.close()


async def human_delay(min_ms: int = 100, max_ms: int = 500) -> None:
    """Random delay to appear human."""
    delay = random.uniform(min_ms / 1000, max_ms / 1000)
    await asyncio.sleep(delay)
