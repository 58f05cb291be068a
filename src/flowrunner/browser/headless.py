"""Headless backend: a private, disposable Chromium process driven through Playwright."""

from __future__ import annotations

import logging

from playwright.async_api import Browser, Page, Playwright, async_playwright

from ..errors import BrowserUnavailableError
from .capability import PageCapability

logger = logging.getLogger(__name__)

LAUNCH_ARGS = [
    "--no-sandbox",
    "--disable-setuid-sandbox",
    "--disable-dev-shm-usage",
    "--disable-gpu",
]
VIEWPORT = {"width": 1920, "height": 1080}


class HeadlessBrowser:
    """Owns one headless browser end-to-end.

    ``launch()`` must run before any step and ``close()`` must run once the
    run completes or fails; callers put ``close()`` in a ``finally`` block.
    """

    def __init__(self, element_timeout_ms: float = 10_000, wait_until: str = "networkidle"):
        self.element_timeout_ms = element_timeout_ms
        self.wait_until = wait_until
        self._playwright: Playwright | None = None
        self._browser: Browser | None = None
        self._page: Page | None = None

    async def launch(self) -> None:
        self._playwright = await async_playwright().start()
        self._browser = await self._playwright.chromium.launch(headless=True, args=LAUNCH_ARGS)
        self._page = await self._browser.new_page(viewport=VIEWPORT)
        logger.info("Launched headless browser")

    def capability(self) -> PageCapability:
        if self._page is None:
            raise BrowserUnavailableError("Headless browser not launched. Call launch() first.")
        return PageCapability(self._page, self.element_timeout_ms, self.wait_until)

    async def close(self) -> None:
        """Release the browser process. Errors are logged, never raised."""
        browser, playwright = self._browser, self._playwright
        self._browser = None
        self._page = None
        self._playwright = None

        if browser is not None:
            try:
                await browser.close()
                logger.info("Closed headless browser")
            except Exception:
                logger.exception("Failed to close headless browser")
        if playwright is not None:
            try:
                await playwright.stop()
            except Exception:
                logger.exception("Failed to stop Playwright driver")
