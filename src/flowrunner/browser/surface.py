"""Interactive surfaces: user-visible browser pages owned by the host, not by a run."""

from __future__ import annotations

import asyncio
import logging
from typing import Protocol, runtime_checkable

from playwright.async_api import Browser, Page, Playwright, async_playwright

logger = logging.getLogger(__name__)


@runtime_checkable
class BrowserSurface(Protocol):
    """Window-lifecycle collaborator for interactive runs.

    ``lock`` serializes runs that drive the same live page.
    """

    lock: asyncio.Lock

    async def get_page(self) -> Page | None: ...

    async def ensure_page(self) -> Page: ...


class PlaywrightWindow:
    """A headed Chromium window kept open between runs and reopened on demand."""

    def __init__(self, start_url: str = "about:blank"):
        self.start_url = start_url
        self.lock = asyncio.Lock()
        self._playwright: Playwright | None = None
        self._browser: Browser | None = None
        self._page: Page | None = None

    async def get_page(self) -> Page | None:
        if self._page is None or self._page.is_closed():
            return None
        return self._page

    async def ensure_page(self) -> Page:
        page = await self.get_page()
        if page is not None:
            return page

        if self._playwright is None:
            self._playwright = await async_playwright().start()
        if self._browser is None or not self._browser.is_connected():
            self._browser = await self._playwright.chromium.launch(headless=False)
        self._page = await self._browser.new_page()
        if self.start_url:
            await self._page.goto(self.start_url)
        logger.info("Opened interactive browser window")
        return self._page

    async def close(self) -> None:
        if self._browser is not None:
            try:
                await self._browser.close()
            except Exception:
                logger.exception("Failed to close interactive browser window")
        if self._playwright is not None:
            try:
                await self._playwright.stop()
            except Exception:
                logger.exception("Failed to stop Playwright driver")
        self._browser = None
        self._page = None
        self._playwright = None
