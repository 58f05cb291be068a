"""Browser capability: the page operations a step executor may perform."""

from __future__ import annotations

from pathlib import Path
from typing import Protocol, runtime_checkable

from playwright.async_api import ElementHandle, Page
from playwright.async_api import Error as PlaywrightError
from playwright.async_api import TimeoutError as PlaywrightTimeoutError

from ..errors import ElementNotFoundError, NavigationError, StepExecutionError, StepTimeoutError

_SCROLL_INTO_VIEW = """
(sel) => {
  const element = document.querySelector(sel);
  element?.scrollIntoView({ behavior: "smooth", block: "center" });
}
"""

_SCROLL_BY = "(amount) => window.scrollBy(0, amount)"


@runtime_checkable
class BrowserCapability(Protocol):
    """Everything the engine needs from a browser, independent of who owns it."""

    async def navigate(self, url: str) -> None: ...

    async def click(self, selector: str) -> None: ...

    async def type_text(self, selector: str, text: str) -> None: ...

    async def hover(self, selector: str) -> None: ...

    async def select_option(self, selector: str, value: str) -> None: ...

    async def upload_file(self, selector: str, file_path: str) -> None: ...

    async def extract_text(self, selector: str) -> str | None: ...

    async def scroll_to_element(self, selector: str) -> None: ...

    async def scroll_by(self, amount: int) -> None: ...

    async def screenshot(self, path: Path) -> Path: ...

    async def element_exists(self, selector: str) -> bool: ...

    async def element_text(self, selector: str) -> str: ...


class PageCapability:
    """BrowserCapability backed by a Playwright page.

    The page may belong to a user-visible window or to a private headless
    browser; this class never opens or closes it.
    """

    def __init__(
        self,
        page: Page,
        element_timeout_ms: float = 10_000,
        wait_until: str = "networkidle",
    ):
        self.page = page
        self.element_timeout_ms = element_timeout_ms
        self.wait_until = wait_until

    async def navigate(self, url: str) -> None:
        try:
            await self.page.goto(url, wait_until=self.wait_until)
        except PlaywrightError as e:
            raise NavigationError(url, str(e)) from e

    async def click(self, selector: str) -> None:
        await self._wait_for(selector)
        await self._act(self.page.click(selector))

    async def type_text(self, selector: str, text: str) -> None:
        await self._wait_for(selector)
        await self._act(self.page.locator(selector).first.press_sequentially(text))

    async def hover(self, selector: str) -> None:
        await self._wait_for(selector)
        await self._act(self.page.hover(selector))

    async def select_option(self, selector: str, value: str) -> None:
        await self._wait_for(selector)
        await self._act(self.page.select_option(selector, value))

    async def upload_file(self, selector: str, file_path: str) -> None:
        await self._wait_for(selector)
        await self._act(self.page.set_input_files(selector, file_path))

    async def extract_text(self, selector: str) -> str | None:
        element = await self.page.query_selector(selector)
        if element is None:
            return None
        text = await element.text_content()
        return text.strip() if text is not None else None

    async def scroll_to_element(self, selector: str) -> None:
        await self._act(self.page.evaluate(_SCROLL_INTO_VIEW, selector))

    async def scroll_by(self, amount: int) -> None:
        await self._act(self.page.evaluate(_SCROLL_BY, amount))

    async def screenshot(self, path: Path) -> Path:
        path.parent.mkdir(parents=True, exist_ok=True)
        await self._act(self.page.screenshot(path=str(path), full_page=True))
        return path

    async def element_exists(self, selector: str) -> bool:
        return await self._resolve(selector) is not None

    async def element_text(self, selector: str) -> str:
        element = await self._resolve(selector)
        if element is None:
            return ""
        return await element.inner_text() or ""

    async def _resolve(self, selector: str) -> ElementHandle | None:
        """First match for ``selector``, tried as CSS and then as XPath."""
        for engine in ("css", "xpath"):
            try:
                element = await self.page.query_selector(f"{engine}={selector}")
            except PlaywrightError:
                continue
            if element is not None:
                return element
        return None

    async def _wait_for(self, selector: str) -> None:
        try:
            await self.page.wait_for_selector(
                selector, state="attached", timeout=self.element_timeout_ms
            )
        except PlaywrightTimeoutError as e:
            raise ElementNotFoundError(selector, self.element_timeout_ms) from e

    @staticmethod
    async def _act(operation) -> object:
        try:
            return await operation
        except PlaywrightTimeoutError as e:
            raise StepTimeoutError(str(e)) from e
        except PlaywrightError as e:
            raise StepExecutionError(str(e), "browser_error") from e
