"""Browser backends.

Usage:
    from flowrunner.browser import HeadlessBrowser

    browser = HeadlessBrowser()
    try:
        await browser.launch()
        capability = browser.capability()
        ...
    finally:
        await browser.close()
"""

from .capability import BrowserCapability, PageCapability
from .headless import HeadlessBrowser
from .surface import BrowserSurface, PlaywrightWindow

__all__ = ["BrowserCapability", "BrowserSurface", "HeadlessBrowser", "PageCapability", "PlaywrightWindow"]
