"""
Browser manager — Playwright lifecycle for pages that host third-party
payment widgets.

One browser per storefront session, launched the first time a payment page
is needed and shut down with the session.
"""
import logging
from typing import Optional

from playwright.async_api import Browser, BrowserContext, Page, Playwright, async_playwright
from playwright.async_api import Error as PlaywrightError

logger = logging.getLogger(__name__)


class BrowserManager:
    """Owns the Playwright driver, browser, and the payment pages opened in it."""

    def __init__(self, headless: bool = False):
        self._headless = headless
        self._playwright: Optional[Playwright] = None
        self._browser: Optional[Browser] = None
        self._context: Optional[BrowserContext] = None
        self._pages: list[Page] = []

    @property
    def headless(self) -> bool:
        return self._headless

    @property
    def page_count(self) -> int:
        return len(self._pages)

    async def _ensure_browser(self) -> Browser:
        if self._browser and self._browser.is_connected():
            return self._browser

        if self._playwright is None:
            self._playwright = await async_playwright().start()
        self._browser = await self._playwright.chromium.launch(
            headless=self._headless,
            args=["--disable-dev-shm-usage", "--no-sandbox"],
        )
        logger.info("Payment browser launched (headless=%s)", self._headless)
        return self._browser

    async def _ensure_context(self) -> BrowserContext:
        if self._context is None:
            browser = await self._ensure_browser()
            self._context = await browser.new_context(viewport={"width": 1024, "height": 768})
        return self._context

    async def open_blank_page(self) -> Page:
        """Open an empty page; the caller fills it with ``set_content``."""
        context = await self._ensure_context()
        page = await context.new_page()
        self._pages.append(page)
        logger.debug("Opened payment page (%d open)", len(self._pages))
        return page

    async def close_page(self, page: Page) -> None:
        if page in self._pages:
            self._pages.remove(page)
        if not page.is_closed():
            await page.close()

    async def close(self) -> None:
        """Close open pages, then the context, the browser, and the driver."""
        steps = [("page", page.close) for page in self._pages]
        if self._context:
            steps.append(("context", self._context.close))
        if self._browser:
            steps.append(("browser", self._browser.close))
        if self._playwright:
            steps.append(("playwright", self._playwright.stop))

        for label, step in steps:
            try:
                await step()
            except PlaywrightError as e:
                logger.debug("Closing %s failed: %s", label, e)

        self._pages.clear()
        self._context = None
        self._browser = None
        self._playwright = None
        logger.info("Payment browser closed")
