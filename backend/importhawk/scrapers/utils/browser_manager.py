"""Playwright browser lifecycle manager.

One manager belongs to one adapter instance. The browser is launched
lazily on the first page request and lives until stop() is called.
"""

import asyncio
from contextlib import asynccontextmanager
from typing import AsyncIterator, Optional

import structlog
from playwright.async_api import Browser, BrowserContext, Page, Playwright, async_playwright

from importhawk.scrapers.utils.user_agents import get_random_user_agent

logger = structlog.get_logger(__name__)


class BrowserManager:
    """Owns one Playwright browser and one context.

    Pages are handed out through ``page()``, an async context manager that
    closes the page on every exit path.
    """

    def __init__(
        self,
        headless: bool = True,
        block_resources: bool = True,
        navigation_timeout_ms: int = 30000,
    ):
        self._headless = headless
        self._block_resources = block_resources
        self._navigation_timeout_ms = navigation_timeout_ms
        self._playwright: Optional[Playwright] = None
        self._browser: Optional[Browser] = None
        self._context: Optional[BrowserContext] = None
        self._lock = asyncio.Lock()

    async def start(self) -> None:
        """Launch the browser and create the shared context."""
        async with self._lock:
            if self._browser:
                return
            self._playwright = await async_playwright().start()
            self._browser = await self._playwright.chromium.launch(
                headless=self._headless,
                args=[
                    "--disable-blink-features=AutomationControlled",
                    "--disable-dev-shm-usage",
                    "--no-sandbox",
                ],
            )
            self._context = await self._browser.new_context(
                user_agent=get_random_user_agent(),
                viewport={"width": 1920, "height": 1080},
                locale="en-US",
                java_script_enabled=True,
            )
            await self._context.add_init_script(STEALTH_JS)
            self._context.set_default_navigation_timeout(self._navigation_timeout_ms)

            # Image bytes are never needed, only their URLs
            if self._block_resources:
                await self._context.route(
                    "**/*.{png,jpg,jpeg,gif,webp,svg,woff,woff2,ttf,eot}",
                    lambda route: route.abort(),
                )
            logger.info("browser_started", headless=self._headless)

    async def stop(self) -> None:
        """Close the context, the browser and Playwright itself."""
        async with self._lock:
            if self._context:
                try:
                    await self._context.close()
                except Exception as e:
                    logger.warning("browser_context_close_failed", error=str(e))
                self._context = None
            if self._browser:
                await self._browser.close()
                self._browser = None
            if self._playwright:
                await self._playwright.stop()
                self._playwright = None
            logger.info("browser_stopped")

    @asynccontextmanager
    async def page(self) -> AsyncIterator[Page]:
        """Open a page in the shared context, closing it afterwards."""
        if not self._browser:
            await self.start()
        page = await self._context.new_page()
        try:
            yield page
        finally:
            try:
                await page.close()
            except Exception as e:
                logger.debug("browser_page_close_failed", error=str(e))

    async def render(self, url: str, wait_selector: Optional[str] = None, settle_seconds: float = 0.0) -> str:
        """Navigate to a URL and return the rendered HTML.

        Args:
            url: Page to load
            wait_selector: Optional selector to wait for (best effort)
            settle_seconds: Extra time for client-side scripts to populate data
        """
        async with self.page() as page:
            await page.goto(url, wait_until="domcontentloaded")
            if wait_selector:
                try:
                    await page.wait_for_selector(wait_selector, timeout=10000)
                except Exception as e:
                    logger.debug("wait_selector_missed", url=url, selector=wait_selector, error=str(e))
            if settle_seconds > 0:
                await asyncio.sleep(settle_seconds)
            return await page.content()


# Minimal stealth JS to mask automation signals
STEALTH_JS = """
Object.defineProperty(navigator, 'webdriver', { get: () => undefined });
Object.defineProperty(navigator, 'languages', { get: () => ['en-US', 'en'] });
Object.defineProperty(navigator, 'plugins', { get: () => [1, 2, 3, 4, 5] });
window.chrome = { runtime: {} };
"""
