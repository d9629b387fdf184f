"""
Headless Browser Pool
=====================

Pooled Playwright Chromium for pages whose content is built by client-side
scripts. Pages are handed out through ``acquire()``, an async context
manager that always closes the page's browser context on exit, including
extraction failure and cancellation.
"""

import asyncio
from contextlib import asynccontextmanager
from typing import Optional

from playwright.async_api import async_playwright, Error as PlaywrightError

from ..config.settings import NewsForgeSettings, get_settings
from ..utils.exceptions import ExtractionError, ErrorCode
from ..utils.logging import get_logger_for_component


class BrowserPool:
    """Bounded pool of isolated browser contexts over one Chromium instance."""

    BLOCKED_RESOURCES = {"image", "media", "font"}

    def __init__(self, settings: Optional[NewsForgeSettings] = None):
        self.settings = settings or get_settings()
        self.config = self.settings.browser
        self.logger = get_logger_for_component("browser_pool")

        self._semaphore = asyncio.Semaphore(self.config.pool_size)
        self._launch_lock = asyncio.Lock()
        self._playwright = None
        self._browser = None
        self._unavailable_reason: Optional[str] = None
        self.active_pages = 0

    @property
    def available(self) -> bool:
        return self._unavailable_reason is None

    async def _ensure_browser(self):
        if self._browser is not None:
            return self._browser
        if self._unavailable_reason:
            raise ExtractionError(
                f"Browser unavailable: {self._unavailable_reason}",
                error_code=ErrorCode.BROWSER_UNAVAILABLE,
                recoverable=False,
            )

        async with self._launch_lock:
            if self._browser is None:
                try:
                    self._playwright = await async_playwright().start()
                    self._browser = await self._playwright.chromium.launch(
                        headless=self.config.headless,
                        args=list(self.config.launch_args),
                    )
                    self.logger.info("Launched headless Chromium")
                except PlaywrightError as e:
                    self._unavailable_reason = str(e).splitlines()[0] if str(e) else "launch failed"
                    self.logger.warning(f"Could not launch browser: {self._unavailable_reason}")
                    await self._stop_playwright()
                    raise ExtractionError(
                        f"Browser launch failed: {self._unavailable_reason}",
                        error_code=ErrorCode.BROWSER_UNAVAILABLE,
                        recoverable=False,
                    ) from e
        return self._browser

    @asynccontextmanager
    async def acquire(self):
        """Yield a fresh page; its context is closed on every exit path."""
        async with self._semaphore:
            browser = await self._ensure_browser()
            context = await browser.new_context(
                user_agent=self.settings.http.user_agent,
                viewport={"width": 1366, "height": 768},
                java_script_enabled=True,
            )
            self.active_pages += 1
            try:
                page = await context.new_page()
                page.set_default_navigation_timeout(self.config.navigation_timeout * 1000)
                yield page
            finally:
                self.active_pages -= 1
                try:
                    await context.close()
                except PlaywrightError as e:
                    self.logger.debug(f"Error closing browser context: {e}")

    async def _block_heavy_resources(self, route) -> None:
        if route.request.resource_type in self.BLOCKED_RESOURCES:
            await route.abort()
        else:
            await route.continue_()

    async def render(self, url: str) -> Optional[str]:
        """
        Load ``url``, wait for network idle plus a settle delay, return the DOM.

        Returns:
            Rendered HTML, or None if navigation failed or no browser is available
        """
        try:
            async with self.acquire() as page:
                await page.route("**/*", self._block_heavy_resources)
                await page.goto(
                    url,
                    wait_until="networkidle",
                    timeout=self.config.navigation_timeout * 1000,
                )
                if self.config.settle_delay:
                    await page.wait_for_timeout(self.config.settle_delay * 1000)
                return await page.content()

        except ExtractionError as e:
            self.logger.debug(f"Rendered extraction skipped for {url}: {e}")
            return None
        except PlaywrightError as e:
            self.logger.warning(f"Browser navigation failed for {url}: {e}", extra={"source_url": url})
            return None

    async def _stop_playwright(self) -> None:
        if self._playwright is not None:
            try:
                await self._playwright.stop()
            except PlaywrightError as e:
                self.logger.debug(f"Error stopping playwright: {e}")
            self._playwright = None

    async def close(self) -> None:
        """Close the browser; safe to call more than once."""
        if self._browser is not None:
            try:
                await self._browser.close()
            except PlaywrightError as e:
                self.logger.debug(f"Error closing browser: {e}")
            self._browser = None
        await self._stop_playwright()

    async def __aenter__(self) -> "BrowserPool":
        return self

    async def __aexit__(self, exc_type, exc_val, exc_tb) -> None:
        await self.close()
