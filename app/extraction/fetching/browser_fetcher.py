"""
Headless-browser fetcher for client-rendered pages.
"""

from __future__ import annotations

import logging
from collections.abc import Callable
from typing import Any

from playwright.sync_api import Browser, Page, Playwright, sync_playwright
from playwright.sync_api import Error as PlaywrightError
from playwright.sync_api import TimeoutError as PlaywrightTimeoutError

from app.extraction.errors import (
    BrowserUnavailableError,
    FetchError,
    HTTPStatusError,
    NavigationTimeoutError,
)
from app.extraction.fetching.base import PageFetcher
from app.extraction.logging_utils import log_event
from app.extraction.types import BrowserType, FetchOptions, FetchResult, RenderMode

logger = logging.getLogger(__name__)

_SCROLL_HEIGHT_JS = "() => document.body ? document.body.scrollHeight : 0"
_SCROLL_TO_BOTTOM_JS = "() => window.scrollTo(0, document.body ? document.body.scrollHeight : 0)"


class BrowserPageFetcher(PageFetcher):
    """
    Render pages in a Playwright-driven browser.

    The driver and browser start lazily on the first fetch and live until
    `close()`. Each fetch gets its own context and page, closed afterwards.
    """

    render_mode = RenderMode.DYNAMIC

    def __init__(
        self,
        *,
        driver_factory: Callable[[], Any] = sync_playwright,
        headless: bool = True,
        max_scroll_steps: int = 20,
        scroll_pause_seconds: float = 0.5,
    ) -> None:
        self._driver_factory = driver_factory
        self._headless = headless
        self._max_scroll_steps = max(0, max_scroll_steps)
        self._scroll_pause_ms = max(0.0, scroll_pause_seconds) * 1000
        self._playwright: Playwright | None = None
        self._browser: Browser | None = None

    def fetch(self, url: str, *, options: FetchOptions) -> FetchResult:
        browser = self._ensure_browser(options)
        context = None
        page: Page | None = None
        try:
            context = browser.new_context(**self._context_options(options))
            page = context.new_page()
            page.set_default_timeout(options.page_load_timeout_seconds * 1000)
            self._prepare_page(page)

            response = page.goto(
                url,
                wait_until="domcontentloaded",
                timeout=options.page_load_timeout_seconds * 1000,
            )
            self._wait_for_content(page, url=url, options=options)
            if options.scroll_to_bottom:
                self._auto_scroll(page)
            self._before_read(page)

            content = page.content()
            status_code = response.status if response is not None else None
            if status_code is not None and status_code >= 400:
                raise HTTPStatusError(
                    url=url,
                    render_mode=self.render_mode,
                    status_code=status_code,
                    body=content,
                )
            return self._build_result(
                url=url,
                content=content,
                status_code=status_code,
                options=options,
            )
        except PlaywrightTimeoutError as exc:
            raise NavigationTimeoutError(
                f"Timed out loading {url}: {exc}",
                url=url,
                render_mode=self.render_mode,
            ) from exc
        except PlaywrightError as exc:
            if not browser.is_connected():
                raise BrowserUnavailableError(
                    f"Browser disconnected while loading {url}: {exc}",
                    url=url,
                    render_mode=self.render_mode,
                ) from exc
            raise FetchError(
                f"Browser navigation failed for {url}: {exc}",
                url=url,
                render_mode=self.render_mode,
            ) from exc
        finally:
            self._safe_close(page, "page")
            self._safe_close(context, "context")

    def close(self) -> None:
        self._safe_close(self._browser, "browser")
        self._browser = None
        if self._playwright is not None:
            try:
                self._playwright.stop()
            except PlaywrightError as exc:
                log_event(logger, logging.WARNING, "browser_driver_stop_failed", error=str(exc))
            self._playwright = None

    def _ensure_browser(self, options: FetchOptions) -> Browser:
        if self._browser is not None and self._browser.is_connected():
            return self._browser

        browser_name = options.browser_type if options.browser_type in BrowserType.ALL else BrowserType.CHROMIUM
        try:
            if self._playwright is None:
                self._playwright = self._driver_factory().start()
            launcher = getattr(self._playwright, browser_name)
            self._browser = launcher.launch(headless=self._headless, **self._launch_options(options))
        except PlaywrightError as exc:
            raise BrowserUnavailableError(
                f"Could not launch {browser_name}: {exc}",
                url="",
                render_mode=self.render_mode,
            ) from exc

        log_event(
            logger,
            logging.INFO,
            "browser_launched",
            render_mode=self.render_mode,
            browser_type=browser_name,
        )
        return self._browser

    def _launch_options(self, options: FetchOptions) -> dict[str, Any]:
        return {}

    def _context_options(self, options: FetchOptions) -> dict[str, Any]:
        context_options: dict[str, Any] = {"user_agent": options.user_agent}
        if options.headers:
            context_options["extra_http_headers"] = dict(options.headers)
        return context_options

    def _prepare_page(self, page: Page) -> None:
        """
        Hook run after page creation and before navigation.
        """

    def _before_read(self, page: Page) -> None:
        """
        Hook run right before the rendered HTML is read.
        """

    def _wait_for_content(self, page: Page, *, url: str, options: FetchOptions) -> None:
        timeout_ms = options.wait_timeout_seconds * 1000
        try:
            if options.wait_for_selector:
                page.wait_for_selector(options.wait_for_selector, timeout=timeout_ms)
            elif options.wait_for_network_idle:
                page.wait_for_load_state("networkidle", timeout=timeout_ms)
        except PlaywrightTimeoutError:
            log_event(
                logger,
                logging.WARNING,
                "wait_condition_timeout",
                url=url,
                wait_for_selector=options.wait_for_selector,
                timeout_seconds=options.wait_timeout_seconds,
            )

    def _auto_scroll(self, page: Page) -> None:
        previous_height = page.evaluate(_SCROLL_HEIGHT_JS)
        for _ in range(self._max_scroll_steps):
            page.evaluate(_SCROLL_TO_BOTTOM_JS)
            page.wait_for_timeout(self._scroll_pause_ms)
            height = page.evaluate(_SCROLL_HEIGHT_JS)
            if height <= previous_height:
                break
            previous_height = height

    @staticmethod
    def _safe_close(resource: Any, label: str) -> None:
        if resource is None:
            return
        try:
            resource.close()
        except PlaywrightError as exc:
            log_event(logger, logging.DEBUG, "browser_resource_close_failed", resource=label, error=str(exc))
