"""
Browser fetcher hardened against bot detection.
"""

from __future__ import annotations

import logging
import random
import time
from collections.abc import Callable
from typing import Any

from playwright.sync_api import Page, sync_playwright
from playwright_stealth import Stealth

from app.extraction.fetching.browser_fetcher import BrowserPageFetcher
from app.extraction.logging_utils import log_event
from app.extraction.types import BrowserType, FetchOptions, RenderMode

logger = logging.getLogger(__name__)

STEALTH_LAUNCH_ARGS = (
    "--disable-blink-features=AutomationControlled",
    "--disable-dev-shm-usage",
    "--no-sandbox",
    "--disable-setuid-sandbox",
    "--disable-infobars",
    "--window-position=0,0",
)
VIEWPORTS = (
    {"width": 1920, "height": 1080},
    {"width": 1366, "height": 768},
    {"width": 1536, "height": 864},
    {"width": 1440, "height": 900},
    {"width": 1280, "height": 720},
)
LOCALES = ("en-US", "en-GB", "en-CA")
TIMEZONES = (
    "America/New_York",
    "America/Chicago",
    "America/Denver",
    "America/Los_Angeles",
    "Europe/London",
)


def _apply_stealth(page: Page) -> None:
    Stealth().apply_stealth_sync(page)


class StealthPageFetcher(BrowserPageFetcher):
    """
    Dynamic fetch plus anti-automation flags, a randomized fingerprint and a
    human-like pause before the page is read.
    """

    render_mode = RenderMode.STEALTH

    def __init__(
        self,
        *,
        driver_factory: Callable[[], Any] = sync_playwright,
        headless: bool = True,
        max_scroll_steps: int = 20,
        scroll_pause_seconds: float = 0.5,
        min_delay_seconds: float = 2.0,
        max_delay_seconds: float = 5.0,
        rng: random.Random | None = None,
        sleep: Callable[[float], None] = time.sleep,
        stealth_applier: Callable[[Page], None] = _apply_stealth,
    ) -> None:
        super().__init__(
            driver_factory=driver_factory,
            headless=headless,
            max_scroll_steps=max_scroll_steps,
            scroll_pause_seconds=scroll_pause_seconds,
        )
        self._min_delay_seconds = max(0.0, min_delay_seconds)
        self._max_delay_seconds = max(self._min_delay_seconds, max_delay_seconds)
        self._rng = rng or random.Random()
        self._sleep = sleep
        self._stealth_applier = stealth_applier

    def _launch_options(self, options: FetchOptions) -> dict[str, Any]:
        if options.browser_type != BrowserType.CHROMIUM:
            return {}
        return {"args": list(STEALTH_LAUNCH_ARGS)}

    def _context_options(self, options: FetchOptions) -> dict[str, Any]:
        locale = self._rng.choice(LOCALES)
        return {
            "user_agent": options.user_agent,
            "viewport": dict(self._rng.choice(VIEWPORTS)),
            "locale": locale,
            "timezone_id": self._rng.choice(TIMEZONES),
            "java_script_enabled": True,
            "extra_http_headers": {
                "Accept": "text/html,application/xhtml+xml,application/xml;q=0.9,image/avif,image/webp,*/*;q=0.8",
                "Accept-Language": f"{locale},en;q=0.9",
                "Accept-Encoding": "gzip, deflate, br",
                "Upgrade-Insecure-Requests": "1",
                "Sec-Fetch-Dest": "document",
                "Sec-Fetch-Mode": "navigate",
                "Sec-Fetch-Site": "none",
                **dict(options.headers),
            },
        }

    def _prepare_page(self, page: Page) -> None:
        self._stealth_applier(page)

    def _before_read(self, page: Page) -> None:
        delay = self._rng.uniform(self._min_delay_seconds, self._max_delay_seconds)
        log_event(logger, logging.DEBUG, "stealth_delay", delay_seconds=round(delay, 3))
        self._sleep(delay)
