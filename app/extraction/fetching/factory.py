"""
Build the per-job fetcher from extraction settings.
"""

from __future__ import annotations

from app.extraction.config.models import ExtractionSettings
from app.extraction.fetching.base import AdaptiveFetcher
from app.extraction.fetching.browser_fetcher import BrowserPageFetcher
from app.extraction.fetching.static_fetcher import StaticPageFetcher
from app.extraction.fetching.stealth_fetcher import StealthPageFetcher
from app.extraction.types import RenderMode


def build_adaptive_fetcher(settings: ExtractionSettings) -> AdaptiveFetcher:
    """
    Return a fresh fetcher whose backends open lazily and close with it.
    """

    return AdaptiveFetcher(
        backends={
            RenderMode.STATIC: lambda: StaticPageFetcher(
                max_retries=settings.max_retries,
                backoff_initial_seconds=settings.backoff_initial_seconds,
                backoff_multiplier=settings.backoff_multiplier,
            ),
            RenderMode.DYNAMIC: lambda: BrowserPageFetcher(
                max_scroll_steps=settings.max_scroll_steps,
                scroll_pause_seconds=settings.scroll_pause_seconds,
            ),
            RenderMode.STEALTH: lambda: StealthPageFetcher(
                max_scroll_steps=settings.max_scroll_steps,
                scroll_pause_seconds=settings.scroll_pause_seconds,
                min_delay_seconds=settings.stealth_min_delay_seconds,
                max_delay_seconds=settings.stealth_max_delay_seconds,
            ),
        }
    )
