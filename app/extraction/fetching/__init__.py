"""
Page fetcher exports.
"""

from app.extraction.fetching.base import AdaptiveFetcher, PageFetcher, find_next_page
from app.extraction.fetching.browser_fetcher import BrowserPageFetcher
from app.extraction.fetching.factory import build_adaptive_fetcher
from app.extraction.fetching.static_fetcher import StaticPageFetcher
from app.extraction.fetching.stealth_fetcher import StealthPageFetcher

__all__ = [
    "AdaptiveFetcher",
    "BrowserPageFetcher",
    "PageFetcher",
    "StaticPageFetcher",
    "StealthPageFetcher",
    "build_adaptive_fetcher",
    "find_next_page",
]
