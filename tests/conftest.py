"""
Shared fixtures: settings, an in-memory store and scripted page backends.
"""

from __future__ import annotations

from collections.abc import Callable, Mapping

import pytest

from app.extraction.config.models import ExtractionSettings
from app.extraction.errors import FetchError
from app.extraction.fetching.base import AdaptiveFetcher, PageFetcher
from app.extraction.storage import InMemoryExtractionStore
from app.extraction.types import FetchOptions, FetchResult

Page = str | FetchError


def product_page(*titles: str, next_href: str | None = None) -> str:
    cards = "".join(
        f'<div class="product"><h2>{title}</h2><span class="price">${index + 10}</span></div>'
        for index, title in enumerate(titles)
    )
    pager = f'<a rel="next" href="{next_href}">Next</a>' if next_href else ""
    return f'<html><body><div class="grid">{cards}</div>{pager}</body></html>'


class ScriptedPageFetcher(PageFetcher):
    """
    Serves canned HTML per URL; a FetchError value is raised instead.
    """

    def __init__(self, render_mode: str, pages: Mapping[str, Page], calls: list[tuple[str, str]]) -> None:
        self.render_mode = render_mode
        self._pages = pages
        self._calls = calls
        self.closed = False

    def fetch(self, url: str, *, options: FetchOptions) -> FetchResult:
        self._calls.append((self.render_mode, url))
        page = self._pages.get(url)
        if page is None:
            raise FetchError(f"no scripted page for {url}", url=url, render_mode=self.render_mode)
        if isinstance(page, FetchError):
            raise page
        return self._build_result(url=url, content=page, status_code=200, options=options)

    def close(self) -> None:
        self.closed = True


class ScriptedSite:
    """
    Per-mode page scripts plus a log of (mode, url) fetches across runs.
    """

    def __init__(self, pages_by_mode: Mapping[str, Mapping[str, Page]]) -> None:
        self.pages_by_mode = {mode: dict(pages) for mode, pages in pages_by_mode.items()}
        self.calls: list[tuple[str, str]] = []
        self.opened: list[ScriptedPageFetcher] = []

    def _backend(self, mode: str) -> Callable[[], ScriptedPageFetcher]:
        def build() -> ScriptedPageFetcher:
            fetcher = ScriptedPageFetcher(mode, self.pages_by_mode.get(mode, {}), self.calls)
            self.opened.append(fetcher)
            return fetcher

        return build

    def fetcher_factory(self) -> AdaptiveFetcher:
        return AdaptiveFetcher(
            backends={mode: self._backend(mode) for mode in ("static", "dynamic", "stealth")}
        )

    def urls(self, mode: str | None = None) -> list[str]:
        return [url for called_mode, url in self.calls if mode is None or called_mode == mode]


@pytest.fixture()
def settings() -> ExtractionSettings:
    return ExtractionSettings(
        user_agent="test-agent/1.0",
        page_load_timeout_seconds=5.0,
        wait_timeout_seconds=1.0,
        default_max_pages=3,
        default_delay_seconds=0.0,
        stealth_min_delay_seconds=0.0,
        stealth_max_delay_seconds=0.0,
        browser_type="chromium",
        probe_render_mode="static",
        max_retries=0,
        backoff_initial_seconds=0.1,
        backoff_multiplier=2.0,
        max_scroll_steps=0,
        scroll_pause_seconds=0.0,
        analysis_provider="heuristic",
        analysis_model="gpt-4o",
        openai_api_key=None,
        openai_base_url=None,
        analysis_cache_hours=0.0,
        heuristic_candidate_limit=10,
        storage_backend="memory",
    )


@pytest.fixture()
def store() -> InMemoryExtractionStore:
    return InMemoryExtractionStore()


@pytest.fixture()
def make_site() -> Callable[..., ScriptedSite]:
    def _make(**pages_by_mode: Mapping[str, Page]) -> ScriptedSite:
        return ScriptedSite(pages_by_mode)

    return _make


@pytest.fixture()
def page_html() -> Callable[..., str]:
    return product_page
