"""
Plain HTTP fetcher for server-rendered pages.
"""

from __future__ import annotations

import logging
import time
from collections.abc import Callable

import requests

from app.extraction.errors import FetchError, HTTPStatusError, NavigationTimeoutError
from app.extraction.fetching.base import PageFetcher
from app.extraction.logging_utils import log_event
from app.extraction.types import FetchOptions, FetchResult, RenderMode

logger = logging.getLogger(__name__)

RETRYABLE_STATUS_CODES = {429, 500, 502, 503, 504}
DEFAULT_HEADERS = {
    "Accept": "text/html,application/xhtml+xml,application/xml;q=0.9,*/*;q=0.8",
    "Accept-Language": "en-US,en;q=0.9",
}


class StaticPageFetcher(PageFetcher):
    """
    Fetch raw HTML with requests and retry transient failures.
    """

    render_mode = RenderMode.STATIC

    def __init__(
        self,
        *,
        session: requests.Session | None = None,
        max_retries: int = 2,
        backoff_initial_seconds: float = 0.5,
        backoff_multiplier: float = 2.0,
        sleep: Callable[[float], None] = time.sleep,
    ) -> None:
        self._owns_session = session is None
        self._session = session or requests.Session()
        self._max_retries = max(0, max_retries)
        self._backoff_initial_seconds = backoff_initial_seconds
        self._backoff_multiplier = backoff_multiplier
        self._sleep = sleep

    def fetch(self, url: str, *, options: FetchOptions) -> FetchResult:
        response = self._request_with_retry(url, options=options)
        return self._build_result(
            url=url,
            content=response.text,
            status_code=response.status_code,
            options=options,
        )

    def close(self) -> None:
        if self._owns_session:
            self._session.close()

    def _request_with_retry(self, url: str, *, options: FetchOptions) -> requests.Response:
        headers = {**DEFAULT_HEADERS, "User-Agent": options.user_agent, **options.headers}
        last_error: FetchError | None = None

        for attempt in range(self._max_retries + 1):
            try:
                response = self._session.get(
                    url,
                    headers=headers,
                    timeout=options.page_load_timeout_seconds,
                    allow_redirects=True,
                )
            except requests.Timeout as exc:
                last_error = NavigationTimeoutError(
                    f"Timed out fetching {url}: {exc}",
                    url=url,
                    render_mode=self.render_mode,
                )
            except requests.RequestException as exc:
                last_error = FetchError(
                    f"Request failed for {url}: {exc}",
                    url=url,
                    render_mode=self.render_mode,
                )
            else:
                if response.status_code < 400:
                    return response
                last_error = HTTPStatusError(
                    url=url,
                    render_mode=self.render_mode,
                    status_code=response.status_code,
                    body=response.text,
                )
                if response.status_code not in RETRYABLE_STATUS_CODES:
                    raise last_error

            if attempt >= self._max_retries:
                raise last_error

            backoff_seconds = self._backoff_initial_seconds * (self._backoff_multiplier**attempt)
            log_event(
                logger,
                logging.WARNING,
                "fetch_retry",
                url=url,
                attempt=attempt + 1,
                backoff_seconds=backoff_seconds,
                error=str(last_error),
            )
            self._sleep(backoff_seconds)

        raise FetchError(f"Failed to fetch {url} after retries: {last_error}", url=url, render_mode=self.render_mode)
