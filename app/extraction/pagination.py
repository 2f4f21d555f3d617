"""
Page URL construction and the multi-page extraction loop.
"""

from __future__ import annotations

import logging
import re
from collections.abc import Callable
from dataclasses import dataclass
from urllib.parse import parse_qsl, urlencode, urlsplit, urlunsplit

from bs4 import BeautifulSoup

from app.extraction.config.models import ExtractionOptions
from app.extraction.errors import FetchError, SelectorResolutionError
from app.extraction.extractor import ItemExtractor
from app.extraction.fetching.base import AdaptiveFetcher
from app.extraction.logging_utils import TaskLogWriter, log_event
from app.extraction.resolver import SelectorResolver
from app.extraction.state import ControlRequest, JobControl
from app.extraction.throttle import PageThrottle
from app.extraction.types import FetchOptions, FetchResult, PageReport, PaginationMode, SelectorSet

logger = logging.getLogger(__name__)

_PATH_PAGE_RE = re.compile(r"/page/\d+/?$")


class StopReason:
    MAX_PAGES = "max_pages"
    EMPTY_PAGE = "empty_page"
    NO_NEXT_PAGE = "no_next_page"
    FETCH_FAILED = "fetch_failed"
    RESOLUTION_FAILED = "resolution_failed"
    PAUSED = "paused"
    CANCELLED = "cancelled"


def build_page_url(
    base_url: str,
    page_number: int,
    *,
    mode: str = PaginationMode.QUERY,
    page_param: str = "page",
    next_page_url: str | None = None,
) -> str | None:
    """
    Return the URL of `page_number`, or None when it cannot be derived.

    Page 1 is always the base URL. `next_link` mode follows the href found
    on the previous page.
    """

    if page_number <= 1:
        return base_url

    if mode == PaginationMode.NEXT_LINK:
        return next_page_url

    parts = urlsplit(base_url)
    if mode == PaginationMode.PATH:
        path = _PATH_PAGE_RE.sub("", parts.path).rstrip("/")
        return urlunsplit(
            (parts.scheme, parts.netloc, f"{path}/page/{page_number}/", parts.query, parts.fragment)
        )

    query = [(key, value) for key, value in parse_qsl(parts.query, keep_blank_values=True) if key != page_param]
    query.append((page_param, str(page_number)))
    return urlunsplit((parts.scheme, parts.netloc, parts.path, urlencode(query), parts.fragment))


def should_continue(
    *,
    page_number: int,
    max_pages: int,
    items_on_page: int,
    next_page_present: bool | None,
) -> bool:
    """
    Continue only while under the page cap, the page produced items, and a
    next-page affordance was seen whenever one was evaluated.
    """

    if page_number >= max_pages:
        return False
    if items_on_page < 1:
        return False
    return next_page_present is not False


@dataclass(frozen=True)
class PaginationResult:
    pages_fetched: int
    items_extracted: int
    stop_reason: str
    last_page: int


class PaginationController:
    """
    Drive fetch -> resolve -> extract -> persist/report for successive pages.

    Pause/stop requests are honoured at page boundaries only. A fetch or
    resolution failure on page 1 is re-raised; on later pages it ends the
    loop with what was already collected.
    """

    def __init__(
        self,
        *,
        fetcher: AdaptiveFetcher,
        render_mode: str,
        fetch_options: FetchOptions,
        options: ExtractionOptions,
        selectors: SelectorSet,
        resolver: SelectorResolver,
        throttle: PageThrottle,
        control: JobControl,
        task_log: TaskLogWriter,
    ) -> None:
        self._fetcher = fetcher
        self._render_mode = render_mode
        self._fetch_options = fetch_options
        self._options = options
        self._selectors = selectors
        self._resolver = resolver
        self._throttle = throttle
        self._control = control
        self._task_log = task_log

    def run(
        self,
        *,
        base_url: str,
        on_page: Callable[[PageReport], None],
        first_page: FetchResult | None = None,
    ) -> PaginationResult:
        page_number = 1
        page_url: str | None = base_url
        pages_fetched = 0
        items_extracted = 0

        while True:
            interrupted = self._interrupted()
            if interrupted is not None:
                return PaginationResult(pages_fetched, items_extracted, interrupted, page_number - 1)

            try:
                if page_number == 1 and first_page is not None:
                    result = first_page
                else:
                    self._throttle.wait(url=page_url)
                    interrupted = self._interrupted()
                    if interrupted is not None:
                        return PaginationResult(pages_fetched, items_extracted, interrupted, page_number - 1)
                    result = self._fetcher.fetch(
                        page_url,
                        mode=self._render_mode,
                        options=self._fetch_options,
                    )
            except FetchError as exc:
                self._task_log.error(
                    "page_fetch_failed",
                    f"Failed to fetch page {page_number}: {exc}",
                    url=page_url,
                    page=page_number,
                    render_mode=self._render_mode,
                )
                if page_number == 1:
                    raise
                return PaginationResult(pages_fetched, items_extracted, StopReason.FETCH_FAILED, page_number - 1)

            try:
                report = self._process(result, page_number)
            except SelectorResolutionError as exc:
                self._task_log.warning(
                    "no_items_found",
                    f"No items found on page {page_number} with selector "
                    f"{self._selectors.primary or 'generic selectors'}",
                    url=result.url,
                    page=page_number,
                    tried=list(exc.tried),
                )
                if page_number == 1:
                    raise
                return PaginationResult(pages_fetched, items_extracted, StopReason.RESOLUTION_FAILED, page_number - 1)

            on_page(report)
            pages_fetched += 1
            items_extracted += len(report.items)

            next_present = report.next_page_present if self._options.require_next_page else None
            if self._options.pagination_mode == PaginationMode.NEXT_LINK and report.next_page_url is None:
                next_present = False

            if not should_continue(
                page_number=page_number,
                max_pages=self._options.max_pages,
                items_on_page=len(report.items),
                next_page_present=next_present,
            ):
                return PaginationResult(
                    pages_fetched,
                    items_extracted,
                    self._stop_reason(page_number, len(report.items)),
                    page_number,
                )

            page_number += 1
            page_url = build_page_url(
                base_url,
                page_number,
                mode=self._options.pagination_mode,
                page_param=self._options.page_param,
                next_page_url=report.next_page_url,
            )

    def _process(self, result: FetchResult, page_number: int) -> PageReport:
        soup = BeautifulSoup(result.content, "html.parser")
        resolution = self._resolver.resolve(soup, self._selectors, page_url=result.url)
        extractor = ItemExtractor(field_selectors=self._selectors.fields, page_url=result.url)
        batch = extractor.extract_all(resolution.elements)
        log_event(
            logger,
            logging.INFO,
            "page_extracted",
            url=result.url,
            page=page_number,
            selector=resolution.selector,
            containers=len(resolution.elements),
            items=len(batch.items),
            discarded=batch.discarded,
        )
        return PageReport(
            page_number=page_number,
            url=result.url,
            container_selector=resolution.selector,
            selector_source=resolution.source,
            items=batch.items,
            containers_found=len(resolution.elements),
            skipped_items=batch.discarded + batch.failed,
            next_page_present=result.next_page_present,
            next_page_url=result.next_page_url,
        )

    def _interrupted(self) -> str | None:
        requested = self._control.requested
        if requested == ControlRequest.STOP:
            return StopReason.CANCELLED
        if requested == ControlRequest.PAUSE:
            return StopReason.PAUSED
        return None

    def _stop_reason(self, page_number: int, items_on_page: int) -> str:
        if items_on_page < 1:
            return StopReason.EMPTY_PAGE
        if page_number >= self._options.max_pages:
            return StopReason.MAX_PAGES
        return StopReason.NO_NEXT_PAGE
