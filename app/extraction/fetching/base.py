"""
Page fetcher abstraction and shared next-page detection.
"""

from __future__ import annotations

import logging
import re
from abc import ABC, abstractmethod
from collections.abc import Callable, Mapping
from types import TracebackType
from urllib.parse import urljoin

from bs4 import BeautifulSoup, Tag

from app.extraction.logging_utils import log_event
from app.extraction.types import FetchOptions, FetchResult

logger = logging.getLogger(__name__)

NEXT_PAGE_SELECTORS: tuple[str, ...] = (
    'a[rel="next"]',
    ".next",
    ".pagination .next",
    '[aria-label="Next"]',
    '[aria-label="Next page"]',
    ".pager-next",
    ".page-numbers.next",
    "li.next a",
)
NEXT_LINK_TEXTS = {"next", "next page", "next »", "next ›", "»", "›", "older posts"}
_WHITESPACE_RE = re.compile(r"\s+")


def _is_disabled(element: Tag) -> bool:
    for node in (element, element.parent):
        if not isinstance(node, Tag):
            continue
        if node.has_attr("disabled"):
            return True
        if str(node.get("aria-disabled", "")).lower() == "true":
            return True
        if "disabled" in (node.get("class") or []):
            return True
    return False


def _href_for(element: Tag) -> str | None:
    anchor: Tag | None
    if element.name == "a":
        anchor = element
    else:
        anchor = element.find("a", href=True) or element.find_parent("a", href=True)
    if anchor is None:
        return None
    href = str(anchor.get("href") or "").strip()
    if not href or href.startswith(("#", "javascript:")):
        return None
    return href


def find_next_page(html: str, page_url: str) -> tuple[bool, str | None]:
    """
    Return whether an enabled next-page control exists and its absolute URL.

    A control without a usable href (button-driven pagination) still counts
    as present.
    """

    soup = BeautifulSoup(html or "", "html.parser")
    candidates: list[Tag] = []
    for selector in NEXT_PAGE_SELECTORS:
        candidates.extend(soup.select(selector))
    for anchor in soup.find_all("a", href=True):
        text = _WHITESPACE_RE.sub(" ", anchor.get_text(" ", strip=True)).strip().lower()
        if text in NEXT_LINK_TEXTS:
            candidates.append(anchor)

    present = False
    for element in candidates:
        if _is_disabled(element):
            continue
        present = True
        href = _href_for(element)
        if href:
            return True, urljoin(page_url, href)
    return present, None


class PageFetcher(ABC):
    """
    One rendering backend. Instances own their client/browser and must be closed.
    """

    render_mode: str

    @abstractmethod
    def fetch(self, url: str, *, options: FetchOptions) -> FetchResult:
        """
        Retrieve one page or raise a FetchError subclass.
        """

    def close(self) -> None:
        """
        Release backend resources. Safe to call more than once.
        """

    def __enter__(self) -> "PageFetcher":
        return self

    def __exit__(
        self,
        exc_type: type[BaseException] | None,
        exc: BaseException | None,
        traceback: TracebackType | None,
    ) -> None:
        self.close()

    def _build_result(
        self,
        *,
        url: str,
        content: str,
        status_code: int | None,
        options: FetchOptions,
    ) -> FetchResult:
        present: bool | None = None
        next_url: str | None = None
        if options.detect_next_page:
            present, next_url = find_next_page(content, url)
        return FetchResult(
            url=url,
            content=content,
            status_code=status_code,
            render_mode=self.render_mode,
            next_page_present=present,
            next_page_url=next_url,
        )


class AdaptiveFetcher:
    """
    Per-job fetcher that lazily opens one backend per render mode.

    Every backend opened through this object is closed exactly once by
    `close()`, including on error paths when used as a context manager.
    """

    def __init__(self, *, backends: Mapping[str, Callable[[], PageFetcher]]) -> None:
        self._factories = dict(backends)
        self._open: dict[str, PageFetcher] = {}
        self._closed = False

    def fetch(self, url: str, *, mode: str, options: FetchOptions) -> FetchResult:
        if self._closed:
            raise RuntimeError("AdaptiveFetcher is closed.")
        return self._backend(mode).fetch(url, options=options)

    def _backend(self, mode: str) -> PageFetcher:
        backend = self._open.get(mode)
        if backend is None:
            factory = self._factories.get(mode)
            if factory is None:
                raise ValueError(f"No fetcher registered for render mode '{mode}'.")
            backend = factory()
            self._open[mode] = backend
        return backend

    def close(self) -> None:
        if self._closed:
            return
        self._closed = True
        for mode, backend in self._open.items():
            try:
                backend.close()
            except Exception as exc:  # noqa: BLE001
                log_event(
                    logger,
                    logging.WARNING,
                    "fetcher_close_failed",
                    render_mode=mode,
                    error=str(exc),
                )
        self._open.clear()

    def __enter__(self) -> "AdaptiveFetcher":
        return self

    def __exit__(
        self,
        exc_type: type[BaseException] | None,
        exc: BaseException | None,
        traceback: TracebackType | None,
    ) -> None:
        self.close()
