"""
Per-container field extraction.
"""

from __future__ import annotations

import logging
import re
from collections.abc import Iterable, Mapping, Sequence
from dataclasses import dataclass, field
from urllib.parse import urljoin

from bs4 import Tag

from app.extraction.logging_utils import log_event
from app.extraction.resolver import select_elements

logger = logging.getLogger(__name__)

DEFAULT_FIELD_SELECTORS: dict[str, tuple[str, ...]] = {
    "title": (
        "h1",
        "h2",
        "h3",
        ".title",
        ".name",
        ".heading",
        '[class*="title"]',
        '[class*="name"]',
    ),
    "price": (
        ".price",
        ".cost",
        ".amount",
        '[class*="price"]',
        '[class*="cost"]',
        "[data-price]",
    ),
    "description": (
        ".description",
        ".summary",
        ".excerpt",
        "p",
        '[class*="description"]',
    ),
    "image": ("img", ".image img", ".thumbnail img", '[class*="image"] img'),
    "link": ("a", ".link", "[href]"),
    "date": (".date", ".time", ".published", '[class*="date"]', "[datetime]"),
    "rating": (".rating", ".stars", ".score", '[class*="rating"]', '[class*="star"]'),
    "category": (
        ".category",
        ".tag",
        ".label",
        '[class*="category"]',
        '[class*="tag"]',
    ),
}

URL_ATTRIBUTE_FIELDS: dict[str, tuple[str, ...]] = {
    "link": ("href",),
    "image": ("src", "data-src"),
}
MEANINGFUL_FIELDS = ("title", "price", "description")

_WHITESPACE_RE = re.compile(r"\s+")


def _clean_text(value: str) -> str:
    return _WHITESPACE_RE.sub(" ", value).strip()


@dataclass
class ExtractionBatch:
    items: list[dict[str, str]] = field(default_factory=list)
    discarded: int = 0
    failed: int = 0


class ItemExtractor:
    """
    Turn item containers into flat field maps.

    Text fields take the first non-empty candidate; link/image fields read
    the URL attribute and resolve it against the page URL.
    """

    def __init__(
        self,
        *,
        field_selectors: Mapping[str, Sequence[str]],
        page_url: str,
    ) -> None:
        self._field_selectors = {
            name: tuple(candidates) for name, candidates in field_selectors.items()
        }
        self._page_url = page_url

    def extract(self, container: Tag) -> dict[str, str] | None:
        item: dict[str, str] = {}
        for name, candidates in self._field_selectors.items():
            value = self._first_value(container, name, candidates)
            if value:
                item[name] = value

        if not any(item.get(name) for name in MEANINGFUL_FIELDS):
            return None
        return item

    def extract_all(self, containers: Iterable[Tag]) -> ExtractionBatch:
        batch = ExtractionBatch()
        for container in containers:
            try:
                item = self.extract(container)
            except Exception:  # noqa: BLE001
                batch.failed += 1
                continue
            if item is None:
                batch.discarded += 1
            else:
                batch.items.append(item)

        if batch.failed:
            log_event(
                logger,
                logging.DEBUG,
                "items_skipped",
                page_url=self._page_url,
                failed=batch.failed,
            )
        return batch

    def _first_value(self, container: Tag, name: str, candidates: Sequence[str]) -> str:
        attributes = URL_ATTRIBUTE_FIELDS.get(name)
        for selector in candidates:
            for node in select_elements(container, selector):
                if attributes is None:
                    text = _clean_text(node.get_text(" ", strip=True))
                    if text:
                        return text
                    continue
                for attribute in attributes:
                    raw = node.get(attribute)
                    if isinstance(raw, str) and raw.strip():
                        return urljoin(self._page_url, raw.strip())
        return ""
