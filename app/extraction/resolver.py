"""
Container selector resolution with ordered fallbacks.
"""

from __future__ import annotations

import logging
import re
from collections.abc import Sequence
from dataclasses import dataclass

from bs4 import BeautifulSoup, Tag
from soupsieve import SelectorSyntaxError

from app.extraction.errors import SelectorResolutionError
from app.extraction.logging_utils import log_event
from app.extraction.types import SelectorSet

logger = logging.getLogger(__name__)

GENERIC_CONTAINER_SELECTORS: tuple[str, ...] = (
    '[class*="product"]',
    '[class*="item"]',
    '[class*="card"]',
    '[class*="listing"]',
    '[class*="post"]',
    "article",
    "main > div",
    ".content > div",
    ".container > div",
    "ul > li",
)

_TOKEN_WEIGHTS: tuple[tuple[tuple[str, ...], int], ...] = (
    (("item", "product", "post"), 10),
    (("card", "tile"), 8),
    (("content", "article"), 6),
    (("container", "wrapper"), 4),
    (("nav", "menu", "header"), -10),
)
_IGNORED_TAGS = {"html", "head", "body", "script", "style", "noscript", "template", "svg"}
_CLASS_TOKEN_RE = re.compile(r"^[A-Za-z_][\w-]*$")
MIN_HEURISTIC_SCORE = 5
MAX_SCORED_ELEMENTS = 5000


class SelectorSource:
    PRIMARY = "primary"
    FALLBACK = "fallback"
    CATALOG = "catalog"


@dataclass(frozen=True)
class SelectorResolution:
    selector: str
    source: str
    elements: list[Tag]


def select_elements(root: BeautifulSoup | Tag, selector: str) -> list[Tag]:
    """
    Run one CSS selector, treating syntax errors as "no match".
    """

    try:
        return list(root.select(selector))
    except (SelectorSyntaxError, ValueError, NotImplementedError) as exc:
        log_event(logger, logging.DEBUG, "selector_invalid", selector=selector, error=str(exc))
        return []


def _outermost(elements: list[Tag]) -> list[Tag]:
    matched = {id(element) for element in elements}
    return [
        element
        for element in elements
        if not any(id(parent) in matched for parent in element.parents)
    ]


def repeated_items(elements: list[Tag]) -> list[Tag]:
    """
    Reduce a selector's matches to the repeated item containers.

    A broad selector such as `[class*="product"]` also hits the wrapper
    around the cards (`products-grid`) and field nodes inside them
    (`product-title`). Matches are grouped by tag and class list; the
    largest group of non-leaf elements anchors the result, ties going to
    the shallowest group in document order. Matches enclosing an anchor
    are wrappers and are dropped, as is anything nested in a kept match.
    """

    if len(elements) <= 1:
        return elements

    groups: dict[tuple[str, tuple[str, ...]], list[Tag]] = {}
    depths: dict[tuple[str, tuple[str, ...]], int] = {}
    for element in elements:
        signature = (element.name, tuple(element.get("class") or ()))
        depth = sum(1 for _ in element.parents)
        groups.setdefault(signature, []).append(element)
        depths[signature] = min(depth, depths.get(signature, depth))

    def rank(signature: tuple[str, tuple[str, ...]]) -> tuple[bool, int, int]:
        members = groups[signature]
        has_children = any(member.find(True) is not None for member in members)
        return (has_children, len(members), -depths[signature])

    anchors = groups[max(groups, key=rank)]
    wrappers = {id(parent) for anchor in anchors for parent in anchor.parents}
    return _outermost([element for element in elements if id(element) not in wrappers])


class SelectorResolver:
    """
    Pick the first candidate selector that matches at least one element.

    Order: primary, configured fallbacks, then the generic catalog.
    """

    def __init__(self, *, catalog: Sequence[str] = GENERIC_CONTAINER_SELECTORS) -> None:
        self._catalog = tuple(catalog)

    def candidates(self, selectors: SelectorSet) -> list[tuple[str, str]]:
        ordered: list[tuple[str, str]] = []
        seen: set[str] = set()
        groups = (
            ((selectors.primary,) if selectors.primary else (), SelectorSource.PRIMARY),
            (selectors.fallback, SelectorSource.FALLBACK),
            (self._catalog, SelectorSource.CATALOG),
        )
        for group, source in groups:
            for selector in group:
                if selector and selector not in seen:
                    seen.add(selector)
                    ordered.append((selector, source))
        return ordered

    def resolve(
        self,
        soup: BeautifulSoup,
        selectors: SelectorSet,
        *,
        page_url: str,
    ) -> SelectorResolution:
        tried: list[str] = []
        for selector, source in self.candidates(selectors):
            tried.append(selector)
            elements = repeated_items(select_elements(soup, selector))
            if elements:
                if source != SelectorSource.PRIMARY:
                    log_event(
                        logger,
                        logging.INFO,
                        "selector_fallback_used",
                        page_url=page_url,
                        selector=selector,
                        source=source,
                        matched=len(elements),
                    )
                return SelectorResolution(selector=selector, source=source, elements=elements)

        raise SelectorResolutionError(url=page_url, tried=tuple(tried))


class HeuristicContainerDiscovery:
    """
    Score elements by class/id tokens and content shape to guess item containers.
    """

    def __init__(self, *, limit: int = 10) -> None:
        self._limit = max(1, limit)

    def discover(self, soup: BeautifulSoup) -> list[str]:
        scored: list[tuple[int, int, str]] = []
        for position, element in enumerate(soup.find_all(True)):
            if position >= MAX_SCORED_ELEMENTS:
                break
            if element.name in _IGNORED_TAGS:
                continue
            score = self.score(element)
            if score <= MIN_HEURISTIC_SCORE:
                continue
            selector = self.selector_for(element)
            if selector:
                scored.append((score, position, selector))

        scored.sort(key=lambda entry: (-entry[0], entry[1]))
        selectors: list[str] = []
        for _, _, selector in scored:
            if selector in selectors:
                continue
            selectors.append(selector)
            if len(selectors) >= self._limit:
                break
        return selectors

    @staticmethod
    def score(element: Tag) -> int:
        classes = " ".join(element.get("class") or []).lower()
        identifier = str(element.get("id") or "").lower()
        tokens = f"{classes} {identifier}"

        score = 0
        for words, weight in _TOKEN_WEIGHTS:
            if any(word in tokens for word in words):
                score += weight

        if len(element.find_all(True, recursive=False)) > 2:
            score += 5
        if element.find(["h1", "h2", "h3", "h4", "h5", "h6"]) is not None:
            score += 8
        if element.find("img") is not None:
            score += 6
        if element.find("a") is not None:
            score += 4
        if element.find("p") is not None:
            score += 3
        return score

    @staticmethod
    def selector_for(element: Tag) -> str:
        identifier = element.get("id")
        if isinstance(identifier, str) and _CLASS_TOKEN_RE.match(identifier):
            return f"#{identifier}"
        classes = [token for token in (element.get("class") or []) if _CLASS_TOKEN_RE.match(token)]
        if classes:
            return "." + ".".join(classes[:2])
        return ""
