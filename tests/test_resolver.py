"""
tests/test_resolver.py

Container selector fallback chain and heuristic container discovery.
"""

from __future__ import annotations

import pytest
from bs4 import BeautifulSoup

from app.extraction.errors import SelectorResolutionError
from app.extraction.resolver import (
    GENERIC_CONTAINER_SELECTORS,
    HeuristicContainerDiscovery,
    SelectorResolver,
    SelectorSource,
    select_elements,
)
from app.extraction.types import SelectorSet

PAGE_URL = "https://shop.test/list"

CARD_PAGE = """
<html><body>
  <div class="card"><h2>One</h2></div>
  <div class="card"><h2>Two</h2></div>
  <div class="card"><h2>Three</h2></div>
</body></html>
"""

ARTICLE_PAGE = """
<html><body>
  <article><h2>First</h2><p>Body</p></article>
  <article><h2>Second</h2><p>Body</p></article>
</body></html>
"""


def _soup(html: str) -> BeautifulSoup:
    return BeautifulSoup(html, "html.parser")


# ---------------------------------------------------------------------------
# SelectorResolver
# ---------------------------------------------------------------------------


class TestSelectorResolver:
    def test_primary_selector_wins(self) -> None:
        resolution = SelectorResolver().resolve(
            _soup(CARD_PAGE), SelectorSet(primary=".card"), page_url=PAGE_URL
        )
        assert resolution.selector == ".card"
        assert resolution.source == SelectorSource.PRIMARY
        assert len(resolution.elements) == 3

    def test_falls_back_in_order(self) -> None:
        selectors = SelectorSet(primary=".missing", fallback=(".also-missing", ".card"))
        resolution = SelectorResolver().resolve(_soup(CARD_PAGE), selectors, page_url=PAGE_URL)
        assert resolution.selector == ".card"
        assert resolution.source == SelectorSource.FALLBACK

    def test_generic_catalog_is_last_resort(self) -> None:
        resolution = SelectorResolver().resolve(
            _soup(ARTICLE_PAGE), SelectorSet(primary=".missing"), page_url=PAGE_URL
        )
        assert resolution.selector == "article"
        assert resolution.source == SelectorSource.CATALOG
        assert len(resolution.elements) == 2

    def test_invalid_selector_counts_as_no_match(self) -> None:
        selectors = SelectorSet(primary="div[", fallback=(".card",))
        resolution = SelectorResolver().resolve(_soup(CARD_PAGE), selectors, page_url=PAGE_URL)
        assert resolution.selector == ".card"

    def test_nothing_matches_raises_with_tried_list(self) -> None:
        html = "<html><body><p>Nothing to see</p></body></html>"
        with pytest.raises(SelectorResolutionError) as exc_info:
            SelectorResolver().resolve(_soup(html), SelectorSet(primary=".missing"), page_url=PAGE_URL)
        assert exc_info.value.tried[0] == ".missing"
        assert set(GENERIC_CONTAINER_SELECTORS) <= set(exc_info.value.tried)
        assert exc_info.value.url == PAGE_URL

    def test_nested_matches_keep_outermost(self) -> None:
        html = """
        <div class="item"><div class="item-inner"><h2>A</h2></div></div>
        <div class="item"><div class="item-inner"><h2>B</h2></div></div>
        """
        resolution = SelectorResolver().resolve(
            _soup(html), SelectorSet(primary='[class*="item"]'), page_url=PAGE_URL
        )
        assert len(resolution.elements) == 2
        assert all(element.get("class") == ["item"] for element in resolution.elements)

    def test_wrapper_matching_the_selector_is_skipped(self) -> None:
        cards = "".join(f'<div class="product"><h2>T{index}</h2></div>' for index in range(4))
        html = f'<div class="products-list">{cards}</div>'

        resolution = SelectorResolver().resolve(
            _soup(html), SelectorSet(primary='[class*="product"]'), page_url=PAGE_URL
        )

        assert [element.h2.get_text() for element in resolution.elements] == ["T0", "T1", "T2", "T3"]

    def test_cards_split_across_rows_are_all_kept(self) -> None:
        row = '<div class="row">{}</div>'
        card = '<div class="product-card"><h2>{}</h2><span class="product-price">$1</span></div>'
        html = '<section class="products">{}</section>'.format(
            row.format(card.format("A") + card.format("B")) + row.format(card.format("C"))
        )

        resolution = SelectorResolver().resolve(
            _soup(html), SelectorSet(primary='[class*="product"]'), page_url=PAGE_URL
        )

        assert [element.h2.get_text() for element in resolution.elements] == ["A", "B", "C"]

    def test_variant_cards_beside_the_common_ones_are_kept(self) -> None:
        html = """
        <ul class="items">
          <li class="item"><h3>A</h3></li>
          <li class="item featured"><h3>B</h3></li>
          <li class="item"><h3>C</h3></li>
        </ul>
        """

        resolution = SelectorResolver().resolve(
            _soup(html), SelectorSet(primary='[class*="item"]'), page_url=PAGE_URL
        )

        assert [element.h3.get_text() for element in resolution.elements] == ["A", "B", "C"]

    def test_candidates_are_deduplicated(self) -> None:
        selectors = SelectorSet(primary="article", fallback=("article", ".card"))
        candidates = SelectorResolver().candidates(selectors)
        assert candidates[0] == ("article", SelectorSource.PRIMARY)
        assert candidates[1] == (".card", SelectorSource.FALLBACK)
        assert [selector for selector, _ in candidates].count("article") == 1

    def test_resolution_is_idempotent(self) -> None:
        resolver = SelectorResolver()
        soup = _soup(ARTICLE_PAGE)
        first = resolver.resolve(soup, SelectorSet(), page_url=PAGE_URL)
        second = resolver.resolve(soup, SelectorSet(), page_url=PAGE_URL)
        assert first.selector == second.selector
        assert first.elements == second.elements

    @pytest.mark.parametrize(
        "html",
        [
            "<ul><li>a</li></ul>",
            "<main><div>x</div></main>",
            '<section class="listing-row">x</section>',
        ],
    )
    def test_any_catalog_hit_resolves(self, html: str) -> None:
        resolution = SelectorResolver().resolve(
            _soup(html), SelectorSet(primary=".missing"), page_url=PAGE_URL
        )
        assert resolution.elements


class TestSelectElements:
    def test_bad_syntax_returns_empty(self) -> None:
        assert select_elements(_soup(CARD_PAGE), "div[") == []

    def test_scoped_to_root(self) -> None:
        soup = _soup('<div id="a"><p>1</p></div><div id="b"><p>2</p><p>3</p></div>')
        assert len(select_elements(soup.select_one("#b"), "p")) == 2


# ---------------------------------------------------------------------------
# HeuristicContainerDiscovery
# ---------------------------------------------------------------------------


class TestHeuristicContainerDiscovery:
    PAGE = """
    <html><body>
      <nav class="menu"><a href="/">Home</a></nav>
      <section class="results">
        <div class="product-card"><h2>Lamp</h2><img src="a.jpg"><a href="/1">Go</a><p>Nice</p></div>
        <div class="product-card"><h2>Desk</h2><img src="b.jpg"><a href="/2">Go</a><p>Solid</p></div>
      </section>
    </body></html>
    """

    def test_best_scored_container_first(self) -> None:
        selectors = HeuristicContainerDiscovery().discover(_soup(self.PAGE))
        assert selectors[0] == ".product-card"
        assert ".menu" not in selectors

    def test_limit_caps_results(self) -> None:
        selectors = HeuristicContainerDiscovery(limit=1).discover(_soup(self.PAGE))
        assert selectors == [".product-card"]

    def test_selector_prefers_id(self) -> None:
        element = _soup('<div id="main-list" class="a b"></div>').div
        assert HeuristicContainerDiscovery.selector_for(element) == "#main-list"

    def test_selector_uses_first_two_classes(self) -> None:
        element = _soup('<div class="a b c"></div>').div
        assert HeuristicContainerDiscovery.selector_for(element) == ".a.b"

    def test_unusable_class_tokens_give_no_selector(self) -> None:
        element = _soup('<div class="1col"></div>').div
        assert HeuristicContainerDiscovery.selector_for(element) == ""

    def test_navigation_scores_negative(self) -> None:
        element = _soup('<nav class="menu"><a href="/">Home</a></nav>').nav
        assert HeuristicContainerDiscovery.score(element) < 0
