"""
Deterministic analysis built from the classifier and container scoring.
"""

from __future__ import annotations

from bs4 import BeautifulSoup

from app.extraction.analysis.base import AnalysisProvider, AnalysisResult
from app.extraction.classifier import StrategyClassifier
from app.extraction.extractor import DEFAULT_FIELD_SELECTORS
from app.extraction.resolver import GENERIC_CONTAINER_SELECTORS, HeuristicContainerDiscovery, select_elements
from app.extraction.types import RenderMode, SelectorSet, StrategyDecision


class HeuristicAnalysisProvider(AnalysisProvider):
    name = "heuristic"

    def __init__(
        self,
        *,
        classifier: StrategyClassifier | None = None,
        discovery: HeuristicContainerDiscovery | None = None,
    ) -> None:
        self._classifier = classifier or StrategyClassifier()
        self._discovery = discovery or HeuristicContainerDiscovery()

    def analyze(self, *, url: str, html: str, hint: str | None = None) -> AnalysisResult:
        decision = self._classifier.classify(html)
        soup = BeautifulSoup(html or "", "html.parser")

        candidates: list[str] = []
        catalog_hit = next(
            (selector for selector in GENERIC_CONTAINER_SELECTORS if select_elements(soup, selector)),
            None,
        )
        if catalog_hit:
            candidates.append(catalog_hit)
        for selector in self._discovery.discover(soup):
            if selector not in candidates:
                candidates.append(selector)

        selectors = SelectorSet(
            primary=candidates[0] if candidates else "",
            fallback=tuple(candidates[1:]),
            fields=dict(DEFAULT_FIELD_SELECTORS),
        )
        return AnalysisResult(
            selectors=selectors,
            strategy=f"Heuristic container scoring; {decision.describe()}",
            render_mode=decision.render_mode,
            complexity=decision.complexity,
            confidence=0.6 if candidates else 0.3,
            source=self.name,
            structure=decision.structure,
            recommendations=tuple(recommendations_for(decision)),
        )


def recommendations_for(decision: StrategyDecision) -> list[str]:
    structure = decision.structure
    notes: list[str] = []
    if decision.render_mode == RenderMode.STEALTH:
        notes.append("Anti-bot protection detected; use stealth rendering with randomized delays.")
    elif decision.render_mode == RenderMode.DYNAMIC:
        notes.append(f"Client-side rendering detected ({structure.js_framework}); use a headless browser.")
    else:
        notes.append("Server-rendered HTML; a plain HTTP fetch is sufficient.")
    if structure.has_infinite_scroll:
        notes.append("Infinite scroll detected; enable scroll_to_bottom.")
    if structure.has_ajax_pagination:
        notes.append("AJAX pagination detected; prefer next_link pagination with a browser.")
    if structure.has_rate_limit:
        notes.append("Rate-limit message seen; increase delay_seconds.")
    return notes
