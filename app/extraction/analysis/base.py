"""
Analysis provider interface and the provider-with-fallback orchestration.
"""

from __future__ import annotations

import logging
from abc import ABC, abstractmethod
from dataclasses import dataclass
from datetime import timedelta
from typing import Any

from app.domain.extraction import WebsiteAnalysisRecord
from app.extraction.errors import AnalysisProviderError
from app.extraction.logging_utils import log_event
from app.extraction.storage.base import ExtractionStore
from app.extraction.types import SelectorSet, WebsiteStructure

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class AnalysisResult:
    """
    Selectors and strategy notes proposed for one page.
    """

    selectors: SelectorSet
    strategy: str
    render_mode: str
    complexity: str
    confidence: float
    source: str
    structure: WebsiteStructure
    recommendations: tuple[str, ...] = ()

    def to_dict(self) -> dict[str, Any]:
        return {
            "selectors": self.selectors.to_dict(),
            "strategy": self.strategy,
            "render_mode": self.render_mode,
            "complexity": self.complexity,
            "confidence": self.confidence,
            "source": self.source,
            "structure": self.structure.to_dict(),
            "recommendations": list(self.recommendations),
        }


@dataclass(frozen=True)
class AnalysisOk:
    result: AnalysisResult
    cached: bool = False
    is_fallback = False


@dataclass(frozen=True)
class AnalysisFallback:
    result: AnalysisResult
    reason: str
    is_fallback = True


AnalysisOutcome = AnalysisOk | AnalysisFallback


class AnalysisProvider(ABC):
    """
    Turns a page into suggested selectors.
    """

    name: str

    @abstractmethod
    def analyze(self, *, url: str, html: str, hint: str | None = None) -> AnalysisResult:
        """
        Analyze one page or raise AnalysisProviderError.
        """


class SiteAnalyzer:
    """
    Run the primary provider, fall back to a deterministic one on failure,
    and reuse recent stored analyses for the same URL.
    """

    def __init__(
        self,
        *,
        provider: AnalysisProvider,
        fallback: AnalysisProvider,
        store: ExtractionStore | None = None,
        cache_max_age: timedelta | None = None,
    ) -> None:
        self._provider = provider
        self._fallback = fallback
        self._store = store
        self._cache_max_age = cache_max_age

    def analyze(self, *, url: str, html: str, hint: str | None = None) -> AnalysisOutcome:
        cached = self._cached(url)
        if cached is not None:
            return AnalysisOk(result=cached, cached=True)

        try:
            result = self._provider.analyze(url=url, html=html, hint=hint)
        except AnalysisProviderError as exc:
            reason = f"{self._provider.name} analysis failed at {exc.stage}: {exc}"
            log_event(
                logger,
                logging.WARNING,
                "analysis_fallback",
                url=url,
                provider=self._provider.name,
                stage=exc.stage,
                error=str(exc),
            )
            return AnalysisFallback(
                result=self._fallback.analyze(url=url, html=html, hint=hint),
                reason=reason,
            )

        if not result.selectors.primary and self._provider is not self._fallback:
            reason = f"{self._provider.name} analysis returned no container selector"
            log_event(logger, logging.WARNING, "analysis_fallback", url=url, provider=self._provider.name, stage="empty")
            return AnalysisFallback(
                result=self._fallback.analyze(url=url, html=html, hint=hint),
                reason=reason,
            )

        self._remember(url, result)
        return AnalysisOk(result=result)

    def _cached(self, url: str) -> AnalysisResult | None:
        if self._store is None or not self._cache_max_age:
            return None
        record = self._store.get_recent_analysis(url, max_age=self._cache_max_age)
        if record is None:
            return None
        log_event(logger, logging.INFO, "analysis_cache_hit", url=url, analysis_id=record.id)
        return _result_from_record(record)

    def _remember(self, url: str, result: AnalysisResult) -> None:
        if self._store is None or not self._cache_max_age:
            return
        self._store.save_analysis(
            url=url,
            selectors=result.selectors.to_dict(),
            strategy=result.strategy,
            confidence=result.confidence,
            source=result.source,
            structure={
                **result.structure.to_dict(),
                "render_mode": result.render_mode,
                "complexity": result.complexity,
            },
            recommendations=list(result.recommendations),
        )


def _result_from_record(record: WebsiteAnalysisRecord) -> AnalysisResult:
    structure = dict(record.structure)
    render_mode = str(structure.pop("render_mode", "static"))
    complexity = str(structure.pop("complexity", "low"))
    return AnalysisResult(
        selectors=SelectorSet.from_dict(record.selectors),
        strategy=record.strategy,
        render_mode=render_mode,
        complexity=complexity,
        confidence=record.confidence,
        source=record.source,
        structure=WebsiteStructure(
            js_framework=str(structure.get("js_framework", "vanilla")),
            has_cloudflare=bool(structure.get("has_cloudflare", False)),
            has_captcha=bool(structure.get("has_captcha", False)),
            has_rate_limit=bool(structure.get("has_rate_limit", False)),
            has_infinite_scroll=bool(structure.get("has_infinite_scroll", False)),
            has_ajax_pagination=bool(structure.get("has_ajax_pagination", False)),
            requires_javascript=bool(structure.get("requires_javascript", False)),
            signals=tuple(structure.get("signals", ())),
        ),
        recommendations=tuple(record.recommendations),
    )
