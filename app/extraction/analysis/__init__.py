"""
Page analysis providers and the fallback-aware analyzer.
"""

from __future__ import annotations

from datetime import timedelta

from app.extraction.analysis.base import (
    AnalysisFallback,
    AnalysisOk,
    AnalysisOutcome,
    AnalysisProvider,
    AnalysisResult,
    SiteAnalyzer,
)
from app.extraction.analysis.heuristic import HeuristicAnalysisProvider
from app.extraction.analysis.openai_provider import OpenAIAnalysisProvider
from app.extraction.config.models import ExtractionSettings
from app.extraction.resolver import HeuristicContainerDiscovery
from app.extraction.storage.base import ExtractionStore


def build_site_analyzer(
    settings: ExtractionSettings,
    *,
    store: ExtractionStore | None = None,
) -> SiteAnalyzer:
    """
    Wire the configured provider with the heuristic fallback and URL cache.
    """

    heuristic = HeuristicAnalysisProvider(
        discovery=HeuristicContainerDiscovery(limit=settings.heuristic_candidate_limit),
    )
    provider: AnalysisProvider = heuristic
    if settings.analysis_provider == "openai":
        provider = OpenAIAnalysisProvider(
            model=settings.analysis_model,
            api_key=settings.openai_api_key,
            base_url=settings.openai_base_url,
        )
    cache_max_age = (
        timedelta(hours=settings.analysis_cache_hours) if settings.analysis_cache_hours > 0 else None
    )
    return SiteAnalyzer(
        provider=provider,
        fallback=heuristic,
        store=store,
        cache_max_age=cache_max_age,
    )


__all__ = [
    "AnalysisFallback",
    "AnalysisOk",
    "AnalysisOutcome",
    "AnalysisProvider",
    "AnalysisResult",
    "HeuristicAnalysisProvider",
    "OpenAIAnalysisProvider",
    "SiteAnalyzer",
    "build_site_analyzer",
]
