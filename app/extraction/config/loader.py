"""
Environment loader for extraction settings.
"""

from __future__ import annotations

import os
from functools import lru_cache

from db.config import load_env_files

from app.extraction.config.models import ExtractionSettings
from app.extraction.types import BrowserType, RenderMode

DEFAULT_USER_AGENT = (
    "Mozilla/5.0 (Windows NT 10.0; Win64; x64) AppleWebKit/537.36 "
    "(KHTML, like Gecko) Chrome/124.0.0.0 Safari/537.36"
)


def _get_int_env(name: str, default: int) -> int:
    raw = os.getenv(name)
    if raw is None:
        return default
    try:
        return int(raw)
    except ValueError:
        return default


def _get_float_env(name: str, default: float) -> float:
    raw = os.getenv(name)
    if raw is None:
        return default
    try:
        return float(raw)
    except ValueError:
        return default


def _get_str_env(name: str, default: str) -> str:
    raw = os.getenv(name)
    if raw is None:
        return default
    stripped = raw.strip()
    return stripped if stripped else default


def _get_optional_str_env(name: str) -> str | None:
    raw = os.getenv(name)
    if raw is None:
        return None
    stripped = raw.strip()
    return stripped or None


def _get_choice_env(name: str, default: str, allowed: tuple[str, ...]) -> str:
    value = _get_str_env(name, default).lower()
    return value if value in allowed else default


@lru_cache(maxsize=1)
def get_extraction_settings() -> ExtractionSettings:
    """
    Return cached extraction settings from environment variables.
    """

    load_env_files()
    stealth_min = max(0.0, _get_float_env("EXTRACTION_STEALTH_MIN_DELAY_SECONDS", 2.0))
    stealth_max = max(
        stealth_min,
        _get_float_env("EXTRACTION_STEALTH_MAX_DELAY_SECONDS", 5.0),
    )
    return ExtractionSettings(
        user_agent=_get_str_env("EXTRACTION_USER_AGENT", DEFAULT_USER_AGENT),
        page_load_timeout_seconds=max(
            1.0,
            _get_float_env("EXTRACTION_PAGE_LOAD_TIMEOUT_SECONDS", 30.0),
        ),
        wait_timeout_seconds=max(
            0.5,
            _get_float_env("EXTRACTION_WAIT_TIMEOUT_SECONDS", 10.0),
        ),
        default_max_pages=max(1, _get_int_env("EXTRACTION_DEFAULT_MAX_PAGES", 5)),
        default_delay_seconds=max(
            0.0,
            _get_float_env("EXTRACTION_DEFAULT_DELAY_SECONDS", 2.0),
        ),
        stealth_min_delay_seconds=stealth_min,
        stealth_max_delay_seconds=stealth_max,
        browser_type=_get_choice_env(
            "EXTRACTION_BROWSER_TYPE",
            BrowserType.CHROMIUM,
            BrowserType.ALL,
        ),
        probe_render_mode=_get_choice_env(
            "EXTRACTION_PROBE_RENDER_MODE",
            RenderMode.STATIC,
            RenderMode.ALL,
        ),
        max_retries=max(0, _get_int_env("EXTRACTION_MAX_RETRIES", 2)),
        backoff_initial_seconds=max(
            0.1,
            _get_float_env("EXTRACTION_BACKOFF_INITIAL_SECONDS", 0.5),
        ),
        backoff_multiplier=max(
            1.0,
            _get_float_env("EXTRACTION_BACKOFF_MULTIPLIER", 2.0),
        ),
        max_scroll_steps=max(0, _get_int_env("EXTRACTION_MAX_SCROLL_STEPS", 20)),
        scroll_pause_seconds=max(
            0.0,
            _get_float_env("EXTRACTION_SCROLL_PAUSE_SECONDS", 0.5),
        ),
        analysis_provider=_get_choice_env(
            "EXTRACTION_ANALYSIS_PROVIDER",
            "heuristic",
            ("heuristic", "openai"),
        ),
        analysis_model=_get_str_env("EXTRACTION_ANALYSIS_MODEL", "gpt-4o"),
        openai_api_key=_get_optional_str_env("OPENAI_API_KEY"),
        openai_base_url=_get_optional_str_env("OPENAI_BASE_URL"),
        analysis_cache_hours=max(
            0.0,
            _get_float_env("EXTRACTION_ANALYSIS_CACHE_HOURS", 24.0),
        ),
        heuristic_candidate_limit=max(
            1,
            _get_int_env("EXTRACTION_HEURISTIC_CANDIDATE_LIMIT", 10),
        ),
        storage_backend=_get_choice_env(
            "EXTRACTION_STORAGE_BACKEND",
            "memory",
            ("memory", "sqlalchemy"),
        ),
    )
