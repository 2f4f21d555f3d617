"""
app/config.py

Process-level settings for the API and CLI entry points.
"""

from __future__ import annotations

import os
from dataclasses import dataclass
from functools import lru_cache

from db.config import load_env_files

_LOG_LEVELS = {"CRITICAL", "ERROR", "WARNING", "INFO", "DEBUG"}


def _get_bool_env(name: str, default: bool) -> bool:
    raw_value = os.getenv(name)
    if raw_value is None:
        return default
    return raw_value.strip().lower() in {"1", "true", "yes", "on"}


def _get_float_env(name: str, default: float) -> float:
    raw_value = os.getenv(name)
    if raw_value is None:
        return default
    try:
        return float(raw_value)
    except ValueError:
        return default


@dataclass(frozen=True)
class AppSettings:
    """
    API process settings.
    """

    title: str = "Adaptive Extraction API"
    log_level: str = "INFO"
    start_worker: bool = True
    worker_shutdown_timeout_seconds: float = 10.0


@lru_cache(maxsize=1)
def get_app_settings() -> AppSettings:
    """
    Return cached application settings from environment variables.
    """

    load_env_files()
    log_level = os.getenv("LOG_LEVEL", "INFO").strip().upper()
    return AppSettings(
        title=os.getenv("APP_TITLE", "").strip() or "Adaptive Extraction API",
        log_level=log_level if log_level in _LOG_LEVELS else "INFO",
        start_worker=_get_bool_env("EXTRACTION_START_WORKER", True),
        worker_shutdown_timeout_seconds=max(
            0.0, _get_float_env("EXTRACTION_WORKER_SHUTDOWN_TIMEOUT_SECONDS", 10.0)
        ),
    )
