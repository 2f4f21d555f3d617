"""
Extraction configuration models.
"""

from __future__ import annotations

from dataclasses import asdict, dataclass
from typing import Any

from app.extraction.types import BrowserType, PaginationMode, RenderMode


@dataclass(frozen=True)
class ExtractionSettings:
    """
    Runtime settings for the extraction engine.
    """

    user_agent: str
    page_load_timeout_seconds: float
    wait_timeout_seconds: float
    default_max_pages: int
    default_delay_seconds: float
    stealth_min_delay_seconds: float
    stealth_max_delay_seconds: float
    browser_type: str
    probe_render_mode: str
    max_retries: int
    backoff_initial_seconds: float
    backoff_multiplier: float
    max_scroll_steps: int
    scroll_pause_seconds: float
    analysis_provider: str
    analysis_model: str
    openai_api_key: str | None
    openai_base_url: str | None
    analysis_cache_hours: float
    heuristic_candidate_limit: int
    storage_backend: str


@dataclass(frozen=True)
class ExtractionOptions:
    """
    Per-task knobs supplied at submission time.
    """

    max_pages: int = 5
    delay_seconds: float = 2.0
    pagination_mode: str = PaginationMode.QUERY
    page_param: str = "page"
    render_mode: str | None = None
    browser_type: str = BrowserType.CHROMIUM
    wait_for_selector: str | None = None
    wait_for_network_idle: bool = True
    scroll_to_bottom: bool = False
    require_next_page: bool = True
    analysis_hint: str | None = None

    @classmethod
    def from_dict(
        cls,
        payload: dict[str, Any] | None,
        *,
        settings: ExtractionSettings,
    ) -> "ExtractionOptions":
        """
        Build options from a loose mapping, filling gaps from settings.

        Unknown keys are ignored; invalid enum values raise ValueError.
        """

        raw = dict(payload or {})
        pagination_mode = str(raw.get("pagination_mode") or PaginationMode.QUERY).strip().lower()
        if pagination_mode not in PaginationMode.ALL:
            raise ValueError(f"Unsupported pagination_mode '{pagination_mode}'.")

        render_mode = raw.get("render_mode")
        if render_mode is not None:
            render_mode = str(render_mode).strip().lower()
            if render_mode not in RenderMode.ALL:
                raise ValueError(f"Unsupported render_mode '{render_mode}'.")

        browser_type = str(raw.get("browser_type") or settings.browser_type).strip().lower()
        if browser_type not in BrowserType.ALL:
            raise ValueError(f"Unsupported browser_type '{browser_type}'.")

        max_pages = raw.get("max_pages")
        delay_seconds = raw.get("delay_seconds")
        return cls(
            max_pages=max(1, int(max_pages if max_pages is not None else settings.default_max_pages)),
            delay_seconds=max(
                0.0,
                float(delay_seconds if delay_seconds is not None else settings.default_delay_seconds),
            ),
            pagination_mode=pagination_mode,
            page_param=str(raw.get("page_param") or "page").strip() or "page",
            render_mode=render_mode,
            browser_type=browser_type,
            wait_for_selector=_optional_str(raw.get("wait_for_selector")),
            wait_for_network_idle=bool(raw.get("wait_for_network_idle", True)),
            scroll_to_bottom=bool(raw.get("scroll_to_bottom", False)),
            require_next_page=bool(raw.get("require_next_page", True)),
            analysis_hint=_optional_str(raw.get("analysis_hint")),
        )

    def to_dict(self) -> dict[str, Any]:
        return asdict(self)


def _optional_str(value: object) -> str | None:
    if not isinstance(value, str):
        return None
    stripped = value.strip()
    return stripped or None
