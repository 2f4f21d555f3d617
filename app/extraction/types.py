"""
Shared extraction runtime data models.
"""

from __future__ import annotations

from collections.abc import Mapping, Sequence
from dataclasses import dataclass, field
from typing import Any


class RenderMode:
    STATIC = "static"
    DYNAMIC = "dynamic"
    STEALTH = "stealth"

    ALL = (STATIC, DYNAMIC, STEALTH)


class Complexity:
    LOW = "low"
    MEDIUM = "medium"
    HIGH = "high"
    EXTREME = "extreme"

    ALL = (LOW, MEDIUM, HIGH, EXTREME)


class PaginationMode:
    QUERY = "query"
    PATH = "path"
    NEXT_LINK = "next_link"

    ALL = (QUERY, PATH, NEXT_LINK)


class BrowserType:
    CHROMIUM = "chromium"
    FIREFOX = "firefox"
    WEBKIT = "webkit"

    ALL = (CHROMIUM, FIREFOX, WEBKIT)


def _selector_tuple(value: object) -> tuple[str, ...]:
    if isinstance(value, str):
        return (value.strip(),) if value.strip() else ()
    if isinstance(value, Sequence):
        return tuple(
            item.strip()
            for item in value
            if isinstance(item, str) and item.strip()
        )
    return ()


@dataclass(frozen=True)
class SelectorSet:
    """
    Container selector plus ordered per-field selector candidates.
    """

    primary: str = ""
    fallback: tuple[str, ...] = ()
    fields: Mapping[str, tuple[str, ...]] = field(default_factory=dict)

    @classmethod
    def from_dict(cls, payload: Mapping[str, Any] | None) -> "SelectorSet":
        if not payload:
            return cls()

        primary = payload.get("primary") or payload.get("item_container") or ""
        raw_fields = payload.get("fields")
        fields: dict[str, tuple[str, ...]] = {}
        if isinstance(raw_fields, Mapping):
            for name, candidates in raw_fields.items():
                if not isinstance(name, str) or not name.strip():
                    continue
                selectors = _selector_tuple(candidates)
                if selectors:
                    fields[name.strip().lower()] = selectors

        return cls(
            primary=primary.strip() if isinstance(primary, str) else "",
            fallback=_selector_tuple(payload.get("fallback")),
            fields=fields,
        )

    def to_dict(self) -> dict[str, Any]:
        return {
            "primary": self.primary,
            "fallback": list(self.fallback),
            "fields": {name: list(candidates) for name, candidates in self.fields.items()},
        }

    def is_empty(self) -> bool:
        return not self.primary and not self.fallback

    def with_fields(self, defaults: Mapping[str, Sequence[str]]) -> "SelectorSet":
        """
        Return a copy where fields missing from this set use `defaults`.
        """

        merged = {name: tuple(candidates) for name, candidates in defaults.items()}
        merged.update(self.fields)
        return SelectorSet(primary=self.primary, fallback=self.fallback, fields=merged)


@dataclass(frozen=True)
class FetchOptions:
    """
    Per-fetch knobs shared by all backends.
    """

    user_agent: str
    page_load_timeout_seconds: float = 30.0
    wait_timeout_seconds: float = 10.0
    wait_for_selector: str | None = None
    wait_for_network_idle: bool = True
    scroll_to_bottom: bool = False
    browser_type: str = BrowserType.CHROMIUM
    detect_next_page: bool = True
    headers: Mapping[str, str] = field(default_factory=dict)


@dataclass(frozen=True)
class FetchResult:
    """
    Rendered page content and the pagination affordance seen on it.
    """

    url: str
    content: str
    status_code: int | None
    render_mode: str
    next_page_present: bool | None = None
    next_page_url: str | None = None


@dataclass(frozen=True)
class WebsiteStructure:
    """
    Page signals detected during classification. Lives for one run.
    """

    js_framework: str = "vanilla"
    has_cloudflare: bool = False
    has_captcha: bool = False
    has_rate_limit: bool = False
    has_infinite_scroll: bool = False
    has_ajax_pagination: bool = False
    requires_javascript: bool = False
    signals: tuple[str, ...] = ()

    @property
    def has_anti_bot(self) -> bool:
        return self.has_cloudflare or self.has_captcha or self.has_rate_limit

    def to_dict(self) -> dict[str, Any]:
        return {
            "js_framework": self.js_framework,
            "has_cloudflare": self.has_cloudflare,
            "has_captcha": self.has_captcha,
            "has_rate_limit": self.has_rate_limit,
            "has_infinite_scroll": self.has_infinite_scroll,
            "has_ajax_pagination": self.has_ajax_pagination,
            "requires_javascript": self.requires_javascript,
            "signals": list(self.signals),
        }


@dataclass(frozen=True)
class StrategyDecision:
    render_mode: str
    complexity: str
    structure: WebsiteStructure

    def describe(self) -> str:
        return f"{self.render_mode} rendering, {self.complexity} complexity"


@dataclass(frozen=True)
class PageReport:
    """
    Outcome of one fetch -> resolve -> extract pass.
    """

    page_number: int
    url: str
    container_selector: str
    selector_source: str
    items: list[dict[str, str]]
    containers_found: int
    skipped_items: int
    next_page_present: bool | None
    next_page_url: str | None


@dataclass(frozen=True)
class ProgressEvent:
    """
    One notification delivered to progress subscribers.
    """

    task_id: str
    status: str
    progress: int
    total_scraped: int
    items_on_page: int = 0
    current_page: int | None = None
    message: str = ""
    details: dict[str, Any] = field(default_factory=dict)
    type: str = "extraction_progress"

    def to_payload(self) -> dict[str, Any]:
        return {
            "type": self.type,
            "task_id": self.task_id,
            "status": self.status,
            "progress": self.progress,
            "items_on_page": self.items_on_page,
            "total_scraped": self.total_scraped,
            "current_page": self.current_page,
            "message": self.message,
            "details": dict(self.details),
        }
