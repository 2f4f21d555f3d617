"""
Rule-based page classification into a render mode and complexity tier.
"""

from __future__ import annotations

import logging
import re
from dataclasses import dataclass

from bs4 import BeautifulSoup

from app.extraction.logging_utils import log_event
from app.extraction.types import Complexity, RenderMode, StrategyDecision, WebsiteStructure

logger = logging.getLogger(__name__)


class SignalCategory:
    CLOUDFLARE = "cloudflare"
    CAPTCHA = "captcha"
    RATE_LIMIT = "rate_limit"
    FRAMEWORK = "framework"
    INFINITE_SCROLL = "infinite_scroll"
    AJAX_PAGINATION = "ajax_pagination"
    REQUIRES_JAVASCRIPT = "requires_javascript"

    ANTI_BOT = frozenset({CLOUDFLARE, CAPTCHA, RATE_LIMIT})
    DYNAMIC = frozenset({FRAMEWORK, INFINITE_SCROLL, AJAX_PAGINATION, REQUIRES_JAVASCRIPT})


WEAK = 1
STRONG = 2


@dataclass(frozen=True)
class SignalRule:
    """
    One detectable page marker.

    `pattern` is matched against raw HTML, `selector` against the parsed tree.
    """

    name: str
    category: str
    weight: int = STRONG
    pattern: str | None = None
    selector: str | None = None
    framework: str | None = None

    def matches(self, html: str, soup: BeautifulSoup) -> bool:
        if self.pattern is not None and re.search(self.pattern, html, flags=re.IGNORECASE):
            return True
        if self.selector is not None and soup.select_one(self.selector) is not None:
            return True
        return False


SIGNAL_RULES: tuple[SignalRule, ...] = (
    SignalRule(
        name="cloudflare_challenge",
        category=SignalCategory.CLOUDFLARE,
        pattern=r"cf-browser-verification|cf-challenge|challenges\.cloudflare\.com|cf_chl_opt|<title>\s*just a moment",
        selector="#challenge-form, #cf-wrapper",
    ),
    SignalRule(
        name="recaptcha",
        category=SignalCategory.CAPTCHA,
        pattern=r"google\.com/recaptcha|recaptcha/api\.js",
        selector=".g-recaptcha, [data-sitekey]",
    ),
    SignalRule(
        name="hcaptcha",
        category=SignalCategory.CAPTCHA,
        pattern=r"hcaptcha\.com/1/api\.js",
        selector=".h-captcha",
    ),
    SignalRule(
        name="captcha_marker",
        category=SignalCategory.CAPTCHA,
        pattern=r"\bcaptcha\b",
    ),
    SignalRule(
        name="bot_protection",
        category=SignalCategory.CAPTCHA,
        pattern=r"captcha-delivery\.com|_Incapsula_Resource|px-captcha|perimeterx",
    ),
    SignalRule(
        name="rate_limit_message",
        category=SignalCategory.RATE_LIMIT,
        pattern=r"too many requests|rate limit(?:ed| exceeded)?",
    ),
    SignalRule(
        name="react",
        category=SignalCategory.FRAMEWORK,
        framework="react",
        pattern=r"data-reactroot|__NEXT_DATA__|react-dom(?:\.production)?(?:\.min)?\.js",
    ),
    SignalRule(
        name="vue",
        category=SignalCategory.FRAMEWORK,
        framework="vue",
        pattern=r"\bdata-v-[0-9a-f]{6,}|id=[\"']__nuxt[\"']|vue(?:\.runtime)?(?:\.global)?(?:\.prod)?(?:\.min)?\.js",
    ),
    SignalRule(
        name="angular",
        category=SignalCategory.FRAMEWORK,
        framework="angular",
        pattern=r"\bng-version=|\bng-app\b|<app-root",
    ),
    SignalRule(
        name="svelte",
        category=SignalCategory.FRAMEWORK,
        framework="svelte",
        pattern=r"\bsvelte-[a-z0-9]{5,}\b",
    ),
    SignalRule(
        name="empty_app_shell",
        category=SignalCategory.REQUIRES_JAVASCRIPT,
        pattern=r"<div\s+id=[\"'](?:root|app)[\"']\s*>\s*</div>",
    ),
    SignalRule(
        name="noscript_warning",
        category=SignalCategory.REQUIRES_JAVASCRIPT,
        weight=WEAK,
        pattern=r"<noscript[^>]*>[^<]*(?:enable|requires?)\s+javascript",
    ),
    SignalRule(
        name="jquery",
        category=SignalCategory.FRAMEWORK,
        framework="jquery",
        weight=WEAK,
        pattern=r"jquery(?:[-.][0-9.]+)?(?:\.min)?\.js",
    ),
    SignalRule(
        name="infinite_scroll_marker",
        category=SignalCategory.INFINITE_SCROLL,
        pattern=r"infinite-scroll|infinitescroll",
        selector="[data-infinite], [data-infinite-scroll]",
    ),
    SignalRule(
        name="load_more_control",
        category=SignalCategory.INFINITE_SCROLL,
        weight=WEAK,
        pattern=r"load-more|loadmore|load_more",
    ),
    SignalRule(
        name="ajax_pagination",
        category=SignalCategory.AJAX_PAGINATION,
        weight=WEAK,
        selector="[data-ajax], [data-ajax-url]",
    ),
)


class StrategyClassifier:
    """
    Map fetched HTML to a render mode and complexity tier.

    Anti-bot markers win outright. Dynamic markers are summed by weight and
    a lone weak marker only bumps complexity to medium.
    """

    def __init__(self, *, rules: tuple[SignalRule, ...] = SIGNAL_RULES) -> None:
        self._rules = rules

    def detect(self, html: str) -> WebsiteStructure:
        return self._structure_from(self._match(html))

    def classify(self, html: str) -> StrategyDecision:
        matched = self._match(html)
        structure = self._structure_from(matched)

        if any(rule.category in SignalCategory.ANTI_BOT for rule in matched):
            render_mode, complexity = RenderMode.STEALTH, Complexity.EXTREME
        else:
            dynamic_weight = sum(
                rule.weight for rule in matched if rule.category in SignalCategory.DYNAMIC
            )
            if dynamic_weight == 0:
                render_mode, complexity = RenderMode.STATIC, Complexity.LOW
            elif dynamic_weight == WEAK:
                render_mode, complexity = RenderMode.DYNAMIC, Complexity.MEDIUM
            else:
                render_mode, complexity = RenderMode.DYNAMIC, Complexity.HIGH

        log_event(
            logger,
            logging.INFO,
            "strategy_classified",
            render_mode=render_mode,
            complexity=complexity,
            signals=list(structure.signals),
        )
        return StrategyDecision(
            render_mode=render_mode,
            complexity=complexity,
            structure=structure,
        )

    def _match(self, html: str) -> list[SignalRule]:
        content = html or ""
        soup = BeautifulSoup(content, "html.parser")
        return [rule for rule in self._rules if rule.matches(content, soup)]

    @staticmethod
    def _structure_from(matched: list[SignalRule]) -> WebsiteStructure:
        categories = {rule.category for rule in matched}
        framework = next(
            (rule.framework for rule in matched if rule.framework is not None),
            "vanilla",
        )
        return WebsiteStructure(
            js_framework=framework,
            has_cloudflare=SignalCategory.CLOUDFLARE in categories,
            has_captcha=SignalCategory.CAPTCHA in categories,
            has_rate_limit=SignalCategory.RATE_LIMIT in categories,
            has_infinite_scroll=SignalCategory.INFINITE_SCROLL in categories,
            has_ajax_pagination=SignalCategory.AJAX_PAGINATION in categories,
            requires_javascript=any(
                rule.category in SignalCategory.DYNAMIC and rule.weight == STRONG
                for rule in matched
            ),
            signals=tuple(rule.name for rule in matched),
        )
