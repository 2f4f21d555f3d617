"""
tests/test_classifier.py

StrategyClassifier precedence: anti-bot first, then dynamic markers, then
static.
"""

from __future__ import annotations

from app.extraction.classifier import StrategyClassifier
from app.extraction.types import Complexity, RenderMode

STATIC_PAGE = """
<html><head><title>Shop</title></head>
<body>
  <div class="product"><h2>Lamp</h2><span class="price">$10</span></div>
  <div class="product"><h2>Desk</h2><span class="price">$90</span></div>
</body></html>
"""


def _classify(html: str):
    return StrategyClassifier().classify(html)


class TestAntiBotSignals:
    def test_captcha_widget_forces_stealth_extreme(self) -> None:
        html = '<html><body><div class="g-recaptcha" data-sitekey="abc"></div></body></html>'
        decision = _classify(html)
        assert decision.render_mode == RenderMode.STEALTH
        assert decision.complexity == Complexity.EXTREME
        assert decision.structure.has_captcha is True

    def test_plain_captcha_word_is_enough(self) -> None:
        decision = _classify("<html><body><p>Please solve the CAPTCHA to continue</p></body></html>")
        assert decision.render_mode == RenderMode.STEALTH
        assert "captcha_marker" in decision.structure.signals

    def test_cloudflare_challenge(self) -> None:
        html = "<html><head><title>Just a moment...</title></head><body><form id='challenge-form'></form></body></html>"
        decision = _classify(html)
        assert decision.render_mode == RenderMode.STEALTH
        assert decision.structure.has_cloudflare is True
        assert decision.structure.has_anti_bot is True

    def test_anti_bot_wins_over_framework(self) -> None:
        html = '<html><body><div id="root"></div><script src="react-dom.production.min.js"></script>' \
               '<div class="h-captcha"></div></body></html>'
        decision = _classify(html)
        assert decision.render_mode == RenderMode.STEALTH
        assert decision.complexity == Complexity.EXTREME
        assert decision.structure.js_framework == "react"


class TestDynamicSignals:
    def test_framework_marker_is_dynamic_high(self) -> None:
        html = '<html><body><div data-reactroot=""><p>Hi</p></div></body></html>'
        decision = _classify(html)
        assert decision.render_mode == RenderMode.DYNAMIC
        assert decision.complexity == Complexity.HIGH
        assert decision.structure.js_framework == "react"
        assert decision.structure.requires_javascript is True

    def test_single_weak_signal_is_medium(self) -> None:
        html = '<html><body><script src="/static/jquery-3.6.0.min.js"></script><p>Hello</p></body></html>'
        decision = _classify(html)
        assert decision.render_mode == RenderMode.DYNAMIC
        assert decision.complexity == Complexity.MEDIUM
        assert decision.structure.js_framework == "jquery"
        assert decision.structure.requires_javascript is False

    def test_two_weak_signals_are_high(self) -> None:
        html = (
            '<html><body><button class="load-more">More</button>'
            '<nav data-ajax-url="/api/page"></nav></body></html>'
        )
        decision = _classify(html)
        assert decision.complexity == Complexity.HIGH
        assert decision.structure.has_infinite_scroll is True
        assert decision.structure.has_ajax_pagination is True

    def test_empty_app_shell_requires_javascript(self) -> None:
        decision = _classify('<html><body><div id="app"></div></body></html>')
        assert decision.render_mode == RenderMode.DYNAMIC
        assert decision.structure.requires_javascript is True


class TestStaticPages:
    def test_plain_markup_is_static_low(self) -> None:
        decision = _classify(STATIC_PAGE)
        assert decision.render_mode == RenderMode.STATIC
        assert decision.complexity == Complexity.LOW
        assert decision.structure.signals == ()
        assert decision.structure.js_framework == "vanilla"

    def test_empty_input(self) -> None:
        decision = _classify("")
        assert decision.render_mode == RenderMode.STATIC

    def test_detect_matches_classify_structure(self) -> None:
        classifier = StrategyClassifier()
        html = '<html><body><div class="g-recaptcha"></div></body></html>'
        assert classifier.detect(html) == classifier.classify(html).structure
