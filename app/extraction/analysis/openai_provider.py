"""OpenAI-backed page analysis.

Sends a trimmed copy of the page to a chat completion model and validates
the JSON reply against AnalysisPayload.
"""

import logging
from typing import Any, Optional

from bs4 import BeautifulSoup
from openai import OpenAI, OpenAIError

from app.extraction.analysis.base import AnalysisProvider, AnalysisResult
from app.extraction.analysis.validator import validate_analysis_output
from app.extraction.classifier import StrategyClassifier
from app.extraction.errors import AnalysisProviderError
from app.extraction.extractor import DEFAULT_FIELD_SELECTORS
from app.extraction.logging_utils import log_event
from app.extraction.types import SelectorSet

logger = logging.getLogger(__name__)

_RETRYABLE_STAGES = frozenset({"json_parse", "schema"})
MAX_HTML_CHARS = 15000

SYSTEM_PROMPT = (
    "You analyze web pages for structured data extraction. "
    "Reply with one JSON object and nothing else."
)

USER_PROMPT_TEMPLATE = """Analyze this page and propose CSS selectors for repeated items.

URL: {url}
Goal: {hint}

Return JSON with exactly these keys:
{{
  "selectors": {{
    "primary": "<CSS selector matching every item container>",
    "fallback": ["<alternative container selectors>"],
    "fields": {{"title": ["..."], "price": ["..."], "description": ["..."], "link": ["..."], "image": ["..."]}}
  }},
  "render_mode": "static | dynamic | stealth",
  "complexity": "low | medium | high | extreme",
  "strategy": "<one or two sentences>",
  "confidence": <number between 0 and 1>,
  "recommendations": ["<short tips>"]
}}

Field selectors are evaluated inside each item container.

HTML:
{html}
"""


def trim_html(html: str, limit: int = MAX_HTML_CHARS) -> str:
    """Drop scripts, styles and comments, then cut to ``limit`` characters.

    Args:
        html: Raw page HTML.
        limit: Maximum number of characters to keep.

    Returns:
        A compact HTML string suitable for a prompt.
    """
    soup = BeautifulSoup(html or "", "html.parser")
    for node in soup(["script", "style", "noscript", "svg", "iframe"]):
        node.decompose()
    body = soup.body or soup
    return str(body)[:limit]


class OpenAIAnalysisProvider(AnalysisProvider):
    """Analysis provider for OpenAI-compatible chat completion APIs.

    Runs at temperature 0 and retries only on formatting failures.
    """

    name = "openai"

    def __init__(
        self,
        *,
        model: str = "gpt-4o",
        api_key: Optional[str] = None,
        base_url: Optional[str] = None,
        max_tokens: int = 1500,
        max_format_retries: int = 1,
        client: Any = None,
        classifier: Optional[StrategyClassifier] = None,
    ) -> None:
        """Initialise the provider.

        Args:
            model: Model identifier.
            api_key: API key; the OpenAI client reads OPENAI_API_KEY when omitted.
            base_url: Optional base URL for OpenAI-compatible endpoints.
            max_tokens: Maximum tokens in the completion.
            max_format_retries: Extra attempts after a JSON/schema failure.
            client: Pre-built client, mainly for tests.
            classifier: Used to attach detected page structure to results.
        """
        if client is None:
            client_kwargs: dict = {}
            if api_key:
                client_kwargs["api_key"] = api_key
            if base_url:
                client_kwargs["base_url"] = base_url
            client = OpenAI(**client_kwargs)

        self._client = client
        self._model = model
        self._max_tokens = max_tokens
        self._max_format_retries = max(0, max_format_retries)
        self._classifier = classifier or StrategyClassifier()

    def analyze(self, *, url: str, html: str, hint: Optional[str] = None) -> AnalysisResult:
        """Ask the model for selectors.

        Raises:
            AnalysisProviderError: On transport failure, or when every
                attempt returns malformed output.
        """
        prompt = USER_PROMPT_TEMPLATE.format(
            url=url,
            hint=hint or "extract every repeated item (products, posts, listings)",
            html=trim_html(html),
        )

        attempts = 1 + self._max_format_retries
        for attempt in range(1, attempts + 1):
            raw = self._complete(prompt)
            try:
                payload = validate_analysis_output(raw)
                break
            except AnalysisProviderError as exc:
                log_event(
                    logger,
                    logging.WARNING,
                    "analysis_output_invalid",
                    url=url,
                    attempt=attempt,
                    stage=exc.stage,
                )
                if exc.stage not in _RETRYABLE_STAGES or attempt >= attempts:
                    raise

        fields = payload.selectors.fields or {
            name: list(candidates) for name, candidates in DEFAULT_FIELD_SELECTORS.items()
        }
        selectors = SelectorSet.from_dict(
            {
                "primary": payload.selectors.primary,
                "fallback": payload.selectors.fallback,
                "fields": fields,
            }
        )
        return AnalysisResult(
            selectors=selectors,
            strategy=payload.strategy or "Model-proposed selectors",
            render_mode=payload.render_mode,
            complexity=payload.complexity,
            confidence=payload.confidence,
            source=self.name,
            structure=self._classifier.detect(html),
            recommendations=tuple(payload.recommendations),
        )

    def _complete(self, prompt: str) -> str:
        try:
            response = self._client.chat.completions.create(
                model=self._model,
                messages=[
                    {"role": "system", "content": SYSTEM_PROMPT},
                    {"role": "user", "content": prompt},
                ],
                temperature=0,
                max_tokens=self._max_tokens,
                response_format={"type": "json_object"},
                stream=False,
            )
        except OpenAIError as exc:
            raise AnalysisProviderError(
                f"Analysis request failed: {exc}",
                stage="request",
            ) from exc

        if not response.choices:
            raise AnalysisProviderError("Analysis response had no choices.", stage="request")
        return response.choices[0].message.content or ""

