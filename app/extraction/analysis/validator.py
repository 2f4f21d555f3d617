"""Validation layer for raw analysis model output.

Parses and validates JSON strings against the AnalysisPayload schema.
"""

import json
import re

from pydantic import ValidationError

from app.extraction.analysis.schema import AnalysisPayload
from app.extraction.errors import AnalysisProviderError


def _strip_markdown_fences(text: str) -> str:
    """Remove optional markdown code fences wrapping JSON.

    Args:
        text: Raw model response string.

    Returns:
        The text with leading/trailing code fences removed, if present.
    """
    stripped = text.strip()
    match = re.match(
        r"^```(?:json)?\s*\n?(.*?)\n?\s*```$",
        stripped,
        re.DOTALL,
    )
    if match:
        return match.group(1).strip()
    return stripped


def validate_analysis_output(raw_response: str) -> AnalysisPayload:
    """Parse and validate a raw analysis response string.

    Args:
        raw_response: The raw string returned by the model.

    Returns:
        A validated AnalysisPayload instance.

    Raises:
        AnalysisProviderError: With stage ``json_parse`` or ``schema``.
    """
    cleaned = _strip_markdown_fences(raw_response or "")

    try:
        data = json.loads(cleaned)
    except (json.JSONDecodeError, TypeError) as exc:
        raise AnalysisProviderError(
            f"Analysis output is not valid JSON: {exc}",
            stage="json_parse",
            raw_response=raw_response,
        ) from exc

    if not isinstance(data, dict):
        raise AnalysisProviderError(
            "Analysis output must be a JSON object.",
            stage="schema",
            raw_response=raw_response,
        )

    try:
        return AnalysisPayload.model_validate(data)
    except ValidationError as exc:
        raise AnalysisProviderError(
            f"Analysis output failed schema validation: {exc.error_count()} error(s)",
            stage="schema",
            errors=[
                {"loc": list(error["loc"]), "msg": error["msg"]}
                for error in exc.errors()
            ],
            raw_response=raw_response,
        ) from exc
