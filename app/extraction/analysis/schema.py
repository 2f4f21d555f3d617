"""Structured output contract for model-backed page analysis."""

from typing import Dict, List, Literal

from pydantic import BaseModel, ConfigDict, Field, field_validator


class SelectorPayload(BaseModel):
    """Selectors proposed by the model."""

    model_config = ConfigDict(extra="ignore", str_strip_whitespace=True)

    primary: str = Field(min_length=1)
    fallback: List[str] = Field(default_factory=list)
    fields: Dict[str, List[str]] = Field(default_factory=dict)

    @field_validator("fallback")
    @classmethod
    def _drop_blank_fallbacks(cls, value: List[str]) -> List[str]:
        return [item.strip() for item in value if item and item.strip()]

    @field_validator("fields")
    @classmethod
    def _drop_blank_fields(cls, value: Dict[str, List[str]]) -> Dict[str, List[str]]:
        cleaned: Dict[str, List[str]] = {}
        for name, candidates in value.items():
            selectors = [item.strip() for item in candidates if item and item.strip()]
            if name.strip() and selectors:
                cleaned[name.strip().lower()] = selectors
        return cleaned


class AnalysisPayload(BaseModel):
    """Only accepted response shape from the analysis model."""

    model_config = ConfigDict(extra="ignore", str_strip_whitespace=True)

    selectors: SelectorPayload
    render_mode: Literal["static", "dynamic", "stealth"] = "static"
    complexity: Literal["low", "medium", "high", "extreme"] = "low"
    strategy: str = Field(default="", max_length=2000)
    confidence: float = Field(default=0.5, ge=0.0, le=1.0)
    recommendations: List[str] = Field(default_factory=list)
