"""
Sanitizing and parsing of the analysis model's JSON reply.

Models asked for "JSON only" still wrap replies in markdown fences or add
chatter around the object. ``strip_json_fences`` removes both;
``parse_analysis`` turns the cleaned text into an ``AnalysisResult`` and
falls back to defaults when it cannot.
"""

import json
import logging
import re
from typing import Any, List, Optional

from pydantic import BaseModel, Field, field_validator

from infosight.api.models import SENTIMENTS

logger = logging.getLogger(__name__)

_LEADING_FENCE = re.compile(r"^```[a-zA-Z]*\s*")
_TRAILING_FENCE = re.compile(r"\s*```$")

DEFAULT_KEY_POINTS = ["Content processed successfully"]


def strip_json_fences(content: str) -> str:
    """
    Strip markdown code fences and any text outside the outermost braces.

    Args:
        content: Raw model output.

    Returns:
        The substring from the first ``{`` to the last ``}`` when both exist
        in that order, otherwise the fence-stripped text.
    """
    cleaned = (content or "").strip()
    cleaned = _LEADING_FENCE.sub("", cleaned)
    cleaned = _TRAILING_FENCE.sub("", cleaned)
    cleaned = cleaned.strip()

    first_brace = cleaned.find("{")
    last_brace = cleaned.rfind("}")
    if first_brace != -1 and last_brace != -1 and first_brace < last_brace:
        cleaned = cleaned[first_brace:last_brace + 1]

    return cleaned


def _as_string_list(value: Any) -> List[str]:
    if value is None:
        return []
    if isinstance(value, (str, int, float)):
        value = [value]
    if not isinstance(value, (list, tuple)):
        return []
    return [str(item).strip() for item in value if item is not None and str(item).strip()]


class AnalysisResult(BaseModel):
    """The four derived fields of a completed submission."""
    key_points: List[str] = Field(default_factory=list)
    extracted_kpis: List[str] = Field(default_factory=list)
    sentiment: str = "neutral"
    ai_quotes: List[str] = Field(default_factory=list)
    used_fallback: bool = Field(default=False, exclude=True)
    fallback_reason: Optional[str] = Field(default=None, exclude=True)

    @field_validator("key_points", "extracted_kpis", "ai_quotes", mode="before")
    @classmethod
    def coerce_lists(cls, v: Any) -> List[str]:
        return _as_string_list(v)

    @field_validator("sentiment", mode="before")
    @classmethod
    def normalize_sentiment(cls, v: Any) -> str:
        value = str(v or "").strip().lower()
        return value if value in SENTIMENTS else "neutral"

    @classmethod
    def fallback(cls, reason: str) -> "AnalysisResult":
        return cls(
            key_points=list(DEFAULT_KEY_POINTS),
            extracted_kpis=[],
            sentiment="neutral",
            ai_quotes=[],
            used_fallback=True,
            fallback_reason=reason,
        )


def parse_analysis(content: Optional[str]) -> AnalysisResult:
    """
    Parse a model reply into an AnalysisResult.

    Never raises: empty, non-JSON or non-object replies produce
    ``AnalysisResult.fallback``.
    """
    if not content or not content.strip():
        logger.warning("Empty analysis response, using defaults")
        return AnalysisResult.fallback("empty response")

    cleaned = strip_json_fences(content)
    try:
        data = json.loads(cleaned)
    except json.JSONDecodeError as e:
        logger.error(f"Error parsing analysis response: {e}")
        logger.debug(f"Raw content that failed to parse: {content}")
        return AnalysisResult.fallback(f"invalid JSON: {e}")

    if not isinstance(data, dict):
        logger.error(f"Analysis response is a {type(data).__name__}, expected an object")
        return AnalysisResult.fallback("response is not a JSON object")

    result = AnalysisResult.model_validate({
        "key_points": data.get("key_points"),
        "extracted_kpis": data.get("extracted_kpis"),
        "sentiment": data.get("sentiment"),
        "ai_quotes": data.get("ai_quotes"),
    })

    if not result.extracted_kpis:
        logger.warning("No KPIs were extracted from the content")
    return result
