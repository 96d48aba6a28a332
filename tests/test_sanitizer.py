"""
Tests for analysis reply sanitizing and parsing.
"""

import json

from infosight.worker.sanitizer import (
    DEFAULT_KEY_POINTS,
    AnalysisResult,
    parse_analysis,
    strip_json_fences,
)

REPLY = {
    "key_points": ["Shipped the new onboarding flow"],
    "extracted_kpis": ["Activation Rate: 42%", "Support Tickets: 18"],
    "sentiment": "Positive",
    "ai_quotes": ["Customers noticed the difference"],
}


def test_strip_fenced_json():
    content = "```json\n" + json.dumps(REPLY) + "\n```"
    assert json.loads(strip_json_fences(content)) == REPLY


def test_strip_surrounding_chatter():
    content = "Here is the analysis:\n" + json.dumps(REPLY) + "\nLet me know if you need more."
    assert json.loads(strip_json_fences(content)) == REPLY


def test_strip_without_braces_returns_text():
    assert strip_json_fences("```\nno json here\n```") == "no json here"


def test_parse_valid_reply():
    result = parse_analysis("```json\n" + json.dumps(REPLY) + "\n```")

    assert result.used_fallback is False
    assert result.key_points == REPLY["key_points"]
    assert result.extracted_kpis == REPLY["extracted_kpis"]
    assert result.sentiment == "positive"
    assert result.ai_quotes == REPLY["ai_quotes"]


def test_parse_invalid_json_uses_defaults():
    result = parse_analysis("I could not find any metrics, sorry!")

    assert result.used_fallback is True
    assert result.key_points == DEFAULT_KEY_POINTS
    assert result.extracted_kpis == []
    assert result.sentiment == "neutral"
    assert result.ai_quotes == []


def test_parse_empty_reply_uses_defaults():
    assert parse_analysis("").used_fallback is True
    assert parse_analysis(None).used_fallback is True


def test_parse_array_reply_uses_defaults():
    assert parse_analysis('["a", "b"]').used_fallback is True


def test_missing_and_odd_fields_are_coerced():
    result = parse_analysis('{"key_points": "single point", "extracted_kpis": null, "sentiment": "ecstatic"}')

    assert result.used_fallback is False
    assert result.key_points == ["single point"]
    assert result.extracted_kpis == []
    assert result.sentiment == "neutral"
    assert result.ai_quotes == []


def test_fallback_flags_are_not_serialized():
    dumped = AnalysisResult.fallback("API error 500").model_dump()

    assert set(dumped) == {"key_points", "extracted_kpis", "sentiment", "ai_quotes"}
