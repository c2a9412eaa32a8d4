from __future__ import annotations

import pytest

from conftest import ENRICHMENT_REPLY
from jobcrm.services.enrichment_validation import (
    safe_parse_enrichment_response,
    transform_legacy_response,
    validate_enhanced_enrichment,
)
from jobcrm.services.retry import backoff_delay_ms, extract_json, fix_partial_response, with_retry


def test_backoff_doubles_and_caps() -> None:
    assert [backoff_delay_ms(n) for n in (1, 2, 3, 4, 5)] == [1000, 2000, 4000, 8000, 10000]


def test_with_retry_succeeds_after_failures() -> None:
    calls = {"n": 0}
    sleeps: list[float] = []
    retries: list[int] = []

    def flaky() -> str:
        calls["n"] += 1
        if calls["n"] < 3:
            raise RuntimeError("temporary")
        return "ok"

    result = with_retry(flaky, sleep=sleeps.append, on_retry=lambda attempt, exc: retries.append(attempt))
    assert result == "ok"
    assert sleeps == [1.0, 2.0]
    assert retries == [1, 2]


def test_with_retry_reraises_last_error() -> None:
    calls = {"n": 0}

    def broken() -> None:
        calls["n"] += 1
        raise ValueError(f"failure {calls['n']}")

    with pytest.raises(ValueError, match="failure 3"):
        with_retry(broken, sleep=lambda _s: None)
    assert calls["n"] == 3


def test_with_retry_stops_on_rejected_error() -> None:
    calls = {"n": 0}

    def broken() -> None:
        calls["n"] += 1
        raise KeyError("fatal")

    with pytest.raises(KeyError):
        with_retry(broken, should_retry=lambda exc: not isinstance(exc, KeyError), sleep=lambda _s: None)
    assert calls["n"] == 1


@pytest.mark.parametrize(
    "text, expected",
    [
        ('{"a": 1}', {"a": 1}),
        ('Here is the analysis: {"a": 1} Let me know!', {"a": 1}),
        ('{"a": [1, 2,], "b": 2,}', {"a": [1, 2], "b": 2}),
        ("{a: 1, b: 'x'}", {"a": 1, "b": "x"}),
    ],
)
def test_extract_json_repairs_replies(text, expected) -> None:
    assert extract_json(text) == expected


def test_extract_json_gives_up_on_prose() -> None:
    with pytest.raises(ValueError, match="No valid JSON"):
        extract_json("I could not analyse this posting.")


def test_fix_partial_response_fills_defaults() -> None:
    fixed = fix_partial_response({"facts": {"comp_min": 100000, "comp_currency": None}, "analysis": {"ai_fit_score": 70}})
    assert fixed["facts"]["comp_currency"] == "USD"
    assert fixed["facts"]["tech_stack"] == []
    assert fixed["analysis"]["ai_fit_score"] == 70
    assert fixed["analysis"]["fit_reasoning"] == "Unable to determine fit"
    assert fixed["analysis"]["confidence_score"] == 50
    assert fixed["insights"] == []
    assert fixed["risks"] == []

    # The repaired shape is enough for the response schema.
    assert safe_parse_enrichment_response(fixed).success is True


def test_safe_parse_reports_warnings_on_success() -> None:
    result = safe_parse_enrichment_response(ENRICHMENT_REPLY)
    assert result.success is True
    assert result.data["analysis"]["ai_fit_score"] == 82
    assert result.warnings[0].startswith("Missing dimensional scores: culture_fit_score")
    assert result.warnings[1].startswith("Missing enhanced enrichment fields: sales_engineering_signals")


def test_safe_parse_rejects_thin_risks() -> None:
    bad = {
        **ENRICHMENT_REPLY,
        "risks": [{"category": "COMPENSATION", "severity": "HIGH", "reason": "too short", "evidence": []}],
    }
    result = safe_parse_enrichment_response(bad)
    assert result.success is False
    paths = {e["path"] for e in result.errors}
    assert {"risks.0.reason", "risks.0.evidence"} <= paths


def test_safe_parse_rejects_non_objects() -> None:
    result = safe_parse_enrichment_response(["not", "an", "object"])
    assert result.success is False
    assert result.errors == [{"path": "", "message": "Response must be an object"}]


def test_low_extraction_confidence_is_a_warning() -> None:
    result = safe_parse_enrichment_response(
        {**ENRICHMENT_REPLY, "extraction_confidence": {"overall": 80, "sales_signals": 30, "interview_intel": 40, "quick_wins": 90}}
    )
    assert "Low confidence extraction detected: sales_signals, interview_intel" in result.warnings


def test_transform_legacy_response() -> None:
    legacy = {
        "compensation": {"min": 120000, "max": 150000},
        "technologies": ["Go"],
        "skills": ["Go", "gRPC"],
        "remote": "hybrid",
        "fit_score": 64,
        "matched_skills": ["Go"],
        "summary": "Decent match",
    }
    modern = transform_legacy_response(legacy)
    assert modern["facts"]["comp_min"] == 120000
    assert modern["facts"]["comp_currency"] == "USD"
    assert modern["facts"]["skills_sought"][1] == {"skill": "gRPC", "type": "unknown", "level": None}
    assert modern["analysis"]["ai_fit_score"] == 64
    assert modern["analysis"]["confidence_score"] == 50
    assert modern["analysis"]["fit_reasoning"] == "No reasoning provided"
    assert safe_parse_enrichment_response(modern).success is True


def test_enhanced_sections_are_optional() -> None:
    result = validate_enhanced_enrichment(ENRICHMENT_REPLY)
    assert result.success is True
    assert result.data == {}


def test_enhanced_section_errors_are_labelled() -> None:
    result = validate_enhanced_enrichment({"quick_wins": {"unexpected": True}})
    assert result.success is False
    assert all(e["path"] == "quick_wins" for e in result.errors)
    assert result.errors[0]["message"].startswith("Quick Wins:")
