from __future__ import annotations

import pytest

from jobcrm.config import settings
from jobcrm.services.prompts import get_active_prompt_version, get_available_prompt_versions, get_enrichment_prompt


PROFILE = {
    "name": "Jordan Lee",
    "current_title": "Solutions Engineer",
    "min_base_comp": 140000,
    "strengths": ["Python", "Demos"],
    "red_flags": ["on-call"],
    "dealbreakers": [],
}


def _prompt(version=None, profile=PROFILE) -> str:
    return get_enrichment_prompt(
        job_title="Sales Engineer",
        company="Acme $1 Analytics",
        location="Remote",
        description="Run demos.",
        profile=profile,
        version=version,
    )


def test_versions() -> None:
    assert get_available_prompt_versions() == ["1.0", "2.0", "3.0"]


def test_version_one_substitutes_job_and_profile() -> None:
    prompt = _prompt("1.0")
    assert "Title: Sales Engineer" in prompt
    assert "Company: Acme $1 Analytics" in prompt
    assert "Company URL: Not provided" in prompt
    assert "Minimum Salary: $140000" in prompt
    assert 'Strengths: ["Python", "Demos"]' in prompt
    assert "Deal Breakers: []" in prompt


def test_later_versions_use_readable_profile_fields() -> None:
    v2 = _prompt("2.0")
    assert "Jordan Lee" in v2
    assert "Strengths: Python, Demos" in v2

    v3 = _prompt("3.0", profile=None)
    assert "Candidate - N/A" in v3
    assert "sales_engineering_signals" in v3


def test_unknown_version_falls_back_to_default() -> None:
    assert _prompt("9.9") == _prompt("1.0")


@pytest.mark.parametrize("configured, expected", [("2.0", "2.0"), ("", "1.0")])
def test_active_version_from_settings(monkeypatch, configured, expected) -> None:
    monkeypatch.setattr(settings, "enrichment_prompt_version", configured)
    assert get_active_prompt_version() == expected
