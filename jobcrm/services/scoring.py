# scoring.py
from __future__ import annotations

import math
from typing import Any, Iterable, Mapping

from jobcrm.services.risk_detection import DetectedRisk


WEIGHTS = {"culture": 0.25, "growth": 0.30, "work_life": 0.20, "compensation": 0.25}
GROWTH_KEYWORDS = ("learning", "training", "development", "mentorship", "growth")
GROWTH_STAGES = ("startup", "growth", "scale-up")
TRAVEL_PENALTY = {"none": 0, "0-25%": -10, "25-50%": -20, "50%+": -30}
_WLB_RISK_PENALTY = {"HIGH": 20, "MEDIUM": 10}


def round_half_up(value: float) -> int:
    return int(math.floor(value + 0.5))


def _clamp(value: float) -> int:
    return max(0, min(100, round_half_up(value)))


def _risk_field(risk: DetectedRisk | Mapping[str, Any], name: str) -> Any:
    if isinstance(risk, Mapping):
        return risk.get(name)
    return getattr(risk, name, None)


def _industry_lists(industries: Any) -> tuple[list[str], list[str]]:
    if isinstance(industries, list):
        return industries, []
    if isinstance(industries, Mapping):
        return list(industries.get("preferred") or []), list(industries.get("undesired") or [])
    return [], []


def calculate_dimensional_scores(
    facts: Mapping[str, Any] | None,
    profile: Mapping[str, Any] | None,
    risks: Iterable[DetectedRisk | Mapping[str, Any]] = (),
) -> dict[str, int]:
    """Deterministic 0-100 scores for culture, growth, work-life and compensation.

    The overall score is a weighted mean of the unclamped sub-scores.
    """
    facts = facts or {}
    profile = profile or {}
    preferences = profile.get("preferences") or {}
    risks = list(risks or ())

    culture = 50.0
    if facts.get("company_size") and preferences.get("company_size"):
        if facts["company_size"] == preferences["company_size"]:
            culture += 20
    if facts.get("industry") and preferences.get("industries"):
        preferred, undesired = _industry_lists(preferences["industries"])
        if facts["industry"] in preferred:
            culture += 15
        if facts["industry"] in undesired:
            culture -= 25
    culture -= 10 * sum(1 for r in risks if _risk_field(r, "category") == "CULTURE_MISMATCH")

    growth = 50.0
    description = str(facts.get("description") or "").lower()
    growth += 5 * sum(1 for kw in GROWTH_KEYWORDS if kw in description)
    if facts.get("company_stage") in GROWTH_STAGES:
        growth += 15

    work_life = 50.0
    if facts.get("remote_policy") == "remote":
        work_life += 20
    elif facts.get("remote_policy") == "hybrid":
        work_life += 10
    if facts.get("travel_required"):
        work_life += TRAVEL_PENALTY.get(facts["travel_required"], 0)
    work_life -= sum(
        _WLB_RISK_PENALTY.get(_risk_field(r, "severity"), 5)
        for r in risks
        if _risk_field(r, "category") == "WORK_LIFE_BALANCE"
    )

    compensation = 50.0
    if facts.get("comp_min") and profile.get("min_base_comp"):
        compensation += 25 if facts["comp_min"] >= profile["min_base_comp"] else -25
    if facts.get("equity_offered"):
        compensation += 10

    overall = round_half_up(
        culture * WEIGHTS["culture"]
        + growth * WEIGHTS["growth"]
        + work_life * WEIGHTS["work_life"]
        + compensation * WEIGHTS["compensation"]
    )

    return {
        "culture_fit_score": _clamp(culture),
        "growth_potential_score": _clamp(growth),
        "work_life_balance_score": _clamp(work_life),
        "compensation_competitiveness_score": _clamp(compensation),
        "overall_recommendation_score": max(0, min(100, overall)),
    }
