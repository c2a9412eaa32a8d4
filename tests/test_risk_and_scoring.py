from __future__ import annotations

import pytest

from jobcrm.services.risk_detection import analyze_job_risks, calculate_risk_score, categorize_preference
from jobcrm.services.scoring import calculate_dimensional_scores, round_half_up


def _by_category(analysis):
    return {r.category: r for r in analysis.risks}


def test_no_risks_in_a_plain_description() -> None:
    analysis = analyze_job_risks("Build integrations with Python and SQL.", {"red_flags": [], "dealbreakers": []})
    assert analysis.risks == []
    assert analysis.overall_risk_score == 0
    assert analysis.dealbreaker_hit is False
    assert analysis.risk_summary == "No significant risks detected."


def test_implicit_phrases_are_detected() -> None:
    analysis = analyze_job_risks("We work hard play hard and pay a competitive salary.", None)
    risks = _by_category(analysis)

    culture = risks["CULTURE_MISMATCH"]
    assert culture.severity == "HIGH"
    assert culture.confidence == pytest.approx(0.8)
    assert culture.is_implicit is True
    assert risks["COMPENSATION"].confidence == pytest.approx(0.7)

    assert analysis.overall_risk_score == pytest.approx(30 * 0.8 + 30 * 0.7)
    assert analysis.risk_summary == (
        "2 high-severity risk(s). Overall risk level: MODERATE - Some concerns to consider."
    )


def test_several_phrases_in_one_category_merge() -> None:
    analysis = analyze_job_risks("A rockstar developer who likes to work hard play hard.", None)
    culture = [r for r in analysis.risks if r.category == "CULTURE_MISMATCH"]
    assert len(culture) == 1
    assert culture[0].confidence == pytest.approx(0.96)
    assert len(culture[0].evidence) == 2


def test_dealbreaker_matches_hyphenated_spelling() -> None:
    analysis = analyze_job_risks(
        "This role is fully on-site in Denver.",
        {"dealbreakers": ["on site"], "red_flags": []},
    )
    assert analysis.dealbreaker_hit is True
    risk = analysis.risks[0]
    assert risk.is_dealbreaker is True
    assert risk.severity == "HIGH"
    assert risk.confidence == 1.0
    assert risk.reason == "Dealbreaker violation: on site"
    assert analysis.risk_summary.startswith("1 dealbreaker(s) detected.")


def test_repeated_red_flag_is_high_severity() -> None:
    once = analyze_job_risks("Expect micromanagement from day one.", {"red_flags": ["micromanagement"]})
    assert once.risks[0].severity == "MEDIUM"
    assert once.risks[0].reason == "Red flag detected: micromanagement"

    twice = analyze_job_risks(
        "Expect micromanagement. Micromanagement is how we ensure quality.",
        {"red_flags": ["micromanagement"]},
    )
    assert twice.risks[0].severity == "HIGH"
    assert twice.risks[0].reason == "Multiple instances of red flag: micromanagement"


def test_model_reported_risks_are_normalised() -> None:
    analysis = analyze_job_risks(
        "Build integrations with Python and SQL.",
        None,
        [
            {
                "category": "SKILL_GAP",
                "severity": "medium",
                "reason": "Requires deep Kubernetes operations experience",
                "evidence": "5+ years running Kubernetes",
                "confidence": 85,
            }
        ],
    )
    risk = analysis.risks[0]
    assert risk.severity == "MEDIUM"
    assert risk.confidence == pytest.approx(0.85)
    assert risk.evidence == ["5+ years running Kubernetes"]
    assert risk.is_implicit is False


def test_risk_score_is_capped() -> None:
    analysis = analyze_job_risks(
        "work hard play hard, crunch time, competitive salary, player-coach, runway, stealth mode, small team",
        None,
    )
    assert calculate_risk_score(analysis.risks) == 100.0


def test_categorize_preference() -> None:
    assert categorize_preference("poor work life balance") == "WORK_LIFE_BALANCE"
    assert categorize_preference("low salary") == "COMPENSATION"
    assert categorize_preference("no career growth") == "GROWTH_LIMITATION"
    assert categorize_preference("gambling industry") == "INDUSTRY_CONCERN"
    assert categorize_preference("open office") == "CULTURE_MISMATCH"


def test_round_half_up() -> None:
    assert round_half_up(2.5) == 3
    assert round_half_up(3.5) == 4
    assert round_half_up(2.49) == 2


def test_dimensional_scores_reward_matching_preferences() -> None:
    facts = {
        "company_size": "startup",
        "industry": "fintech",
        "description": "Mentorship and training budget for growth.",
        "company_stage": "startup",
        "remote_policy": "remote",
        "travel_required": "0-25%",
        "comp_min": 160000,
    }
    profile = {
        "min_base_comp": 150000,
        "preferences": {"company_size": "startup", "industries": {"preferred": ["fintech"], "undesired": []}},
    }
    scores = calculate_dimensional_scores(facts, profile)
    assert scores == {
        "culture_fit_score": 85,
        "growth_potential_score": 80,
        "work_life_balance_score": 60,
        "compensation_competitiveness_score": 75,
        "overall_recommendation_score": 76,
    }


def test_dimensional_scores_penalise_risks_and_low_pay() -> None:
    scores = calculate_dimensional_scores(
        {"comp_min": 90000},
        {"min_base_comp": 150000},
        [{"category": "WORK_LIFE_BALANCE", "severity": "HIGH"}],
    )
    assert scores["work_life_balance_score"] == 30
    assert scores["compensation_competitiveness_score"] == 25
    # 50*.25 + 50*.30 + 30*.20 + 25*.25
    assert scores["overall_recommendation_score"] == 40


def test_dimensional_scores_are_clamped() -> None:
    risks = [{"category": "CULTURE_MISMATCH", "severity": "HIGH"}] * 8
    scores = calculate_dimensional_scores({}, {}, risks)
    assert scores["culture_fit_score"] == 0


def test_model_risks_given_as_sentences_are_kept() -> None:
    analysis = analyze_job_risks(
        "Build integrations with Python and SQL.",
        None,
        ["Long hours expected", "", 42, {"category": "COMPENSATION", "severity": "low", "reason": "Equity heavy"}],
    )
    reasons = {r.reason: r for r in analysis.risks}
    assert set(reasons) == {"Long hours expected", "Equity heavy"}
    assert reasons["Long hours expected"].evidence == ["Long hours expected"]
    assert reasons["Long hours expected"].severity == "MEDIUM"
    assert reasons["Equity heavy"].severity == "LOW"
