# enrichment_validation.py
from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any

from pydantic import BaseModel, ValidationError

from jobcrm.schemas.enrichment import (
    EnrichmentResponse,
    InterviewIntelligence,
    QuickWins,
    SalesEngineeringSignals,
)


DIMENSIONAL_SCORE_FIELDS = (
    "culture_fit_score",
    "growth_potential_score",
    "work_life_balance_score",
    "compensation_competitiveness_score",
    "overall_recommendation_score",
)
ENHANCED_FIELDS = ("sales_engineering_signals", "interview_intelligence", "quick_wins", "extraction_confidence")
_CONFIDENCE_FIELDS = ("overall", "sales_signals", "interview_intel", "quick_wins")


@dataclass
class ValidationResult:
    success: bool
    data: dict[str, Any] | None = None
    errors: list[dict[str, Any]] = field(default_factory=list)
    warnings: list[str] = field(default_factory=list)


def format_validation_errors(exc: ValidationError) -> list[dict[str, Any]]:
    return [
        {"path": ".".join(str(part) for part in err.get("loc", ())), "message": err.get("msg", "")}
        for err in exc.errors()
    ]


def _collect_warnings(response: dict[str, Any]) -> list[str]:
    warnings: list[str] = []
    analysis = response.get("analysis")
    if isinstance(analysis, dict):
        missing = [name for name in DIMENSIONAL_SCORE_FIELDS if analysis.get(name) is None]
        if missing:
            warnings.append(f"Missing dimensional scores: {', '.join(missing)}")

    missing_enhanced = [name for name in ENHANCED_FIELDS if response.get(name) is None]
    if missing_enhanced:
        warnings.append(f"Missing enhanced enrichment fields: {', '.join(missing_enhanced)}")

    confidence = response.get("extraction_confidence")
    if isinstance(confidence, dict):
        low = [
            name
            for name in _CONFIDENCE_FIELDS
            if isinstance(confidence.get(name), (int, float)) and confidence[name] < 50
        ]
        if low:
            warnings.append(f"Low confidence extraction detected: {', '.join(low)}")
    return warnings


def safe_parse_enrichment_response(data: Any) -> ValidationResult:
    """Validate a model reply against the enrichment response shape.

    Warnings (missing dimensional scores, missing V3 sections, low extraction
    confidence) are reported whether or not validation succeeds.
    """
    if not isinstance(data, dict):
        return ValidationResult(
            success=False,
            errors=[{"path": "", "message": "Response must be an object"}],
        )

    warnings = _collect_warnings(data)
    try:
        parsed = EnrichmentResponse.model_validate(data)
    except ValidationError as exc:
        return ValidationResult(success=False, errors=format_validation_errors(exc), warnings=warnings)
    return ValidationResult(success=True, data=parsed.model_dump(mode="json"), warnings=warnings)


def transform_legacy_response(legacy: dict[str, Any]) -> dict[str, Any]:
    """Map the flat pre-1.0 enrichment layout onto facts/analysis/insights/risks."""
    compensation = legacy.get("compensation") or {}
    experience = legacy.get("experience") or {}
    return {
        "facts": {
            "comp_min": compensation.get("min") or None,
            "comp_max": compensation.get("max") or None,
            "comp_currency": compensation.get("currency") or "USD",
            "tech_stack": legacy.get("technologies") or [],
            "skills_sought": [{"skill": s, "type": "unknown", "level": None} for s in legacy.get("skills") or []],
            "remote_policy": legacy.get("remote") or None,
            "experience_years_min": experience.get("min") or None,
            "experience_years_max": experience.get("max") or None,
            "requires_clearance": False,
            "benefits": [],
            "requirements": [],
        },
        "analysis": {
            "ai_fit_score": legacy.get("fit_score") or 50,
            "fit_reasoning": legacy.get("reasoning") or "No reasoning provided",
            "dealbreaker_hit": legacy.get("dealbreaker") or False,
            "skills_matched": legacy.get("matched_skills") or [],
            "skills_gap": legacy.get("missing_skills") or [],
            "key_strengths": legacy.get("strengths") or [],
            "concerns": legacy.get("concerns") or [],
            "ai_tailored_summary": legacy.get("summary") or "",
            "resume_bullet": legacy.get("resume_tip") or "",
            "confidence_score": legacy.get("confidence") or 50,
        },
        "insights": legacy.get("insights") or [],
        "risks": legacy.get("risks") or [],
    }


_ENHANCED_SECTIONS: tuple[tuple[str, type[BaseModel], str], ...] = (
    ("sales_engineering_signals", SalesEngineeringSignals, "Sales Engineering Signals"),
    ("interview_intelligence", InterviewIntelligence, "Interview Intelligence"),
    ("quick_wins", QuickWins, "Quick Wins"),
)


def validate_enhanced_enrichment(data: dict[str, Any]) -> ValidationResult:
    """Validate only the V3 sections; the first failing section aborts."""
    result: dict[str, Any] = {}
    warnings: list[str] = []
    for key, model, label in _ENHANCED_SECTIONS:
        section = data.get(key)
        if not section:
            continue
        try:
            parsed = model.model_validate(section)
        except ValidationError as exc:
            return ValidationResult(
                success=False,
                data=data,
                errors=[{"path": key, "message": f"{label}: {err['msg']}"} for err in exc.errors()],
            )
        result[key] = parsed.model_dump(mode="json")
        if isinstance(parsed, SalesEngineeringSignals):
            confidence = parsed.role_composition.confidence
            if confidence and confidence < 0.6:
                warnings.append(
                    f"Low confidence in Sales Engineering signals extraction ({round(confidence * 100)}%)"
                )
    return ValidationResult(success=True, data=result, warnings=warnings)
