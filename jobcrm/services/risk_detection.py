# risk_detection.py
"""Risk scanning for job descriptions.

Two sources feed the final list: a fixed catalogue of implicit phrases
("work hard play hard", "competitive salary", ...) and the user's own red
flags and dealbreakers. Risks the model already reported are merged in,
deduplicated, capped per category and scored.
"""
from __future__ import annotations

import re
from dataclasses import asdict, dataclass, field
from typing import Any, Iterable, Mapping


RISK_CATEGORIES = (
    "COMPENSATION",
    "CULTURE_MISMATCH",
    "GROWTH_LIMITATION",
    "SKILL_GAP",
    "INDUSTRY_CONCERN",
    "COMPANY_STABILITY",
    "ROLE_CLARITY",
    "WORK_LIFE_BALANCE",
)

SEVERITY_WEIGHTS = {"HIGH": 30, "MEDIUM": 15, "LOW": 5}


@dataclass(frozen=True)
class RiskPattern:
    category: str
    severity: str
    patterns: tuple[str, ...]
    confidence_boost: float = 0.5


IMPLICIT_RISK_PATTERNS: tuple[RiskPattern, ...] = (
    RiskPattern(
        "CULTURE_MISMATCH",
        "HIGH",
        (
            "work hard play hard",
            "rockstar developer",
            "ninja programmer",
            "coding wizard",
            "wear many hats",
            "like a family",
            "passion for the mission",
            "obsessed with",
            "live and breathe",
            "bleed company colors",
        ),
        0.8,
    ),
    RiskPattern(
        "CULTURE_MISMATCH",
        "MEDIUM",
        (
            "fast-paced environment",
            "dynamic workplace",
            "entrepreneurial spirit",
            "scrappy team",
            "move fast and break things",
            "results-driven culture",
            "high-performance team",
            "competitive environment",
        ),
        0.6,
    ),
    RiskPattern(
        "WORK_LIFE_BALANCE",
        "HIGH",
        (
            "startup mentality",
            "all hands on deck",
            "crunch time",
            "deadline-driven",
            "fast turnaround",
            "rapid deployment",
            "available after hours",
            "weekend availability",
            "on-call rotation",
            "flexible with hours",
        ),
        0.9,
    ),
    RiskPattern(
        "WORK_LIFE_BALANCE",
        "MEDIUM",
        (
            "occasional overtime",
            "project deadlines",
            "client-facing role",
            "travel required",
            "global team",
            "multiple time zones",
            "evening meetings",
            "urgent requests",
        ),
        0.5,
    ),
    RiskPattern(
        "COMPENSATION",
        "HIGH",
        (
            "competitive salary",
            "based on experience",
            "equity compensation",
            "stock options",
            "performance-based",
            "commission structure",
            "variable compensation",
            "negotiable salary",
        ),
        0.7,
    ),
    RiskPattern(
        "COMPENSATION",
        "MEDIUM",
        (
            "comprehensive benefits",
            "standard benefits",
            "growing company",
            "startup equity",
            "future potential",
            "ground floor opportunity",
            "pre-IPO",
            "unicorn potential",
        ),
        0.5,
    ),
    RiskPattern(
        "ROLE_CLARITY",
        "HIGH",
        (
            "self-directed",
            "autonomous",
            "minimal supervision",
            "player-coach",
            "wearing multiple hats",
            "jack of all trades",
            "swiss army knife",
            "utility player",
        ),
        0.7,
    ),
    RiskPattern(
        "ROLE_CLARITY",
        "MEDIUM",
        (
            "evolving role",
            "growing team",
            "building the plane",
            "shape your role",
            "define the position",
            "early stage",
            "figure it out",
            "make it your own",
        ),
        0.6,
    ),
    RiskPattern(
        "GROWTH_LIMITATION",
        "MEDIUM",
        (
            "small team",
            "flat organization",
            "no hierarchy",
            "lean team",
            "bootstrap mentality",
            "resource constraints",
            "limited budget",
            "cost-conscious",
        ),
        0.5,
    ),
    RiskPattern(
        "COMPANY_STABILITY",
        "HIGH",
        (
            "series A funded",
            "seeking funding",
            "pre-revenue",
            "runway",
            "burn rate",
            "pivot",
            "new direction",
            "restructuring",
        ),
        0.8,
    ),
    RiskPattern(
        "COMPANY_STABILITY",
        "MEDIUM",
        (
            "stealth mode",
            "confidential",
            "NDA required",
            "unnamed client",
            "new venture",
            "recently founded",
            "early customers",
            "proof of concept",
        ),
        0.6,
    ),
)


@dataclass
class DetectedRisk:
    category: str
    severity: str
    reason: str
    evidence: list[str] = field(default_factory=list)
    confidence: float = 0.5
    is_implicit: bool = False
    is_dealbreaker: bool = False
    matched_user_preference: str | None = None

    def to_dict(self) -> dict[str, Any]:
        return asdict(self)


@dataclass
class RiskAnalysis:
    risks: list[DetectedRisk]
    overall_risk_score: float
    dealbreaker_hit: bool
    risk_summary: str


def _context_matches(text: str, term: str, width: int) -> list[str]:
    return re.findall(rf".{{0,{width}}}{re.escape(term.lower())}.{{0,{width}}}", text, flags=re.IGNORECASE)


def detect_implicit_risks(job_description: str) -> list[DetectedRisk]:
    """One risk per category; later matches add evidence and raise confidence."""
    lower = (job_description or "").lower()
    by_category: dict[str, DetectedRisk] = {}

    for risk_pattern in IMPLICIT_RISK_PATTERNS:
        matched: list[str] = []
        total_confidence = 0.0
        for pattern in risk_pattern.patterns:
            if pattern.lower() not in lower:
                continue
            matched.append(pattern)
            total_confidence += risk_pattern.confidence_boost
            evidence = _context_matches(lower, pattern, 50)

            existing = by_category.get(risk_pattern.category)
            if existing is not None:
                existing.evidence.extend(evidence)
                existing.confidence = min(1.0, existing.confidence + total_confidence / 10)
                if len(matched) >= 2 and existing.severity != "HIGH":
                    existing.severity = "HIGH"
                    existing.reason = f"Multiple concerning patterns detected: {', '.join(matched)}"
            else:
                label = risk_pattern.category.lower().replace("_", " ", 1)
                by_category[risk_pattern.category] = DetectedRisk(
                    category=risk_pattern.category,
                    severity=risk_pattern.severity,
                    reason=f'Pattern "{pattern}" suggests {label}',
                    evidence=evidence,
                    confidence=min(1.0, total_confidence),
                )
    return list(by_category.values())


def _contains_match(text: str, term: str) -> bool:
    lower_term = term.lower()
    return (
        lower_term in text
        or lower_term.replace(" ", "-", 1) in text
        or lower_term.replace(" ", "", 1) in text
    )


def _extract_evidence(text: str, term: str, context_length: int = 150) -> str:
    index = text.lower().find(term.lower())
    if index == -1:
        return ""
    half = context_length // 2
    start = max(0, index - half)
    end = min(len(text), index + len(term) + half)
    return "..." + text[start:end].strip() + "..."


def _extract_multiple_evidence(text: str, term: str, max_evidence: int = 3) -> list[str]:
    return [m.strip() for m in _context_matches(text, term, 75)[:max_evidence]]


def categorize_preference(preference: str) -> str:
    lower = preference.lower()
    if "work" in lower and "life" in lower:
        return "WORK_LIFE_BALANCE"
    if "cultur" in lower or "environment" in lower:
        return "CULTURE_MISMATCH"
    if "pay" in lower or "salary" in lower or "comp" in lower:
        return "COMPENSATION"
    if "growth" in lower or "career" in lower:
        return "GROWTH_LIMITATION"
    if "industry" in lower or "sector" in lower:
        return "INDUSTRY_CONCERN"
    return "CULTURE_MISMATCH"


def _check_user_preferences(job_description: str, profile: Mapping[str, Any]) -> list[DetectedRisk]:
    risks: list[DetectedRisk] = []
    lower = job_description.lower()

    for dealbreaker in profile.get("dealbreakers") or []:
        if dealbreaker and _contains_match(lower, dealbreaker):
            risks.append(
                DetectedRisk(
                    category=categorize_preference(dealbreaker),
                    severity="HIGH",
                    reason=f"Dealbreaker violation: {dealbreaker}",
                    evidence=[_extract_evidence(job_description, dealbreaker)],
                    confidence=1.0,
                    is_dealbreaker=True,
                    matched_user_preference=dealbreaker,
                )
            )

    for red_flag in profile.get("red_flags") or []:
        if red_flag and _contains_match(lower, red_flag):
            occurrences = lower.count(red_flag.lower())
            severity = "HIGH" if occurrences >= 2 else "MEDIUM"
            risks.append(
                DetectedRisk(
                    category=categorize_preference(red_flag),
                    severity=severity,
                    reason=(
                        f"Multiple instances of red flag: {red_flag}"
                        if severity == "HIGH"
                        else f"Red flag detected: {red_flag}"
                    ),
                    evidence=_extract_multiple_evidence(job_description, red_flag),
                    confidence=0.9,
                    matched_user_preference=red_flag,
                )
            )
    return risks


def _dedupe(items: Iterable[str]) -> list[str]:
    return list(dict.fromkeys(items))


def _aggregate(risks: list[DetectedRisk]) -> list[DetectedRisk]:
    aggregated: dict[str, DetectedRisk] = {}
    for risk in risks:
        key = f"{risk.category}-{risk.reason[:50]}"
        existing = aggregated.get(key)
        if existing is None:
            aggregated[key] = DetectedRisk(**{**asdict(risk), "evidence": list(risk.evidence)})
            continue
        existing.evidence = _dedupe([*existing.evidence, *risk.evidence])
        if "HIGH" in (risk.severity, existing.severity):
            existing.severity = "HIGH"
        elif "MEDIUM" in (risk.severity, existing.severity):
            existing.severity = "MEDIUM"
        existing.is_dealbreaker = existing.is_dealbreaker or risk.is_dealbreaker
        existing.confidence = max(existing.confidence, risk.confidence)
    return list(aggregated.values())


def _limit_per_category(risks: list[DetectedRisk], max_per_category: int) -> list[DetectedRisk]:
    grouped: dict[str, list[DetectedRisk]] = {}
    for risk in risks:
        grouped.setdefault(risk.category, []).append(risk)

    limited: list[DetectedRisk] = []
    for category_risks in grouped.values():
        category_risks.sort(key=lambda r: (not r.is_dealbreaker, r.severity != "HIGH", -r.confidence))
        limited.extend(category_risks[:max_per_category])
    return limited


def calculate_risk_score(risks: Iterable[DetectedRisk]) -> float:
    score = sum(SEVERITY_WEIGHTS.get(r.severity, 5) * r.confidence for r in risks)
    return min(100.0, score)


def _summarize(risks: list[DetectedRisk], overall_score: float) -> str:
    if not risks:
        return "No significant risks detected."

    dealbreakers = [r for r in risks if r.is_dealbreaker]
    high = [r for r in risks if r.severity == "HIGH" and not r.is_dealbreaker]
    medium = [r for r in risks if r.severity == "MEDIUM"]

    parts: list[str] = []
    if dealbreakers:
        parts.append(f"{len(dealbreakers)} dealbreaker(s) detected.")
    if high:
        parts.append(f"{len(high)} high-severity risk(s).")
    if medium:
        parts.append(f"{len(medium)} medium-severity risk(s).")

    if overall_score >= 80:
        parts.append("Overall risk level: CRITICAL - Multiple serious concerns.")
    elif overall_score >= 60:
        parts.append("Overall risk level: HIGH - Significant concerns present.")
    elif overall_score >= 40:
        parts.append("Overall risk level: MODERATE - Some concerns to consider.")
    elif overall_score >= 20:
        parts.append("Overall risk level: LOW - Minor concerns only.")
    else:
        parts.append("Overall risk level: MINIMAL - Very low risk profile.")
    return " ".join(parts)


def _coerce_ai_risk(raw: Mapping[str, Any]) -> DetectedRisk:
    confidence = raw.get("confidence")
    if not isinstance(confidence, (int, float)):
        confidence = 0.5
    elif confidence > 1:
        # The model reports 0-100; local risks use 0-1.
        confidence = confidence / 100
    evidence = raw.get("evidence") or []
    if isinstance(evidence, str):
        evidence = [evidence]
    return DetectedRisk(
        category=str(raw.get("category") or "CULTURE_MISMATCH"),
        severity=str(raw.get("severity") or "MEDIUM").upper(),
        reason=str(raw.get("reason") or ""),
        evidence=list(evidence),
        confidence=float(confidence),
    )


def analyze_job_risks(
    job_description: str,
    profile: Mapping[str, Any] | None,
    ai_detected_risks: Iterable[Mapping[str, Any] | DetectedRisk] = (),
    *,
    enable_implicit_detection: bool = True,
    enable_user_preferences: bool = True,
    confidence_threshold: float = 0.3,
    max_risks_per_category: int = 3,
) -> RiskAnalysis:
    description = job_description or ""
    risks: list[DetectedRisk] = []
    for raw in ai_detected_risks or ():
        if isinstance(raw, DetectedRisk):
            risks.append(raw)
        elif isinstance(raw, Mapping):
            risks.append(_coerce_ai_risk(raw))
        elif isinstance(raw, str) and raw.strip():
            # Models sometimes list risks as bare sentences.
            risks.append(_coerce_ai_risk({"reason": raw.strip(), "evidence": [raw.strip()]}))

    if enable_implicit_detection:
        for risk in detect_implicit_risks(description):
            if risk.confidence >= confidence_threshold:
                risk.is_implicit = True
                risks.append(risk)

    if enable_user_preferences and profile:
        risks.extend(_check_user_preferences(description, profile))

    risks = _limit_per_category(_aggregate(risks), max_risks_per_category)
    overall = calculate_risk_score(risks)
    return RiskAnalysis(
        risks=risks,
        overall_risk_score=overall,
        dealbreaker_hit=any(r.is_dealbreaker for r in risks),
        risk_summary=_summarize(risks, overall),
    )


def format_risks_for_enrichment(risks: Iterable[DetectedRisk]) -> list[dict[str, Any]]:
    return [
        {"category": r.category, "severity": r.severity, "reason": r.reason, "evidence": r.evidence, "confidence": r.confidence}
        for r in risks
    ]
