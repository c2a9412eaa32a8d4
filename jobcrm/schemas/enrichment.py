# enrichment.py
from __future__ import annotations

from datetime import datetime
from typing import Any, Literal

from pydantic import BaseModel, Field, HttpUrl, field_validator


SkillType = Literal[
    "programming_language",
    "framework",
    "database",
    "cloud_platform",
    "soft_skill",
    "methodology",
    "tool",
    "unknown",
]


class SkillItem(BaseModel):
    skill: str = Field(min_length=1)
    type: SkillType
    level: Literal["beginner", "intermediate", "advanced", "expert"] | None = None
    importance: Literal["required", "preferred", "nice_to_have"] | None = None
    years_required: float | None = Field(default=None, ge=0, le=20)


class Risk(BaseModel):
    category: str
    severity: Literal["LOW", "MEDIUM", "HIGH", "CRITICAL"]
    reason: str = Field(min_length=20)
    evidence: list[str] = Field(min_length=1)
    confidence: float | None = Field(default=None, ge=0, le=100)
    mitigation_strategy: str | None = None


class ExtractedFields(BaseModel):
    comp_min: float | None = None
    comp_max: float | None = None
    comp_currency: str = "USD"
    tech_stack: list[str] = Field(default_factory=list)
    skills_sought: list[SkillItem] = Field(default_factory=list)
    experience_years_min: float | None = None
    experience_years_max: float | None = None
    remote_policy: Literal["remote", "hybrid", "onsite", "flexible"] | None = None
    travel_required: Literal["none", "0-25%", "25-50%", "50%+"] | None = None
    company_size: Literal["startup", "small", "medium", "large", "enterprise"] | None = None
    requires_clearance: bool = False
    industry: str | None = None
    benefits: list[str] = Field(default_factory=list)
    requirements: list[str] = Field(default_factory=list)
    seniority_level: Literal["intern", "junior", "mid", "senior", "staff", "principal", "executive"] | None = None
    employment_type: Literal["full-time", "part-time", "contract", "freelance"] | None = None
    company_stage: Literal["pre_seed", "seed", "series_a", "series_b", "series_c", "ipo", "public"] | None = None
    equity_offered: bool | None = None
    visa_sponsorship: bool | None = None


Score = float


class EnrichmentAnalysis(BaseModel):
    ai_fit_score: Score = Field(ge=0, le=100)
    fit_reasoning: str
    dealbreaker_hit: bool
    skills_matched: list[str]
    skills_gap: list[str]
    key_strengths: list[str]
    concerns: list[str]
    ai_tailored_summary: str
    resume_bullet: str
    confidence_score: Score = Field(ge=0, le=100)
    culture_fit_score: Score | None = Field(default=None, ge=0, le=100)
    growth_potential_score: Score | None = Field(default=None, ge=0, le=100)
    work_life_balance_score: Score | None = Field(default=None, ge=0, le=100)
    compensation_competitiveness_score: Score | None = Field(default=None, ge=0, le=100)
    overall_recommendation_score: Score | None = Field(default=None, ge=0, le=100)


# Sales Engineering signals

class RoleComposition(BaseModel):
    demo_poc_percentage: float = Field(ge=0, le=100)
    architecture_percentage: float = Field(ge=0, le=100)
    customer_interaction_percentage: float = Field(ge=0, le=100)
    enablement_percentage: float = Field(ge=0, le=100)
    presales_team_size: str | None = None
    ae_se_ratio: str | None = None
    travel_percentage: float | None = Field(default=None, ge=0, le=100)
    remote_onsite_mix: str
    confidence: float = Field(ge=0, le=1)


class DemoCount(BaseModel):
    built_vs_maintained: str | None = None
    demo_types: list[str]


class PocCharacteristics(BaseModel):
    typical_duration: str | None = None
    customer_count_avg: float | None = None
    success_criteria_defined: bool
    ownership_level: str | None = None


class ComplexityIndicators(BaseModel):
    data_integration: bool
    multi_region: bool
    regulatory_requirements: bool
    custom_development: bool


class DemoPocEnvironment(BaseModel):
    tech_stack: list[str]
    demo_tooling: list[str]
    demo_count: DemoCount
    poc_characteristics: PocCharacteristics
    complexity_indicators: ComplexityIndicators
    confidence: float = Field(ge=0, le=1)


class DealCharacteristics(BaseModel):
    typical_acv_band: str | None = None
    deal_complexity: str | None = None
    cycle_length_avg: str | None = None


class CompetitiveLandscape(BaseModel):
    direct_competitors_mentioned: list[str]
    competitive_positioning_focus: bool


class CustomerProfile(BaseModel):
    target_verticals: list[str]
    strategic_logos_mentioned: bool
    customer_size_focus: str | None = None


class MethodologyDealContext(BaseModel):
    sales_framework: list[str]
    deal_characteristics: DealCharacteristics
    role_in_cycle: list[str]
    competitive_landscape: CompetitiveLandscape
    customer_profile: CustomerProfile
    confidence: float = Field(ge=0, le=1)


class TrainingResponsibilities(BaseModel):
    internal_design: bool
    internal_delivery: bool
    partner_enablement: bool
    customer_enablement: bool


class ToolOwnership(BaseModel):
    demo_automation: bool
    internal_portals: bool
    playbook_creation: bool
    integration_tools: bool


class ContentCreation(BaseModel):
    technical_whitepapers: bool
    video_tutorials: bool
    code_samples: bool
    presentation_templates: bool


class CollaborationScope(BaseModel):
    product_team: bool
    marketing_team: bool
    rnd_team: bool
    customer_success: bool


class EnablementTooling(BaseModel):
    training_responsibilities: TrainingResponsibilities
    tool_ownership: ToolOwnership
    content_creation: ContentCreation
    collaboration_scope: CollaborationScope
    confidence: float = Field(ge=0, le=1)


class CareerProgression(BaseModel):
    promotion_path: list[str]
    growth_signals: bool
    leadership_opportunities: bool


class TechnicalExpectations(BaseModel):
    certification_requirements: list[str]
    tech_stack_preferences: list[str]
    soft_skills_emphasis: list[str]


class SuccessOwnership(BaseModel):
    individual_metrics: bool
    team_metrics: bool
    revenue_attribution: bool


class SuccessMetricsCareer(BaseModel):
    kpis_mentioned: list[str]
    career_progression: CareerProgression
    technical_expectations: TechnicalExpectations
    success_ownership: SuccessOwnership
    confidence: float = Field(ge=0, le=1)


class SalesEngineeringSignals(BaseModel):
    role_composition: RoleComposition
    demo_poc_environment: DemoPocEnvironment | None = None
    methodology_deal_context: MethodologyDealContext | None = None
    enablement_tooling: EnablementTooling | None = None
    success_metrics_career: SuccessMetricsCareer | None = None


# Interview intelligence

class PredictedStage(BaseModel):
    stage_name: str
    typical_duration: str
    format: str
    focus_areas: list[str]
    interviewer_roles: list[str]
    preparation_weight: float = Field(ge=1, le=10)


class TechnicalAssessment(BaseModel):
    live_coding_likelihood: Literal["unlikely", "possible", "likely", "certain"]
    system_design_expected: bool
    mock_demo_required: bool
    presentation_required: bool
    take_home_assignment: bool
    whiteboarding_expected: bool


class PreparationPriority(BaseModel):
    priority_area: str
    specific_topics: list[str]
    time_allocation: str
    confidence_booster: bool


class InterviewRedFlag(BaseModel):
    concern_type: str
    description: str
    severity: Literal["minor", "moderate", "major"]
    mitigation_strategy: str


class SuccessFactors(BaseModel):
    key_differentiators: list[str]
    common_failure_points: list[str]
    cultural_fit_signals: list[str]


class InterviewIntelligence(BaseModel):
    predicted_stages: list[PredictedStage]
    technical_assessment: TechnicalAssessment
    preparation_priorities: list[PreparationPriority]
    red_flags: list[InterviewRedFlag]
    success_factors: SuccessFactors


# Quick wins

class DirectMatch(BaseModel):
    candidate_strength: str
    role_requirement: str
    talking_point: str
    proof_point: str
    impact_potential: Literal["immediate", "short-term", "strategic"]


class DemoSuggestion(BaseModel):
    demo_concept: str
    tech_stack_alignment: list[str]
    business_value_story: str
    preparation_complexity: Literal["simple", "moderate", "complex"]
    differentiation_factor: str


class ProcessImprovement(BaseModel):
    improvement_area: str
    current_state_assumption: str
    candidate_solution: str
    implementation_effort: Literal["quick win", "medium term", "strategic project"]
    stakeholder_impact: list[str]


class PositioningStrategies(BaseModel):
    unique_value_proposition: str
    competitive_advantages: list[str]
    risk_mitigation: list[str]
    growth_narrative: str
    cultural_alignment: list[str]


class First90DaysMilestone(BaseModel):
    milestone: str
    success_criteria: str
    required_support: list[str]
    stakeholder_impact: str


class QuickWins(BaseModel):
    direct_matches: list[DirectMatch]
    demo_suggestions: list[DemoSuggestion]
    process_improvements: list[ProcessImprovement]
    positioning_strategies: PositioningStrategies
    first_90_days: list[First90DaysMilestone]


class ExtractionConfidence(BaseModel):
    overall: float = Field(ge=0, le=100)
    sales_signals: float = Field(ge=0, le=100)
    interview_intel: float = Field(ge=0, le=100)
    quick_wins: float = Field(ge=0, le=100)


class ProcessingMetadata(BaseModel):
    model_version: str | None = None
    prompt_version: str | None = None
    processing_time_ms: float | None = None
    confidence_factors: dict[str, float] | None = None


class EnrichmentResponse(BaseModel):
    facts: ExtractedFields
    analysis: EnrichmentAnalysis
    insights: list[str]
    risks: list[Risk] | None = None
    sales_engineering_signals: SalesEngineeringSignals | None = None
    interview_intelligence: InterviewIntelligence | None = None
    quick_wins: QuickWins | None = None
    extraction_confidence: ExtractionConfidence | None = None
    processing_metadata: ProcessingMetadata | None = None


# Extension webhook payload

class EnrichmentRequest(BaseModel):
    title: str = Field(min_length=1)
    company: str = Field(min_length=1)
    description: str = Field(min_length=50)
    url: HttpUrl
    company_url: HttpUrl | None = None
    location: str = Field(min_length=1)
    source: str = Field(min_length=1)
    scrapedAt: datetime

    @field_validator("scrapedAt", mode="before")
    @classmethod
    def _require_iso_timestamp(cls, v: Any) -> Any:
        if not isinstance(v, str):
            raise ValueError("Valid ISO 8601 timestamp required")
        return v


class ReEnrichRequest(BaseModel):
    job_id: int
