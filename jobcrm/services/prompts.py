# prompts.py
"""Versioned enrichment prompts.

The active version comes from ``ENRICHMENT_PROMPT_VERSION`` (default ``1.0``);
callers may force a version, e.g. the extension webhook always uses ``3.0``.
"""
from __future__ import annotations

import json
import logging
from string import Template
from typing import Any, Mapping

from jobcrm.config import settings


logger = logging.getLogger(__name__)

DEFAULT_PROMPT_VERSION = "1.0"


_PROMPT_V1 = Template(
    """
You are an expert job analysis system. Analyze this job posting and provide comprehensive enrichment data.

JOB DETAILS:
Title: $job_title
Company: $company
Company URL: $company_url
Location: $location
Description: $description

USER PROFILE:
Name: $name
Current Title: $current_title
Seniority: $seniority
Location: $user_location
Minimum Salary: $$$min_base_comp
Remote Preference: $remote_pref
Interview Style: $interview_style
Strengths: $strengths_json
Red Flags: $red_flags_json
Deal Breakers: $dealbreakers_json
Preferences: $preferences_json

TASK: Extract facts from the job posting and provide personalized analysis. Return JSON with:

{
  "facts": {
    "comp_min": number or null,
    "comp_max": number or null,
    "comp_currency": "USD" or other,
    "tech_stack": ["array", "of", "technologies"],
    "skills_sought": [
      {
        "skill": "Python",
        "type": "programming_language",
        "level": "expert"
      }
    ],
    "experience_years_min": number or null,
    "experience_years_max": number or null,
    "remote_policy": "remote" | "hybrid" | "onsite" | "flexible",
    "travel_required": "none" | "0-25%" | "25-50%" | "50%+",
    "company_size": "startup" | "small" | "medium" | "large" | "enterprise",
    "requires_clearance": boolean,
    "industry": string,
    "benefits": ["array", "of", "benefits"],
    "requirements": ["non-skill requirements"]
  },
  "analysis": {
    "ai_fit_score": number (0-100),
    "fit_reasoning": "Clear explanation of score",
    "dealbreaker_hit": boolean,
    "skills_matched": ["skills that match user strengths"],
    "skills_gap": ["skills user lacks"],
    "key_strengths": ["why this job is good for user"],
    "concerns": ["potential issues or red flags"],
    "ai_tailored_summary": "2-3 sentence personalized summary",
    "resume_bullet": "One impactful resume bullet point",
    "confidence_score": number (0-100)
  },
  "insights": ["3-5 key insights about this opportunity"],
  "risks": [
    {
      "category": "WORK_LIFE_BALANCE",
      "severity": "HIGH",
      "reason": "Description of risk",
      "evidence": ["specific evidence from posting"]
    }
  ]
}

Be thorough but concise. Focus on actionable information."""
)


_PROMPT_V2 = Template(
    """
# Focus
You are JobMatchPro AI, an expert career analyst specializing in personalized job-candidate matching. Your role is to extract comprehensive job details and provide actionable, personalized analysis that helps $name_or_candidate make informed career decisions quickly.

# Objectives
Your analysis must achieve these 5 goals:
1. Extract ALL factual information from the job posting
2. Calculate accurate fit scores based on user profile alignment
3. Identify both opportunities and risks specific to the user
4. Provide actionable insights for application strategy
5. Generate dimensional scores for holistic evaluation

# Requirements
## Input
- Job posting details (title, company, location, description)
- User profile with preferences, strengths, and constraints
- Industry context and market conditions

## Output
Return a JSON object with this exact structure:
{
  "facts": {
    "comp_min": number or null,
    "comp_max": number or null,
    "comp_currency": string (default "USD"),
    "tech_stack": string[],
    "skills_sought": Array<{skill: string, type: string, level?: string}>,
    "experience_years_min": number or null,
    "experience_years_max": number or null,
    "remote_policy": "remote" | "hybrid" | "onsite" | "flexible" | null,
    "travel_required": "none" | "0-25%" | "25-50%" | "50%+" | null,
    "company_size": "startup" | "small" | "medium" | "large" | "enterprise" | null,
    "requires_clearance": boolean,
    "industry": string or null,
    "benefits": string[],
    "requirements": string[],
    "seniority_level": "intern" | "junior" | "mid" | "senior" | "staff" | "principal" | "executive" | null,
    "employment_type": "full-time" | "part-time" | "contract" | "freelance" | null,
    "company_stage": "seed" | "startup" | "growth" | "scale-up" | "mature" | "enterprise" | null,
    "equity_offered": boolean or null,
    "visa_sponsorship": boolean or null
  },
  "analysis": {
    "ai_fit_score": number (0-100),
    "fit_reasoning": string (2-3 sentences),
    "dealbreaker_hit": boolean,
    "skills_matched": string[],
    "skills_gap": string[],
    "key_strengths": string[] (3-5 items),
    "concerns": string[] (2-4 items),
    "ai_tailored_summary": string (2-3 sentences),
    "resume_bullet": string (1 impactful bullet),
    "confidence_score": number (0-100),
    "culture_fit_score": number (0-100),
    "growth_potential_score": number (0-100),
    "work_life_balance_score": number (0-100),
    "compensation_competitiveness_score": number (0-100),
    "overall_recommendation_score": number (0-100)
  },
  "insights": string[] (3-5 strategic insights),
  "risks": Array<{
    category: "COMPENSATION" | "CULTURE_MISMATCH" | "GROWTH_LIMITATION" | "SKILL_GAP" | "INDUSTRY_CONCERN" | "COMPANY_STABILITY" | "ROLE_CLARITY" | "WORK_LIFE_BALANCE",
    severity: "LOW" | "MEDIUM" | "HIGH",
    reason: string,
    evidence: string[]
  }>
}

# Examples
## Example 1: Strong Match
Job: "Senior Software Engineer at TechCo, $$150-200k, remote-first, Python/React"
User: Min salary $$140k, remote preference, Python expert
Output: ai_fit_score: 85, culture_fit_score: 90, overall_recommendation_score: 87

## Example 2: Dealbreaker Hit
Job: "Engineer at Defense Contractor, requires clearance"
User: Dealbreakers include defense industry
Output: dealbreaker_hit: true, ai_fit_score: 20, risks include HIGH severity INDUSTRY_CONCERN

# Constraints
- Compensation must be extracted even if requires inference from seniority/location
- All dimensional scores must be 0-100 with clear reasoning
- Resume bullet must use metrics when possible
- Risks must bundle all evidence for same category
- Response must be valid JSON under 4000 tokens

# Assessment Criteria
Your analysis will be evaluated on:
1. Accuracy of fact extraction (90%+ completeness)
2. Personalization depth (specific to user profile)
3. Risk identification (catches subtle red flags)
4. Actionability of insights (helps decision making)
5. Dimensional score accuracy (reflects true alignment)

# Systematic Approach
Follow these steps:
1. Parse job description for all factual elements
2. Map facts to user preferences and constraints
3. Calculate base fit score from objective matches
4. Identify risks from both explicit and implicit signals
5. Generate dimensional scores using defined algorithms
6. Create personalized summary and recommendations
7. Craft resume bullet highlighting relevant strengths
8. Validate all scores sum to logical conclusion

# Tone
Professional, analytical, and direct. Focus on facts and actionable insights. Be honest about concerns while highlighting genuine opportunities.

---

JOB POSTING:
Title: $job_title
Company: $company
URL: $company_url
Location: $location
Description: $description

USER PROFILE:
Name: $name_or_candidate
Current: $current_title ($seniority level)
Location: $user_location
Min Salary: $$$min_base_comp
Remote: $remote_pref
Strengths: $strengths_csv
Red Flags: $red_flags_csv
Dealbreakers: $dealbreakers_csv

Analyze this opportunity now."""
)


_PROMPT_V3 = Template(
    """
You are an expert job analyzer specializing in technical sales roles. Extract comprehensive data for a Senior Sales Engineer evaluating this opportunity.

JOB POSTING:
$job_title at $company
Location: $location
Description: $description

USER CONTEXT:
$name_or_candidate - $current_title
Strengths: $strengths_plain
Red Flags: $red_flags_plain

Return ONLY valid JSON matching this exact schema. If a value is explicitly stated, fill it. If you infer it from context, fill it and note lower confidence. If you can't find or infer it, use null.

{
  "facts": {
    "comp_min": number or null,
    "comp_max": number or null,
    "comp_currency": "USD",
    "tech_stack": string[],
    "skills_sought": [{"skill": string, "type": string, "level": string}],
    "experience_years_min": number or null,
    "experience_years_max": number or null,
    "remote_policy": "remote" | "hybrid" | "onsite" | "flexible" | null,
    "travel_required": "none" | "0-25%" | "25-50%" | "50%+" | null,
    "company_size": "startup" | "small" | "medium" | "large" | "enterprise" | null,
    "requires_clearance": boolean,
    "industry": string or null,
    "benefits": string[],
    "requirements": string[]
  },
  "analysis": {
    "ai_fit_score": number (0-100),
    "fit_reasoning": string,
    "dealbreaker_hit": boolean,
    "skills_matched": string[],
    "skills_gap": string[],
    "key_strengths": string[],
    "concerns": string[],
    "ai_tailored_summary": string,
    "resume_bullet": string,
    "confidence_score": number (0-100)
  },
  "insights": string[],
  "sales_engineering_signals": {
    "role_composition": {
      "demo_poc_percentage": number (0-100),
      "architecture_percentage": number (0-100),
      "customer_interaction_percentage": number (0-100),
      "enablement_percentage": number (0-100),
      "presales_team_size": string or null,
      "ae_se_ratio": string or null,
      "travel_percentage": number or null,
      "remote_onsite_mix": string,
      "confidence": number (0-1)
    },
    "demo_poc_environment": {
      "tech_stack": string[],
      "demo_tooling": string[],
      "demo_count": {
        "built_vs_maintained": string or null,
        "demo_types": string[]
      },
      "poc_characteristics": {
        "typical_duration": string or null,
        "customer_count_avg": number or null,
        "success_criteria_defined": boolean,
        "ownership_level": string or null
      },
      "complexity_indicators": {
        "data_integration": boolean,
        "multi_region": boolean,
        "regulatory_requirements": boolean,
        "custom_development": boolean
      },
      "confidence": number (0-1)
    },
    "methodology_deal_context": {
      "sales_framework": string[],
      "deal_characteristics": {
        "typical_acv_band": string or null,
        "deal_complexity": string or null,
        "cycle_length_avg": string or null
      },
      "role_in_cycle": string[],
      "competitive_landscape": {
        "direct_competitors_mentioned": string[],
        "competitive_positioning_focus": boolean
      },
      "customer_profile": {
        "target_verticals": string[],
        "strategic_logos_mentioned": boolean,
        "customer_size_focus": string or null
      },
      "confidence": number (0-1)
    },
    "enablement_tooling": {
      "training_responsibilities": {
        "internal_design": boolean,
        "internal_delivery": boolean,
        "partner_enablement": boolean,
        "customer_enablement": boolean
      },
      "tool_ownership": {
        "demo_automation": boolean,
        "internal_portals": boolean,
        "playbook_creation": boolean,
        "integration_tools": boolean
      },
      "content_creation": {
        "technical_whitepapers": boolean,
        "video_tutorials": boolean,
        "code_samples": boolean,
        "presentation_templates": boolean
      },
      "collaboration_scope": {
        "product_team": boolean,
        "marketing_team": boolean,
        "rnd_team": boolean,
        "customer_success": boolean
      },
      "confidence": number (0-1)
    },
    "success_metrics_career": {
      "kpis_mentioned": string[],
      "career_progression": {
        "promotion_path": string[],
        "growth_signals": boolean,
        "leadership_opportunities": boolean
      },
      "technical_expectations": {
        "certification_requirements": string[],
        "tech_stack_preferences": string[],
        "soft_skills_emphasis": string[]
      },
      "success_ownership": {
        "individual_metrics": boolean,
        "team_metrics": boolean,
        "revenue_attribution": boolean
      },
      "confidence": number (0-1)
    }
  },
  "interview_intelligence": {
    "predicted_stages": [{
      "stage_name": string,
      "typical_duration": string,
      "format": string,
      "focus_areas": string[],
      "interviewer_roles": string[],
      "preparation_weight": number (1-10)
    }],
    "technical_assessment": {
      "live_coding_likelihood": "unlikely" | "possible" | "likely" | "certain",
      "system_design_expected": boolean,
      "mock_demo_required": boolean,
      "presentation_required": boolean,
      "take_home_assignment": boolean,
      "whiteboarding_expected": boolean
    },
    "preparation_priorities": [{
      "priority_area": string,
      "specific_topics": string[],
      "time_allocation": string,
      "confidence_booster": boolean
    }],
    "red_flags": [{
      "concern_type": string,
      "description": string,
      "severity": "minor" | "moderate" | "major",
      "mitigation_strategy": string
    }],
    "success_factors": {
      "key_differentiators": string[],
      "common_failure_points": string[],
      "cultural_fit_signals": string[]
    }
  },
  "quick_wins": {
    "direct_matches": [{
      "candidate_strength": string,
      "role_requirement": string,
      "talking_point": string,
      "proof_point": string,
      "impact_potential": "immediate" | "short-term" | "strategic"
    }],
    "demo_suggestions": [{
      "demo_concept": string,
      "tech_stack_alignment": string[],
      "business_value_story": string,
      "preparation_complexity": "simple" | "moderate" | "complex",
      "differentiation_factor": string
    }],
    "process_improvements": [{
      "improvement_area": string,
      "current_state_assumption": string,
      "candidate_solution": string,
      "implementation_effort": "quick win" | "medium term" | "strategic project",
      "stakeholder_impact": string[]
    }],
    "positioning_strategies": {
      "unique_value_proposition": string,
      "competitive_advantages": string[],
      "risk_mitigation": string[],
      "growth_narrative": string,
      "cultural_alignment": string[]
    },
    "first_90_days": [{
      "milestone": string,
      "success_criteria": string,
      "required_support": string[],
      "stakeholder_impact": string
    }]
  },
  "extraction_confidence": {
    "overall": number (0-100),
    "sales_signals": number (0-100),
    "interview_intel": number (0-100),
    "quick_wins": number (0-100)
  }
}"""
)


PROMPT_VERSIONS: dict[str, Template] = {
    "1.0": _PROMPT_V1,
    "2.0": _PROMPT_V2,
    "3.0": _PROMPT_V3,
}

PROMPT_METADATA: dict[str, dict[str, str]] = {
    "1.0": {"version": "1.0", "framework": "Basic", "lastUpdated": "2024-12-01", "author": "Core team"},
    "2.0": {"version": "2.0", "framework": "FORECAST", "lastUpdated": "2024-12-27", "author": "Core team"},
    "3.0": {"version": "3.0", "framework": "SE-Enhanced", "lastUpdated": "2025-06-27", "author": "Core team"},
}


def get_active_prompt_version() -> str:
    return settings.enrichment_prompt_version or DEFAULT_PROMPT_VERSION


def get_available_prompt_versions() -> list[str]:
    return list(PROMPT_VERSIONS)


def _prompt_values(
    *,
    job_title: str,
    company: str,
    location: str,
    description: str,
    company_url: str | None,
    profile: Mapping[str, Any],
) -> dict[str, Any]:
    strengths = list(profile.get("strengths") or [])
    red_flags = list(profile.get("red_flags") or [])
    dealbreakers = list(profile.get("dealbreakers") or [])
    return {
        "job_title": job_title,
        "company": company,
        "company_url": company_url or "Not provided",
        "location": location,
        "description": description,
        "name": profile.get("name") or "N/A",
        "name_or_candidate": profile.get("name") or "Candidate",
        "current_title": profile.get("current_title") or "N/A",
        "seniority": profile.get("seniority") or "N/A",
        "user_location": profile.get("location") or "N/A",
        "min_base_comp": profile.get("min_base_comp") or 0,
        "remote_pref": profile.get("remote_pref") or "flexible",
        "interview_style": profile.get("interview_style") or "Not specified",
        "strengths_json": json.dumps(strengths),
        "red_flags_json": json.dumps(red_flags),
        "dealbreakers_json": json.dumps(dealbreakers),
        "preferences_json": json.dumps(profile.get("preferences") or {}),
        "strengths_csv": ", ".join(strengths) or "Not specified",
        "red_flags_csv": ", ".join(red_flags) or "None",
        "dealbreakers_csv": ", ".join(dealbreakers) or "None",
        "strengths_plain": ", ".join(strengths),
        "red_flags_plain": ", ".join(red_flags),
    }


def get_enrichment_prompt(
    *,
    job_title: str,
    company: str,
    location: str,
    description: str,
    profile: Mapping[str, Any] | None,
    company_url: str | None = None,
    version: str | None = None,
) -> str:
    active = version or get_active_prompt_version()
    template = PROMPT_VERSIONS.get(active)
    if template is None:
        logger.warning("Prompt version %s not found, falling back to %s", active, DEFAULT_PROMPT_VERSION)
        template = PROMPT_VERSIONS[DEFAULT_PROMPT_VERSION]
    values = _prompt_values(
        job_title=job_title,
        company=company,
        location=location,
        description=description,
        company_url=company_url,
        profile=profile or {},
    )
    return template.substitute(values)
