# enrichment_service.py
"""Single-pass job enrichment.

A posting is rendered into a versioned prompt, sent to the chat model once
(wrapped in ``with_retry``), parsed, validated, scanned for risks and scored.
The outcome is written to ``job_enrichments``, one row per job.
"""
from __future__ import annotations

import logging
from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Any

from sqlalchemy.orm import Session

from jobcrm.config import settings
from jobcrm.models.enrichment import JobEnrichment
from jobcrm.models.job import Job
from jobcrm.schemas.enrichment import EnrichmentRequest
from jobcrm.schemas.profile import UserProfile
from jobcrm.services.ab_testing import (
    ExperimentContext,
    ExperimentDecision,
    apply_prompt_template,
    get_active_experiment,
    record_experiment_result,
)
from jobcrm.services.audit import EnrichmentAuditor
from jobcrm.services.benchmarks import benchmark
from jobcrm.services.knowledge_base import store_chunks
from jobcrm.services.llm_client import ChatResult, LLMClient, LLMConfigurationError
from jobcrm.services.profile_service import get_master_profile, get_user_profile
from jobcrm.services.prompts import get_active_prompt_version, get_enrichment_prompt
from jobcrm.services.retry import extract_json, fix_partial_response, with_retry
from jobcrm.services.risk_detection import RiskAnalysis, analyze_job_risks, format_risks_for_enrichment
from jobcrm.services.scoring import calculate_dimensional_scores
from jobcrm.services.enrichment_validation import safe_parse_enrichment_response, validate_enhanced_enrichment
from jobcrm.services.tracing import ServiceNames, Timer, TraceEvents, log_trace_event


logger = logging.getLogger(__name__)

AI_TEMPERATURE = 0.3
AI_MAX_TOKENS = 4000
ENHANCED_PROMPT_VERSION = "3.0"

_SYSTEM_PROMPT_BASE = (
    "You are a career analysis expert specializing in matching job opportunities to individual profiles. "
    "You provide honest, actionable assessments that help job seekers make informed decisions quickly. "
)
SYSTEM_PROMPT_V1 = _SYSTEM_PROMPT_BASE + (
    "Always return valid JSON and be particularly careful to identify dealbreakers and red flags "
    "that might waste the user's time."
)
SYSTEM_PROMPT_V2 = _SYSTEM_PROMPT_BASE + (
    "Always return valid JSON and be particularly careful to identify where the user's strengths and "
    "desires align with the job and where they might not. Also identify dealbreakers and red flags "
    "that might waste the user's time."
)


class LLMResponseError(ValueError):
    """The model reply could not be turned into an enrichment object."""


class EnrichmentError(RuntimeError):
    def __init__(self, message: str, *, job_id: int | None = None):
        super().__init__(message)
        self.job_id = job_id


@dataclass
class JobPosting:
    title: str
    company: str
    location: str
    description: str
    company_url: str | None = None
    source: str | None = None

    @classmethod
    def from_job(cls, job: Job) -> "JobPosting":
        return cls(
            title=job.title or "",
            company=job.company or "",
            location=job.location or "",
            description=job.description or "",
            company_url=job.company_url,
            source=job.source,
        )

    @classmethod
    def from_request(cls, payload: EnrichmentRequest) -> "JobPosting":
        return cls(
            title=payload.title,
            company=payload.company,
            location=payload.location,
            description=payload.description,
            company_url=str(payload.company_url) if payload.company_url else None,
            source=payload.source,
        )


@dataclass
class EnrichmentResult:
    data: dict[str, Any]
    risk_analysis: RiskAnalysis
    dimensional_scores: dict[str, int]
    prompt_version: str
    model: str
    usage: ChatResult
    validated: bool
    warnings: list[str] = field(default_factory=list)

    @property
    def facts(self) -> dict[str, Any]:
        return self.data.get("facts") or {}

    @property
    def analysis(self) -> dict[str, Any]:
        return self.data.get("analysis") or {}

    @property
    def dealbreaker_hit(self) -> bool:
        return bool(self.risk_analysis.dealbreaker_hit or self.analysis.get("dealbreaker_hit"))


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


def _count_extracted_fields(facts: dict[str, Any]) -> int:
    return sum(1 for v in facts.values() if v not in (None, "", [], {}))


def analyze_posting(
    llm: LLMClient,
    posting: JobPosting,
    profile: UserProfile,
    *,
    correlation_id: str,
    auditor: EnrichmentAuditor | None = None,
    prompt_version: str | None = None,
    system_prompt: str = SYSTEM_PROMPT_V2,
    job_id: int | str | None = None,
    use_experiments: bool = True,
) -> EnrichmentResult:
    """Run the model over ``posting`` and return validated, scored output. Nothing is written."""
    version = prompt_version or get_active_prompt_version()
    profile_data = profile.model_dump()
    prompt = get_enrichment_prompt(
        job_title=posting.title,
        company=posting.company,
        location=posting.location,
        description=posting.description,
        company_url=posting.company_url,
        profile=profile_data,
        version=version,
    )

    decision: ExperimentDecision | None = None
    context = ExperimentContext(
        job_id=str(job_id or "pending"),
        correlation_id=correlation_id,
        job_source=posting.source,
        company=posting.company,
    )
    if use_experiments:
        decision = get_active_experiment(context)

    request: dict[str, Any] = {
        "model": settings.jd_analysis_model,
        "temperature": AI_TEMPERATURE,
        "max_tokens": AI_MAX_TOKENS,
        "response_format": {"type": "json_object"},
    }
    if decision is not None:
        request.update(decision.overrides)
        if decision.variant.config.systemPrompt:
            system_prompt = decision.variant.config.systemPrompt
        prompt = apply_prompt_template(
            prompt,
            decision.variant,
            {
                "jobTitle": posting.title,
                "company": posting.company,
                "location": posting.location,
                "description": posting.description,
            },
        )

    if auditor is not None:
        auditor.record_event("PROMPT_GENERATED", {"promptVersion": version, "promptLength": len(prompt)})

    messages = [
        {"role": "system", "content": system_prompt},
        {"role": "user", "content": prompt},
    ]

    def _on_retry(attempt: int, exc: Exception) -> None:
        if auditor is not None:
            auditor.update_metadata(retry_count=attempt)
            auditor.record_event("RETRY_ATTEMPT", {"attempt": attempt, "error": str(exc)})

    ai_timer = Timer()
    try:
        completion = with_retry(
            lambda: llm.chat(messages, **request),
            on_retry=_on_retry,
            correlation_id=correlation_id,
            operation="openai_enrichment",
            should_retry=lambda exc: not isinstance(exc, LLMConfigurationError),
        )
    except LLMConfigurationError:
        raise
    except Exception as exc:
        if decision is not None:
            record_experiment_result(
                decision,
                context,
                {"responseTimeMs": ai_timer.stop(), "errorOccurred": True, "errorMessage": str(exc)},
            )
        raise
    response_ms = ai_timer.stop()

    benchmark.record_token_usage(
        completion.model,
        completion.prompt_tokens,
        completion.completion_tokens,
        completion.total_tokens,
        correlation_id,
    )
    log_trace_event(
        correlation_id=correlation_id,
        service_name=ServiceNames.INGEST,
        event_name=TraceEvents.ENRICH_SINGLE_OPENAI_CALL,
        status="success",
        duration_ms=response_ms,
        metadata={
            "model": completion.model,
            "promptTokens": completion.prompt_tokens,
            "completionTokens": completion.completion_tokens,
        },
    )
    if auditor is not None:
        auditor.record_event(
            "OPENAI_RESPONSE_RECEIVED",
            {
                "model": completion.model,
                "responseTime": response_ms,
                "promptTokens": completion.prompt_tokens,
                "completionTokens": completion.completion_tokens,
            },
        )

    try:
        parsed = extract_json(completion.content or "{}")
    except ValueError as exc:
        raise LLMResponseError(f"Failed to parse OpenAI response as JSON: {exc}") from exc
    if not isinstance(parsed, dict):
        raise LLMResponseError("Failed to parse OpenAI response as JSON: expected an object")

    repaired = fix_partial_response(parsed)
    validation = safe_parse_enrichment_response(repaired)
    warnings = list(validation.warnings)
    if validation.success:
        data = validation.data or repaired
        if auditor is not None:
            auditor.record_event("RESPONSE_VALIDATION_SUCCESS", {"warnings": warnings})
    else:
        data = repaired
        if auditor is not None:
            auditor.record_event("RESPONSE_VALIDATION_FAILED", {"errors": validation.errors, "usingRawData": True})

    if version == ENHANCED_PROMPT_VERSION:
        enhanced = validate_enhanced_enrichment(data)
        warnings.extend(enhanced.warnings)
        if not enhanced.success and auditor is not None:
            auditor.record_event("VALIDATION_ERROR", {"errors": enhanced.errors})
    if warnings and auditor is not None:
        auditor.record_event("VALIDATION_WARNING", {"warnings": warnings})

    risk_analysis = analyze_job_risks(
        posting.description,
        {
            "red_flags": profile.red_flags,
            "dealbreakers": profile.dealbreakers,
            "preferences": profile.preferences,
        },
        data.get("risks") or [],
    )
    if auditor is not None:
        auditor.record_event(
            "RISK_ANALYSIS_COMPLETE",
            {
                "explicitRisks": len(data.get("risks") or []),
                "implicitRisks": len(risk_analysis.risks),
                "overallRiskScore": risk_analysis.overall_risk_score,
                "dealbreakerHit": risk_analysis.dealbreaker_hit,
            },
        )
        for risk in risk_analysis.risks:
            if risk.is_dealbreaker or risk.severity == "HIGH":
                auditor.record_event("RISK_DETECTED", risk.to_dict())

    facts = dict(data.get("facts") or {})
    facts.setdefault("description", posting.description)
    scores = calculate_dimensional_scores(facts, profile_data, risk_analysis.risks)
    if auditor is not None:
        auditor.record_event("DIMENSIONAL_SCORES_CALCULATED", scores)

    result = EnrichmentResult(
        data=data,
        risk_analysis=risk_analysis,
        dimensional_scores=scores,
        prompt_version=version,
        model=completion.model,
        usage=completion,
        validated=validation.success,
        warnings=warnings,
    )

    if decision is not None:
        record_experiment_result(
            decision,
            context,
            {
                "fitScore": result.analysis.get("ai_fit_score"),
                "extractedFieldsCount": _count_extracted_fields(result.facts),
                "responseTimeMs": response_ms,
                "promptTokens": completion.prompt_tokens,
                "completionTokens": completion.completion_tokens,
                "totalTokens": completion.total_tokens,
                "validationPassed": validation.success,
                "errorOccurred": False,
            },
            {"promptVersion": version},
        )
    return result


def find_job_by_url(db: Session, url: str) -> Job | None:
    return db.query(Job).filter(Job.url == url).first()


def create_job_record(
    db: Session,
    payload: EnrichmentRequest,
    raw: dict[str, Any],
    *,
    fit_score: int | None = None,
    correlation_id: str | None = None,
) -> Job:
    job = Job(
        url=str(payload.url),
        title=payload.title,
        company=payload.company,
        company_url=str(payload.company_url) if payload.company_url else None,
        description=payload.description,
        location=payload.location,
        source=payload.source,
        scraped_at=payload.scrapedAt,
        ai_fit_score=fit_score,
        scraper_raw_json=raw,
        status="new",
        correlation_id=correlation_id,
    )
    db.add(job)
    db.commit()
    db.refresh(job)
    return job


def save_enrichment(
    db: Session,
    job: Job,
    result: EnrichmentResult,
    *,
    profile_user_id: int | None,
    correlation_id: str,
    started_at: datetime | None = None,
) -> JobEnrichment:
    """Insert or replace the enrichment row of ``job``."""
    facts = result.facts
    analysis = result.analysis
    record = db.query(JobEnrichment).filter(JobEnrichment.job_id == job.id).first()
    if record is None:
        record = JobEnrichment(job_id=job.id)
        db.add(record)

    resume_bullet = analysis.get("resume_bullet")
    record.profile_user_id = profile_user_id
    record.status = "completed"
    record.extracted_fields = facts
    record.comp_min = facts.get("comp_min")
    record.comp_max = facts.get("comp_max")
    record.comp_currency = facts.get("comp_currency")
    record.tech_stack = facts.get("tech_stack") or []
    record.skills_sought = facts.get("skills_sought") or []
    record.remote_policy = facts.get("remote_policy")
    record.ai_fit_score = analysis.get("ai_fit_score")
    record.dealbreaker_hit = result.dealbreaker_hit
    record.skills_matched = analysis.get("skills_matched") or []
    record.skills_gap = analysis.get("skills_gap") or []
    record.ai_tailored_summary = analysis.get("ai_tailored_summary")
    record.ai_resume_tips = [resume_bullet] if resume_bullet else []
    record.confidence_score = analysis.get("confidence_score")
    record.fit_reasoning = analysis.get("fit_reasoning")
    record.key_strengths = analysis.get("key_strengths") or []
    record.concerns = analysis.get("concerns") or []
    record.insights = result.data.get("insights") or []
    record.resume_bullet = resume_bullet
    record.risks = format_risks_for_enrichment(result.risk_analysis.risks)
    for name, value in result.dimensional_scores.items():
        setattr(record, name, value)
    record.raw_json = {
        "dimensional_scores": result.dimensional_scores,
        "sales_engineering_signals": result.data.get("sales_engineering_signals"),
        "interview_intelligence": result.data.get("interview_intelligence"),
        "quick_wins": result.data.get("quick_wins"),
        "prompt_version": result.prompt_version,
        "enrichment_timestamp": _utcnow().isoformat(),
        "correlation_id": correlation_id,
        "implicit_risks": [r.to_dict() for r in result.risk_analysis.risks],
        "risk_summary": result.risk_analysis.risk_summary,
        "overall_risk_score": result.risk_analysis.overall_risk_score,
        "validation_warnings": result.warnings,
        "enrichment_version": result.prompt_version,
        "model": result.model,
    }
    record.last_error = None
    record.error_count = 0
    record.correlation_id = correlation_id
    record.enrichment_started_at = started_at or _utcnow()
    record.enrichment_completed_at = _utcnow()

    job.ai_fit_score = analysis.get("ai_fit_score")
    db.commit()
    db.refresh(record)
    return record


def record_enrichment_failure(db: Session, job: Job, error_message: str, correlation_id: str) -> JobEnrichment:
    db.rollback()
    record = db.query(JobEnrichment).filter(JobEnrichment.job_id == job.id).first()
    if record is None:
        record = JobEnrichment(job_id=job.id, error_count=0)
        db.add(record)
    record.status = "failed"
    record.last_error = error_message
    record.error_count = (record.error_count or 0) + 1
    record.correlation_id = correlation_id
    db.commit()
    db.refresh(record)
    return record


def enrich_posting_v2(
    db: Session,
    llm: LLMClient,
    payload: EnrichmentRequest,
    raw: dict[str, Any],
    correlation_id: str,
) -> dict[str, Any]:
    """Extension webhook flow: dedupe by URL, enrich with the enhanced prompt, then insert."""
    auditor = EnrichmentAuditor(db, "pending", correlation_id)
    auditor.record_event("ENRICHMENT_START", {"jobUrl": str(payload.url)})
    started_at = _utcnow()
    try:
        existing = find_job_by_url(db, str(payload.url))
        if existing is not None:
            auditor.record_event(
                "ENRICHMENT_COMPLETE",
                {"duplicate": True, "jobId": existing.id, "url": existing.url},
            )
            return {"jobId": existing.id, "duplicate": True, "message": "Job already exists in database"}

        profile_user_id, profile = get_master_profile(db)
        auditor.record_event("USER_PROFILE_LOADED", {"profileUserId": profile_user_id})

        result = analyze_posting(
            llm,
            JobPosting.from_request(payload),
            profile,
            correlation_id=correlation_id,
            auditor=auditor,
            prompt_version=ENHANCED_PROMPT_VERSION,
            system_prompt=SYSTEM_PROMPT_V2,
        )

        job = create_job_record(
            db,
            payload,
            raw,
            fit_score=result.analysis.get("ai_fit_score") or 0,
            correlation_id=correlation_id,
        )
        auditor.job_id = str(job.id)
        save_enrichment(db, job, result, profile_user_id=profile_user_id, correlation_id=correlation_id, started_at=started_at)
        auditor.complete(
            True,
            {
                "enrichmentQuality": {
                    "aiModelUsed": result.model,
                    "promptVersion": result.prompt_version,
                    "validationWarnings": len(result.warnings),
                    "implicitRisksDetected": len(result.risk_analysis.risks),
                    "dimensionalScoresCalculated": True,
                    "salesEngineeringSignalsExtracted": bool(result.data.get("sales_engineering_signals")),
                    "interviewIntelligenceGenerated": bool(result.data.get("interview_intelligence")),
                    "quickWinsMapped": bool(result.data.get("quick_wins")),
                }
            },
        )
    except LLMConfigurationError:
        raise
    except Exception as exc:
        db.rollback()
        auditor.record_event("ENRICHMENT_FAILED", {"error": str(exc)})
        raise EnrichmentError(str(exc)) from exc

    return {
        "jobId": job.id,
        "enrichment": {
            "ai_fit_score": result.analysis.get("ai_fit_score"),
            "dealbreaker_hit": result.risk_analysis.dealbreaker_hit,
            "dimensional_scores": result.dimensional_scores,
            "implicit_risks": [r.to_dict() for r in result.risk_analysis.risks],
            "validation_warnings": result.warnings,
        },
    }


def _enhanced_embedding_text(description: str, result: EnrichmentResult) -> str:
    facts = result.facts
    tech = ", ".join(facts.get("tech_stack") or []) or "Not specified"
    insights = " | ".join(str(i) for i in result.data.get("insights") or [])
    if facts.get("comp_min"):
        salary = f"${facts.get('comp_min')}-{facts.get('comp_max')}"
    else:
        salary = "Not specified"
    return (
        f"\n{description}\n\n"
        "ENRICHED ANALYSIS:\n"
        f"Fit Score: {result.analysis.get('ai_fit_score')}/100\n"
        f"Tech Stack: {tech}\n"
        f"Key Insights: {insights}\n"
        f"Salary Range: {salary}\n"
        f"Remote Policy: {facts.get('remote_policy') or 'Not specified'}\n"
    )


def store_job_embeddings(db: Session, llm: LLMClient, job: Job, result: EnrichmentResult) -> int:
    """Embed the raw description and the description plus analysis as chunks 0 and 1."""
    facts = result.facts
    enhanced = _enhanced_embedding_text(job.description or "", result)
    rows = store_chunks(
        db,
        llm,
        entity_id=job.id,
        contents=[job.description or "", enhanced],
        source_type="job",
        metadatas=[
            {"job_title": job.title, "company": job.company, "location": job.location},
            {
                "fit_score": result.analysis.get("ai_fit_score"),
                "tech_stack": facts.get("tech_stack"),
                "salary_range": f"{facts.get('comp_min')}-{facts.get('comp_max')}" if facts.get("comp_min") else None,
            },
        ],
    )
    return len(rows)


def enrich_posting_v1(
    db: Session,
    llm: LLMClient,
    payload: EnrichmentRequest,
    raw: dict[str, Any],
    correlation_id: str,
) -> dict[str, Any]:
    """Original webhook flow: active prompt version, job embeddings, fallback save on failure."""
    existing = find_job_by_url(db, str(payload.url))
    if existing is not None:
        log_trace_event(
            correlation_id=correlation_id,
            service_name=ServiceNames.INGEST,
            event_name=TraceEvents.INGEST_END,
            status="success",
            job_id=existing.id,
            metadata={"duplicate": True},
        )
        return {"jobId": existing.id, "duplicate": True, "message": "Job already exists in database"}

    started_at = _utcnow()
    try:
        profile_user_id, profile = get_master_profile(db)
        result = analyze_posting(
            llm,
            JobPosting.from_request(payload),
            profile,
            correlation_id=correlation_id,
            system_prompt=SYSTEM_PROMPT_V1,
        )
        job = create_job_record(
            db,
            payload,
            raw,
            fit_score=result.analysis.get("ai_fit_score"),
            correlation_id=correlation_id,
        )
    except LLMConfigurationError:
        raise
    except Exception as exc:
        message = str(exc) or "Unknown error"
        logger.error("Enrichment failed correlation_id=%s: %s", correlation_id, message)
        db.rollback()
        fallback = create_job_record(db, payload, raw, correlation_id=correlation_id)
        record_enrichment_failure(db, fallback, message, correlation_id)
        raise EnrichmentError(message, job_id=fallback.id) from exc

    save_enrichment(db, job, result, profile_user_id=profile_user_id, correlation_id=correlation_id, started_at=started_at)

    embedding_timer = Timer()
    embedding_error: str | None = None
    try:
        store_job_embeddings(db, llm, job, result)
    except Exception as exc:
        # Embeddings are best effort; the enrichment row is already committed.
        db.rollback()
        embedding_error = str(exc)
        logger.error("Failed to store embeddings job_id=%s: %s", job.id, exc)
    log_trace_event(
        correlation_id=correlation_id,
        service_name=ServiceNames.INGEST,
        event_name="EMBEDDING_GENERATION",
        status="failure" if embedding_error else "success",
        job_id=job.id,
        duration_ms=embedding_timer.stop(),
        metadata={"embeddingCount": 2, "error": embedding_error},
    )

    return {
        "jobId": job.id,
        "correlation_id": correlation_id,
        "enrichment": {**result.analysis, "extracted_fields": result.facts},
    }


def enrich_existing_job(
    db: Session,
    llm: LLMClient,
    job: Job,
    correlation_id: str,
    *,
    user_id: int | None = None,
    prompt_version: str | None = None,
) -> JobEnrichment:
    """Re-run enrichment for a stored job; failures are recorded on the row and re-raised."""
    if user_id is not None:
        profile = get_user_profile(db, user_id)
        profile_user_id = user_id
        if profile is None:
            profile_user_id, profile = get_master_profile(db)
    else:
        profile_user_id, profile = get_master_profile(db)

    auditor = EnrichmentAuditor(db, job.id, correlation_id)
    auditor.record_event("ENRICHMENT_START", {"jobId": job.id, "rerun": True})
    started_at = _utcnow()
    try:
        result = analyze_posting(
            llm,
            JobPosting.from_job(job),
            profile,
            correlation_id=correlation_id,
            auditor=auditor,
            prompt_version=prompt_version,
            job_id=job.id,
        )
        record = save_enrichment(
            db, job, result, profile_user_id=profile_user_id, correlation_id=correlation_id, started_at=started_at
        )
    except LLMConfigurationError:
        raise
    except Exception as exc:
        record_enrichment_failure(db, job, str(exc), correlation_id)
        auditor.record_event("ENRICHMENT_FAILED", {"error": str(exc)})
        raise EnrichmentError(str(exc), job_id=job.id) from exc
    auditor.complete(True, {"promptVersion": result.prompt_version})
    return record
