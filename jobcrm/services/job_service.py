# job_service.py
from __future__ import annotations

from datetime import datetime
from typing import Any, Iterable

from rapidfuzz import fuzz
from sqlalchemy.orm import Session, selectinload

from jobcrm.models.enrichment import JobEnrichment
from jobcrm.models.job import Job
from jobcrm.models.job_note import JobNote
from jobcrm.services.enrichment_validation import DIMENSIONAL_SCORE_FIELDS


EDITABLE_FIELDS = ("title", "company", "description", "location", "employment_type", "experience_level", "salary")
DEFAULT_PER_PAGE = 50
# token_set_ratio score (0-100) a title/company must reach to match a search.
SEARCH_MIN_SCORE = 70


def _iso(value: datetime | None) -> str | None:
    return value.isoformat() if value else None


def _string_list(value: Any) -> list[str] | None:
    if value is None:
        return None
    if isinstance(value, dict):
        value = list(value.values())
    if not isinstance(value, list):
        return None
    return [str(v) for v in value if v is not None]


def format_comp_range(comp_min: float | None, comp_max: float | None, currency: str | None) -> str | None:
    if not comp_min or not comp_max:
        return None
    return f"{comp_min:g}-{comp_max:g} {currency or 'USD'}"


def dimensional_scores_of(enrichment: JobEnrichment) -> dict[str, int | None]:
    """Column value first, then the copy kept in ``raw_json``."""
    stored = (enrichment.raw_json or {}).get("dimensional_scores") or {}
    return {name: getattr(enrichment, name, None) or stored.get(name) for name in DIMENSIONAL_SCORE_FIELDS}


def enrichment_to_display(enrichment: JobEnrichment) -> dict[str, Any]:
    raw = enrichment.raw_json or {}
    return {
        "fit_score": enrichment.ai_fit_score,
        "dealbreaker_hit": enrichment.dealbreaker_hit,
        "comp_min": enrichment.comp_min,
        "comp_max": enrichment.comp_max,
        "comp_currency": enrichment.comp_currency,
        "comp_range": format_comp_range(enrichment.comp_min, enrichment.comp_max, enrichment.comp_currency),
        "remote_policy": enrichment.remote_policy,
        "skills_matched": _string_list(enrichment.skills_matched),
        "skills_gap": _string_list(enrichment.skills_gap),
        "skills_sought": enrichment.skills_sought,
        "tech_stack": enrichment.tech_stack,
        "summary": enrichment.ai_tailored_summary,
        "ai_tailored_summary": enrichment.ai_tailored_summary,
        "ai_resume_tips": enrichment.ai_resume_tips,
        "resume_bullet": enrichment.resume_bullet,
        "confidence_score": enrichment.confidence_score,
        "extracted_fields": enrichment.extracted_fields,
        "fit_reasoning": enrichment.fit_reasoning,
        "key_strengths": enrichment.key_strengths,
        "concerns": enrichment.concerns,
        "insights": enrichment.insights,
        "risks": enrichment.risks,
        "status": enrichment.status,
        "error_count": enrichment.error_count,
        "last_error": enrichment.last_error,
        **dimensional_scores_of(enrichment),
        "sales_engineering_signals": raw.get("sales_engineering_signals"),
        "interview_intelligence": raw.get("interview_intelligence"),
        "quick_wins": raw.get("quick_wins"),
        "prompt_version": raw.get("prompt_version"),
        "created_at": _iso(enrichment.created_at),
        "updated_at": _iso(enrichment.updated_at),
    }


def job_to_display(job: Job) -> dict[str, Any]:
    enrichment = job.enrichment
    display = enrichment_to_display(enrichment) if enrichment is not None else None
    return {
        "id": job.id,
        "url": job.url,
        "title": job.title,
        "company": job.company,
        "company_url": job.company_url,
        "description": job.description,
        "location": job.location,
        "source": job.source,
        "salary": job.salary,
        "employment_type": job.employment_type,
        "experience_level": job.experience_level,
        "scraped_at": _iso(job.scraped_at),
        "status": job.status or "new",
        "interview_status": job.interview_status,
        "current_interview_stage": job.current_interview_stage,
        "ai_fit_score": display["fit_score"] if display and display["fit_score"] is not None else job.ai_fit_score,
        "skills": display["skills_matched"] if display else None,
        "enrichment_status": enrichment.status if enrichment is not None else None,
        "enrichment_error": enrichment.last_error if enrichment is not None else None,
        "created_at": _iso(job.created_at),
        "updated_at": _iso(job.updated_at),
        "enrichment": display,
    }


def search_score(query: str, job: Job) -> float:
    """Best token_set_ratio of ``query`` against the job title and company."""
    q = query.strip().lower()
    return max(
        fuzz.token_set_ratio(q, (job.title or "").lower()),
        fuzz.token_set_ratio(q, (job.company or "").lower()),
        fuzz.partial_ratio(q, (job.title or "").lower()) if len(q) >= 3 else 0,
    )


def fuzzy_filter(jobs: Iterable[Job], query: str, min_score: float = SEARCH_MIN_SCORE) -> list[Job]:
    scored = [(search_score(query, job), job) for job in jobs]
    matches = [(score, job) for score, job in scored if score >= min_score]
    matches.sort(key=lambda pair: pair[0], reverse=True)
    return [job for _, job in matches]


def list_jobs(
    db: Session,
    *,
    page: int = 1,
    per_page: int = DEFAULT_PER_PAGE,
    status: str | None = None,
    q: str | None = None,
) -> tuple[list[Job], int]:
    page = max(1, page)
    per_page = max(1, per_page)
    query = db.query(Job).options(selectinload(Job.enrichment))
    if status:
        query = query.filter(Job.status == status)
    query = query.order_by(Job.created_at.desc(), Job.id.desc())

    if q and q.strip():
        matches = fuzzy_filter(query.all(), q)
        offset = (page - 1) * per_page
        return matches[offset:offset + per_page], len(matches)

    total = query.count()
    jobs = query.offset((page - 1) * per_page).limit(per_page).all()
    return jobs, total


def get_job(db: Session, job_id: int) -> Job | None:
    return db.query(Job).options(selectinload(Job.enrichment)).filter(Job.id == job_id).first()


def update_job_status(db: Session, job_id: int, status: str) -> Job | None:
    job = db.query(Job).filter(Job.id == job_id).first()
    if job is None:
        return None
    job.status = status
    db.commit()
    db.refresh(job)
    return job


def update_job(db: Session, job: Job, changes: dict[str, Any]) -> Job:
    for name in EDITABLE_FIELDS:
        if name in changes:
            setattr(job, name, changes[name])
    db.commit()
    db.refresh(job)
    return job


def delete_job(db: Session, job: Job) -> None:
    db.delete(job)
    db.commit()


def list_notes(db: Session, job_id: int, note_type: str | None = None) -> list[JobNote]:
    query = db.query(JobNote).filter(JobNote.job_id == job_id)
    if note_type:
        query = query.filter(JobNote.note_type == note_type)
    return query.order_by(JobNote.created_at.desc(), JobNote.id.desc()).all()


def add_note(db: Session, job: Job, user_id: int | None, content: str, note_type: str = "general") -> JobNote:
    note = JobNote(job_id=job.id, user_id=user_id, content=content.strip(), note_type=note_type or "general")
    db.add(note)
    db.commit()
    db.refresh(note)
    return note
