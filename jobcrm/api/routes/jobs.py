# jobs.py
from __future__ import annotations

from typing import Optional

from fastapi import APIRouter, Depends, HTTPException, Query, status
from sqlalchemy.orm import Session

from jobcrm.database import get_db
from jobcrm.models.user import User
from jobcrm.routers.dependencies import create_rate_limiter, get_current_user
from jobcrm.schemas.job import (
    JobListResponse,
    JobNoteCreate,
    JobNoteRead,
    JobStatus,
    JobStatusUpdate,
    JobUpdate,
)
from jobcrm.services.job_service import (
    DEFAULT_PER_PAGE,
    add_note,
    delete_job,
    get_job,
    job_to_display,
    list_jobs,
    list_notes,
    update_job,
    update_job_status,
)
from jobcrm.services.rate_limiter import rate_limiters


router = APIRouter(prefix="/jobs", tags=["jobs"])

_search_limit = create_rate_limiter(rate_limiters.search)


def _job_or_404(db: Session, job_id: int):
    job = get_job(db, job_id)
    if job is None:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="Job not found")
    return job


@router.get("", response_model=JobListResponse, dependencies=[Depends(_search_limit)])
def read_jobs(
    page: int = Query(1, ge=1),
    perPage: int = Query(DEFAULT_PER_PAGE, ge=1, le=200),
    status_filter: Optional[JobStatus] = Query(None, alias="status"),
    q: Optional[str] = Query(None, max_length=200),
    db: Session = Depends(get_db),
    _user: User = Depends(get_current_user),
) -> JobListResponse:
    jobs, total = list_jobs(db, page=page, per_page=perPage, status=status_filter, q=q)
    return JobListResponse(jobs=[job_to_display(j) for j in jobs], total=total, page=page, perPage=perPage)


@router.patch("")
def patch_job_status(
    payload: JobStatusUpdate,
    db: Session = Depends(get_db),
    _user: User = Depends(get_current_user),
) -> dict:
    job = update_job_status(db, payload.id, payload.status)
    if job is None:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="Job not found")
    return {"success": True, "job": job_to_display(job)}


@router.get("/{job_id}")
def read_job(job_id: int, db: Session = Depends(get_db), _user: User = Depends(get_current_user)) -> dict:
    return {"success": True, "job": job_to_display(_job_or_404(db, job_id))}


@router.patch("/{job_id}")
def patch_job(
    job_id: int,
    payload: JobUpdate,
    db: Session = Depends(get_db),
    _user: User = Depends(get_current_user),
) -> dict:
    job = _job_or_404(db, job_id)
    changes = payload.model_dump(exclude_unset=True)
    if not changes:
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail="No valid fields to update")
    job = update_job(db, job, changes)
    return {"success": True, "job": job_to_display(job)}


@router.delete("/{job_id}")
def remove_job(job_id: int, db: Session = Depends(get_db), _user: User = Depends(get_current_user)) -> dict:
    delete_job(db, _job_or_404(db, job_id))
    return {"success": True, "message": "Job deleted"}


@router.get("/{job_id}/notes", response_model=list[JobNoteRead])
def read_job_notes(
    job_id: int,
    note_type: Optional[str] = Query(None),
    db: Session = Depends(get_db),
    _user: User = Depends(get_current_user),
) -> list[JobNoteRead]:
    _job_or_404(db, job_id)
    return [JobNoteRead.model_validate(n) for n in list_notes(db, job_id, note_type)]


@router.post("/{job_id}/notes", response_model=JobNoteRead, status_code=status.HTTP_201_CREATED)
def create_job_note(
    job_id: int,
    payload: JobNoteCreate,
    db: Session = Depends(get_db),
    current_user: User = Depends(get_current_user),
) -> JobNoteRead:
    job = _job_or_404(db, job_id)
    return JobNoteRead.model_validate(add_note(db, job, current_user.id, payload.content, payload.note_type))
