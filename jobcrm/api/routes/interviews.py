# interviews.py
from __future__ import annotations

from fastapi import APIRouter, Depends, HTTPException, Query, status
from sqlalchemy.orm import Session

from jobcrm.database import get_db
from jobcrm.models.user import User
from jobcrm.routers.dependencies import get_current_user
from jobcrm.schemas.interview import (
    BulkRoundsDelete,
    BulkRoundsRequest,
    BulkRoundsUpdate,
    InterviewRoundCreate,
    InterviewRoundUpdate,
)
from jobcrm.services.interview_service import (
    DuplicateRoundError,
    build_timeline,
    bulk_delete_rounds,
    bulk_update_rounds,
    bulk_upsert_rounds,
    create_round,
    delete_round,
    get_round_with_notes,
    list_rounds,
    round_to_dict,
    update_round,
)
from jobcrm.services.job_service import get_job


router = APIRouter(prefix="/jobs", tags=["interviews"])


def _job_or_404(db: Session, job_id: int):
    job = get_job(db, job_id)
    if job is None:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="Job not found")
    return job


@router.get("/interviews/timeline")
def interview_timeline(
    days: int = Query(30, ge=1, le=365),
    status_filter: str = Query("scheduled", alias="status"),
    db: Session = Depends(get_db),
    _user: User = Depends(get_current_user),
) -> dict:
    return build_timeline(db, days=days, status=status_filter)


@router.get("/{job_id}/interviews")
def read_rounds(job_id: int, db: Session = Depends(get_db), _user: User = Depends(get_current_user)) -> dict:
    _job_or_404(db, job_id)
    return {"success": True, "rounds": list_rounds(db, job_id)}


@router.post("/{job_id}/interviews", status_code=status.HTTP_201_CREATED)
def add_round(
    job_id: int,
    payload: InterviewRoundCreate,
    db: Session = Depends(get_db),
    current_user: User = Depends(get_current_user),
) -> dict:
    job = _job_or_404(db, job_id)
    try:
        round_ = create_round(db, job, current_user.id, payload.model_dump())
    except DuplicateRoundError as exc:
        raise HTTPException(status_code=status.HTTP_409_CONFLICT, detail=str(exc)) from exc
    return {"success": True, "round": round_to_dict(round_)}


@router.post("/{job_id}/interviews/bulk", status_code=status.HTTP_201_CREATED)
def bulk_create_rounds(
    job_id: int,
    payload: BulkRoundsRequest,
    db: Session = Depends(get_db),
    current_user: User = Depends(get_current_user),
) -> dict:
    job = _job_or_404(db, job_id)
    if not payload.template and not payload.rounds:
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail="Either rounds or template is required")
    rounds = bulk_upsert_rounds(
        db,
        job,
        current_user.id,
        [r.model_dump() for r in payload.rounds],
        template=payload.template,
    )
    return {"success": True, "rounds": [round_to_dict(r) for r in rounds], "count": len(rounds)}


@router.patch("/{job_id}/interviews/bulk")
def bulk_patch_rounds(
    job_id: int,
    payload: BulkRoundsUpdate,
    db: Session = Depends(get_db),
    _user: User = Depends(get_current_user),
) -> dict:
    job = _job_or_404(db, job_id)
    updates = payload.updates.model_dump(exclude_unset=True)
    if not payload.roundIds or not updates:
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail="roundIds and updates are required")
    rounds = bulk_update_rounds(db, job, payload.roundIds, updates)
    return {"success": True, "rounds": [round_to_dict(r) for r in rounds], "count": len(rounds)}


@router.delete("/{job_id}/interviews/bulk")
def bulk_remove_rounds(
    job_id: int,
    payload: BulkRoundsDelete,
    db: Session = Depends(get_db),
    _user: User = Depends(get_current_user),
) -> dict:
    job = _job_or_404(db, job_id)
    removed = bulk_delete_rounds(db, job, payload.roundIds)
    return {"success": True, "deleted": removed}


@router.get("/{job_id}/interviews/{round_id}")
def read_round(
    job_id: int,
    round_id: int,
    db: Session = Depends(get_db),
    _user: User = Depends(get_current_user),
) -> dict:
    _job_or_404(db, job_id)
    data = get_round_with_notes(db, job_id, round_id)
    if data is None:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="Interview round not found")
    return {"success": True, "round": data}


@router.put("/{job_id}/interviews/{round_id}")
def edit_round(
    job_id: int,
    round_id: int,
    payload: InterviewRoundUpdate,
    db: Session = Depends(get_db),
    current_user: User = Depends(get_current_user),
) -> dict:
    job = _job_or_404(db, job_id)
    round_ = update_round(db, job, round_id, current_user.id, payload.model_dump(exclude_unset=True))
    if round_ is None:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="Interview round not found")
    return {"success": True, "round": round_to_dict(round_)}


@router.delete("/{job_id}/interviews/{round_id}")
def remove_round(
    job_id: int,
    round_id: int,
    db: Session = Depends(get_db),
    _user: User = Depends(get_current_user),
) -> dict:
    job = _job_or_404(db, job_id)
    if not delete_round(db, job, round_id):
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="Interview round not found")
    return {"success": True, "message": "Interview round deleted"}
