# generate.py
"""Downloadable application documents for a job.

Both endpoints are plain links opened by the browser, so they take no bearer token.
"""
from __future__ import annotations

import logging
from typing import Optional

from fastapi import APIRouter, Depends, Query, status
from fastapi.responses import FileResponse, HTMLResponse, PlainTextResponse, Response
from sqlalchemy.orm import Session

from jobcrm.database import get_db
from jobcrm.services.document_generator import (
    ResumeNotFoundError,
    cover_letter_filename,
    render_cover_letter,
    resume_file,
    resume_filename,
)
from jobcrm.services.job_service import get_job


router = APIRouter(prefix="/jobs", tags=["documents"])

logger = logging.getLogger(__name__)


def _lookup(db: Session, raw_id: str):
    try:
        job_id = int(raw_id)
    except ValueError:
        return None
    return get_job(db, job_id)


@router.get("/generate-cover-letter")
def generate_cover_letter(
    job_id: Optional[str] = Query(None, alias="jobId"),
    db: Session = Depends(get_db),
) -> Response:
    if not job_id:
        return PlainTextResponse("Missing jobId", status_code=status.HTTP_400_BAD_REQUEST)
    job = _lookup(db, job_id)
    if job is None:
        return PlainTextResponse("Job not found", status_code=status.HTTP_404_NOT_FOUND)

    html = render_cover_letter(job)
    logger.info("cover letter generated job_id=%s", job.id)
    return HTMLResponse(
        html,
        headers={"Content-Disposition": f'inline; filename="{cover_letter_filename(job)}"'},
    )


@router.get("/generate-resume")
def generate_resume(
    job_id: Optional[str] = Query(None, alias="jobId"),
    db: Session = Depends(get_db),
) -> Response:
    if not job_id:
        return PlainTextResponse("Missing jobId parameter", status_code=status.HTTP_400_BAD_REQUEST)
    job = _lookup(db, job_id)
    if job is None:
        return PlainTextResponse("Job not found", status_code=status.HTTP_404_NOT_FOUND)
    try:
        path = resume_file()
    except ResumeNotFoundError as exc:
        logger.error("resume download failed job_id=%s: %s", job.id, exc)
        return PlainTextResponse(str(exc), status_code=status.HTTP_500_INTERNAL_SERVER_ERROR)
    return FileResponse(path, media_type="application/pdf", filename=resume_filename(job))
