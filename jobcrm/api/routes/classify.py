# classify.py
from __future__ import annotations

from fastapi import APIRouter, Depends, HTTPException, Request, status
from sqlalchemy.orm import Session

from jobcrm.database import get_db
from jobcrm.models.user import User
from jobcrm.routers.dependencies import create_rate_limiter, get_current_user, get_llm
from jobcrm.schemas.classification import (
    BatchClassificationRequest,
    BatchClassificationResponse,
    ClassificationRequest,
    ClassificationResult,
    JobClassificationRequest,
)
from jobcrm.services.classification import (
    ClassificationError,
    classify_document,
    classify_documents_batch,
    classify_job_embeddings,
)
from jobcrm.services.job_service import get_job
from jobcrm.services.llm_client import LLMClient
from jobcrm.services.rate_limiter import rate_limiters
from jobcrm.services.tracing import extract_correlation_id


router = APIRouter(
    prefix="/classify",
    tags=["classification"],
    dependencies=[Depends(create_rate_limiter(rate_limiters.standard))],
)


@router.post("", response_model=ClassificationResult)
def classify(
    payload: ClassificationRequest,
    llm: LLMClient = Depends(get_llm),
    _user: User = Depends(get_current_user),
) -> ClassificationResult:
    try:
        return classify_document(llm, payload.content, payload.sourceHint)
    except ClassificationError as exc:
        raise HTTPException(status_code=status.HTTP_502_BAD_GATEWAY, detail=str(exc)) from exc


@router.post("/batch", response_model=BatchClassificationResponse)
def classify_batch(
    payload: BatchClassificationRequest,
    llm: LLMClient = Depends(get_llm),
    _user: User = Depends(get_current_user),
) -> BatchClassificationResponse:
    results = classify_documents_batch(llm, [doc.model_dump() for doc in payload.documents])
    failed = sum(1 for r in results if r.get("error"))
    return BatchClassificationResponse.model_validate(
        {"results": results, "processed": len(results) - failed, "failed": failed}
    )


@router.post("/job")
def classify_job(
    payload: JobClassificationRequest,
    request: Request,
    db: Session = Depends(get_db),
    llm: LLMClient = Depends(get_llm),
    _user: User = Depends(get_current_user),
) -> dict:
    """Label the stored knowledge chunks of one job that have no document type yet."""
    if get_job(db, payload.job_id) is None:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="Job not found")
    correlation_id = extract_correlation_id(request.headers)
    counts = classify_job_embeddings(db, llm, payload.job_id, correlation_id)
    return {"success": True, "jobId": payload.job_id, **counts, "correlation_id": correlation_id}
