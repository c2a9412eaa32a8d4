# documents.py
from __future__ import annotations

from fastapi import APIRouter, Depends, status
from sqlalchemy.orm import Session

from jobcrm.config import settings
from jobcrm.database import get_db
from jobcrm.models.user import User
from jobcrm.routers.dependencies import EnvelopeError, get_current_user, get_llm
from jobcrm.schemas.document import IngestRequest, IngestResponse, KnowledgeMatch, KnowledgeSearchRequest
from jobcrm.services.ingest_service import IngestValidationError, ingest_documents
from jobcrm.services.knowledge_base import search_knowledge
from jobcrm.services.llm_client import LLMClient


router = APIRouter(tags=["documents"])


@router.get("/ingest-docs")
def ingest_docs_get() -> None:
    raise EnvelopeError(
        status.HTTP_405_METHOD_NOT_ALLOWED,
        {"error": "Method not allowed. Use POST to ingest documents."},
    )


@router.post("/ingest-docs", response_model=IngestResponse)
def ingest_docs(
    payload: IngestRequest,
    db: Session = Depends(get_db),
    llm: LLMClient = Depends(get_llm),
    current_user: User = Depends(get_current_user),
) -> dict:
    try:
        return ingest_documents(
            db,
            llm,
            payload.files,
            job_id=payload.jobId,
            metadata=payload.metadata,
            user_id=current_user.id,
            storage_dir=settings.docs_storage_dir,
        )
    except IngestValidationError as exc:
        raise EnvelopeError(status.HTTP_400_BAD_REQUEST, {"error": str(exc)}) from exc
    except LookupError as exc:
        raise EnvelopeError(status.HTTP_404_NOT_FOUND, {"error": str(exc)}) from exc


@router.post("/knowledge/search", response_model=list[KnowledgeMatch])
def knowledge_search(
    payload: KnowledgeSearchRequest,
    db: Session = Depends(get_db),
    llm: LLMClient = Depends(get_llm),
    _user: User = Depends(get_current_user),
) -> list[dict]:
    return search_knowledge(
        db,
        llm,
        payload.query,
        k=payload.k,
        threshold=payload.threshold,
        entity_id=payload.entity_id,
    )
