# chat.py
from __future__ import annotations

import logging

from fastapi import APIRouter, Depends, status
from sqlalchemy.orm import Session

from jobcrm.database import get_db
from jobcrm.models.user import User
from jobcrm.routers.dependencies import EnvelopeError, get_current_user, get_llm
from jobcrm.schemas.chat import ChatMessage, ChatRequest, ChatResponse, ChatUsageRead
from jobcrm.services.chat_service import ChatQuotaExceeded, chat_reply, enforce_chat_quota
from jobcrm.services.llm_client import LLMClient
from jobcrm.services.profile_service import get_user_profile


router = APIRouter(prefix="/chat", tags=["chat"])

logger = logging.getLogger(__name__)


@router.post("", response_model=ChatResponse)
def chat(
    payload: ChatRequest,
    db: Session = Depends(get_db),
    llm: LLMClient = Depends(get_llm),
    current_user: User = Depends(get_current_user),
) -> ChatResponse:
    profile = get_user_profile(db, current_user.id)
    if profile is None:
        raise EnvelopeError(status.HTTP_403_FORBIDDEN, {"error": "User profile not found"})

    if not payload.messages:
        raise EnvelopeError(status.HTTP_400_BAD_REQUEST, {"error": "Messages are required"})

    try:
        enforce_chat_quota(current_user.id)
    except ChatQuotaExceeded as exc:
        logger.info("chat quota hit user=%s type=%s", current_user.id, exc.kind)
        raise EnvelopeError(status.HTTP_429_TOO_MANY_REQUESTS, exc.to_dict()) from exc

    result, context_chunks = chat_reply(
        db,
        llm,
        user_id=current_user.id,
        profile=profile,
        messages=payload.messages,
    )
    return ChatResponse(
        message=ChatMessage(role="assistant", content=result.content),
        model=result.model,
        usage=ChatUsageRead(
            prompt_tokens=result.prompt_tokens,
            completion_tokens=result.completion_tokens,
            total_tokens=result.total_tokens,
        ),
        context_chunks=context_chunks,
    )
