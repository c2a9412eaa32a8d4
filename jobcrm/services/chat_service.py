# chat_service.py
from __future__ import annotations

import json
import logging
from datetime import date
from typing import Any, Sequence

from sqlalchemy.orm import Session

from jobcrm.config import settings
from jobcrm.models.chat_usage import ChatUsage
from jobcrm.schemas.chat import ChatMessage
from jobcrm.schemas.profile import UserProfile
from jobcrm.services.benchmarks import benchmark, benchmark_function
from jobcrm.services.knowledge_base import search_knowledge
from jobcrm.services.llm_client import ChatResult, LLMClient, LLMConfigurationError
from jobcrm.services.rate_limiter import RateLimitExceeded, rate_limiters


logger = logging.getLogger(__name__)

CHAT_TEMPERATURE = 0.7
CHAT_MAX_TOKENS = 500
RAG_MATCH_THRESHOLD = 0.3
RAG_MATCH_COUNT = 5

GUIDELINES = """GUIDELINES:
- Always consider the user's profile, preferences, strengths, and dealbreakers in your responses
- Be concise and actionable in your advice
- Reference specific job details when available and explain how they align with the user's profile
- If discussing compensation, consider their minimum base compensation requirement
- When suggesting roles, factor in their remote work preference and location
- Highlight how opportunities match their strengths and avoid their red flags/dealbreakers
- If asked about topics unrelated to job hunting, politely redirect to career-related topics
- Keep responses under 250 words unless more detail is specifically requested"""


class ChatQuotaExceeded(Exception):
    def __init__(self, kind: str, exc: RateLimitExceeded):
        self.kind = kind
        self.reset_at = exc.reset_at
        message = "Rate limit exceeded" if kind == "hourly" else "Daily rate limit exceeded"
        super().__init__(message)

    def to_dict(self) -> dict[str, Any]:
        return {"error": str(self), "type": self.kind, "reset": self.reset_at.isoformat()}


def enforce_chat_quota(user_id: int) -> None:
    """Count one chat request against both quotas; nothing is counted when either is exhausted."""
    key = str(user_id)
    limits = (("hourly", rate_limiters.chat_hourly), ("daily", rate_limiters.chat_daily))
    for kind, limiter in limits:
        try:
            limiter.check(key)
        except RateLimitExceeded as exc:
            raise ChatQuotaExceeded(kind, exc) from exc
    for kind, limiter in limits:
        try:
            limiter.consume(key)
        except RateLimitExceeded as exc:
            raise ChatQuotaExceeded(kind, exc) from exc


def _or(value: Any, fallback: str) -> str:
    return str(value) if value else fallback


def _json_or(value: Any, fallback: str) -> str:
    return json.dumps(value) if value else fallback


def format_profile_context(profile: UserProfile) -> str:
    comp = f"${profile.min_base_comp:,}" if profile.min_base_comp else "Not specified"
    return "\n".join(
        [
            "USER PROFILE:",
            f"Name: {_or(profile.name, 'User')}",
            f"Current Title: {_or(profile.current_title, 'Not specified')}",
            f"Seniority Level: {_or(profile.seniority, 'Not specified')}",
            f"Location: {_or(profile.location, 'Not specified')}",
            f"Minimum Base Compensation: {comp}",
            f"Remote Work Preference: {_or(profile.remote_pref, 'Not specified')}",
            f"Key Strengths: {_json_or(profile.strengths, 'None specified')}",
            f"Red Flags: {_json_or(profile.red_flags, 'None specified')}",
            f"Dealbreakers: {_json_or(profile.dealbreakers, 'None specified')}",
            f"Other Preferences: {_json_or(profile.preferences, 'None specified')}",
        ]
    )


def build_system_prompt(profile: UserProfile, rag_context: str) -> str:
    if rag_context:
        context_block = (
            "RELEVANT JOB DATA:\n---\n"
            f"{rag_context}\n---\n\n"
            "Use this job data context along with the user profile to provide highly personalized responses. "
            "Reference specific job details, fit scores, and alignment with the user's preferences when relevant."
        )
    else:
        context_block = (
            "No specific job data found for this query. "
            "Use the user profile to provide personalized general job hunting advice."
        )
    return (
        "You are JobHunt Hub's AI assistant, specialized in helping users with job hunting, "
        "career advice, and analyzing job opportunities.\n\n"
        f"{format_profile_context(profile)}\n\n"
        f"{context_block}\n\n"
        f"{GUIDELINES}"
    )


def latest_user_message(messages: Sequence[ChatMessage]) -> str:
    for message in reversed(messages):
        if message.role == "user":
            return message.content
    return ""


def retrieve_context(db: Session, llm: LLMClient, query: str) -> list[str]:
    if not query.strip():
        return []
    try:
        matches = search_knowledge(db, llm, query, k=RAG_MATCH_COUNT, threshold=RAG_MATCH_THRESHOLD)
    except LLMConfigurationError:
        raise
    except Exception:
        logger.exception("RAG context retrieval failed")
        return []
    return [m["content"] for m in matches]


def record_chat_usage(db: Session, user_id: int, tokens: int, *, today: date | None = None) -> ChatUsage | None:
    today = today or date.today()
    try:
        row = db.query(ChatUsage).filter(ChatUsage.user_id == user_id, ChatUsage.usage_date == today).first()
        if row is None:
            row = ChatUsage(user_id=user_id, usage_date=today, request_count=0, tokens_used=0)
            db.add(row)
        row.request_count = (row.request_count or 0) + 1
        row.tokens_used = (row.tokens_used or 0) + max(0, tokens)
        db.commit()
        return row
    except Exception:
        db.rollback()
        logger.exception("Failed to update chat usage for user %s", user_id)
        return None


@benchmark_function("chat")
def chat_reply(
    db: Session,
    llm: LLMClient,
    *,
    user_id: int,
    profile: UserProfile,
    messages: Sequence[ChatMessage],
) -> tuple[ChatResult, int]:
    """Answer the conversation; returns the completion and the number of context chunks used."""
    chunks = retrieve_context(db, llm, latest_user_message(messages))
    system_prompt = build_system_prompt(profile, "\n\n".join(chunks))
    conversation = [{"role": "system", "content": system_prompt}]
    conversation.extend({"role": m.role, "content": m.content} for m in messages if m.role != "system")

    result = llm.chat(
        conversation,
        model=settings.chat_model,
        temperature=CHAT_TEMPERATURE,
        max_tokens=CHAT_MAX_TOKENS,
    )
    benchmark.record_token_usage(result.model, result.prompt_tokens, result.completion_tokens, result.total_tokens)
    record_chat_usage(db, user_id, result.total_tokens)
    return result, len(chunks)
