# classification.py
"""Document type classification.

Cheap header and keyword rules answer first; the chat model is only asked when
no rule fires with at least ``CONFIDENCE_THRESHOLDS["MEDIUM"]`` confidence.
"""
from __future__ import annotations

import json
import logging
from concurrent.futures import ThreadPoolExecutor
from datetime import datetime, timezone
from typing import Any

from sqlalchemy.orm import Session

from jobcrm.models.knowledge_chunk import KnowledgeChunk
from jobcrm.schemas.classification import ClassificationResult
from jobcrm.services.llm_client import LLMClient, LLMConfigurationError
from jobcrm.services.tracing import ServiceNames, Timer, TraceEvents, log_trace_event


logger = logging.getLogger(__name__)

DOCUMENT_TAXONOMY: dict[str, list[str]] = {
    "communication": [
        "communication/email",
        "communication/chat-message",
        "communication/meeting-notes",
        "communication/calendar-update",
        "communication/phone-call",
    ],
    "reference": [
        "reference/technical-doc",
        "reference/company-info",
        "reference/process-guide",
        "reference/research-paper",
        "reference/tutorial",
    ],
    "job-related": [
        "job-related/job-description",
        "job-related/resume",
        "job-related/interview-notes",
        "job-related/application-status",
        "job-related/company-research",
        "job-related/salary-info",
    ],
    "personal": [
        "personal/note",
        "personal/task",
        "personal/idea",
        "personal/reminder",
        "personal/reflection",
    ],
    "external": [
        "external/scraped-content",
        "external/imported-document",
        "external/api-data",
        "external/web-article",
    ],
}
ALL_DOCUMENT_TYPES = tuple(t for group in DOCUMENT_TAXONOMY.values() for t in group)

FEW_SHOT_EXAMPLES = (
    ("Subject: Re: Q4 Planning Meeting - agenda items needed for tomorrow's session", "communication/email"),
    (
        "# API Documentation for User Authentication Service\n\n## Overview\n"
        "This document outlines the authentication endpoints...",
        "reference/technical-doc",
    ),
    (
        "Senior Software Engineer - Python/Django (Remote)\nCompany: TechCorp\nLocation: Remote (US timezone)\n"
        "Salary: $120k-$160k\n\nWe are looking for an experienced backend engineer...",
        "job-related/job-description",
    ),
    (
        "Meeting with Sarah from TechCorp went really well. Technical questions focused on system design and "
        "Python experience. Next step is final round with the team lead.",
        "job-related/interview-notes",
    ),
    (
        "Remember to review John's pull request before EOD. Also need to update the deployment scripts for the "
        "new environment variables.",
        "personal/task",
    ),
    (
        "TechCorp Company Research:\n- Founded in 2018\n- Series B funded ($50M)\n- ~200 employees\n"
        "- Known for strong engineering culture\n- Recent product launches in AI space",
        "job-related/company-research",
    ),
    (
        "Team standup notes:\n- Sprint planning tomorrow at 10am\n- Demo scheduled for Friday\n"
        "- Blocker: waiting for design approval on checkout flow",
        "communication/meeting-notes",
    ),
    (
        "Calendar Update: Backend Team Retrospective moved to Thursday 2pm due to conflict with all-hands meeting",
        "communication/calendar-update",
    ),
    (
        "Scraped from LinkedIn: '10 Best Practices for React Performance Optimization' - article covers "
        "memoization, code splitting, and bundle analysis techniques",
        "external/web-article",
    ),
    (
        "Great idea for the mobile app: implement swipe gestures for quick actions like mark as done, archive, "
        "or snooze. Could significantly improve UX for power users.",
        "personal/idea",
    ),
)

CONFIDENCE_THRESHOLDS = {"HIGH": 0.9, "MEDIUM": 0.8, "LOW": 0.6, "MINIMUM": 0.5}
CLASSIFICATION_MODEL = "gpt-4o-mini"
RULE_MODEL = "rule-based"
MAX_CONTENT_CHARS = 4000
BATCH_WORKERS = 5


class ClassificationError(RuntimeError):
    pass


def _now_iso() -> str:
    return datetime.now(timezone.utc).isoformat()


def build_classification_prompt(content: str, source_hint: str | None = None) -> str:
    examples = "\n\n".join(f'Content: "{text}"\nClassification: {label}' for text, label in FEW_SHOT_EXAMPLES)
    taxonomy = json.dumps(DOCUMENT_TAXONOMY, indent=2)
    body = content[:MAX_CONTENT_CHARS] + ("..." if len(content) > MAX_CONTENT_CHARS else "")
    hint = f"\nSource Hint: {source_hint}" if source_hint else ""
    return (
        "You are a document classification expert. Classify the document into exactly one category "
        "from the provided taxonomy.\n\n"
        f"EXAMPLES:\n{examples}\n\n"
        f"TAXONOMY:\n{taxonomy}\n\n"
        f"CONTENT:\n---\n{body}{hint}\n---\n\n"
        "Respond with a valid JSON object in this exact format:\n"
        "{\n"
        '  "documentType": "category/subcategory",\n'
        '  "confidence": 0.95,\n'
        '  "reasoning": "Brief explanation of why this classification was chosen"\n'
        "}\n\n"
        "The documentType must be exactly one of the valid types from the taxonomy. "
        "Confidence should be between 0.0 and 1.0."
    )


def _rule_result(document_type: str, confidence: float) -> ClassificationResult:
    return ClassificationResult(
        documentType=document_type,
        confidence=confidence,
        model=RULE_MODEL,
        timestamp=_now_iso(),
    )


def classify_with_rules(content: str, source_hint: str | None = None) -> ClassificationResult | None:
    lower = content.lower()
    first_line = lower.split("\n", 1)[0]

    if source_hint == "email" or "subject:" in first_line or ("from:" in lower and "to:" in lower):
        return _rule_result("communication/email", 0.95)
    if "calendar" in lower or "meeting moved" in lower or "event:" in lower:
        return _rule_result("communication/calendar-update", 0.90)
    if ("job" in lower or "position" in lower) and (
        "requirements" in lower or "responsibilities" in lower or "salary" in lower
    ):
        return _rule_result("job-related/job-description", 0.85)
    if "# " in lower and ("api" in lower or "documentation" in lower or "## overview" in lower):
        return _rule_result("reference/technical-doc", 0.88)
    return None


def classify_with_llm(llm: LLMClient, content: str, source_hint: str | None = None) -> ClassificationResult:
    try:
        response = llm.chat(
            [{"role": "user", "content": build_classification_prompt(content, source_hint)}],
            model=CLASSIFICATION_MODEL,
            temperature=0.1,
            max_tokens=200,
            response_format={"type": "json_object"},
        )
        text = response.content
        if not text:
            raise ValueError("No response from OpenAI")
        try:
            parsed = json.loads(text)
        except ValueError:
            raise ValueError(f"Failed to parse OpenAI response as JSON: {text}") from None

        document_type = parsed.get("documentType") if isinstance(parsed, dict) else None
        confidence = parsed.get("confidence") if isinstance(parsed, dict) else None
        if not document_type or not isinstance(document_type, str):
            raise ValueError("Invalid documentType in response")
        if document_type not in ALL_DOCUMENT_TYPES:
            raise ValueError(f"Invalid document type: {document_type}")
        if isinstance(confidence, bool) or not isinstance(confidence, (int, float)) or not 0 <= confidence <= 1:
            raise ValueError("Invalid confidence score")
    except LLMConfigurationError:
        raise
    except Exception as exc:
        raise ClassificationError(f"Classification failed: {exc}") from exc

    return ClassificationResult(
        documentType=document_type,
        confidence=float(confidence),
        model=CLASSIFICATION_MODEL,
        timestamp=_now_iso(),
    )


def classify_document(llm: LLMClient, content: str, source_hint: str | None = None) -> ClassificationResult:
    rule = classify_with_rules(content, source_hint)
    if rule is not None and rule.confidence >= CONFIDENCE_THRESHOLDS["MEDIUM"]:
        return rule
    return classify_with_llm(llm, content, source_hint)


def classify_documents_batch(llm: LLMClient, documents: list[dict[str, Any]]) -> list[dict[str, Any]]:
    """Classify every document; a failure is reported on its own item."""

    def _one(doc: dict[str, Any]) -> dict[str, Any]:
        try:
            result = classify_document(llm, doc["content"], doc.get("sourceHint"))
        except (ClassificationError, LLMConfigurationError) as exc:
            return {"id": doc["id"], "error": str(exc)}
        return {"id": doc["id"], "classification": result.model_dump()}

    if not documents:
        return []
    with ThreadPoolExecutor(max_workers=min(BATCH_WORKERS, len(documents))) as pool:
        return list(pool.map(_one, documents))


def get_document_type_hierarchy(document_type: str) -> list[str]:
    parts = document_type.split("/")
    return ["/".join(parts[:i]) for i in range(1, len(parts) + 1)]


def is_valid_document_type(document_type: str) -> bool:
    return document_type in ALL_DOCUMENT_TYPES


def get_subcategories(parent: str) -> list[str]:
    depth = len(parent.split("/")) + 1
    return [t for t in ALL_DOCUMENT_TYPES if t.startswith(parent + "/") and len(t.split("/")) == depth]


def classify_and_update_embedding(
    db: Session,
    llm: LLMClient,
    chunk: KnowledgeChunk,
    correlation_id: str,
    source_hint: str | None = None,
) -> dict[str, Any]:
    """Classify one stored chunk; the label is written only at MINIMUM confidence or above."""
    timer = Timer()
    log_trace_event(
        correlation_id=correlation_id,
        service_name=ServiceNames.CLASSIFICATION,
        event_name=TraceEvents.CLASSIFICATION_START,
        status="in_progress",
        metadata={"embeddingId": chunk.id, "contentLength": len(chunk.content or "")},
    )
    try:
        result = classify_document(llm, chunk.content or "", source_hint)
    except (ClassificationError, LLMConfigurationError) as exc:
        log_trace_event(
            correlation_id=correlation_id,
            service_name=ServiceNames.CLASSIFICATION,
            event_name=TraceEvents.CLASSIFICATION_COMPLETE,
            status="failure",
            duration_ms=timer.stop(),
            error_message=str(exc),
            metadata={"embeddingId": chunk.id},
        )
        return {"success": False, "error": str(exc)}

    applied = result.confidence >= CONFIDENCE_THRESHOLDS["MINIMUM"]
    if applied:
        chunk.document_type = result.documentType
        chunk.classification_confidence = result.confidence
        chunk.classification_model = result.model
        db.commit()

    log_trace_event(
        correlation_id=correlation_id,
        service_name=ServiceNames.CLASSIFICATION,
        event_name=TraceEvents.CLASSIFICATION_COMPLETE,
        status="success",
        duration_ms=timer.stop(),
        metadata={
            "embeddingId": chunk.id,
            "documentType": result.documentType,
            "confidence": result.confidence,
            "model": result.model,
            "applied": applied,
        },
    )
    return {"success": True, "documentType": result.documentType, "confidence": result.confidence, "applied": applied}


def classify_job_embeddings(db: Session, llm: LLMClient, job_id: int, correlation_id: str) -> dict[str, int]:
    """Label every unclassified chunk of a job, one at a time on the request session."""
    timer = Timer()
    log_trace_event(
        correlation_id=correlation_id,
        job_id=job_id,
        service_name=ServiceNames.CLASSIFICATION,
        event_name=TraceEvents.BATCH_CLASSIFICATION_START,
        status="in_progress",
    )
    chunks = (
        db.query(KnowledgeChunk)
        .filter(
            KnowledgeChunk.entity_id == job_id,
            KnowledgeChunk.entity_type == "job",
            KnowledgeChunk.document_type.is_(None),
        )
        .order_by(KnowledgeChunk.id.asc())
        .all()
    )

    counts = {"classified": 0, "failed": 0, "skipped": 0}
    for chunk in chunks:
        source = (chunk.chunk_metadata or {}).get("source")
        outcome = classify_and_update_embedding(db, llm, chunk, correlation_id, str(source) if source else None)
        if not outcome["success"]:
            counts["failed"] += 1
        elif outcome["applied"]:
            counts["classified"] += 1
        else:
            counts["skipped"] += 1

    log_trace_event(
        correlation_id=correlation_id,
        job_id=job_id,
        service_name=ServiceNames.CLASSIFICATION,
        event_name=TraceEvents.BATCH_CLASSIFICATION_COMPLETE,
        status="success",
        duration_ms=timer.stop(),
        metadata=counts,
    )
    return counts
