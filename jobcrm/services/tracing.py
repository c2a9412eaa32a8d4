# tracing.py
from __future__ import annotations

import functools
import json
import logging
import time
import uuid
from typing import Any, Callable, Mapping

from sqlalchemy.exc import SQLAlchemyError

from jobcrm.config import settings
from jobcrm.database import SessionLocal
from jobcrm.models.pipeline_trace import PipelineTrace


logger = logging.getLogger(__name__)

MAX_METADATA_SIZE = 1024 * 1024

TRACE_STATUSES = ("success", "failure", "in_progress", "warning", "retry", "started")


class ServiceNames:
    INGEST = "ingest"
    ENRICH = "enrich"
    PROCESS_QUEUE = "process-queue"
    ENRICH_SINGLE = "enrich-single"
    ANALYZE_BATCH = "analyze-batch"
    PROCESS_PASS_B = "process-pass-b"
    CLASSIFICATION = "classification"
    AI = "ai"


class TraceEvents:
    INGEST_START = "ingest_start"
    INGEST_VALIDATION = "validation"
    INGEST_DB_INSERT = "db_insert"
    INGEST_ENRICH_TRIGGER = "enrich_trigger"
    INGEST_END = "ingest_end"
    INGEST_ERROR = "ingest_error"

    ENRICH_START = "enrich_start"
    ENRICH_QUEUE_CREATE = "queue_create"
    ENRICH_END = "enrich_end"

    ENRICH_SINGLE_START = "enrich_single_start"
    ENRICH_SINGLE_OPENAI_CALL = "openai_call"
    ENRICH_SINGLE_EMBED_CREATE = "embed_create"
    ENRICH_SINGLE_DB_SAVE = "db_save"
    ENRICH_SINGLE_END = "enrich_single_end"

    CLASSIFICATION_START = "classification_start"
    CLASSIFICATION_COMPLETE = "classification_complete"
    BATCH_CLASSIFICATION_START = "batch_classification_start"
    BATCH_CLASSIFICATION_COMPLETE = "batch_classification_complete"


def tracing_enabled() -> bool:
    return bool(settings.tracing_enabled)


def _sanitize_metadata(metadata: Mapping[str, Any] | None) -> dict[str, Any] | None:
    if metadata is None:
        return None
    encoded = json.dumps(metadata, default=str)
    if len(encoded) > MAX_METADATA_SIZE:
        return {
            "error": "Metadata too large, truncated",
            "originalSize": len(encoded),
            "maxSize": MAX_METADATA_SIZE,
        }
    # Round-trip so datetimes and other non-JSON values are stored as strings.
    return json.loads(encoded)


def log_trace_event(
    *,
    correlation_id: str,
    service_name: str,
    event_name: str,
    status: str,
    job_id: str | int | None = None,
    duration_ms: float | None = None,
    metadata: Mapping[str, Any] | None = None,
    error_message: str | None = None,
) -> None:
    """Write one row to ``pipeline_traces``.

    A failed write is logged and dropped; the calling pipeline keeps going.
    """
    if not tracing_enabled():
        return

    row = PipelineTrace(
        correlation_id=correlation_id,
        job_id=str(job_id) if job_id is not None else None,
        service_name=service_name,
        operation=event_name,
        status=status,
        duration_ms=duration_ms,
        trace_metadata=_sanitize_metadata(metadata),
        error_message=error_message,
    )
    db = SessionLocal()
    try:
        db.add(row)
        db.commit()
    except SQLAlchemyError as exc:
        db.rollback()
        logger.warning("Trace write failed service=%s event=%s: %s", service_name, event_name, exc)
    finally:
        db.close()

    if status == "failure":
        logger.error(
            "Pipeline failure correlation_id=%s service=%s event=%s error=%s",
            correlation_id,
            service_name,
            event_name,
            error_message,
        )


class Timer:
    def __init__(self) -> None:
        self._start = time.perf_counter()

    def stop(self) -> float:
        return round((time.perf_counter() - self._start) * 1000, 2)


def with_tracing(
    service_name: str,
    event_name: str,
    get_correlation_id: Callable[..., str],
    get_job_id: Callable[..., Any] | None = None,
):
    """Decorator emitting ``<event>_start`` / ``<event>_end`` traces around a call."""

    def decorator(fn):
        @functools.wraps(fn)
        def wrapper(*args, **kwargs):
            correlation_id = get_correlation_id(*args, **kwargs)
            job_id = get_job_id(*args, **kwargs) if get_job_id else None
            timer = Timer()
            log_trace_event(
                correlation_id=correlation_id,
                job_id=job_id,
                service_name=service_name,
                event_name=f"{event_name}_start",
                status="in_progress",
            )
            try:
                result = fn(*args, **kwargs)
            except Exception as exc:
                log_trace_event(
                    correlation_id=correlation_id,
                    job_id=job_id,
                    service_name=service_name,
                    event_name=f"{event_name}_end",
                    status="failure",
                    duration_ms=timer.stop(),
                    error_message=str(exc) or "Unknown error",
                )
                raise
            log_trace_event(
                correlation_id=correlation_id,
                job_id=job_id,
                service_name=service_name,
                event_name=f"{event_name}_end",
                status="success",
                duration_ms=timer.stop(),
            )
            return result

        return wrapper

    return decorator


def extract_correlation_id(
    headers: Mapping[str, str] | None = None,
    body: Any = None,
    fallback: str | None = None,
) -> str:
    if headers is not None:
        header_value = headers.get("x-correlation-id")
        if header_value:
            return header_value
    if isinstance(body, dict) and body.get("correlationId"):
        return str(body["correlationId"])
    return fallback or str(uuid.uuid4())


def add_correlation_headers(headers: Mapping[str, str] | None, correlation_id: str) -> dict[str, str]:
    return {**(headers or {}), "x-correlation-id": correlation_id}
