# enrichment.py
"""Job enrichment endpoints.

``/jobs/enrich`` and ``/jobs/enrich/v2`` are called by the browser extension with a
shared ``x-api-key``; their JSON envelopes are part of the extension contract.
"""
from __future__ import annotations

import json
import logging
from typing import Any

from fastapi import APIRouter, Depends, HTTPException, Request, Response, status
from fastapi.responses import JSONResponse
from pydantic import ValidationError
from sqlalchemy.orm import Session
from starlette.concurrency import run_in_threadpool

from jobcrm.config import settings
from jobcrm.database import get_db
from jobcrm.models.user import User
from jobcrm.routers.dependencies import get_current_user, get_llm, secret_matches
from jobcrm.schemas.enrichment import EnrichmentRequest, ReEnrichRequest
from jobcrm.services.enrichment_service import (
    EnrichmentError,
    enrich_existing_job,
    enrich_posting_v1,
    enrich_posting_v2,
)
from jobcrm.services.feature_flags import get_enrichment_endpoint, is_enrichment_audit_ui_enabled
from jobcrm.services.job_service import enrichment_to_display, get_job
from jobcrm.services.llm_client import LLMClient, LLMConfigurationError
from jobcrm.services.profile_service import ProfileNotFoundError
from jobcrm.services.rate_limiter import RateLimitExceeded, client_key, rate_limiters
from jobcrm.services.tracing import (
    ServiceNames,
    Timer,
    TraceEvents,
    add_correlation_headers,
    extract_correlation_id,
    log_trace_event,
)


router = APIRouter(prefix="/jobs", tags=["enrichment"])

logger = logging.getLogger(__name__)

V2_CORS_HEADERS = {
    "Access-Control-Allow-Origin": "*",
    "Access-Control-Allow-Methods": "POST, OPTIONS",
    "Access-Control-Allow-Headers": "Content-Type, x-api-key, x-correlation-id",
}
V1_CORS_HEADERS = {
    "Access-Control-Allow-Origin": "*",
    "Access-Control-Allow-Methods": "POST, OPTIONS",
    "Access-Control-Allow-Headers": "Content-Type, x-api-key",
}


class _InvalidJSON(ValueError):
    pass


async def _read_json(request: Request) -> Any:
    raw = await request.body()
    try:
        return json.loads(raw or b"")
    except ValueError as exc:
        raise _InvalidJSON(str(exc)) from exc


def validation_details(exc: ValidationError) -> list[dict[str, str]]:
    return [
        {"path": ".".join(str(p) for p in err.get("loc", ())), "message": err.get("msg", "")}
        for err in exc.errors()
    ]


def _parse_request(body: Any) -> EnrichmentRequest:
    if not isinstance(body, dict):
        raise _InvalidJSON("Request body must be a JSON object")
    return EnrichmentRequest.model_validate(body)


@router.options("/enrich/v2")
def enrich_v2_preflight() -> Response:
    return Response(status_code=status.HTTP_200_OK, headers={**V2_CORS_HEADERS, "Access-Control-Max-Age": "86400"})


@router.post("/enrich/v2")
async def enrich_v2(request: Request, db: Session = Depends(get_db), llm: LLMClient = Depends(get_llm)) -> JSONResponse:
    correlation_id = extract_correlation_id(request.headers)
    headers = add_correlation_headers(V2_CORS_HEADERS, correlation_id)
    timer = Timer()

    def envelope(status_code: int, content: dict[str, Any]) -> JSONResponse:
        return JSONResponse(status_code=status_code, content={**content, "correlation_id": correlation_id}, headers=headers)

    log_trace_event(
        correlation_id=correlation_id,
        service_name=ServiceNames.INGEST,
        event_name=TraceEvents.INGEST_START,
        status="started",
    )

    if not secret_matches(request.headers.get("x-api-key"), settings.extension_api_key):
        return envelope(status.HTTP_401_UNAUTHORIZED, {"success": False, "error": "Invalid or missing API key"})

    try:
        rate_limiters.enrichment.consume(client_key(request.headers.get("x-forwarded-for")))
    except RateLimitExceeded:
        return envelope(
            status.HTTP_429_TOO_MANY_REQUESTS,
            {"success": False, "error": "Rate limit exceeded. Please try again later."},
        )

    try:
        raw = await _read_json(request)
        payload = _parse_request(raw)
    except _InvalidJSON:
        return envelope(status.HTTP_400_BAD_REQUEST, {"success": False, "error": "Request body must be valid JSON"})
    except ValidationError as exc:
        return envelope(
            status.HTTP_400_BAD_REQUEST,
            {"success": False, "error": "Invalid request data", "details": validation_details(exc)},
        )

    try:
        data = await run_in_threadpool(enrich_posting_v2, db, llm, payload, raw, correlation_id)
    except LLMConfigurationError:
        raise
    except (EnrichmentError, ProfileNotFoundError) as exc:
        log_trace_event(
            correlation_id=correlation_id,
            service_name=ServiceNames.INGEST,
            event_name=TraceEvents.INGEST_END,
            status="failure",
            duration_ms=timer.stop(),
            error_message=str(exc),
        )
        return envelope(
            status.HTTP_500_INTERNAL_SERVER_ERROR,
            {"success": False, "error": "Failed to enrich job posting", "details": str(exc)},
        )

    log_trace_event(
        correlation_id=correlation_id,
        service_name=ServiceNames.INGEST,
        event_name=TraceEvents.INGEST_END,
        status="success",
        job_id=data.get("jobId"),
        duration_ms=timer.stop(),
    )
    return envelope(status.HTTP_200_OK, {"success": True, "data": data})


@router.options("/enrich")
def enrich_v1_preflight() -> Response:
    return Response(status_code=status.HTTP_204_NO_CONTENT, headers=V1_CORS_HEADERS)


@router.post("/enrich")
async def enrich_v1(request: Request, db: Session = Depends(get_db), llm: LLMClient = Depends(get_llm)) -> JSONResponse:
    correlation_id = extract_correlation_id(request.headers)
    headers = add_correlation_headers(None, correlation_id)

    try:
        rate_limiters.strict.consume(client_key(request.headers.get("x-forwarded-for")))
    except RateLimitExceeded:
        return JSONResponse(
            status_code=status.HTTP_429_TOO_MANY_REQUESTS,
            content={"error": "Too many requests", "message": "Rate limit exceeded. Please try again later."},
            headers=headers,
        )

    if not secret_matches(request.headers.get("x-api-key"), settings.extension_api_key):
        return JSONResponse(status_code=status.HTTP_401_UNAUTHORIZED, content={"error": "Unauthorized"}, headers=headers)

    def envelope(status_code: int, content: dict[str, Any]) -> JSONResponse:
        return JSONResponse(status_code=status_code, content={**content, "correlation_id": correlation_id}, headers=headers)

    try:
        raw = await _read_json(request)
        payload = _parse_request(raw)
    except _InvalidJSON:
        return envelope(status.HTTP_400_BAD_REQUEST, {"success": False, "error": "Request body must be valid JSON"})
    except ValidationError as exc:
        return envelope(
            status.HTTP_400_BAD_REQUEST,
            {"success": False, "error": "Validation error", "details": validation_details(exc)},
        )

    try:
        data = await run_in_threadpool(enrich_posting_v1, db, llm, payload, raw, correlation_id)
    except LLMConfigurationError:
        raise
    except EnrichmentError as exc:
        if exc.job_id is not None:
            return envelope(
                status.HTTP_500_INTERNAL_SERVER_ERROR,
                {
                    "success": False,
                    "error": "Enrichment failed but job was saved",
                    "details": str(exc),
                    "data": {"jobId": exc.job_id},
                },
            )
        return envelope(
            status.HTTP_500_INTERNAL_SERVER_ERROR,
            {"success": False, "error": "Failed to process job", "details": str(exc)},
        )
    except Exception as exc:
        db.rollback()
        logger.exception("enrichment failed correlation_id=%s", correlation_id)
        return envelope(
            status.HTTP_500_INTERNAL_SERVER_ERROR,
            {"success": False, "error": "Failed to process job", "details": str(exc) or "Unknown error"},
        )
    return envelope(status.HTTP_200_OK, {"success": True, "data": data})


@router.post("/enrich/rerun")
def rerun_enrichment(
    payload: ReEnrichRequest,
    request: Request,
    db: Session = Depends(get_db),
    llm: LLMClient = Depends(get_llm),
    current_user: User = Depends(get_current_user),
) -> dict:
    job = get_job(db, payload.job_id)
    if job is None:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="Job not found")
    correlation_id = extract_correlation_id(request.headers)
    try:
        record = enrich_existing_job(db, llm, job, correlation_id, user_id=current_user.id)
    except ProfileNotFoundError as exc:
        raise HTTPException(status_code=status.HTTP_403_FORBIDDEN, detail="User profile not found") from exc
    except EnrichmentError as exc:
        raise HTTPException(status_code=status.HTTP_502_BAD_GATEWAY, detail=f"Enrichment failed: {exc}") from exc
    return {
        "success": True,
        "data": {"jobId": job.id, "enrichment": enrichment_to_display(record)},
        "correlation_id": correlation_id,
    }


@router.get("/enrich/config")
def enrichment_config(current_user: User = Depends(get_current_user)) -> dict:
    """Which enrichment endpoint this user should call, and whether the audit UI is on."""
    return {
        "endpoint": get_enrichment_endpoint(str(current_user.id)),
        "auditUiEnabled": is_enrichment_audit_ui_enabled(),
    }
