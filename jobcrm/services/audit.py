# audit.py
from __future__ import annotations

import logging
from datetime import datetime, timezone
from typing import Any

from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from jobcrm.models.audit import EnrichmentAuditEvent, EnrichmentAuditTrail


logger = logging.getLogger(__name__)

AUDIT_EVENT_TYPES = (
    "ENRICHMENT_START",
    "ENRICHMENT_COMPLETE",
    "ENRICHMENT_FAILED",
    "VALIDATION_WARNING",
    "VALIDATION_ERROR",
    "RETRY_ATTEMPT",
    "PARTIAL_SUCCESS",
    "DIMENSIONAL_SCORE_CALCULATED",
    "RISK_DETECTED",
    "PROMPT_VERSION_USED",
    "USER_PROFILE_LOADED",
    "PROMPT_GENERATED",
    "OPENAI_RESPONSE_RECEIVED",
    "RESPONSE_VALIDATION_SUCCESS",
    "RESPONSE_VALIDATION_FAILED",
    "RISK_ANALYSIS_COMPLETE",
    "DIMENSIONAL_SCORES_CALCULATED",
)

# Only these are written per event; everything else lives in the trail summary.
_PERSISTED_EVENTS = {"ENRICHMENT_FAILED", "VALIDATION_ERROR", "RISK_DETECTED"}
_ERROR_EVENTS = {"ENRICHMENT_FAILED", "VALIDATION_ERROR"}


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


class EnrichmentAuditor:
    """Collects the ordered audit events of one enrichment run."""

    def __init__(self, db: Session, job_id: str | int, correlation_id: str) -> None:
        self.db = db
        self.job_id = str(job_id)
        self.correlation_id = correlation_id
        self.start_time = _utcnow()
        self.events: list[dict[str, Any]] = []
        self.metadata: dict[str, Any] = {}

    def record_event(self, event_type: str, event_data: dict[str, Any] | None = None) -> dict[str, Any]:
        if event_type not in AUDIT_EVENT_TYPES:
            raise ValueError(f"Unknown audit event type: {event_type}")
        now = _utcnow().isoformat()
        event = {
            "job_id": self.job_id,
            "event_type": event_type,
            "event_data": {**(event_data or {}), "timestamp": now},
            "correlation_id": self.correlation_id,
            "created_at": now,
        }
        self.events.append(event)
        logger.debug("audit %s job_id=%s correlation_id=%s", event_type, self.job_id, self.correlation_id)
        if event_type in _PERSISTED_EVENTS:
            self._persist_event(event)
        return event

    def update_metadata(self, **metadata: Any) -> None:
        self.metadata.update(metadata)

    def complete(self, success: bool, summary: dict[str, Any] | None = None) -> dict[str, Any]:
        duration_ms = int((_utcnow() - self.start_time).total_seconds() * 1000)
        self.record_event(
            "ENRICHMENT_COMPLETE" if success else "ENRICHMENT_FAILED",
            {"duration_ms": duration_ms, "event_count": len(self.events), **(summary or {})},
        )
        return self._persist_trail()

    def get_trail(self) -> dict[str, Any]:
        return {
            "job_id": self.job_id,
            "correlation_id": self.correlation_id,
            "start_time": self.start_time.isoformat(),
            "events": list(self.events),
            "metadata": dict(self.metadata),
        }

    def _persist_event(self, event: dict[str, Any]) -> None:
        try:
            self.db.add(
                EnrichmentAuditEvent(
                    job_id=event["job_id"],
                    correlation_id=event["correlation_id"],
                    event_type=event["event_type"],
                    event_data=event["event_data"],
                )
            )
            self.db.commit()
        except SQLAlchemyError as exc:
            self.db.rollback()
            logger.warning("Failed to persist audit event %s: %s", event["event_type"], exc)

    def _persist_trail(self) -> dict[str, Any]:
        end_time = _utcnow()
        summary = {
            "job_id": self.job_id,
            "correlation_id": self.correlation_id,
            "start_time": self.start_time.isoformat(),
            "end_time": end_time.isoformat(),
            "duration_ms": int((end_time - self.start_time).total_seconds() * 1000),
            "event_count": len(self.events),
            "metadata": dict(self.metadata),
            "success": any(e["event_type"] == "ENRICHMENT_COMPLETE" for e in self.events),
            "error_count": sum(1 for e in self.events if e["event_type"] in _ERROR_EVENTS),
            "retry_count": int(self.metadata.get("retry_count") or 0),
        }
        try:
            self.db.add(
                EnrichmentAuditTrail(
                    job_id=self.job_id,
                    correlation_id=self.correlation_id,
                    start_time=self.start_time,
                    end_time=end_time,
                    success=summary["success"],
                    event_count=summary["event_count"],
                    error_count=summary["error_count"],
                    retry_count=summary["retry_count"],
                    trail_metadata=summary["metadata"],
                )
            )
            self.db.commit()
        except SQLAlchemyError as exc:
            self.db.rollback()
            logger.error("Failed to persist audit trail job_id=%s: %s", self.job_id, exc)
        return summary
