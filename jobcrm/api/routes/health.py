# health.py
from __future__ import annotations

import logging
import platform
import time
from datetime import datetime, timedelta, timezone

from fastapi import APIRouter, Depends, status
from fastapi.responses import JSONResponse
from pydantic import BaseModel
from sqlalchemy import func, text
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from jobcrm.config import settings
from jobcrm.database import get_db
from jobcrm.models.enrichment import JobEnrichment
from jobcrm.models.interview_round import InterviewRound
from jobcrm.models.job import Job
from jobcrm.services.benchmarks import benchmark, generate_performance_report
from jobcrm.services.tracing import Timer


router = APIRouter(tags=["health"])

logger = logging.getLogger(__name__)

_STARTED_AT = time.monotonic()
HEALTH_QUERY = "SELECT 1"


class HealthStatus(BaseModel):
    status: str
    timestamp: datetime
    database: str
    version: str


@router.get("/health", response_model=HealthStatus, summary="API and database heartbeat")
def health_check(db: Session = Depends(get_db)):
    now = datetime.now(timezone.utc)
    timer = Timer()
    try:
        db.execute(text(HEALTH_QUERY))
    except SQLAlchemyError as exc:
        logger.error("health check database error: %s", exc)
        return JSONResponse(
            status_code=status.HTTP_503_SERVICE_UNAVAILABLE,
            content={
                "status": "unhealthy",
                "timestamp": now.isoformat(),
                "database": "error",
                "error": str(exc),
            },
        )
    benchmark.record_database_query(HEALTH_QUERY, timer.stop(), 1)
    return HealthStatus(status="healthy", timestamp=now, database="connected", version=settings.version)


@router.get("/metrics", summary="Pipeline and process metrics")
def metrics(db: Session = Depends(get_db)) -> dict:
    now = datetime.now(timezone.utc)
    day_start = now.replace(hour=0, minute=0, second=0, microsecond=0)

    total_jobs = db.query(func.count(Job.id)).scalar() or 0
    enriched_jobs = db.query(func.count(func.distinct(JobEnrichment.job_id))).scalar() or 0
    by_status = dict(db.query(Job.status, func.count(Job.id)).group_by(Job.status).all())
    avg_fit = db.query(func.avg(Job.ai_fit_score)).filter(Job.ai_fit_score.isnot(None)).scalar()
    enriched_today = (
        db.query(func.count(JobEnrichment.id)).filter(JobEnrichment.created_at >= day_start).scalar() or 0
    )
    interview_rounds = db.query(func.count(InterviewRound.id)).scalar() or 0

    report = generate_performance_report(now - timedelta(hours=24), now)
    return {
        "timestamp": now.isoformat(),
        "jobs": {
            "total_jobs": total_jobs,
            "enriched_jobs": enriched_jobs,
            "enrichment_coverage": round(enriched_jobs / total_jobs * 100, 2) if total_jobs else 0,
            "by_status": by_status,
            "average_fit_score": round(float(avg_fit), 2) if avg_fit is not None else None,
        },
        "enrichment": {"processed_today": enriched_today},
        "interviews": {"total_rounds": interview_rounds},
        "api": {
            "total_requests": report["summary"]["totalRequests"],
            "error_rate": report["summary"]["errorRate"],
            "alerts": len(report["alerts"]),
        },
        "system": {
            "uptime": round(time.monotonic() - _STARTED_AT, 3),
            "python_version": platform.python_version(),
            "environment": settings.environment,
        },
    }
