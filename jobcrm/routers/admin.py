# admin.py
from __future__ import annotations

from datetime import datetime, timedelta, timezone
import logging
from typing import Optional

from fastapi import APIRouter, Depends, HTTPException, Query, status

from jobcrm.models.user import User
from jobcrm.routers.dependencies import EnvelopeError, get_llm, require_admin, require_internal_key
from jobcrm.schemas.ab_testing import ExperimentReport
from jobcrm.schemas.admin import ExperimentSummary, MetricQuery, MigrationAction
from jobcrm.services.ab_testing import experiments, generate_experiment_report
from jobcrm.services.benchmarks import benchmark, generate_performance_report, get_system_status
from jobcrm.services.llm_client import LLMClient
from jobcrm.services.migration_service import MigrationNotFound, migrations


router = APIRouter(prefix="/admin", tags=["admin"])

logger = logging.getLogger(__name__)

REPORT_RANGES = {
    "1h": timedelta(hours=1),
    "24h": timedelta(hours=24),
    "7d": timedelta(days=7),
}


def _iso_now() -> datetime:
    return datetime.now(timezone.utc)


def _aware(value: datetime) -> datetime:
    return value if value.tzinfo else value.replace(tzinfo=timezone.utc)


@router.get("/experiments", response_model=list[ExperimentSummary])
def list_experiments(_admin: User = Depends(require_admin)) -> list[ExperimentSummary]:
    results = experiments.results
    return [
        ExperimentSummary(
            id=test.id,
            name=test.name,
            description=test.description,
            status=test.status,
            startDate=test.startDate,
            endDate=test.endDate,
            variants=[v.model_dump() for v in test.variants],
            resultCount=sum(1 for r in results if r.testId == test.id),
        )
        for test in experiments.active_tests.values()
    ]


@router.get("/experiments/{test_id}/report", response_model=ExperimentReport)
def experiment_report(test_id: str, _admin: User = Depends(require_admin)) -> ExperimentReport:
    report = generate_experiment_report(test_id)
    if report is None:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="Experiment not found")
    return report


@router.get("/performance")
def performance_report(
    time_range: str = Query("24h", alias="range"),
    _admin: User = Depends(require_admin),
) -> dict:
    now = _iso_now()
    # Unknown ranges fall back to the last day.
    window = REPORT_RANGES.get(time_range, REPORT_RANGES["24h"])
    report = generate_performance_report(now - window, now)
    return {
        **report,
        "generatedAt": now.isoformat(),
        "timeRange": time_range,
        "systemStatus": get_system_status(report),
    }


@router.post("/performance")
def performance_metric(payload: MetricQuery, _admin: User = Depends(require_admin)) -> dict:
    if not payload.metric:
        raise EnvelopeError(status.HTTP_400_BAD_REQUEST, {"error": "Metric name is required"})

    window = payload.timeWindow
    start = _aware(window.start) if window and window.start else None
    end = _aware(window.end) if window and window.end else None
    if start is None or end is None:
        start = end = None
    result = benchmark.get_benchmark(payload.metric, start, end)
    if result is None:
        raise EnvelopeError(status.HTTP_404_NOT_FOUND, {"error": "No data found for the specified metric"})
    return result


@router.get("/migrate-enrichments", dependencies=[Depends(require_internal_key)])
def migration_status(migration_id: Optional[str] = Query(None, alias="id")) -> dict:
    if migration_id:
        try:
            state = migrations.get(migration_id)
        except MigrationNotFound as exc:
            raise EnvelopeError(status.HTTP_404_NOT_FOUND, {"error": str(exc)}) from exc
        return {"migration": state.to_dict()}
    return {"migrations": [s.to_dict() for s in migrations.list_all()]}


@router.post("/migrate-enrichments", dependencies=[Depends(require_internal_key)])
def migration_control(payload: MigrationAction, llm: LLMClient = Depends(get_llm)) -> dict:
    if payload.action in ("pause", "resume"):
        if not payload.migrationId:
            raise EnvelopeError(status.HTTP_400_BAD_REQUEST, {"error": "Migration ID required"})
        try:
            if payload.action == "pause":
                state = migrations.pause(payload.migrationId)
            else:
                state = migrations.resume(payload.migrationId, llm)
        except MigrationNotFound as exc:
            raise EnvelopeError(status.HTTP_404_NOT_FOUND, {"error": str(exc)}) from exc
        if state is None:
            raise EnvelopeError(status.HTTP_409_CONFLICT, {"error": "Migration is not paused"})
        logger.info("migration %s %sd", payload.migrationId, payload.action)
        return {"migration": state.to_dict()}

    state = migrations.start(llm)
    return {"migration": state.to_dict(), "message": f"Started migration for {state.totalJobs} jobs"}


@router.delete("/migrate-enrichments", dependencies=[Depends(require_internal_key)])
def migration_delete(migration_id: Optional[str] = Query(None, alias="id")) -> dict:
    if not migration_id:
        raise EnvelopeError(status.HTTP_400_BAD_REQUEST, {"error": "Migration ID required"})
    try:
        migrations.delete(migration_id)
    except MigrationNotFound as exc:
        raise EnvelopeError(status.HTTP_404_NOT_FOUND, {"error": str(exc)}) from exc
    return {"message": "Migration deleted"}
