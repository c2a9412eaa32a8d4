# benchmarks.py
from __future__ import annotations

import functools
import threading
from collections import deque
from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Any, Deque

import numpy as np

from jobcrm.services.tracing import ServiceNames, Timer, log_trace_event


MAX_METRICS_PER_NAME = 1000
ENRICH_ENDPOINT = "/api/jobs/enrich"

PERFORMANCE_THRESHOLDS: dict[str, Any] = {
    "api": {
        "enrichment": {"p95": 5000, "p99": 8000},
        "embedding": {"p95": 2000, "p99": 3000},
    },
    "database": {"query": {"simple": 50, "complex": 200}},
    "tokens": {"enrichment": {"prompt": 3000, "completion": 2000, "total": 5000}},
}


def _now() -> datetime:
    return datetime.now(timezone.utc)


@dataclass
class PerformanceMetric:
    name: str
    value: float
    unit: str
    timestamp: datetime = field(default_factory=_now)
    tags: dict[str, str] = field(default_factory=dict)

    def to_dict(self) -> dict[str, Any]:
        return {
            "name": self.name,
            "value": self.value,
            "unit": self.unit,
            "timestamp": self.timestamp.isoformat(),
            "tags": dict(self.tags),
        }


class PerformanceBenchmark:
    def __init__(self) -> None:
        self._metrics: dict[str, Deque[PerformanceMetric]] = {}
        self._lock = threading.Lock()

    def record(self, metric: PerformanceMetric) -> None:
        with self._lock:
            bucket = self._metrics.setdefault(metric.name, deque(maxlen=MAX_METRICS_PER_NAME))
            bucket.append(metric)

    def record_api_performance(
        self,
        endpoint: str,
        method: str,
        duration_ms: float,
        status_code: int,
        correlation_id: str | None = None,
    ) -> None:
        self.record(
            PerformanceMetric(
                name=f"api.{method}.{endpoint}",
                value=duration_ms,
                unit="ms",
                tags={
                    "endpoint": endpoint,
                    "method": method,
                    "statusCode": str(status_code),
                    "status": "success" if status_code < 400 else "error",
                },
            )
        )
        threshold = PERFORMANCE_THRESHOLDS["api"]["enrichment" if "enrich" in endpoint else "embedding"]
        if duration_ms > threshold["p95"]:
            log_trace_event(
                correlation_id=correlation_id or "system",
                service_name=ServiceNames.AI,
                event_name="PERFORMANCE_THRESHOLD_EXCEEDED",
                status="warning",
                metadata={
                    "metric": f"api.{endpoint}",
                    "value": duration_ms,
                    "threshold": threshold["p95"],
                    "thresholdType": "p95",
                },
            )

    def record_token_usage(
        self,
        model: str,
        prompt_tokens: int,
        completion_tokens: int,
        total_tokens: int,
        correlation_id: str | None = None,
    ) -> None:
        self.record(
            PerformanceMetric(
                name=f"tokens.{model}.total",
                value=total_tokens,
                unit="tokens",
                tags={
                    "model": model,
                    "promptTokens": str(prompt_tokens),
                    "completionTokens": str(completion_tokens),
                },
            )
        )
        limit = PERFORMANCE_THRESHOLDS["tokens"]["enrichment"]["total"]
        if total_tokens > limit:
            log_trace_event(
                correlation_id=correlation_id or "system",
                service_name=ServiceNames.AI,
                event_name="TOKEN_THRESHOLD_EXCEEDED",
                status="warning",
                metadata={
                    "model": model,
                    "promptTokens": prompt_tokens,
                    "completionTokens": completion_tokens,
                    "totalTokens": total_tokens,
                    "threshold": limit,
                },
            )

    def record_database_query(
        self,
        query: str,
        duration_ms: float,
        row_count: int,
        correlation_id: str | None = None,
    ) -> None:
        query_type = classify_query(query)
        self.record(
            PerformanceMetric(
                name=f"database.query.{query_type}",
                value=duration_ms,
                unit="ms",
                tags={"queryType": query_type, "rowCount": str(row_count)},
            )
        )
        threshold = PERFORMANCE_THRESHOLDS["database"]["query"][query_type]
        if duration_ms > threshold:
            log_trace_event(
                correlation_id=correlation_id or "system",
                service_name=ServiceNames.AI,
                event_name="DATABASE_PERFORMANCE_WARNING",
                status="warning",
                metadata={"queryType": query_type, "durationMs": duration_ms, "threshold": threshold, "rowCount": row_count},
            )

    def _get_metrics(
        self,
        name: str,
        start: datetime | None = None,
        end: datetime | None = None,
    ) -> list[PerformanceMetric]:
        with self._lock:
            metrics = list(self._metrics.get(name, ()))
        if start is None or end is None:
            return metrics
        return [m for m in metrics if start <= m.timestamp <= end]

    def get_benchmark(
        self,
        name: str,
        start: datetime | None = None,
        end: datetime | None = None,
    ) -> dict[str, Any] | None:
        metrics = self._get_metrics(name, start, end)
        if not metrics:
            return None
        values = np.sort(np.asarray([m.value for m in metrics], dtype=float))
        n = values.size
        return {
            "name": name,
            "iterations": int(n),
            "metrics": {
                "min": float(values[0]),
                "max": float(values[-1]),
                "mean": float(values.mean()),
                "median": float(values[n // 2]),
                "p95": float(values[min(n - 1, int(n * 0.95))]),
                "p99": float(values[min(n - 1, int(n * 0.99))]),
                "stdDev": float(values.std()),
            },
            "unit": metrics[0].unit,
            "timestamp": _now().isoformat(),
        }

    def get_all_benchmarks(self, start: datetime | None = None, end: datetime | None = None) -> list[dict[str, Any]]:
        with self._lock:
            names = list(self._metrics)
        results = []
        for name in names:
            result = self.get_benchmark(name, start, end)
            if result:
                results.append(result)
        return results

    def export_metrics(self, name: str | None = None) -> list[PerformanceMetric]:
        if name:
            return self._get_metrics(name)
        with self._lock:
            merged = [m for bucket in self._metrics.values() for m in bucket]
        return sorted(merged, key=lambda m: m.timestamp)

    def cleanup(self, older_than: datetime) -> None:
        with self._lock:
            for name in list(self._metrics):
                kept = [m for m in self._metrics[name] if m.timestamp > older_than]
                if kept:
                    self._metrics[name] = deque(kept, maxlen=MAX_METRICS_PER_NAME)
                else:
                    del self._metrics[name]

    def reset(self) -> None:
        with self._lock:
            self._metrics.clear()


def classify_query(query: str) -> str:
    normalized = query.lower()
    if "join" in normalized or "group by" in normalized:
        return "complex"
    return "simple"


benchmark = PerformanceBenchmark()


def benchmark_function(name: str):
    """Record the wall time of every call as ``function.<name>.<fn>``."""

    def decorator(fn):
        @functools.wraps(fn)
        def wrapper(*args, **kwargs):
            timer = Timer()
            error: Exception | None = None
            try:
                return fn(*args, **kwargs)
            except Exception as exc:
                error = exc
                raise
            finally:
                benchmark.record(
                    PerformanceMetric(
                        name=f"function.{name}.{fn.__name__}",
                        value=timer.stop(),
                        unit="ms",
                        tags={
                            "function": fn.__name__,
                            "status": "error" if error else "success",
                            "error": str(error) if error else "",
                        },
                    )
                )

        return wrapper

    return decorator


def generate_performance_report(start: datetime, end: datetime, store: PerformanceBenchmark | None = None) -> dict[str, Any]:
    store = store or benchmark
    all_benchmarks = store.get_all_benchmarks(start, end)
    api_metrics = [b for b in all_benchmarks if b["name"].startswith("api.")]
    total_requests = sum(b["iterations"] for b in api_metrics)

    in_window = [m for m in store.export_metrics() if start <= m.timestamp <= end]
    errors = [m for m in in_window if m.name.startswith("api.") and m.tags.get("status") == "error"]
    error_rate = len(errors) / total_requests * 100 if total_requests else 0.0

    enrich = store.get_benchmark(f"api.POST.{ENRICH_ENDPOINT}", start, end)

    tokens_by_model: dict[str, float] = {}
    total_tokens = 0.0
    for metric in in_window:
        if not metric.name.startswith("tokens."):
            continue
        model = metric.tags.get("model", "unknown")
        tokens_by_model[model] = tokens_by_model.get(model, 0) + metric.value
        total_tokens += metric.value

    alerts: list[dict[str, Any]] = []
    if error_rate > 5:
        alerts.append(
            {
                "type": "error_rate",
                "message": f"Error rate {error_rate:.2f}% exceeds threshold of 5%",
                "severity": "critical" if error_rate > 10 else "warning",
                "timestamp": _now().isoformat(),
            }
        )
    if enrich and enrich["metrics"]["p95"] > PERFORMANCE_THRESHOLDS["api"]["enrichment"]["p95"]:
        alerts.append(
            {
                "type": "response_time",
                "message": f"P95 response time {enrich['metrics']['p95']}ms exceeds threshold",
                "severity": "warning",
                "timestamp": _now().isoformat(),
            }
        )

    return {
        "timestamp": _now().isoformat(),
        "period": {"start": start.isoformat(), "end": end.isoformat()},
        "summary": {
            "totalRequests": total_requests,
            "errorRate": error_rate,
            "avgResponseTime": enrich["metrics"]["mean"] if enrich else 0,
            "p95ResponseTime": enrich["metrics"]["p95"] if enrich else 0,
            "p99ResponseTime": enrich["metrics"]["p99"] if enrich else 0,
        },
        "apiMetrics": {b["name"]: b for b in api_metrics},
        "tokenUsage": {
            "total": total_tokens,
            "avgPerRequest": total_tokens / total_requests if total_requests else 0,
            "byModel": tokens_by_model,
        },
        "alerts": alerts,
    }


def get_system_status(report: dict[str, Any]) -> str:
    if any(a["severity"] == "critical" for a in report["alerts"]):
        return "critical"
    if report["alerts"] or report["summary"]["errorRate"] > 5:
        return "warning"
    return "healthy"
