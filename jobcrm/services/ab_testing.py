# ab_testing.py
"""Enrichment experiments: variant allocation, result collection and reporting.

Tests and results live in process memory and are lost on restart.
"""
from __future__ import annotations

import logging
import math
import random
import re
import threading
from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Any, Iterable

import numpy as np

from jobcrm.schemas.ab_testing import (
    ABTestConfig,
    ExperimentReport,
    ExperimentWinner,
    ResultMetrics,
    TestResult,
    TestVariant,
    VariantReport,
)
from jobcrm.services.tracing import ServiceNames, log_trace_event


logger = logging.getLogger(__name__)


def _default_tests() -> list[ABTestConfig]:
    now = datetime.now(timezone.utc)
    return [
        ABTestConfig.model_validate(
            {
                "id": "model-comparison-gpt4-mini",
                "name": "GPT-4 vs GPT-4-mini Comparison",
                "description": "Compare accuracy and cost-effectiveness of different model versions",
                "startDate": now,
                "variants": [
                    {
                        "id": "gpt-4o-mini",
                        "name": "GPT-4o-mini (Current)",
                        "description": "Current production model",
                        "config": {"model": "gpt-4o-mini", "temperature": 0.3, "maxTokens": 4000},
                        "weight": 0.5,
                    },
                    {
                        "id": "gpt-4",
                        "name": "GPT-4 (Premium)",
                        "description": "Higher accuracy model",
                        "config": {"model": "gpt-4", "temperature": 0.3, "maxTokens": 4000},
                        "weight": 0.5,
                    },
                ],
                "metrics": [
                    "fit_score_accuracy",
                    "extraction_completeness",
                    "token_usage",
                    "validation_success_rate",
                ],
                "status": "draft",
            }
        ),
        ABTestConfig.model_validate(
            {
                "id": "temperature-optimization",
                "name": "Temperature Setting Optimization",
                "description": "Find optimal temperature for consistent results",
                "startDate": now,
                "variants": [
                    {
                        "id": f"temp-{t}",
                        "name": name,
                        "description": desc,
                        "config": {"temperature": t},
                        "weight": 0.25,
                    }
                    for t, name, desc in (
                        (0.1, "Very Low Temperature (0.1)", "Highly deterministic responses"),
                        (0.3, "Low Temperature (0.3)", "Current production setting"),
                        (0.5, "Medium Temperature (0.5)", "Balanced creativity"),
                        (0.7, "Higher Temperature (0.7)", "More creative responses"),
                    )
                ],
                "metrics": ["fit_score_accuracy", "validation_success_rate", "error_rate"],
                "status": "draft",
            }
        ),
    ]


DEFAULT_TESTS: list[ABTestConfig] = _default_tests()


def select_variant(test: ABTestConfig, random_value: float | None = None) -> TestVariant:
    enabled = [v for v in test.variants if v.enabled]
    if not enabled:
        raise ValueError("No enabled variants in test")

    roll = random.random() if random_value is None else random_value
    total_weight = sum(v.weight for v in enabled)
    if total_weight <= 0:
        return enabled[-1]

    cumulative = 0.0
    for variant in enabled:
        cumulative += variant.weight / total_weight
        if roll < cumulative:
            return variant
    return enabled[-1]


def _mean_of(values: list[float]) -> float:
    return float(np.mean(values)) if values else 0.0


def calculate_metrics(results: Iterable[TestResult]) -> dict[str, float]:
    results = list(results)
    if not results:
        return {}

    fit = [r.metrics.fitScore for r in results if r.metrics.fitScore is not None]
    latency = [r.metrics.responseTimeMs for r in results if r.metrics.responseTimeMs is not None]
    tokens = [r.metrics.totalTokens for r in results if r.metrics.totalTokens is not None]
    fields = [r.metrics.extractedFieldsCount for r in results if r.metrics.extractedFieldsCount is not None]
    total = len(results)
    return {
        "sampleSize": total,
        "avgFitScore": _mean_of(fit),
        "avgResponseTime": _mean_of(latency),
        "avgTokenUsage": _mean_of(tokens),
        "successRate": sum(1 for r in results if r.metrics.validationPassed) / total * 100,
        "errorRate": sum(1 for r in results if r.metrics.errorOccurred) / total * 100,
        "avgFieldsExtracted": _mean_of(fields),
    }


def calculate_significance(
    variant_a: Iterable[TestResult],
    variant_b: Iterable[TestResult],
    metric: str,
) -> dict[str, Any]:
    """Rough two-sample test; p is approximated as ``2 * exp(-t^2 / 2)``."""
    values_a = [getattr(r.metrics, metric) for r in variant_a if getattr(r.metrics, metric) is not None]
    values_b = [getattr(r.metrics, metric) for r in variant_b if getattr(r.metrics, metric) is not None]
    if len(values_a) < 30 or len(values_b) < 30:
        return {"isSignificant": False, "pValue": 1.0}

    a = np.asarray(values_a, dtype=float)
    b = np.asarray(values_b, dtype=float)
    pooled_se = math.sqrt(a.var(ddof=1) / a.size + b.var(ddof=1) / b.size)
    if pooled_se == 0:
        return {"isSignificant": False, "pValue": 1.0}

    t_stat = abs(a.mean() - b.mean()) / pooled_se
    p_value = float(math.exp(-0.5 * t_stat * t_stat) * 2)
    return {"isSignificant": p_value < 0.05, "pValue": p_value}


@dataclass
class ExperimentContext:
    job_id: str
    correlation_id: str
    job_source: str | None = None
    job_type: str | None = None
    company: str | None = None


@dataclass
class ExperimentDecision:
    test_id: str
    variant_id: str
    variant: TestVariant
    overrides: dict[str, Any] = field(default_factory=dict)


def apply_prompt_template(base_prompt: str, variant: TestVariant, variables: dict[str, str]) -> str:
    prompt = variant.config.promptTemplate or base_prompt
    for key, value in variables.items():
        prompt = re.sub(r"\{\{" + re.escape(key) + r"\}\}", lambda _m, v=value: v, prompt)
    return prompt


def calculate_variant_metrics(results: list[TestResult]) -> dict[str, float]:
    metrics = {"avgFitScore": 0.0, "avgResponseTime": 0.0, "avgTokenUsage": 0.0, "successRate": 0.0, "errorRate": 0.0}
    if not results:
        return metrics
    full = calculate_metrics(results)
    for key in metrics:
        metrics[key] = full[key]
    return metrics


def determine_winner(variants: list[VariantReport]) -> ExperimentWinner | None:
    if len(variants) < 2:
        return None
    ranked = sorted(variants, key=lambda v: v.metrics.get("avgFitScore", 0), reverse=True)
    best, baseline = ranked[0], ranked[1]
    baseline_score = baseline.metrics.get("avgFitScore", 0)
    if not baseline_score:
        return None

    improvement = (best.metrics.get("avgFitScore", 0) - baseline_score) / baseline_score * 100
    confidence = min(95.0, 50 + min(best.sampleSize, baseline.sampleSize) / 10)
    if improvement > 5 and confidence > 80:
        return ExperimentWinner(variantId=best.id, confidence=confidence, improvement=improvement)
    return None


class ExperimentManager:
    def __init__(self) -> None:
        self._tests: dict[str, ABTestConfig] = {}
        self._results: list[TestResult] = []
        self._lock = threading.Lock()

    @property
    def active_tests(self) -> dict[str, ABTestConfig]:
        return dict(self._tests)

    @property
    def results(self) -> list[TestResult]:
        return list(self._results)

    def initialize(self, tests: Iterable[ABTestConfig]) -> list[str]:
        now = datetime.now(timezone.utc)
        with self._lock:
            self._tests.clear()
            for test in tests:
                if test.status != "active":
                    continue
                start = _aware(test.startDate)
                end = _aware(test.endDate) if test.endDate else None
                if start <= now and (end is None or end > now):
                    self._tests[test.id] = test
                    log_trace_event(
                        correlation_id="system",
                        service_name=ServiceNames.AI,
                        event_name="AB_TEST_INITIALIZED",
                        status="success",
                        metadata={"testId": test.id, "testName": test.name, "variantCount": len(test.variants)},
                    )
            active = list(self._tests)
        logger.info("A/B tests initialised: %s active", len(active))
        return active

    def get_active_experiment(self, context: ExperimentContext, random_value: float | None = None) -> ExperimentDecision | None:
        for test_id, test in self.active_tests.items():
            audience = test.targetAudience
            if audience is not None:
                if audience.jobSources and context.job_source and context.job_source not in audience.jobSources:
                    continue
                if audience.jobTypes and context.job_type and context.job_type not in audience.jobTypes:
                    continue
                if audience.companies and context.company and context.company not in audience.companies:
                    continue

            variant = select_variant(test, random_value)
            cfg = variant.config
            overrides: dict[str, Any] = {}
            if cfg.model:
                overrides["model"] = cfg.model
            if cfg.temperature is not None:
                overrides["temperature"] = cfg.temperature
            if cfg.maxTokens:
                overrides["max_tokens"] = cfg.maxTokens
            if cfg.responseFormat:
                overrides["response_format"] = {"type": cfg.responseFormat}

            log_trace_event(
                correlation_id=context.correlation_id,
                service_name=ServiceNames.AI,
                event_name="AB_TEST_VARIANT_SELECTED",
                status="success",
                metadata={"testId": test_id, "variantId": variant.id, "jobId": context.job_id},
            )
            return ExperimentDecision(test_id=test_id, variant_id=variant.id, variant=variant, overrides=overrides)
        return None

    def record_result(
        self,
        decision: ExperimentDecision,
        context: ExperimentContext,
        metrics: ResultMetrics | dict[str, Any],
        metadata: dict[str, Any] | None = None,
    ) -> TestResult:
        result = TestResult(
            testId=decision.test_id,
            variantId=decision.variant_id,
            jobId=str(context.job_id),
            metrics=metrics if isinstance(metrics, ResultMetrics) else ResultMetrics.model_validate(metrics),
            metadata=metadata,
        )
        with self._lock:
            self._results.append(result)
        log_trace_event(
            correlation_id=context.correlation_id,
            service_name=ServiceNames.AI,
            event_name="AB_TEST_RESULT_RECORDED",
            status="success",
            metadata={
                "testId": decision.test_id,
                "variantId": decision.variant_id,
                "metrics": result.metrics.model_dump(exclude_none=True),
            },
        )
        return result

    def get_results(
        self,
        test_id: str,
        variant_id: str | None = None,
        start: datetime | None = None,
        end: datetime | None = None,
    ) -> list[TestResult]:
        selected = []
        for r in self.results:
            if r.testId != test_id:
                continue
            if variant_id and r.variantId != variant_id:
                continue
            ts = _aware(r.timestamp)
            if start and ts < _aware(start):
                continue
            if end and ts > _aware(end):
                continue
            selected.append(r)
        return selected

    def generate_report(self, test_id: str) -> ExperimentReport | None:
        test = self._tests.get(test_id)
        if test is None:
            return None

        report = ExperimentReport(
            testId=test.id,
            testName=test.name,
            status=test.status,
            startDate=test.startDate,
            endDate=test.endDate,
        )
        for variant in test.variants:
            variant_results = self.get_results(test_id, variant.id)
            if variant_results:
                report.variants.append(
                    VariantReport(
                        id=variant.id,
                        name=variant.name,
                        sampleSize=len(variant_results),
                        metrics=calculate_variant_metrics(variant_results),
                    )
                )

        if len(report.variants) >= 2 and all(v.sampleSize >= 100 for v in report.variants):
            report.winner = determine_winner(report.variants)
        return report

    def clear_results(self) -> None:
        with self._lock:
            self._results.clear()

    def reset(self) -> None:
        with self._lock:
            self._tests.clear()
            self._results.clear()


def _aware(value: datetime) -> datetime:
    return value if value.tzinfo else value.replace(tzinfo=timezone.utc)


experiments = ExperimentManager()


def initialize_ab_tests(tests: Iterable[ABTestConfig]) -> list[str]:
    return experiments.initialize(tests)


def get_active_experiment(context: ExperimentContext) -> ExperimentDecision | None:
    return experiments.get_active_experiment(context)


def record_experiment_result(
    decision: ExperimentDecision,
    context: ExperimentContext,
    metrics: ResultMetrics | dict[str, Any],
    metadata: dict[str, Any] | None = None,
) -> TestResult:
    return experiments.record_result(decision, context, metrics, metadata)


def get_experiment_results(
    test_id: str,
    variant_id: str | None = None,
    start: datetime | None = None,
    end: datetime | None = None,
) -> list[TestResult]:
    return experiments.get_results(test_id, variant_id, start, end)


def generate_experiment_report(test_id: str) -> ExperimentReport | None:
    return experiments.generate_report(test_id)
