# retry.py
from __future__ import annotations

import json
import logging
import re
import time
from typing import Any, Callable, TypeVar

from jobcrm.services.tracing import ServiceNames, TraceEvents, log_trace_event


logger = logging.getLogger(__name__)

T = TypeVar("T")

DEFAULT_MAX_ATTEMPTS = 3
DEFAULT_INITIAL_DELAY_MS = 1000
DEFAULT_MAX_DELAY_MS = 10000
DEFAULT_BACKOFF_FACTOR = 2


def backoff_delay_ms(
    attempt: int,
    *,
    initial_delay_ms: float = DEFAULT_INITIAL_DELAY_MS,
    max_delay_ms: float = DEFAULT_MAX_DELAY_MS,
    backoff_factor: float = DEFAULT_BACKOFF_FACTOR,
) -> float:
    return min(initial_delay_ms * backoff_factor ** (attempt - 1), max_delay_ms)


def with_retry(
    fn: Callable[[], T],
    *,
    max_attempts: int = DEFAULT_MAX_ATTEMPTS,
    initial_delay_ms: float = DEFAULT_INITIAL_DELAY_MS,
    max_delay_ms: float = DEFAULT_MAX_DELAY_MS,
    backoff_factor: float = DEFAULT_BACKOFF_FACTOR,
    on_retry: Callable[[int, Exception], None] | None = None,
    correlation_id: str | None = None,
    operation: str | None = None,
    should_retry: Callable[[Exception], bool] | None = None,
    sleep: Callable[[float], None] = time.sleep,
) -> T:
    """Call ``fn`` until it succeeds or ``max_attempts`` is exhausted.

    Each failure is traced when a correlation id is given. The last error is
    re-raised unchanged; errors rejected by ``should_retry`` are re-raised at once.
    """
    last_error: Exception | None = None
    for attempt in range(1, max_attempts + 1):
        try:
            return fn()
        except Exception as exc:
            if should_retry is not None and not should_retry(exc):
                raise
            last_error = exc
            if correlation_id:
                log_trace_event(
                    correlation_id=correlation_id,
                    service_name=ServiceNames.INGEST,
                    event_name=TraceEvents.INGEST_ERROR,
                    status="retry",
                    error_message=str(exc),
                    metadata={
                        "attempt": attempt,
                        "operation": operation,
                        "willRetry": attempt < max_attempts,
                    },
                )
            if attempt == max_attempts:
                raise
            if on_retry is not None:
                on_retry(attempt, exc)
            delay = backoff_delay_ms(
                attempt,
                initial_delay_ms=initial_delay_ms,
                max_delay_ms=max_delay_ms,
                backoff_factor=backoff_factor,
            )
            logger.info("Retrying %s after attempt %s failed (%s); sleeping %sms", operation or "call", attempt, exc, delay)
            sleep(delay / 1000)
    raise last_error  # pragma: no cover


_OBJECT_RE = re.compile(r"\{[\s\S]*\}")


def extract_json(text: str) -> Any:
    """Parse JSON out of a possibly chatty or slightly malformed model reply."""
    try:
        return json.loads(text)
    except (TypeError, ValueError):
        pass

    match = _OBJECT_RE.search(text or "")
    if match:
        try:
            return json.loads(match.group(0))
        except ValueError:
            pass

    fixed = text or ""
    fixed = re.sub(r",\s*}", "}", fixed)
    fixed = re.sub(r",\s*]", "]", fixed)
    fixed = re.sub(r"(\w+):", r'"\1":', fixed)
    fixed = fixed.replace("'", '"')

    try:
        return json.loads(fixed)
    except ValueError:
        content = _OBJECT_RE.search(fixed)
        if content:
            try:
                return json.loads(content.group(0))
            except ValueError as exc:
                raise ValueError(f"Failed to parse JSON after all attempts: {exc}") from exc

    raise ValueError("No valid JSON found in response")


def _as_list(value: Any) -> list:
    return value if isinstance(value, list) else []


def fix_partial_response(data: dict[str, Any] | None) -> dict[str, Any]:
    """Fill the minimum enrichment shape with defaults; present values win."""
    data = data or {}
    facts = dict(data.get("facts") or {})
    analysis = dict(data.get("analysis") or {})

    fixed_facts = {
        "comp_min": None,
        "comp_max": None,
        "comp_currency": "USD",
        "tech_stack": [],
        "skills_sought": [],
        "remote_policy": None,
    }
    fixed_facts.update({k: v for k, v in facts.items() if v is not None})
    if not fixed_facts["comp_currency"]:
        fixed_facts["comp_currency"] = "USD"
    fixed_facts["tech_stack"] = _as_list(fixed_facts["tech_stack"])
    fixed_facts["skills_sought"] = _as_list(fixed_facts["skills_sought"])

    fixed_analysis = {
        "ai_fit_score": 50,
        "fit_reasoning": "Unable to determine fit",
        "dealbreaker_hit": False,
        "skills_matched": [],
        "skills_gap": [],
        "key_strengths": [],
        "concerns": [],
        "ai_tailored_summary": "",
        "resume_bullet": "",
        "confidence_score": 50,
    }
    fixed_analysis.update({k: v for k, v in analysis.items() if v is not None})
    if not fixed_analysis["fit_reasoning"]:
        fixed_analysis["fit_reasoning"] = "Unable to determine fit"
    for key in ("skills_matched", "skills_gap", "key_strengths", "concerns"):
        fixed_analysis[key] = _as_list(fixed_analysis[key])

    return {
        **data,
        "facts": fixed_facts,
        "analysis": fixed_analysis,
        "insights": _as_list(data.get("insights")),
        "risks": _as_list(data.get("risks")),
    }
