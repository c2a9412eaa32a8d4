from __future__ import annotations

import pytest

from jobcrm.config import settings
from jobcrm.services import feature_flags
from jobcrm.services.rate_limiter import RateLimitExceeded, RateLimiterMemory, client_key


class _Clock:
    def __init__(self) -> None:
        self.now = 1000.0

    def __call__(self) -> float:
        return self.now


def test_fixed_window_counts_and_resets() -> None:
    clock = _Clock()
    limiter = RateLimiterMemory(points=2, duration=60, clock=clock)

    assert limiter.consume("1.2.3.4") == 1
    assert limiter.consume("1.2.3.4") == 0
    with pytest.raises(RateLimitExceeded) as exc_info:
        limiter.consume("1.2.3.4")
    assert exc_info.value.retry_after == 60
    assert exc_info.value.remaining_points == 0

    # Other callers have their own window.
    assert limiter.consume("5.6.7.8") == 1

    clock.now += 61
    assert limiter.consume("1.2.3.4") == 1


def test_cleanup_drops_expired_windows() -> None:
    clock = _Clock()
    limiter = RateLimiterMemory(points=5, duration=10, clock=clock)
    limiter.consume("a")
    clock.now += 5
    limiter.consume("b")
    clock.now += 6
    assert limiter.cleanup() == 1
    assert limiter.consume("b") == 3


def test_presets_do_not_share_counters() -> None:
    strict = RateLimiterMemory(points=1, duration=60)
    search = RateLimiterMemory(points=1, duration=60)
    strict.consume("same-key")
    assert search.consume("same-key") == 0


def test_client_key() -> None:
    assert client_key("10.0.0.1, 172.16.0.1") == "10.0.0.1"
    assert client_key(None) == "unknown"
    assert client_key(None, "") == "unknown:anonymous"
    assert client_key("10.0.0.1", "k1") == "10.0.0.1:k1"


def test_v2_flag_off_and_forced_on(monkeypatch) -> None:
    monkeypatch.setattr(settings, "use_v2_enrichment", "false")
    monkeypatch.setattr(settings, "v2_rollout_percentage", 100)
    assert feature_flags.is_v2_enrichment_enabled("42") is False

    monkeypatch.setattr(settings, "use_v2_enrichment", "true")
    monkeypatch.setattr(settings, "v2_rollout_percentage", None)
    assert feature_flags.is_v2_enrichment_enabled() is True
    assert feature_flags.get_enrichment_endpoint("42") == "/api/jobs/enrich/v2"


def test_v2_percentage_rollout(monkeypatch) -> None:
    monkeypatch.setattr(settings, "use_v2_enrichment", None)
    bucket = feature_flags.rollout_bucket("user-7")
    assert 0 <= bucket < 100
    assert feature_flags.rollout_bucket("user-7") == bucket

    monkeypatch.setattr(settings, "v2_rollout_percentage", bucket + 1)
    assert feature_flags.is_v2_enrichment_enabled("user-7") is True

    monkeypatch.setattr(settings, "v2_rollout_percentage", 0)
    assert feature_flags.is_v2_enrichment_enabled("user-7") is False
    assert feature_flags.get_enrichment_endpoint("user-7") == "/api/jobs/enrich"


def test_v2_rollout_without_user_needs_majority(monkeypatch) -> None:
    monkeypatch.setattr(settings, "use_v2_enrichment", None)
    monkeypatch.setattr(settings, "v2_rollout_percentage", 50)
    assert feature_flags.is_v2_enrichment_enabled() is True
    monkeypatch.setattr(settings, "v2_rollout_percentage", 49)
    assert feature_flags.is_v2_enrichment_enabled() is False


def test_audit_ui_flag(monkeypatch) -> None:
    monkeypatch.setattr(settings, "enable_enrichment_audit_ui", True)
    assert feature_flags.is_enrichment_audit_ui_enabled() is True
