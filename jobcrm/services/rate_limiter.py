# rate_limiter.py
from __future__ import annotations

import math
import threading
import time
from dataclasses import dataclass
from datetime import datetime, timezone
from typing import Callable

from jobcrm.config import settings


@dataclass
class _Window:
    count: int
    reset_at: float


class RateLimitExceeded(Exception):
    def __init__(self, *, ms_before_next: float, consumed_points: int, limit: int):
        super().__init__("Rate limit exceeded")
        self.ms_before_next = ms_before_next
        self.consumed_points = consumed_points
        self.remaining_points = max(0, limit - consumed_points)
        self.limit = limit

    @property
    def retry_after(self) -> int:
        return max(0, math.ceil(self.ms_before_next / 1000))

    @property
    def reset_at(self) -> datetime:
        return datetime.fromtimestamp(time.time() + self.ms_before_next / 1000, tz=timezone.utc)


class RateLimiterMemory:
    """Fixed-window counter keyed by caller identity, held in process memory.

    Each instance owns its store, so the presets below never share counters.
    """

    def __init__(self, points: int, duration: int, *, clock: Callable[[], float] = time.monotonic):
        self.points = points
        self.duration = duration
        self._clock = clock
        self._store: dict[str, _Window] = {}
        self._lock = threading.Lock()

    def consume(self, key: str, points: int = 1) -> int:
        """Count ``points`` against ``key``; returns the remaining budget."""
        with self._lock:
            now = self._clock()
            entry = self._store.get(key)
            if entry is None or entry.reset_at < now:
                entry = _Window(count=points, reset_at=now + self.duration)
                self._store[key] = entry
            else:
                entry.count += points

            if entry.count > self.points:
                raise RateLimitExceeded(
                    ms_before_next=(entry.reset_at - now) * 1000,
                    consumed_points=entry.count,
                    limit=self.points,
                )
            return self.points - entry.count

    def check(self, key: str, points: int = 1) -> None:
        """Raise ``RateLimitExceeded`` if consuming ``points`` would go over, without counting them."""
        with self._lock:
            now = self._clock()
            entry = self._store.get(key)
            if entry is None or entry.reset_at < now:
                return
            if entry.count + points > self.points:
                raise RateLimitExceeded(
                    ms_before_next=(entry.reset_at - now) * 1000,
                    consumed_points=entry.count + points,
                    limit=self.points,
                )

    def cleanup(self) -> int:
        with self._lock:
            now = self._clock()
            expired = [key for key, entry in self._store.items() if entry.reset_at < now]
            for key in expired:
                del self._store[key]
            return len(expired)

    def reset(self) -> None:
        with self._lock:
            self._store.clear()


class RateLimiters:
    def __init__(self) -> None:
        self.standard = RateLimiterMemory(points=60, duration=60)
        self.strict = RateLimiterMemory(points=10, duration=60)
        self.search = RateLimiterMemory(points=30, duration=60)
        self.enrichment = RateLimiterMemory(points=20, duration=60)
        # per-user chat quotas
        self.chat_hourly = RateLimiterMemory(points=settings.chat_hourly_limit, duration=3600)
        self.chat_daily = RateLimiterMemory(points=settings.chat_daily_limit, duration=86400)

    def all(self) -> tuple[RateLimiterMemory, ...]:
        return (self.standard, self.strict, self.search, self.enrichment, self.chat_hourly, self.chat_daily)

    def reset_all(self) -> None:
        for limiter in self.all():
            limiter.reset()

    def cleanup_all(self) -> int:
        """Drop expired windows from every preset; returns how many were removed."""
        return sum(limiter.cleanup() for limiter in self.all())


rate_limiters = RateLimiters()


def client_key(forwarded_for: str | None, api_key: str | None = None) -> str:
    ip = forwarded_for.split(",")[0].strip() if forwarded_for else "unknown"
    if api_key is None:
        return ip
    return f"{ip}:{api_key or 'anonymous'}"

