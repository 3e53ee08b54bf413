"""Service metrics: the recorder interface and an in-memory implementation."""

from __future__ import annotations

import threading
from dataclasses import dataclass
from datetime import timedelta
from typing import Any, Protocol, runtime_checkable


@runtime_checkable
class Metrics(Protocol):
    """Records service measurements."""

    def inc_check(self, result: str, algorithm: str, region: str) -> None:
        """Count one rate limit check."""

    def observe_latency(self, op: str, duration: timedelta, region: str) -> None:
        """Record how long an operation took."""

    def inc_fallback(self, reason: str, region: str) -> None:
        """Count one use of the fallback limiter."""

    def inc_redis_error(self, op: str, region: str) -> None:
        """Count one backend error."""

    def inc_batch_item_error(self, code: str, region: str) -> None:
        """Count one failed batch item."""


@dataclass
class _LatencySummary:
    count: int = 0
    total_nanos: int = 0
    max_nanos: int = 0


def _nanoseconds(duration: timedelta) -> int:
    return ((duration.days * 86400 + duration.seconds) * 1_000_000 + duration.microseconds) * 1000


class InMemoryMetrics:
    """Keeps counters and latency summaries in memory."""

    def __init__(self) -> None:
        self._lock = threading.Lock()
        self._counters: dict[str, int] = {}
        self._latencies: dict[str, _LatencySummary] = {}

    def inc_check(self, result: str, algorithm: str, region: str) -> None:
        self.inc_counter(f"check|{result}|{algorithm}|{region}")

    def observe_latency(self, op: str, duration: timedelta, region: str) -> None:
        key = f"latency|{op}|{region}"
        nanos = _nanoseconds(duration)
        with self._lock:
            summary = self._latencies.setdefault(key, _LatencySummary())
            summary.count += 1
            summary.total_nanos += nanos
            if nanos > summary.max_nanos:
                summary.max_nanos = nanos

    def inc_fallback(self, reason: str, region: str) -> None:
        self.inc_counter(f"fallback|{reason}|{region}")

    def inc_redis_error(self, op: str, region: str) -> None:
        self.inc_counter(f"redis_error|{op}|{region}")

    def inc_batch_item_error(self, code: str, region: str) -> None:
        self.inc_counter(f"batch_error|{code}|{region}")

    def inc_counter(self, key: str) -> None:
        """Increment an arbitrary counter; an empty key is ignored."""
        if not key:
            return
        with self._lock:
            self._counters[key] = self._counters.get(key, 0) + 1

    def snapshot(self) -> dict[str, Any]:
        """Return a copy of all counters and latency summaries."""
        with self._lock:
            counters = dict(self._counters)
            latencies = {
                key: {
                    "count": summary.count,
                    "totalNanos": summary.total_nanos,
                    "maxNanos": summary.max_nanos,
                }
                for key, summary in self._latencies.items()
            }
        return {"counters": counters, "latencies": latencies}