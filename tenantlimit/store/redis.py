"""An in-process stand-in for the limiter backend."""

from __future__ import annotations

import math
import threading
from collections.abc import Callable
from dataclasses import dataclass, field
from datetime import datetime, timedelta, timezone
from enum import Enum

from tenantlimit.models import Decision, RuleParams

_DEFAULT_WINDOW = timedelta(seconds=1)
_ZERO_AWARE = datetime(1, 1, 1, tzinfo=timezone.utc)
_ZERO_NAIVE = datetime(1, 1, 1)


class RedisError(RuntimeError):
    """Raised when the backend cannot evaluate an operation."""


class _Kind(Enum):
    TOKEN_BUCKET = "token_bucket"
    FIXED_WINDOW = "fixed_window"
    SLIDING_WINDOW = "sliding_window"


@dataclass
class _TokenBucket:
    tokens: float
    last: datetime


@dataclass
class _FixedWindow:
    window_start: datetime
    used: int = 0


@dataclass
class _SlidingWindow:
    window: timedelta
    events: list[tuple[datetime, int]] = field(default_factory=list)


def _truncate(moment: datetime, window: timedelta) -> datetime:
    """Round ``moment`` down to a multiple of ``window`` since the zero time."""
    zero = _ZERO_AWARE if moment.tzinfo is not None else _ZERO_NAIVE
    return zero + ((moment - zero) // window) * window


def _utc_now() -> datetime:
    return datetime.now(timezone.utc)


class InMemoryRedis:
    """Evaluates token bucket, fixed window and sliding window limits in memory.

    ``now`` supplies the current time; a window of zero or less means
    ``default_window``.
    """

    def __init__(
        self,
        now: Callable[[], datetime] | None = None,
        default_window: timedelta = _DEFAULT_WINDOW,
    ) -> None:
        self._now = now if now is not None else _utc_now
        self._default_window = default_window
        self._lock = threading.Lock()
        self._healthy = True
        self._token_buckets: dict[str, _TokenBucket] = {}
        self._fixed_windows: dict[str, _FixedWindow] = {}
        self._sliding_windows: dict[str, _SlidingWindow] = {}

    def healthy(self) -> bool:
        return self._healthy

    def set_healthy(self, value: bool) -> None:
        """Set the health flag; while unhealthy every evaluation fails."""
        self._healthy = bool(value)

    def pipeline(self) -> InMemoryPipeline:
        return InMemoryPipeline(self)

    def exec_token_bucket(self, key: str, params: RuleParams, cost: int) -> Decision:
        with self._lock:
            return self._token_bucket(key, params, cost)

    def exec_fixed_window(self, key: str, params: RuleParams, cost: int) -> Decision:
        with self._lock:
            return self._fixed_window(key, params, cost)

    def exec_sliding_window(self, key: str, params: RuleParams, cost: int) -> Decision:
        with self._lock:
            return self._sliding_window(key, params, cost)

    def _run_all(self, ops: list[tuple[_Kind, str, RuleParams, int]]) -> list[Decision]:
        handlers = {
            _Kind.TOKEN_BUCKET: self._token_bucket,
            _Kind.FIXED_WINDOW: self._fixed_window,
            _Kind.SLIDING_WINDOW: self._sliding_window,
        }
        with self._lock:
            return [handlers[kind](key, params, cost) for kind, key, params, cost in ops]

    def _window_for(self, params: RuleParams, cost: int) -> timedelta:
        if not self._healthy:
            raise RedisError("redis unhealthy")
        if cost <= 0 or params.limit <= 0:
            raise RedisError("invalid cost or limit")
        return params.window if params.window > timedelta(0) else self._default_window

    def _token_bucket(self, key: str, params: RuleParams, cost: int) -> Decision:
        window = self._window_for(params, cost)
        capacity = max(params.limit, params.burst)
        rate = params.limit / window.total_seconds()
        now = self._now()
        state = self._token_buckets.get(key)
        if state is None:
            state = _TokenBucket(tokens=float(capacity), last=now)
            self._token_buckets[key] = state
        elapsed = (now - state.last).total_seconds()
        if elapsed > 0:
            state.tokens = min(float(capacity), state.tokens + elapsed * rate)
        state.last = now
        allowed = cost <= state.tokens
        if allowed:
            state.tokens -= cost
        retry_after = timedelta(0)
        if not allowed and rate > 0:
            needed = max(cost - state.tokens, 0.0)
            retry_after = timedelta(seconds=needed / rate)
        reset_after = timedelta(0)
        if rate > 0:
            reset_after = timedelta(seconds=(capacity - state.tokens) / rate)
        return Decision(
            allowed=allowed,
            remaining=math.floor(state.tokens),
            limit=params.limit,
            reset_after=reset_after,
            retry_after=retry_after,
        )

    def _fixed_window(self, key: str, params: RuleParams, cost: int) -> Decision:
        window = self._window_for(params, cost)
        now = self._now()
        window_start = _truncate(now, window)
        state = self._fixed_windows.get(key)
        if state is None:
            state = _FixedWindow(window_start=window_start)
            self._fixed_windows[key] = state
        if state.window_start != window_start:
            state.window_start = window_start
            state.used = 0
        allowed = state.used + cost <= params.limit
        if allowed:
            state.used += cost
        reset_after = max(window_start + window - now, timedelta(0))
        return Decision(
            allowed=allowed,
            remaining=max(params.limit - state.used, 0),
            limit=params.limit,
            reset_after=reset_after,
            retry_after=timedelta(0) if allowed else reset_after,
        )

    def _sliding_window(self, key: str, params: RuleParams, cost: int) -> Decision:
        window = self._window_for(params, cost)
        now = self._now()
        state = self._sliding_windows.get(key)
        if state is None:
            state = _SlidingWindow(window=window)
            self._sliding_windows[key] = state
        if state.window != window:
            state.window = window
            state.events = []
        cutoff = now - window
        state.events = [event for event in state.events if event[0] >= cutoff]
        total = sum(event_cost for _, event_cost in state.events)
        allowed = total + cost <= params.limit
        if allowed:
            state.events.append((now, cost))
            total += cost
        retry_after = timedelta(0)
        if not allowed and state.events:
            retry_after = max(state.events[0][0] + window - now, timedelta(0))
        return Decision(
            allowed=allowed,
            remaining=max(params.limit - total, 0),
            limit=params.limit,
            reset_after=window,
            retry_after=retry_after,
        )


class InMemoryPipeline:
    """Queues operations and evaluates them together under one lock."""

    def __init__(self, redis: InMemoryRedis | None) -> None:
        self._redis = redis
        self._ops: list[tuple[_Kind, str, RuleParams, int]] = []

    def __len__(self) -> int:
        return len(self._ops)

    def exec_token_bucket(self, key: str, params: RuleParams, cost: int) -> None:
        self._ops.append((_Kind.TOKEN_BUCKET, key, params, cost))

    def exec_fixed_window(self, key: str, params: RuleParams, cost: int) -> None:
        self._ops.append((_Kind.FIXED_WINDOW, key, params, cost))

    def exec_sliding_window(self, key: str, params: RuleParams, cost: int) -> None:
        self._ops.append((_Kind.SLIDING_WINDOW, key, params, cost))

    def exec(self) -> list[Decision]:
        """Run queued operations in order; any failure fails the whole pipeline."""
        if self._redis is None:
            raise RedisError("redis is nil")
        return self._redis._run_all(list(self._ops))