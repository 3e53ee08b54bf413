"""Limiters backed by the store, with circuit breaking and local fallback."""

from __future__ import annotations

import threading
from collections.abc import Sequence
from dataclasses import dataclass
from datetime import timedelta
from enum import Enum
from typing import Generic, Protocol, TypeVar, Union, runtime_checkable

from tenantlimit.interfaces import RedisClient, RedisPipeline
from tenantlimit.mode import DegradeController, OperatingMode
from tenantlimit.models import Decision, Rule, RuleParams

T = TypeVar("T")
KeyLike = Union[bytes, bytearray, str]


class LimiterError(Exception):
    """Raised when a limiter cannot be built or cannot decide."""


class LimiterAlgorithm(str, Enum):
    """Supported rate limiting algorithms."""

    TOKEN_BUCKET = "token_bucket"
    FIXED_WINDOW = "fixed_window"
    SLIDING_WINDOW = "sliding_window"


_ALIASES = {
    "token_bucket": LimiterAlgorithm.TOKEN_BUCKET,
    "tokenbucket": LimiterAlgorithm.TOKEN_BUCKET,
    "fixed_window": LimiterAlgorithm.FIXED_WINDOW,
    "fixedwindow": LimiterAlgorithm.FIXED_WINDOW,
    "sliding_window": LimiterAlgorithm.SLIDING_WINDOW,
    "slidingwindow": LimiterAlgorithm.SLIDING_WINDOW,
}


def normalize_algorithm(algo: str) -> LimiterAlgorithm:
    """Map an algorithm name, in any case and with spaces or underscores, to its enum."""
    if not algo:
        raise LimiterError("algorithm is required")
    normalized = algo.lower().strip().replace(" ", "_")
    try:
        return _ALIASES[normalized]
    except KeyError:
        raise LimiterError(f"unsupported algorithm: {algo!r}") from None


@dataclass(frozen=True)
class LimitResult(Generic[T]):
    """A limiter outcome and whether the local fallback produced it."""

    value: T
    used_fallback: bool = False


@runtime_checkable
class Limiter(Protocol):
    """Decides whether requests are allowed."""

    def allow(self, key: KeyLike, cost: int) -> LimitResult[Decision]:
        """Decide on one request."""

    def allow_batch(
        self, keys: Sequence[KeyLike], costs: Sequence[int]
    ) -> LimitResult[list[Decision]]:
        """Decide on several requests, one decision per key in order."""

    def rule_version(self) -> int:
        """Return the version of the rule the limiter was built from."""

    def close(self) -> None:
        """Release the limiter's resources."""


class _Fallback(Protocol):
    def allow(self, key: KeyLike, params: RuleParams, cost: int) -> Decision: ...


class _Breaker(Protocol):
    def allow(self) -> bool: ...

    def on_success(self) -> None: ...

    def on_failure(self) -> None: ...


def _key_text(key: KeyLike) -> str:
    if isinstance(key, str):
        return key
    return bytes(key).decode("utf-8", errors="surrogateescape")


class RedisLimiter:
    """Evaluates one rule against the store, falling back locally when needed.

    The fallback is used in emergency mode, while the breaker is open, and
    whenever the store fails.
    """

    def __init__(
        self,
        algorithm: LimiterAlgorithm,
        redis: RedisClient | None,
        fallback: _Fallback | None,
        degrade: DegradeController | None,
        breaker: _Breaker | None,
        params: RuleParams,
    ) -> None:
        self.algorithm = algorithm
        self.redis = redis
        self.fallback = fallback
        self.degrade = degrade
        self.breaker = breaker
        self.params = params

    def _bypass_store(self) -> bool:
        if self.degrade is not None and self.degrade.mode == OperatingMode.EMERGENCY:
            return True
        return self.breaker is not None and not self.breaker.allow()

    def allow(self, key: KeyLike, cost: int) -> LimitResult[Decision]:
        if self._bypass_store():
            return self._fallback_decision(key, cost)
        try:
            decision = self._exec(key, cost)
        except Exception:  # noqa: BLE001 - any store failure falls back
            if self.breaker is not None:
                self.breaker.on_failure()
            return self._fallback_decision(key, cost)
        if self.breaker is not None:
            self.breaker.on_success()
        return LimitResult(decision)

    def allow_batch(
        self, keys: Sequence[KeyLike], costs: Sequence[int]
    ) -> LimitResult[list[Decision]]:
        if self._bypass_store() or self.redis is None:
            return self._fallback_decisions(keys, costs)
        pipe = self.redis.pipeline()
        for key, cost in self._pairs(keys, costs):
            self._queue(pipe, _key_text(key), cost)
        try:
            decisions = pipe.exec()
        except Exception:  # noqa: BLE001 - any store failure falls back
            decisions = None
        if decisions is None or len(decisions) != len(keys):
            if self.breaker is not None:
                self.breaker.on_failure()
            return self._fallback_decisions(keys, costs)
        if self.breaker is not None:
            self.breaker.on_success()
        return LimitResult(list(decisions))

    def rule_version(self) -> int:
        return self.params.version

    def close(self) -> None:
        """Nothing to release; present for the limiter interface."""

    @staticmethod
    def _pairs(keys: Sequence[KeyLike], costs: Sequence[int]):
        for position, key in enumerate(keys):
            yield key, costs[position] if position < len(costs) else 0

    def _exec(self, key: KeyLike, cost: int) -> Decision:
        if self.redis is None:
            raise LimiterError("redis is nil")
        text = _key_text(key)
        if self.algorithm is LimiterAlgorithm.TOKEN_BUCKET:
            return self.redis.exec_token_bucket(text, self.params, cost)
        if self.algorithm is LimiterAlgorithm.FIXED_WINDOW:
            return self.redis.exec_fixed_window(text, self.params, cost)
        if self.algorithm is LimiterAlgorithm.SLIDING_WINDOW:
            return self.redis.exec_sliding_window(text, self.params, cost)
        raise LimiterError("unsupported limiter algorithm")

    def _queue(self, pipe: RedisPipeline, key: str, cost: int) -> None:
        if self.algorithm is LimiterAlgorithm.TOKEN_BUCKET:
            pipe.exec_token_bucket(key, self.params, cost)
        elif self.algorithm is LimiterAlgorithm.FIXED_WINDOW:
            pipe.exec_fixed_window(key, self.params, cost)
        elif self.algorithm is LimiterAlgorithm.SLIDING_WINDOW:
            pipe.exec_sliding_window(key, self.params, cost)

    def _fallback_decision(self, key: KeyLike, cost: int) -> LimitResult[Decision]:
        if self.fallback is None:
            raise LimiterError("fallback is nil")
        return LimitResult(self.fallback.allow(key, self.params, cost), used_fallback=True)

    def _fallback_decisions(
        self, keys: Sequence[KeyLike], costs: Sequence[int]
    ) -> LimitResult[list[Decision]]:
        if self.fallback is None:
            raise LimiterError("fallback is nil")
        decisions = [self.fallback.allow(key, self.params, cost) for key, cost in self._pairs(keys, costs)]
        return LimitResult(decisions, used_fallback=True)


class LimiterFactory:
    """Builds limiters from rules, all sharing one store, fallback, mode and breaker.

    Without a breaker, limiters call the store on every request.
    """

    def __init__(
        self,
        redis: RedisClient | None = None,
        fallback: _Fallback | None = None,
        degrade: DegradeController | None = None,
        breaker: _Breaker | None = None,
    ) -> None:
        self.redis = redis
        self.fallback = fallback
        self.degrade = degrade
        self.breaker = breaker
        self._lock = threading.Lock()

    def create(self, rule: Rule | None) -> RedisLimiter:
        """Build a limiter for ``rule``; its parameters are on ``.params``."""
        if self.redis is None or self.fallback is None or self.degrade is None:
            raise LimiterError("limiter factory is not configured")
        if rule is None:
            raise LimiterError("rule is required")
        if not rule.tenant_id or not rule.resource:
            raise LimiterError("rule must include tenant and resource")
        if rule.limit <= 0:
            raise LimiterError("rule limit must be positive")
        params = RuleParams(
            limit=rule.limit,
            window=rule.window if rule.window is not None else timedelta(0),
            burst=rule.burst_size,
            version=rule.version,
        )
        algorithm = normalize_algorithm(rule.algorithm)
        with self._lock:
            breaker = self.breaker
        return RedisLimiter(algorithm, self.redis, self.fallback, self.degrade, breaker, params)