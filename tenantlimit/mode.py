"""Operating mode control driven by backend and membership health."""

from __future__ import annotations

import dataclasses
import math
import threading
import time
from collections.abc import Callable
from dataclasses import dataclass
from datetime import timedelta
from enum import IntEnum

from tenantlimit.interfaces import RedisClient
from tenantlimit.membership import Membership
from tenantlimit.observability.logs import Logger


class OperatingMode(IntEnum):
    """How the service is currently operating."""

    NORMAL = 0
    DEGRADED = 1
    EMERGENCY = 2

    @property
    def label(self) -> str:
        return self.name.lower()


@dataclass(frozen=True)
class DegradeThresholds:
    """How long a dependency may stay unhealthy before the mode changes."""

    redis_unhealthy_for: timedelta = timedelta(0)
    membership_unhealthy: timedelta = timedelta(0)
    error_rate_window: timedelta = timedelta(0)


_DEFAULT_REDIS_UNHEALTHY = timedelta(milliseconds=500)
_DEFAULT_MEMBERSHIP_UNHEALTHY = timedelta(seconds=2)


class DegradeController:
    """Tracks dependency health and derives the operating mode.

    The mode is degraded once the backend has been unhealthy for
    ``redis_unhealthy_for``, and an emergency when membership has also been
    unhealthy for ``membership_unhealthy``. ``clock`` returns seconds on a
    monotonic scale.
    """

    def __init__(
        self,
        redis: RedisClient | None,
        membership: Membership | None,
        thresholds: DegradeThresholds | None = None,
        region: str = "",
        require_quorum: bool = False,
        quorum_fraction: float = 0.0,
        *,
        logger: Logger | None = None,
        clock: Callable[[], float] = time.monotonic,
    ) -> None:
        thresholds = thresholds or DegradeThresholds()
        if thresholds.redis_unhealthy_for == timedelta(0):
            thresholds = dataclasses.replace(thresholds, redis_unhealthy_for=_DEFAULT_REDIS_UNHEALTHY)
        if thresholds.membership_unhealthy == timedelta(0):
            thresholds = dataclasses.replace(
                thresholds, membership_unhealthy=_DEFAULT_MEMBERSHIP_UNHEALTHY
            )
        self.redis = redis
        self.membership = membership
        self.thresholds = thresholds
        self.region = region
        self.require_quorum = require_quorum
        self.quorum_fraction = quorum_fraction if quorum_fraction != 0 else 0.5
        self.logger = logger
        self._clock = clock
        self._lock = threading.Lock()
        self._mode = OperatingMode.NORMAL
        now = clock()
        self._last_redis_healthy = now
        self._last_membership_healthy = now

    @property
    def mode(self) -> OperatingMode:
        """The current operating mode."""
        return self._mode

    def region_status(self) -> tuple[int, int, bool]:
        """Return (instances in this region, total instances, quorum reached)."""
        if self.membership is None:
            return 0, 0, not self.require_quorum
        try:
            instances = self.membership.instances()
        except Exception:  # noqa: BLE001 - treated as unknown membership
            return 0, 0, not self.require_quorum
        in_region = sum(1 for instance in instances if instance.region == self.region)
        total = len(instances)
        if not self.require_quorum:
            return in_region, total, True
        if total == 0:
            return in_region, total, False
        required = max(math.ceil(total * self.quorum_fraction), 1)
        return in_region, total, in_region >= required

    def update(self) -> OperatingMode:
        """Sample dependency health, recompute the mode and return it."""
        now = self._clock()
        redis_healthy = self.redis.healthy() if self.redis is not None else True
        membership_healthy = self.membership.healthy() if self.membership is not None else True
        if self.require_quorum and not self.region_status()[2]:
            membership_healthy = False

        with self._lock:
            if redis_healthy:
                self._last_redis_healthy = now
            if membership_healthy:
                self._last_membership_healthy = now
            redis_age = now - self._last_redis_healthy
            membership_age = now - self._last_membership_healthy

            mode = OperatingMode.NORMAL
            if redis_age >= self.thresholds.redis_unhealthy_for.total_seconds():
                mode = OperatingMode.DEGRADED
                if membership_age >= self.thresholds.membership_unhealthy.total_seconds():
                    mode = OperatingMode.EMERGENCY
            previous = self._mode
            self._mode = mode

        if previous != mode and self.logger is not None:
            self.logger.info(
                "mode changed",
                {"old": previous.label, "new": mode.label, "timestamp": time.time_ns()},
            )
        return mode