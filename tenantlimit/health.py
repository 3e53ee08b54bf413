"""Periodic refresh of the operating mode."""

from __future__ import annotations

import threading
from datetime import timedelta

from tenantlimit.mode import DegradeController

_DEFAULT_INTERVAL = timedelta(milliseconds=100)


class HealthLoop:
    """Calls :meth:`DegradeController.update` every ``interval`` until stopped."""

    def __init__(self, degrade: DegradeController | None, interval: timedelta = timedelta(0)) -> None:
        self.degrade = degrade
        self.interval = interval

    def start(self, stop: threading.Event | None = None) -> None:
        """Run until ``stop`` is set; without an event, run forever.

        Raises RuntimeError when no controller is configured.
        """
        if self.degrade is None:
            raise RuntimeError("health loop is not configured")
        if stop is None:
            stop = threading.Event()
        interval = self.interval if self.interval > timedelta(0) else _DEFAULT_INTERVAL
        seconds = interval.total_seconds()
        while not stop.wait(seconds):
            self.degrade.update()