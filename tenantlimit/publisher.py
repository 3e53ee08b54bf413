"""Moves pending outbox rows onto a pub/sub channel."""

from __future__ import annotations

import threading
from datetime import timedelta
from typing import Protocol

from tenantlimit.store.outbox import OutboxRow

_DEFAULT_INTERVAL = timedelta(milliseconds=50)
_BATCH_SIZE = 100


class _Outbox(Protocol):
    def fetch_pending(self, limit: int) -> list[OutboxRow]: ...

    def mark_sent(self, row_id: str) -> None: ...


class _PubSub(Protocol):
    def publish(self, channel: str, payload: bytes) -> None: ...


class OutboxPublisher:
    """Publishes pending outbox rows every ``interval`` and marks them sent."""

    def __init__(
        self,
        outbox: _Outbox | None,
        pubsub: _PubSub | None,
        channel: str,
        interval: timedelta = timedelta(0),
    ) -> None:
        self.outbox = outbox
        self.pubsub = pubsub
        self.channel = channel
        self.interval = interval

    def _check_configured(self) -> None:
        if self.outbox is None or self.pubsub is None:
            raise RuntimeError("outbox publisher is not configured")

    def publish_pending(self) -> int:
        """Publish one batch of pending rows and return how many were published.

        Rows that fail to publish stay pending for a later attempt.
        """
        self._check_configured()
        try:
            rows = self.outbox.fetch_pending(_BATCH_SIZE)
        except Exception:  # noqa: BLE001 - retried on the next tick
            return 0
        published = 0
        for row in rows:
            try:
                self.pubsub.publish(self.channel, row.data)
            except Exception:  # noqa: BLE001 - row stays pending
                continue
            published += 1
            try:
                self.outbox.mark_sent(row.id)
            except Exception:  # noqa: BLE001 - will be republished later
                pass
        return published

    def start(self, stop: threading.Event | None = None) -> None:
        """Publish on every tick until ``stop`` is set; without an event, run forever."""
        self._check_configured()
        if stop is None:
            stop = threading.Event()
        interval = self.interval if self.interval > timedelta(0) else _DEFAULT_INTERVAL
        seconds = interval.total_seconds()
        while not stop.wait(seconds):
            self.publish_pending()