"""In-process publish/subscribe with asynchronous delivery."""

from __future__ import annotations

import itertools
import threading
from collections.abc import Callable

Handler = Callable[[bytes], None]


class Subscription:
    """A registered handler on one channel; cancel it to stop deliveries."""

    def __init__(self, pubsub: InMemoryPubSub, channel: str, sub_id: int, handler: Handler) -> None:
        self._pubsub = pubsub
        self.channel = channel
        self._id = sub_id
        self.handler = handler
        self._cancelled = threading.Event()

    @property
    def active(self) -> bool:
        return not self._cancelled.is_set()

    def cancel(self) -> None:
        """Stop receiving messages; calling it again does nothing."""
        self._cancelled.set()
        self._pubsub._remove(self.channel, self._id)

    def __enter__(self) -> Subscription:
        return self

    def __exit__(self, *exc_info: object) -> None:
        self.cancel()


class InMemoryPubSub:
    """Delivers each published payload to the channel's current subscribers.

    Every delivery runs on its own thread with a private copy of the payload.
    """

    def __init__(self) -> None:
        self._lock = threading.Lock()
        self._subs: dict[str, dict[int, Subscription]] = {}
        self._ids = itertools.count(1)

    def subscribe(self, channel: str, handler: Handler | None) -> Subscription:
        """Register ``handler`` for ``channel``."""
        if not channel:
            raise ValueError("channel is required")
        if handler is None:
            raise ValueError("handler is required")
        with self._lock:
            sub_id = next(self._ids)
            subscription = Subscription(self, channel, sub_id, handler)
            self._subs.setdefault(channel, {})[sub_id] = subscription
        return subscription

    def publish(self, channel: str, payload: bytes | bytearray) -> None:
        """Deliver ``payload`` to every active subscriber of ``channel``."""
        if not channel:
            raise ValueError("channel is required")
        with self._lock:
            targets = list(self._subs.get(channel, {}).values())
        for subscription in targets:
            if not subscription.active:
                continue
            data = bytes(payload)
            threading.Thread(target=subscription.handler, args=(data,), daemon=True).start()

    def _remove(self, channel: str, sub_id: int) -> None:
        with self._lock:
            subs = self._subs.get(channel)
            if subs is None:
                return
            subs.pop(sub_id, None)
            if not subs:
                del self._subs[channel]