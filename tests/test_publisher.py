import queue
import threading
from datetime import timedelta

import pytest

from tenantlimit.publisher import OutboxPublisher
from tenantlimit.store.outbox import InMemoryOutbox
from tenantlimit.store.pubsub import InMemoryPubSub


class _FailingPubSub:
    def publish(self, channel, payload):
        raise ConnectionError("down")


def test_publish_pending_delivers_and_marks_sent():
    outbox = InMemoryOutbox()
    pubsub = InMemoryPubSub()
    received: queue.Queue = queue.Queue()
    pubsub.subscribe("invalidate", received.put)
    outbox.insert(b"one")
    outbox.insert(b"two")
    publisher = OutboxPublisher(outbox, pubsub, "invalidate")
    assert publisher.publish_pending() == 2
    assert outbox.fetch_pending(10) == []
    got = {received.get(timeout=2), received.get(timeout=2)}
    assert got == {b"one", b"two"}


def test_publish_pending_works_in_batches_of_one_hundred():
    outbox = InMemoryOutbox()
    for index in range(105):
        outbox.insert(str(index).encode())
    publisher = OutboxPublisher(outbox, InMemoryPubSub(), "invalidate")
    assert publisher.publish_pending() == 100
    assert len(outbox.fetch_pending(1000)) == 5


def test_failed_publish_leaves_rows_pending():
    outbox = InMemoryOutbox()
    outbox.insert(b"one")
    publisher = OutboxPublisher(outbox, _FailingPubSub(), "invalidate")
    assert publisher.publish_pending() == 0
    assert [row.data for row in outbox.fetch_pending(10)] == [b"one"]


@pytest.mark.parametrize("use_outbox", [True, False])
def test_unconfigured_publisher_raises(use_outbox):
    outbox = InMemoryOutbox() if use_outbox else None
    pubsub = None if use_outbox else InMemoryPubSub()
    publisher = OutboxPublisher(outbox, pubsub, "invalidate")
    with pytest.raises(RuntimeError):
        publisher.start(threading.Event())
    with pytest.raises(RuntimeError):
        publisher.publish_pending()


def test_start_publishes_until_stopped():
    outbox = InMemoryOutbox()
    pubsub = InMemoryPubSub()
    received: queue.Queue = queue.Queue()
    pubsub.subscribe("invalidate", received.put)
    publisher = OutboxPublisher(outbox, pubsub, "invalidate", timedelta(milliseconds=5))
    stop = threading.Event()
    worker = threading.Thread(target=publisher.start, args=(stop,), daemon=True)
    worker.start()
    outbox.insert(b"event")
    try:
        assert received.get(timeout=2) == b"event"
    finally:
        stop.set()
        worker.join(timeout=2)
    assert not worker.is_alive()
    assert outbox.fetch_pending(10) == []