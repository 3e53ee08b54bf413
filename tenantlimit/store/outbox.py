"""An in-memory transactional outbox."""

from __future__ import annotations

import itertools
import threading
from dataclasses import dataclass


@dataclass(frozen=True)
class OutboxRow:
    """One stored outbox message."""

    id: str
    data: bytes


@dataclass
class _Entry:
    row: OutboxRow
    sent: bool = False


class InMemoryOutbox:
    """Keeps outbox rows in insertion order with numbered ids starting at 1."""

    def __init__(self) -> None:
        self._lock = threading.Lock()
        self._entries: list[_Entry] = []
        self._ids = itertools.count(1)

    def insert(self, data: bytes | bytearray) -> str:
        """Store a copy of ``data`` and return the new row id."""
        with self._lock:
            row_id = str(next(self._ids))
            self._entries.append(_Entry(OutboxRow(row_id, bytes(data))))
        return row_id

    def fetch_pending(self, limit: int) -> list[OutboxRow]:
        """Return up to ``limit`` unsent rows, oldest first."""
        if limit <= 0:
            return []
        with self._lock:
            pending = (entry.row for entry in self._entries if not entry.sent)
            return list(itertools.islice(pending, limit))

    def mark_sent(self, row_id: str) -> None:
        """Mark a row as sent.

        Raises ValueError for an empty id and KeyError for an unknown one.
        """
        if not row_id:
            raise ValueError("id is required")
        with self._lock:
            for entry in self._entries:
                if entry.row.id == row_id:
                    entry.sent = True
                    return
        raise KeyError(f"outbox row not found: {row_id}")