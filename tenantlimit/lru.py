"""Least-recently-used key tracking."""

from __future__ import annotations

from collections import OrderedDict


class LRUKeys:
    """Tracks keys in recency order and reports which to evict past a maximum."""

    def __init__(self, max_size: int) -> None:
        self.max_size = max(max_size, 0)
        self._order: OrderedDict[str, None] = OrderedDict()

    def __len__(self) -> int:
        return len(self._order)

    def __contains__(self, key: object) -> bool:
        return key in self._order

    def __iter__(self):
        """Iterate from most to least recently used."""
        return reversed(self._order)

    def touch(self, key: str) -> None:
        """Mark a key as most recently used, adding it if absent."""
        self.add(key)

    def add(self, key: str) -> None:
        """Insert a key as most recently used."""
        if key in self._order:
            self._order.move_to_end(key)
        else:
            self._order[key] = None

    def remove(self, key: str) -> None:
        """Forget a key; unknown keys are ignored."""
        self._order.pop(key, None)

    def evict_if_needed(self) -> list[str]:
        """Drop least recently used keys until within the maximum; return them oldest first."""
        evicted: list[str] = []
        while len(self._order) > self.max_size:
            key, _ = self._order.popitem(last=False)
            evicted.append(key)
        return evicted