"""A sharded, reference-counted cache of limiters per tenant and resource."""

from __future__ import annotations

import dataclasses
import threading
from dataclasses import dataclass
from datetime import timedelta
from enum import IntEnum

from tenantlimit.limiter import LimiterError, LimiterFactory, RedisLimiter
from tenantlimit.lru import LRUKeys
from tenantlimit.models import Rule, limiter_pool_key
from tenantlimit.rulecache import RuleCache

_FNV32_OFFSET = 0x811C9DC5
_FNV32_PRIME = 0x01000193


def _fnv1a_32(data: bytes) -> int:
    value = _FNV32_OFFSET
    for byte in data:
        value ^= byte
        value = (value * _FNV32_PRIME) & 0xFFFFFFFF
    return value


def _shard_index(tenant_id: str, resource: str, total: int) -> int:
    if total <= 1:
        return 0
    data = tenant_id.encode("utf-8") + b"\x00" + resource.encode("utf-8")
    return _fnv1a_32(data) % total


@dataclass(frozen=True)
class LimiterPolicy:
    """Pool sizing and lifecycle timing; zero or negative values take defaults."""

    shards: int = 0
    max_entries_shard: int = 0
    quiesce_window: timedelta = timedelta(0)
    close_timeout: timedelta = timedelta(0)

    def normalized(self) -> LimiterPolicy:
        """Return a copy with defaults filled in."""
        return dataclasses.replace(
            self,
            shards=self.shards if self.shards > 0 else 16,
            max_entries_shard=self.max_entries_shard if self.max_entries_shard > 0 else 1024,
            quiesce_window=(
                self.quiesce_window
                if self.quiesce_window > timedelta(0)
                else timedelta(milliseconds=50)
            ),
            close_timeout=(
                self.close_timeout if self.close_timeout > timedelta(0) else timedelta(seconds=2)
            ),
        )


class EntryState(IntEnum):
    """Lifecycle of a pooled limiter."""

    ACTIVE = 0
    QUIESCING = 1
    CLOSED = 2


class _Entry:
    def __init__(self, limiter: RedisLimiter) -> None:
        self.limiter = limiter
        self.state = EntryState.ACTIVE
        self.refs = 0
        self._cond = threading.Condition()

    def try_ref(self) -> bool:
        """Take a reference if the entry is still active."""
        with self._cond:
            if self.state != EntryState.ACTIVE:
                return False
            self.refs += 1
            return True

    def release(self) -> None:
        with self._cond:
            self.refs = max(self.refs - 1, 0)
            if self.refs == 0:
                self._cond.notify_all()

    def mark_quiescing(self) -> None:
        with self._cond:
            if self.state != EntryState.CLOSED:
                self.state = EntryState.QUIESCING

    def wait_idle(self, timeout: timedelta) -> bool:
        with self._cond:
            return self._cond.wait_for(lambda: self.refs == 0, timeout.total_seconds())

    def close(self) -> None:
        with self._cond:
            if self.state == EntryState.CLOSED:
                return
            self.state = EntryState.CLOSED
        self.limiter.close()


class LimiterHandle:
    """Pins a pooled limiter until released; also usable as a context manager."""

    def __init__(self, entry: _Entry, rule: Rule) -> None:
        self._entry = entry
        self.limiter = entry.limiter
        self.rule = rule
        self._lock = threading.Lock()
        self._released = False

    @property
    def state(self) -> EntryState:
        """The lifecycle state of the pinned limiter."""
        return self._entry.state

    def release(self) -> None:
        """Drop the pin; calling it again does nothing."""
        with self._lock:
            if self._released:
                return
            self._released = True
        self._entry.release()

    def __enter__(self) -> LimiterHandle:
        return self

    def __exit__(self, *exc_info: object) -> None:
        self.release()


class _Shard:
    def __init__(self, max_entries: int) -> None:
        self.lock = threading.Lock()
        self.entries: dict[str, _Entry] = {}
        self.lru = LRUKeys(max_entries)


class LimiterPool:
    """Caches one limiter per tenant/resource, evicting least recently used ones.

    Limiters being replaced or evicted stop being handed out at once and are
    closed when their last handle is released or the close timeout passes.
    """

    def __init__(
        self,
        rules: RuleCache,
        factory: LimiterFactory,
        policy: LimiterPolicy | None = None,
    ) -> None:
        self.rules = rules
        self.factory = factory
        self.policy = (policy or LimiterPolicy()).normalized()
        self._shards = [_Shard(self.policy.max_entries_shard) for _ in range(self.policy.shards)]

    def _shard_for(self, tenant_id: str, resource: str) -> _Shard:
        return self._shards[_shard_index(tenant_id, resource, len(self._shards))]

    def acquire(self, tenant_id: str, resource: str) -> LimiterHandle:
        """Return a handle on the limiter for a tenant/resource, building it if needed.

        Raises LimiterError when there is no rule or the limiter cannot be built.
        """
        rule = self.rules.get(tenant_id, resource)
        if rule is None:
            raise LimiterError(f"rule not found: {tenant_id}/{resource}")
        shard = self._shard_for(tenant_id, resource)
        key = limiter_pool_key(tenant_id, resource)

        with shard.lock:
            entry = shard.entries.get(key)
            if entry is not None and entry.try_ref():
                shard.lru.touch(key)
                return LimiterHandle(entry, rule)

            entry = _Entry(self.factory.create(rule))
            entry.try_ref()
            shard.entries[key] = entry
            shard.lru.add(key)
            self._evict_if_needed(shard)
            return LimiterHandle(entry, rule)

    def cutover(
        self,
        tenant_id: str,
        resource: str,
        new_rule_version: int,
        cancel: threading.Event | None = None,
    ) -> None:
        """Retire the current limiter so the next acquire builds a fresh one.

        Blocks for the quiesce window (cut short by ``cancel``), then until the
        old limiter is idle or the close timeout passes, then closes it.
        """
        shard = self._shard_for(tenant_id, resource)
        key = limiter_pool_key(tenant_id, resource)
        with shard.lock:
            entry = shard.entries.pop(key, None)
            if entry is None:
                return
            entry.mark_quiescing()
            shard.lru.remove(key)

        seconds = self.policy.quiesce_window.total_seconds()
        if cancel is None:
            threading.Event().wait(seconds)
        else:
            cancel.wait(seconds)

        entry.wait_idle(self.policy.close_timeout)
        entry.close()

    def _evict_if_needed(self, shard: _Shard) -> None:
        for key in shard.lru.evict_if_needed():
            entry = shard.entries.pop(key, None)
            if entry is None:
                continue
            if entry.refs == 0:
                entry.close()
                continue
            entry.mark_quiescing()
            threading.Thread(target=self._wait_and_close, args=(entry,), daemon=True).start()

    def _wait_and_close(self, entry: _Entry) -> None:
        entry.wait_idle(self.policy.close_timeout)
        entry.close()