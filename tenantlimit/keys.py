"""Request key construction and response reuse."""

from __future__ import annotations

import threading

from tenantlimit.models import KEY_SEPARATOR, CheckLimitResponse

_SEPARATOR = KEY_SEPARATOR.encode("ascii")


class KeyBuilder:
    """Builds ``tenant\\x1fuser\\x1fresource`` keys in reusable buffers.

    A key handed to :meth:`release_key` is cleared and may be returned again
    by a later :meth:`build_key`. With ``pool_size`` of 0 nothing is reused.
    """

    def __init__(self, pool_size: int = 64) -> None:
        self._pool_size = max(pool_size, 0)
        self._free: list[bytearray] = []
        self._lock = threading.Lock()

    def build_key(self, tenant_id: str, user_id: str, resource: str) -> bytearray:
        with self._lock:
            buf = self._free.pop() if self._free else bytearray()
        buf += tenant_id.encode("utf-8")
        buf += _SEPARATOR
        buf += user_id.encode("utf-8")
        buf += _SEPARATOR
        buf += resource.encode("utf-8")
        return buf

    def release_key(self, key: bytearray | None) -> None:
        """Return a key's buffer for reuse."""
        if self._pool_size == 0 or not isinstance(key, bytearray):
            return
        with self._lock:
            if len(self._free) >= self._pool_size or any(buf is key for buf in self._free):
                return
            key.clear()
            self._free.append(key)

    def key_to_string(self, key: bytes | bytearray) -> str:
        """Convert key bytes to text without losing any byte."""
        return bytes(key).decode("utf-8", errors="surrogateescape")


class ResponsePool:
    """Hands out reset :class:`CheckLimitResponse` objects, reusing returned ones."""

    def __init__(self, max_size: int = 1024) -> None:
        self._max_size = max(max_size, 0)
        self._free: list[CheckLimitResponse] = []
        self._lock = threading.Lock()

    def get(self) -> CheckLimitResponse:
        with self._lock:
            resp = self._free.pop() if self._free else None
        if resp is None:
            return CheckLimitResponse()
        resp.reset()
        return resp

    def put(self, resp: CheckLimitResponse | None) -> None:
        if resp is None:
            return
        resp.reset()
        with self._lock:
            if len(self._free) >= self._max_size or any(r is resp for r in self._free):
                return
            self._free.append(resp)