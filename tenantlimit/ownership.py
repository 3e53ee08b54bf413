"""Key ownership by rendezvous hashing over the known instances."""

from __future__ import annotations

from typing import Protocol, Union, runtime_checkable

from tenantlimit.membership import InstanceInfo, Membership

_FNV64_OFFSET = 0xCBF29CE484222325
_FNV64_PRIME = 0x100000001B3
_MASK64 = 0xFFFFFFFFFFFFFFFF

KeyLike = Union[bytes, bytearray, memoryview, str]


def _fnv1a_64(*parts: bytes) -> int:
    value = _FNV64_OFFSET
    for part in parts:
        for byte in part:
            value ^= byte
            value = (value * _FNV64_PRIME) & _MASK64
    return value


def _as_bytes(key: KeyLike) -> bytes:
    if isinstance(key, str):
        return key.encode("utf-8")
    return bytes(key)


@runtime_checkable
class Ownership(Protocol):
    """Decides whether the local instance owns a key."""

    def is_owner(self, key: KeyLike) -> bool:
        """Return True when the local instance owns the key."""


class RendezvousOwnership:
    """Highest-random-weight ownership, optionally restricted to one region.

    Whenever ownership cannot be decided (no membership, no instances, an
    error listing them, no local id) the local instance is taken as owner.
    """

    def __init__(
        self,
        membership: Membership | None,
        region: str = "",
        enable_global: bool = False,
        global_fallback: bool = False,
    ) -> None:
        self.membership = membership
        self.region = region
        self.enable_global = enable_global
        self.global_fallback = global_fallback

    def is_owner(self, key: KeyLike) -> bool:
        if self.membership is None:
            return True
        try:
            instances = self.membership.instances()
        except Exception:  # noqa: BLE001 - an unreadable membership means "own it"
            return True
        if not instances:
            return True
        self_id = self.membership.self_id()
        if not self_id:
            return True

        candidates: list[InstanceInfo]
        if self.enable_global or not self.region:
            candidates = list(instances)
        else:
            candidates = [instance for instance in instances if instance.region == self.region]
        if not candidates:
            if not self.global_fallback:
                return True
            candidates = list(instances)

        raw_key = _as_bytes(key)
        best_id = ""
        best_score = 0
        for position, instance in enumerate(candidates):
            score = _fnv1a_64(instance.instance_id.encode("utf-8"), b"\x00", raw_key)
            score = (score * max(instance.weight, 1)) & _MASK64
            if position == 0 or score > best_score:
                best_score = score
                best_id = instance.instance_id
        if not best_id:
            return True
        return best_id == self_id