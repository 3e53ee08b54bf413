"""Instance membership: the interface and a fixed, in-process implementation."""

from __future__ import annotations

import dataclasses
import threading
from collections.abc import Iterable
from dataclasses import dataclass
from typing import Protocol, runtime_checkable


@dataclass(frozen=True)
class InstanceInfo:
    """One known service instance."""

    instance_id: str
    region: str = ""
    weight: int = 1


@runtime_checkable
class Membership(Protocol):
    """Provides information about the instances of the service."""

    def self_id(self) -> str:
        """Return the local instance id."""

    def self_region(self) -> str:
        """Return the local instance region."""

    def instances(self) -> list[InstanceInfo]:
        """Return the known instances; may raise when they cannot be listed."""

    def healthy(self) -> bool:
        """Report whether membership information is current."""


def _normalized(instance: InstanceInfo) -> InstanceInfo:
    if instance.weight <= 0:
        return dataclasses.replace(instance, weight=1)
    return instance


class StaticMembership:
    """A fixed list of instances with a settable health flag.

    With no instances given, the local instance alone is known.
    Weights of zero or less count as 1.
    """

    def __init__(
        self,
        self_id: str,
        self_region: str,
        instances: Iterable[InstanceInfo] | None = None,
    ) -> None:
        self._self_id = self_id
        self._self_region = self_region
        known = list(instances) if instances is not None else []
        if not known:
            known = [InstanceInfo(self_id, self_region, 1)]
        self._instances = [_normalized(instance) for instance in known]
        self._healthy = True
        self._lock = threading.Lock()

    def self_id(self) -> str:
        return self._self_id

    def self_region(self) -> str:
        return self._self_region

    def instances(self) -> list[InstanceInfo]:
        with self._lock:
            return list(self._instances)

    def healthy(self) -> bool:
        return self._healthy

    def set_healthy(self, value: bool) -> None:
        """Set the health flag."""
        self._healthy = bool(value)

    def set_self_weight(self, weight: int) -> None:
        """Set the local instance's weight, adding the instance if it is missing."""
        weight = max(weight, 1) if weight > 0 else 1
        with self._lock:
            for position, instance in enumerate(self._instances):
                if instance.instance_id == self._self_id:
                    self._instances[position] = dataclasses.replace(instance, weight=weight)
                    return
            self._instances.append(InstanceInfo(self._self_id, self._self_region, weight))


def single_instance_membership(self_id: str, region: str) -> StaticMembership:
    """Build a membership that knows only the local instance."""
    return StaticMembership(self_id, region, [InstanceInfo(self_id, region, 1)])