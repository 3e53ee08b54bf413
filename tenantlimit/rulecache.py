"""Copy-on-write cache of rate limit rules keyed by tenant and resource."""

from __future__ import annotations

import dataclasses
import threading
from collections.abc import Iterable

from tenantlimit.models import Rule

_Snapshot = dict[str, dict[str, Rule]]


class RuleCache:
    """Holds an immutable snapshot of rules that writers replace as a whole.

    Readers never take a lock: they read whichever snapshot is current.
    Writers serialise on a lock and publish a fresh snapshot, so a snapshot
    once published is never changed.
    """

    def __init__(self) -> None:
        self._lock = threading.Lock()
        self._by_tenant: _Snapshot = {}

    def get(self, tenant_id: str, resource: str) -> Rule | None:
        """Return the rule for a tenant/resource, or None if there is none."""
        tenant_rules = self._by_tenant.get(tenant_id)
        if tenant_rules is None:
            return None
        return tenant_rules.get(resource)

    def list(self, tenant_id: str) -> list[Rule]:
        """Return all rules of a tenant, in no particular order."""
        tenant_rules = self._by_tenant.get(tenant_id)
        if tenant_rules is None:
            return []
        return list(tenant_rules.values())

    def replace_all(self, rules: Iterable[Rule | None]) -> None:
        """Replace the whole snapshot with copies of the given rules."""
        by_tenant: _Snapshot = {}
        for rule in rules:
            if rule is None:
                continue
            clone = dataclasses.replace(rule)
            by_tenant.setdefault(clone.tenant_id, {})[clone.resource] = clone
        with self._lock:
            self._by_tenant = by_tenant

    def upsert_if_newer(self, rule: Rule | None) -> None:
        """Store a copy of the rule unless the cache holds the same or a newer version."""
        if rule is None:
            return
        with self._lock:
            snapshot = self._by_tenant
            old_tenant = snapshot.get(rule.tenant_id)
            if old_tenant is not None:
                existing = old_tenant.get(rule.resource)
                if existing is not None and rule.version <= existing.version:
                    return
            by_resource = dict(old_tenant) if old_tenant is not None else {}
            by_resource[rule.resource] = dataclasses.replace(rule)
            by_tenant = dict(snapshot)
            by_tenant[rule.tenant_id] = by_resource
            self._by_tenant = by_tenant

    def delete_if_older_or_equal(self, tenant_id: str, resource: str, version: int) -> None:
        """Remove a rule whose version is not newer than ``version``."""
        with self._lock:
            snapshot = self._by_tenant
            old_tenant = snapshot.get(tenant_id)
            if old_tenant is None:
                return
            existing = old_tenant.get(resource)
            if existing is None or existing.version > version:
                return
            by_resource = {key: value for key, value in old_tenant.items() if key != resource}
            by_tenant = dict(snapshot)
            if by_resource:
                by_tenant[tenant_id] = by_resource
            else:
                del by_tenant[tenant_id]
            self._by_tenant = by_tenant