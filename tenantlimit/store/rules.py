"""In-memory rule storage with idempotent creation and versioned updates."""

from __future__ import annotations

import dataclasses
import hashlib
import threading
from collections.abc import Callable
from dataclasses import dataclass
from datetime import datetime, timedelta, timezone

from tenantlimit.models import KEY_SEPARATOR, CreateRuleRequest, Rule, UpdateRuleRequest


class RuleStoreError(Exception):
    """Base class for rule store failures."""


class InvalidInputError(RuleStoreError, ValueError):
    """The request is missing required fields or has invalid values."""


class ConflictError(RuleStoreError):
    """The request conflicts with the stored state."""


class NotFoundError(RuleStoreError, LookupError):
    """The rule does not exist."""


@dataclass(frozen=True)
class _IdempotencyRecord:
    rule_key: str
    payload_hash: str


def _rule_key(tenant_id: str, resource: str) -> str:
    return tenant_id + KEY_SEPARATOR + resource


def _nanoseconds(duration: timedelta) -> int:
    return (duration // timedelta(microseconds=1)) * 1000


def _payload_hash(req: CreateRuleRequest) -> str:
    text = KEY_SEPARATOR.join(
        [
            req.tenant_id,
            req.resource,
            req.algorithm,
            str(req.limit),
            str(_nanoseconds(req.window)),
            str(req.burst_size),
        ]
    )
    return hashlib.sha256(text.encode("utf-8")).hexdigest()


def _utc_now() -> datetime:
    return datetime.now(timezone.utc)


def _validate(tenant_id: str, resource: str, limit: int) -> None:
    if not tenant_id or not resource:
        raise InvalidInputError("tenant and resource are required")
    if limit <= 0:
        raise InvalidInputError("limit must be positive")


class InMemoryRuleDB:
    """Stores rules in memory; every rule returned is a private copy.

    ``now`` supplies the timestamp stamped on created and updated rules.
    """

    def __init__(self, now: Callable[[], datetime] | None = None) -> None:
        self._now = now if now is not None else _utc_now
        self._lock = threading.Lock()
        self._rules: dict[str, Rule] = {}
        self._idempotency: dict[str, _IdempotencyRecord] = {}

    def create(self, req: CreateRuleRequest | None) -> Rule:
        """Insert a new rule at version 1.

        A repeated request with the same idempotency key and payload returns the
        stored rule; the same key with a different payload is a conflict.
        """
        if req is None:
            raise InvalidInputError("request is required")
        _validate(req.tenant_id, req.resource, req.limit)
        key = _rule_key(req.tenant_id, req.resource)
        payload_hash = _payload_hash(req)

        with self._lock:
            if req.idempotency_key:
                record = self._idempotency.get(req.idempotency_key)
                if record is not None:
                    if record.payload_hash != payload_hash:
                        raise ConflictError("idempotency key reused with a different payload")
                    rule = self._rules.get(record.rule_key)
                    if rule is None:
                        raise ConflictError("idempotent rule no longer exists")
                    return dataclasses.replace(rule)

            if key in self._rules:
                raise ConflictError(f"rule already exists: {req.tenant_id}/{req.resource}")

            rule = Rule(
                tenant_id=req.tenant_id,
                resource=req.resource,
                algorithm=req.algorithm,
                limit=req.limit,
                window=req.window,
                burst_size=req.burst_size,
                version=1,
                updated_at=self._now(),
            )
            self._rules[key] = rule
            if req.idempotency_key:
                self._idempotency[req.idempotency_key] = _IdempotencyRecord(key, payload_hash)
            return dataclasses.replace(rule)

    def update(self, req: UpdateRuleRequest | None) -> Rule:
        """Replace a rule whose version equals ``req.expected_version``."""
        if req is None:
            raise InvalidInputError("request is required")
        _validate(req.tenant_id, req.resource, req.limit)
        key = _rule_key(req.tenant_id, req.resource)

        with self._lock:
            existing = self._rules.get(key)
            if existing is None:
                raise NotFoundError(f"rule not found: {req.tenant_id}/{req.resource}")
            if existing.version != req.expected_version:
                raise ConflictError(
                    f"version mismatch: have {existing.version}, expected {req.expected_version}"
                )
            rule = Rule(
                tenant_id=req.tenant_id,
                resource=req.resource,
                algorithm=req.algorithm,
                limit=req.limit,
                window=req.window,
                burst_size=req.burst_size,
                version=existing.version + 1,
                updated_at=self._now(),
            )
            self._rules[key] = rule
            return dataclasses.replace(rule)

    def delete(self, tenant_id: str, resource: str, expected_version: int) -> None:
        """Remove a rule whose version equals ``expected_version``."""
        if not tenant_id or not resource:
            raise InvalidInputError("tenant and resource are required")
        key = _rule_key(tenant_id, resource)
        with self._lock:
            rule = self._rules.get(key)
            if rule is None:
                raise NotFoundError(f"rule not found: {tenant_id}/{resource}")
            if rule.version != expected_version:
                raise ConflictError(
                    f"version mismatch: have {rule.version}, expected {expected_version}"
                )
            del self._rules[key]

    def get(self, tenant_id: str, resource: str) -> Rule:
        """Return one rule."""
        if not tenant_id or not resource:
            raise InvalidInputError("tenant and resource are required")
        with self._lock:
            rule = self._rules.get(_rule_key(tenant_id, resource))
            if rule is None:
                raise NotFoundError(f"rule not found: {tenant_id}/{resource}")
            return dataclasses.replace(rule)

    def list(self, tenant_id: str) -> list[Rule]:
        """Return all rules of a tenant."""
        if not tenant_id:
            raise InvalidInputError("tenant is required")
        with self._lock:
            return [
                dataclasses.replace(rule)
                for rule in self._rules.values()
                if rule.tenant_id == tenant_id
            ]

    def load_all(self) -> list[Rule]:
        """Return every stored rule."""
        with self._lock:
            return [dataclasses.replace(rule) for rule in self._rules.values()]