from datetime import datetime, timedelta, timezone

import pytest

from tenantlimit.models import CreateRuleRequest, UpdateRuleRequest
from tenantlimit.store.rules import (
    ConflictError,
    InMemoryRuleDB,
    InvalidInputError,
    NotFoundError,
    RuleStoreError,
)

FIXED_TIME = datetime(2024, 1, 1, tzinfo=timezone.utc)


@pytest.fixture
def db():
    return InMemoryRuleDB(now=lambda: FIXED_TIME)


def _create(tenant="tenant", resource="resource", limit=10, key=""):
    return CreateRuleRequest(
        tenant_id=tenant,
        resource=resource,
        algorithm="token_bucket",
        limit=limit,
        window=timedelta(seconds=1),
        burst_size=0,
        idempotency_key=key,
    )


def test_create_sets_version_and_timestamp(db):
    rule = db.create(_create())
    assert rule.version == 1
    assert rule.updated_at == FIXED_TIME
    assert rule.tenant_id == "tenant"
    assert rule.limit == 10


def test_create_duplicate_conflicts(db):
    db.create(_create())
    with pytest.raises(ConflictError):
        db.create(_create())


@pytest.mark.parametrize(
    "req",
    [None, _create(tenant=""), _create(resource=""), _create(limit=0), _create(limit=-1)],
)
def test_create_invalid_input(db, req):
    with pytest.raises(InvalidInputError):
        db.create(req)


def test_create_idempotent_same_payload_returns_rule(db):
    first = db.create(_create(key="idem"))
    second = db.create(_create(key="idem"))
    assert first == second


def test_create_idempotent_different_payload_conflicts(db):
    db.create(_create(key="idem"))
    with pytest.raises(ConflictError):
        db.create(_create(limit=20, key="idem"))


def test_create_idempotent_after_delete_conflicts(db):
    rule = db.create(_create(key="idem"))
    db.delete("tenant", "resource", rule.version)
    with pytest.raises(ConflictError):
        db.create(_create(key="idem"))


def test_update_increments_version(db):
    created = db.create(_create())
    updated = db.update(
        UpdateRuleRequest(
            tenant_id="tenant",
            resource="resource",
            algorithm="fixed_window",
            limit=20,
            expected_version=created.version,
        )
    )
    assert updated.version == created.version + 1
    assert updated.limit == 20
    assert db.get("tenant", "resource") == updated


def test_update_version_mismatch_conflicts(db):
    created = db.create(_create())
    with pytest.raises(ConflictError):
        db.update(
            UpdateRuleRequest(
                tenant_id="tenant", resource="resource", limit=5, expected_version=created.version + 1
            )
        )


def test_update_missing_not_found(db):
    with pytest.raises(NotFoundError):
        db.update(UpdateRuleRequest(tenant_id="tenant", resource="resource", limit=5, expected_version=1))


def test_update_invalid_input(db):
    with pytest.raises(InvalidInputError):
        db.update(UpdateRuleRequest(tenant_id="tenant", resource="resource", limit=0))
    with pytest.raises(InvalidInputError):
        db.update(None)


def test_delete(db):
    created = db.create(_create())
    with pytest.raises(ConflictError):
        db.delete("tenant", "resource", created.version + 1)
    db.delete("tenant", "resource", created.version)
    with pytest.raises(NotFoundError):
        db.get("tenant", "resource")
    with pytest.raises(NotFoundError):
        db.delete("tenant", "resource", created.version)


def test_delete_and_get_require_ids(db):
    with pytest.raises(InvalidInputError):
        db.delete("", "resource", 1)
    with pytest.raises(InvalidInputError):
        db.get("tenant", "")


def test_list_filters_by_tenant(db):
    db.create(_create(tenant="a", resource="r1"))
    db.create(_create(tenant="a", resource="r2"))
    db.create(_create(tenant="b", resource="r1"))
    assert sorted(rule.resource for rule in db.list("a")) == ["r1", "r2"]
    assert db.list("missing") == []
    with pytest.raises(InvalidInputError):
        db.list("")


def test_load_all(db):
    assert db.load_all() == []
    db.create(_create(tenant="a"))
    db.create(_create(tenant="b"))
    assert sorted(rule.tenant_id for rule in db.load_all()) == ["a", "b"]


def test_returned_rules_are_copies(db):
    rule = db.create(_create())
    rule.limit = 999
    assert db.get("tenant", "resource").limit == 10


def test_errors_share_base_class(db):
    with pytest.raises(RuleStoreError):
        db.get("tenant", "missing")