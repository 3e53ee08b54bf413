import threading
import time

from tenantlimit.models import Rule
from tenantlimit.rulecache import RuleCache


def test_replace_all_get_list():
    cache = RuleCache()
    rules = [
        Rule(tenant_id="tenant-a", resource="resource-1", limit=10, version=1),
        Rule(tenant_id="tenant-a", resource="resource-2", limit=20, version=2),
        Rule(tenant_id="tenant-b", resource="resource-1", limit=30, version=3),
    ]
    cache.replace_all(rules)

    for rule in rules:
        got = cache.get(rule.tenant_id, rule.resource)
        assert got is not None
        assert got.version == rule.version

    listed = cache.list("tenant-a")
    assert len(listed) == 2
    seen = {rule.resource: rule.version for rule in listed}
    assert seen == {"resource-1": 1, "resource-2": 2}


def test_replace_all_skips_none_and_copies():
    cache = RuleCache()
    rule = Rule(tenant_id="tenant-a", resource="resource-1", limit=10, version=1)
    cache.replace_all([None, rule])
    rule.limit = 99
    got = cache.get("tenant-a", "resource-1")
    assert got.limit == 10


def test_replace_all_drops_previous_rules():
    cache = RuleCache()
    cache.replace_all([Rule(tenant_id="tenant-a", resource="resource-1", version=1)])
    cache.replace_all([Rule(tenant_id="tenant-b", resource="resource-2", version=1)])
    assert cache.get("tenant-a", "resource-1") is None
    assert cache.list("tenant-a") == []
    assert cache.get("tenant-b", "resource-2").version == 1


def test_get_missing_returns_none():
    cache = RuleCache()
    assert cache.get("tenant-a", "resource-1") is None
    assert cache.list("tenant-a") == []


def test_upsert_if_newer():
    cache = RuleCache()
    cache.upsert_if_newer(Rule(tenant_id="tenant-a", resource="resource-1", limit=10, version=1))
    cache.upsert_if_newer(Rule(tenant_id="tenant-a", resource="resource-1", limit=20, version=1))

    got = cache.get("tenant-a", "resource-1")
    assert got is not None
    assert (got.limit, got.version) == (10, 1)

    cache.upsert_if_newer(Rule(tenant_id="tenant-a", resource="resource-1", limit=30, version=2))
    got = cache.get("tenant-a", "resource-1")
    assert got is not None
    assert (got.limit, got.version) == (30, 2)


def test_upsert_keeps_other_resources():
    cache = RuleCache()
    cache.upsert_if_newer(Rule(tenant_id="tenant-a", resource="resource-1", limit=10, version=1))
    cache.upsert_if_newer(Rule(tenant_id="tenant-a", resource="resource-2", limit=20, version=1))
    assert sorted(rule.resource for rule in cache.list("tenant-a")) == ["resource-1", "resource-2"]


def test_delete_if_older_or_equal():
    cache = RuleCache()
    cache.upsert_if_newer(Rule(tenant_id="tenant-a", resource="resource-1", limit=10, version=5))

    cache.delete_if_older_or_equal("tenant-a", "resource-1", 4)
    assert cache.get("tenant-a", "resource-1") is not None

    cache.delete_if_older_or_equal("tenant-a", "resource-1", 5)
    assert cache.get("tenant-a", "resource-1") is None

    cache.upsert_if_newer(Rule(tenant_id="tenant-a", resource="resource-1", limit=10, version=5))
    cache.delete_if_older_or_equal("tenant-a", "resource-1", 10)
    assert cache.get("tenant-a", "resource-1") is None
    assert cache.list("tenant-a") == []


def test_concurrent_reads_and_writes():
    cache = RuleCache()
    cache.replace_all([
        Rule(tenant_id="tenant-a", resource="resource-1", limit=10, version=1),
        Rule(tenant_id="tenant-b", resource="resource-2", limit=20, version=1),
    ])
    tenants = ["tenant-a", "tenant-b"]
    resources = ["resource-1", "resource-2"]
    stop = threading.Event()
    errors = []
    mismatches = []
    reads = []

    def reader(idx):
        count = 0
        try:
            while not stop.is_set():
                tenant = tenants[idx % 2]
                resource = resources[idx % 2]
                rule = cache.get(tenant, resource)
                if rule is not None and (rule.tenant_id, rule.resource) != (tenant, resource):
                    mismatches.append(rule)
                for listed in cache.list(tenant):
                    if listed.tenant_id != tenant:
                        mismatches.append(listed)
                count += 1
        except Exception as exc:  # noqa: BLE001
            errors.append(exc)
        reads.append(count)

    def writer(idx):
        version = 1
        try:
            while not stop.is_set():
                version += 1
                tenant = tenants[version % 2]
                resource = resources[(idx + version) % 2]
                cache.upsert_if_newer(
                    Rule(tenant_id=tenant, resource=resource, limit=version, version=version)
                )
                cache.delete_if_older_or_equal(tenant, resource, version - 1)
        except Exception as exc:  # noqa: BLE001
            errors.append(exc)

    threads = [threading.Thread(target=reader, args=(i,)) for i in range(5)]
    threads += [threading.Thread(target=writer, args=(i,)) for i in range(3)]
    for thread in threads:
        thread.start()
    time.sleep(0.2)
    stop.set()
    for thread in threads:
        thread.join()

    assert errors == []
    assert mismatches == []
    assert len(reads) == 5
    for tenant in tenants:
        for rule in cache.list(tenant):
            assert rule.tenant_id == tenant
            assert rule.resource in resources

    cache.upsert_if_newer(
        Rule(tenant_id="tenant-c", resource="resource-9", limit=7, version=1)
    )
    final = cache.get("tenant-c", "resource-9")
    assert (final.limit, final.version) == (7, 1)