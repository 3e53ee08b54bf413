# tenantlimit

Building blocks for a multi-tenant rate limiting service. Each tenant has rules, one per
resource. A request is checked against its rule's algorithm: token bucket, fixed window
or sliding window. The package has no third-party dependencies.

## Modules

- `tenantlimit.models` holds the dataclasses.
  - `CheckLimitRequest`, `CheckLimitResponse`, `Rule`, `CreateRuleRequest`,
    `UpdateRuleRequest`, `Decision` and `RuleParams`.
  - `InvalidationEvent` is serialised with `to_json()` and parsed with `from_json()`. The
    same operations are available as `marshal_invalidation_event` and
    `unmarshal_invalidation_event`.
- `tenantlimit.interfaces` defines protocols for the services and the backend:
  - `RateLimitService`, `AdminService` and `Transport`.
  - `RedisClient` and `RedisPipeline`.
- `tenantlimit.rulecache.RuleCache` keeps a copy-on-write snapshot of rules.
  - Reads are `get` (returns `None` when absent) and `list`.
  - Writes are `replace_all`, `upsert_if_newer` and `delete_if_older_or_equal`.
- `tenantlimit.limiter` builds and runs limiters.
  - `LimiterFactory.create(rule)` builds a `RedisLimiter`.
  - `normalize_algorithm` accepts names such as `token_bucket`, `TokenBucket` or
    `"fixed window"`.
  - `allow` and `allow_batch` return a `LimitResult`, which holds `value` and
    `used_fallback`.
  - Failures raise `LimiterError`.
- `tenantlimit.limiterpool.LimiterPool` is a sharded, LRU-bounded cache of limiters.
  - Handles are reference-counted and work as context managers.
  - `cutover(...)` retires a limiter. It blocks for the quiesce window, then until the old
    handles are released or the close timeout passes.
  - `LimiterPolicy` sets the shard count, the size of each shard and the timings.
- `tenantlimit.mode.DegradeController` derives an `OperatingMode` (`NORMAL`, `DEGRADED`,
  `EMERGENCY`) from backend and membership health.
  - `update()` samples health and returns the mode.
  - `region_status()` reports quorum.
  - `tenantlimit.health.HealthLoop.start(stop)` calls `update()` periodically until the
    `threading.Event` is set.
- `tenantlimit.membership` and `tenantlimit.ownership` decide which instance owns a key.
  - `StaticMembership` and `single_instance_membership` describe the instances.
  - `RendezvousOwnership.is_owner(key)` uses rendezvous hashing.
- `tenantlimit.keys` has `KeyBuilder` and `ResponsePool`.
  - `KeyBuilder` builds `tenant\x1fuser\x1fresource` keys in reusable buffers.
  - `ResponsePool` reuses `CheckLimitResponse` objects.
- `tenantlimit.store` holds the in-memory backends:
  - `redis.InMemoryRedis` evaluates the three algorithms. Its pipelines are
    `InMemoryPipeline`, and it raises `RedisError` when unhealthy or given bad input.
  - `rules.InMemoryRuleDB` has idempotent creates and versioned updates and deletes. It
    raises `InvalidInputError`, `ConflictError` and `NotFoundError`.
  - `outbox.InMemoryOutbox` keeps rows in insertion order.
  - `pubsub.InMemoryPubSub` delivers each message on its own thread. `subscribe` returns a
    `Subscription`.
- `tenantlimit.publisher.OutboxPublisher` moves pending outbox rows onto a pub/sub
  channel, either once with `publish_pending()` or in a loop with `start(stop)`.
- `tenantlimit.observability` provides `InMemoryMetrics` (with `snapshot()`), `StdLogger`
  (timestamped JSON lines), `NoopTracer` and `HashSampler`.

## Example

```python
from tenantlimit.keys import KeyBuilder
from tenantlimit.limiter import LimiterFactory
from tenantlimit.limiterpool import LimiterPolicy, LimiterPool
from tenantlimit.membership import single_instance_membership
from tenantlimit.mode import DegradeController
from tenantlimit.models import Decision, Rule
from tenantlimit.rulecache import RuleCache
from tenantlimit.store.redis import InMemoryRedis


class DenyAll:
    """Local fallback used when the store cannot be reached."""

    def allow(self, key, params, cost):
        return Decision(allowed=False, limit=params.limit)


cache = RuleCache()
cache.replace_all([
    Rule(tenant_id="acme", resource="search", algorithm="token_bucket", limit=10, version=1),
])

redis = InMemoryRedis()
degrade = DegradeController(redis, single_instance_membership("node-1", "eu"))
factory = LimiterFactory(redis, DenyAll(), degrade)
pool = LimiterPool(cache, factory, LimiterPolicy(shards=4))
keys = KeyBuilder()

with pool.acquire("acme", "search") as handle:
    key = keys.build_key("acme", "user-1", "search")
    result = handle.limiter.allow(key, 1)
    keys.release_key(key)

print(result.value.allowed, result.value.remaining, result.used_fallback)  # True 9 False
```

## What the package does not do

- It has no request handler that combines the rule cache, limiter pool, key builder and
  metrics into a ready `RateLimitService`. You write that layer yourself.
- It has no network server or `Transport` implementation.
- It has no fallback limiter and no circuit breaker. `LimiterFactory` takes any object
  with `allow(key, params, cost)` as the fallback. It also takes any object with
  `allow()`, `on_success()` and `on_failure()` as the breaker; without one, every request
  goes to the store.
- The store backends keep data in process memory only.

## Installing and testing

```
pip install -e .[test]
pytest
```