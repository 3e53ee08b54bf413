from datetime import datetime, timedelta, timezone

import pytest

from tenantlimit.models import RuleParams
from tenantlimit.store.redis import InMemoryPipeline, InMemoryRedis, RedisError


class _Clock:
    def __init__(self) -> None:
        self.now = datetime(2024, 1, 1, tzinfo=timezone.utc)

    def __call__(self) -> datetime:
        return self.now

    def advance(self, delta: timedelta) -> None:
        self.now += delta


@pytest.fixture
def clock() -> _Clock:
    return _Clock()


@pytest.fixture
def redis(clock: _Clock) -> InMemoryRedis:
    return InMemoryRedis(clock)


def test_token_bucket_allows_up_to_limit_then_denies(redis):
    params = RuleParams(limit=5, window=timedelta(seconds=1))
    results = [redis.exec_token_bucket("k", params, 1) for _ in range(5)]
    assert all(decision.allowed for decision in results)
    assert [d.remaining for d in results] == [4, 3, 2, 1, 0]
    denied = redis.exec_token_bucket("k", params, 1)
    assert not denied.allowed
    assert denied.retry_after > timedelta(0)
    assert denied.limit == params.limit


def test_token_bucket_refills_over_time(redis, clock):
    params = RuleParams(limit=3, window=timedelta(seconds=1))
    for _ in range(3):
        assert redis.exec_token_bucket("k", params, 1).allowed
    assert not redis.exec_token_bucket("k", params, 1).allowed
    clock.advance(timedelta(seconds=1))
    refilled = redis.exec_token_bucket("k", params, 1)
    assert refilled.allowed
    assert refilled.remaining == params.limit - 1


def test_token_bucket_burst_raises_capacity(redis):
    params = RuleParams(limit=2, window=timedelta(seconds=1), burst=5)
    allowed = [redis.exec_token_bucket("k", params, 1).allowed for _ in range(6)]
    assert allowed == [True] * 5 + [False]


def test_token_bucket_keys_are_independent(redis):
    params = RuleParams(limit=1, window=timedelta(seconds=1))
    assert redis.exec_token_bucket("a", params, 1).allowed
    assert redis.exec_token_bucket("b", params, 1).allowed
    assert not redis.exec_token_bucket("a", params, 1).allowed


def test_fixed_window_denies_past_limit_and_resets(redis, clock):
    params = RuleParams(limit=3, window=timedelta(seconds=1))
    for _ in range(3):
        assert redis.exec_fixed_window("k", params, 1).allowed
    denied = redis.exec_fixed_window("k", params, 1)
    assert not denied.allowed
    assert denied.remaining == 0
    assert denied.retry_after == denied.reset_after
    clock.advance(params.window)
    again = redis.exec_fixed_window("k", params, 1)
    assert again.allowed
    assert again.remaining == params.limit - 1
    assert again.retry_after == timedelta(0)


def test_fixed_window_reset_after_counts_down_within_window(redis, clock):
    params = RuleParams(limit=10, window=timedelta(seconds=1))
    first = redis.exec_fixed_window("k", params, 1)
    assert first.reset_after == params.window
    clock.advance(timedelta(milliseconds=250))
    second = redis.exec_fixed_window("k", params, 1)
    assert second.reset_after == params.window - timedelta(milliseconds=250)


def test_sliding_window_forgets_old_events(redis, clock):
    params = RuleParams(limit=2, window=timedelta(seconds=2))
    assert redis.exec_sliding_window("k", params, 1).allowed
    assert redis.exec_sliding_window("k", params, 1).allowed
    denied = redis.exec_sliding_window("k", params, 1)
    assert not denied.allowed
    assert denied.retry_after == params.window
    assert denied.reset_after == params.window
    clock.advance(params.window + timedelta(microseconds=1))
    assert redis.exec_sliding_window("k", params, 1).allowed


def test_zero_window_uses_one_second_default(redis):
    decision = redis.exec_sliding_window("k", RuleParams(limit=1), 1)
    assert decision.reset_after == timedelta(seconds=1)


def test_unhealthy_backend_raises(redis):
    redis.set_healthy(False)
    assert redis.healthy() is False
    with pytest.raises(RedisError):
        redis.exec_token_bucket("k", RuleParams(limit=1), 1)
    with pytest.raises(RedisError):
        redis.exec_fixed_window("k", RuleParams(limit=1), 1)


@pytest.mark.parametrize("cost,limit", [(0, 5), (-1, 5), (1, 0)])
def test_invalid_cost_or_limit_raises(redis, cost, limit):
    with pytest.raises(RedisError):
        redis.exec_sliding_window("k", RuleParams(limit=limit), cost)


def test_pipeline_matches_direct_calls(clock):
    params = RuleParams(limit=2, window=timedelta(seconds=1))
    direct = InMemoryRedis(clock)
    expected = [
        direct.exec_token_bucket("a", params, 1),
        direct.exec_fixed_window("b", params, 2),
        direct.exec_sliding_window("c", params, 3),
        direct.exec_token_bucket("a", params, 2),
    ]
    piped = InMemoryRedis(clock)
    pipe = piped.pipeline()
    pipe.exec_token_bucket("a", params, 1)
    pipe.exec_fixed_window("b", params, 2)
    pipe.exec_sliding_window("c", params, 3)
    pipe.exec_token_bucket("a", params, 2)
    assert len(pipe) == 4
    assert pipe.exec() == expected


def test_pipeline_fails_whole_when_unhealthy(redis):
    pipe = redis.pipeline()
    pipe.exec_token_bucket("a", RuleParams(limit=1), 1)
    redis.set_healthy(False)
    with pytest.raises(RedisError):
        pipe.exec()


def test_pipeline_without_backend_raises():
    with pytest.raises(RedisError):
        InMemoryPipeline(None).exec()