import pytest

from studio.errors import RateLimitedError
from studio.rate_limiter import RateLimiter


class FakeRedis:
    def __init__(self):
        self.store = {}

    def get(self, key):
        return self.store.get(key, (None, 0))[0]

    def ttl(self, key):
        return self.store.get(key, (None, -2))[1]

    def set(self, key, value, ex=None):
        self.store[key] = (str(value), ex)


class Clock:
    def __init__(self, now=1_000_000):
        self.now = now

    def __call__(self):
        return self.now


def test_allows_up_to_limit_then_blocks():
    limiter = RateLimiter(limit=3, window_seconds=60, redis_factory=None, time_func=Clock())

    results = [limiter.check("user-1") for _ in range(4)]

    assert [r.success for r in results] == [True, True, True, False]
    assert [r.remaining for r in results] == [2, 1, 0, 0]
    assert results[-1].reset == 1_000_060


def test_window_resets():
    clock = Clock()
    limiter = RateLimiter(limit=1, window_seconds=60, redis_factory=None, time_func=clock)

    assert limiter.check("user-1").success
    assert not limiter.check("user-1").success
    clock.now += 60
    assert limiter.check("user-1").success


def test_enforce_raises_with_retry_after():
    clock = Clock()
    limiter = RateLimiter(limit=1, window_seconds=60, redis_factory=None, time_func=clock)
    limiter.enforce("user-1")
    clock.now += 15

    with pytest.raises(RateLimitedError) as exc_info:
        limiter.enforce("user-1")

    error = exc_info.value
    assert error.status_code == 429
    assert error.limit == 1
    assert error.remaining == 0
    assert error.retry_after == 45


def test_unreachable_redis_degrades_to_memory():
    def broken_redis():
        raise ConnectionError("redis down")

    limiter = RateLimiter(limit=2, window_seconds=60, redis_factory=broken_redis, time_func=Clock())

    assert limiter.check("user-1").success
    assert limiter.check("user-1").success
    assert not limiter.check("user-1").success


def test_counts_are_synced_to_and_restored_from_redis():
    redis = FakeRedis()
    clock = Clock()
    first = RateLimiter(limit=3, window_seconds=60, key_prefix="booking", redis_factory=lambda: redis, time_func=clock)

    first.check("user-1")
    clock.now += 10
    first.check("user-1")
    assert redis.store["booking:user-1"] == ("2", 50)

    # Another process picks up the window from Redis
    second = RateLimiter(limit=3, window_seconds=60, key_prefix="booking", redis_factory=lambda: redis, time_func=clock)
    result = second.check("user-1")

    assert result.success
    assert result.remaining == 0
    assert not second.check("user-1").success


def test_reset_clears_counts():
    limiter = RateLimiter(limit=1, window_seconds=60, redis_factory=None, time_func=Clock())
    limiter.check("user-1")

    limiter.reset()

    assert limiter.check("user-1").success
