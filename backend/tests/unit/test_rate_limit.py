"""Unit tests for the sliding-window API rate limiter"""

from redis.exceptions import ConnectionError as RedisConnectionError

from auth.rate_limit import RateLimiter


class SortedSetStore:
    """In-memory stand-in for the handful of Redis sorted-set calls the limiter makes."""

    def __init__(self):
        self.sets: dict[str, dict[str, float]] = {}

    def pipeline(self):
        return _Pipeline(self)

    def zrange(self, key, start, end, withscores=False):
        members = sorted(self.sets.get(key, {}).items(), key=lambda kv: kv[1])
        return members[start:end + 1]


class _Pipeline:

    def __init__(self, store):
        self.store = store
        self.ops = []

    def zremrangebyscore(self, key, low, high):
        self.ops.append(lambda: self._remove(key, low, high))

    def zcard(self, key):
        self.ops.append(lambda: len(self.store.sets.get(key, {})))

    def zadd(self, key, mapping):
        self.ops.append(lambda: self.store.sets.setdefault(key, {}).update(mapping))

    def expire(self, key, seconds):
        self.ops.append(lambda: True)

    def execute(self):
        return [op() for op in self.ops]

    def _remove(self, key, low, high):
        members = self.store.sets.get(key, {})
        doomed = [m for m, score in members.items() if low <= score <= high]
        for member in doomed:
            del members[member]
        return len(doomed)


class UnreachableRedis:

    def pipeline(self):
        raise RedisConnectionError("connection refused")


class TestRateLimiter:

    def test_without_redis_everything_is_allowed(self):
        limiter = RateLimiter(None, max_requests=1)
        assert all(limiter.hit("key").allowed for _ in range(5))

    def test_limit_enforced_within_window(self):
        limiter = RateLimiter(SortedSetStore(), max_requests=2, window_seconds=60)

        first = limiter.hit("key")
        second = limiter.hit("key")
        third = limiter.hit("key")

        assert first.allowed and second.allowed
        assert second.remaining == 0
        assert third.allowed is False
        assert 1 <= third.retry_after_seconds <= 61

    def test_callers_are_limited_independently(self):
        limiter = RateLimiter(SortedSetStore(), max_requests=1)
        assert limiter.hit("a").allowed is True
        assert limiter.hit("b").allowed is True
        assert limiter.hit("a").allowed is False

    def test_redis_failure_allows_request(self):
        limiter = RateLimiter(UnreachableRedis(), max_requests=1)
        assert limiter.hit("key").allowed is True
