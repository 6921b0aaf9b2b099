"""Unit tests for the shared exponential backoff policy"""

import random
from datetime import datetime, timedelta, timezone

import pytest

from errors import RateLimited
from sync.backoff import BackoffPolicy


class TestRawDelay:
    """Delay before jitter"""

    def test_first_attempt_waits_base(self):
        policy = BackoffPolicy(base_seconds=2.0, cap_seconds=100.0, jitter=0.0)
        assert policy.raw_delay(1) == 2.0

    def test_delay_doubles_per_attempt(self):
        policy = BackoffPolicy(base_seconds=1.0, cap_seconds=1000.0, jitter=0.0)
        assert [policy.raw_delay(n) for n in range(1, 6)] == [1.0, 2.0, 4.0, 8.0, 16.0]

    def test_delay_is_capped(self):
        policy = BackoffPolicy(base_seconds=1.0, cap_seconds=10.0, jitter=0.0)
        assert policy.raw_delay(5) == 10.0
        assert policy.raw_delay(500) == 10.0

    def test_attempt_is_one_based(self):
        with pytest.raises(ValueError):
            BackoffPolicy().raw_delay(0)


class TestJitteredDelay:
    """delay() applies jitter and RateLimited hints"""

    def test_jitter_stays_within_bounds(self):
        policy = BackoffPolicy(base_seconds=10.0, cap_seconds=100.0, jitter=0.2, rng=random.Random(7))
        for _ in range(50):
            assert 8.0 <= policy.delay(1) <= 12.0

    def test_rate_limit_hint_is_a_floor(self):
        policy = BackoffPolicy(base_seconds=1.0, cap_seconds=100.0, jitter=0.0)
        error = RateLimited(provider="mock", retry_after_seconds=45)
        assert policy.delay(1, error) == 45.0

    def test_rate_limit_hint_below_backoff_is_ignored(self):
        policy = BackoffPolicy(base_seconds=60.0, cap_seconds=600.0, jitter=0.0)
        error = RateLimited(provider="mock", retry_after_seconds=5)
        assert policy.delay(1, error) == 60.0

    def test_next_attempt_at(self):
        policy = BackoffPolicy(base_seconds=30.0, cap_seconds=600.0, jitter=0.0)
        now = datetime(2024, 1, 1, tzinfo=timezone.utc)
        assert policy.next_attempt_at(now, 2) == now + timedelta(seconds=60)


class TestExhaustion:

    def test_exhausted_after_max_attempts(self):
        policy = BackoffPolicy(max_attempts=3)
        assert policy.exhausted(2) is False
        assert policy.exhausted(3) is True
        assert policy.exhausted(4) is True

    def test_invalid_configuration_rejected(self):
        with pytest.raises(ValueError):
            BackoffPolicy(base_seconds=0)
        with pytest.raises(ValueError):
            BackoffPolicy(base_seconds=10, cap_seconds=5)
        with pytest.raises(ValueError):
            BackoffPolicy(jitter=1.5)
