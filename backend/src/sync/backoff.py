"""Shared exponential backoff policy.

One policy object serves schedule retries and webhook delivery retries so both
follow identical semantics:

    delay(attempt) = min(cap, base * 2 ** (attempt - 1)) * (1 + uniform(-jitter, +jitter))

attempt is 1-based (the first retry waits roughly `base` seconds).
"""

import random
from dataclasses import dataclass, field
from datetime import datetime, timedelta
from typing import Optional

from errors import RateLimited


@dataclass
class BackoffPolicy:
    base_seconds: float = 1.0
    cap_seconds: float = 3600.0
    jitter: float = 0.2
    max_attempts: int = 5
    rng: random.Random = field(default_factory=random.Random, repr=False)

    def __post_init__(self):
        if self.base_seconds <= 0:
            raise ValueError("base_seconds must be positive")
        if self.cap_seconds < self.base_seconds:
            raise ValueError("cap_seconds must be >= base_seconds")
        if not 0 <= self.jitter < 1:
            raise ValueError("jitter must be in [0, 1)")

    def raw_delay(self, attempt: int) -> float:
        """Delay before jitter is applied."""
        if attempt < 1:
            raise ValueError("attempt is 1-based")
        # Cap the exponent so huge attempt numbers never overflow
        exponent = min(attempt - 1, 62)
        return min(self.cap_seconds, self.base_seconds * (2 ** exponent))

    def delay(self, attempt: int, error: Optional[Exception] = None) -> float:
        """Seconds to wait before `attempt`.

        A RateLimited error's hint is honoured as a floor.
        """
        seconds = self.raw_delay(attempt) * (1 + self.rng.uniform(-self.jitter, self.jitter))
        if isinstance(error, RateLimited):
            seconds = max(seconds, float(error.retry_after_seconds))
        return seconds

    def next_attempt_at(self, now: datetime, attempt: int, error: Optional[Exception] = None) -> datetime:
        return now + timedelta(seconds=self.delay(attempt, error))

    def exhausted(self, attempt: int) -> bool:
        """True once `attempt` attempts have been used up."""
        return attempt >= self.max_attempts
