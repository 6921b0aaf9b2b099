"""Rate limiting for the inbound API.

Sliding window limiter keyed on the API key hash. Uses Redis so the limit is
shared across API instances; when Redis is not configured or unreachable the
limiter degrades to allowing every request.
"""

import logging
import time
import uuid
from dataclasses import dataclass
from typing import Optional

from redis import Redis
from redis.exceptions import RedisError


logger = logging.getLogger(__name__)


def connect_redis(url: Optional[str]) -> Optional[Redis]:
    """Build a Redis client for the limiter.

    Returns None if Redis is not available, allowing graceful degradation.
    """
    if not url:
        return None
    try:
        client = Redis.from_url(url, decode_responses=True, socket_connect_timeout=1)
        client.ping()
        return client
    except RedisError as e:
        logger.warning(f"Redis unavailable, rate limiting disabled: {e}")
        return None


def _get_rate_limit_key(identifier: str, scope: str) -> str:
    return f"rate_limit:{scope}:{identifier}"


@dataclass
class RateLimitDecision:
    allowed: bool
    remaining: int
    retry_after_seconds: int = 0


class RateLimiter:
    """Rate limiter using Redis sliding window algorithm."""

    def __init__(self, redis: Optional[Redis], max_requests: int = 100, window_seconds: int = 60):
        self.redis = redis
        self.max_requests = max_requests
        self.window_seconds = window_seconds

    def hit(self, identifier: str, scope: str = "api") -> RateLimitDecision:
        """Record one request and decide whether it may proceed.

        Args:
            identifier: Caller identity (API key hash)
            scope: Limit bucket name
        """
        if not self.redis:
            # Graceful degradation: no rate limiting if Redis unavailable
            return RateLimitDecision(allowed=True, remaining=self.max_requests)

        key = _get_rate_limit_key(identifier, scope)
        now = time.time()
        window_start = now - self.window_seconds
        try:
            pipe = self.redis.pipeline()
            pipe.zremrangebyscore(key, 0, window_start)
            pipe.zcard(key)
            _, current_count = pipe.execute()

            if current_count >= self.max_requests:
                oldest = self.redis.zrange(key, 0, 0, withscores=True)
                retry_after = self.window_seconds
                if oldest:
                    retry_after = max(1, int(oldest[0][1] + self.window_seconds - now) + 1)
                return RateLimitDecision(allowed=False, remaining=0, retry_after_seconds=retry_after)

            pipe = self.redis.pipeline()
            pipe.zadd(key, {f"{now}:{uuid.uuid4().hex[:8]}": now})
            pipe.expire(key, self.window_seconds)
            pipe.execute()
            return RateLimitDecision(allowed=True, remaining=self.max_requests - current_count - 1)
        except RedisError as e:
            logger.warning(f"Rate limiter unavailable, allowing request: {e}")
            return RateLimitDecision(allowed=True, remaining=self.max_requests)
