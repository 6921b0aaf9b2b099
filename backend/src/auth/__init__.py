"""API-key authentication and rate limiting for the inbound API."""

from .api_key import hash_api_key, generate_api_key, issue_api_key, verify_api_key, revoke_api_key
from .rate_limit import RateLimiter, RateLimitDecision, connect_redis

__all__ = [
    "hash_api_key",
    "generate_api_key",
    "issue_api_key",
    "verify_api_key",
    "revoke_api_key",
    "RateLimiter",
    "RateLimitDecision",
    "connect_redis",
]
