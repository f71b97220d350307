"""Rate limiting adapters.

This package provides the storage backends behind the limiter service: a
per-process in-memory store and a Redis store shared by all server processes.
"""

from app.adapters.rate_limit.base import (
    AbstractRateLimitBackend,
    RateLimitDecision,
    RateLimitPolicy,
)
from app.adapters.rate_limit.in_memory import InMemoryWindowBackend
from app.adapters.rate_limit.redis_store import RedisSlidingWindowBackend

__all__ = [
    "AbstractRateLimitBackend",
    "InMemoryWindowBackend",
    "RateLimitDecision",
    "RateLimitPolicy",
    "RedisSlidingWindowBackend",
]
