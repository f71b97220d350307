"""Redis sliding-log rate limit backend.

Each key is a sorted set holding one member per request, scored by its arrival
time in milliseconds. A single Lua script prunes, records, counts and refreshes
expiry so concurrent checks from several server processes never interleave.
"""

from __future__ import annotations

import asyncio
import logging
import uuid

import redis.asyncio as redis
from redis.asyncio.retry import Retry
from redis.backoff import NoBackoff
from redis.exceptions import RedisError

from app.adapters.rate_limit.base import (
    AbstractRateLimitBackend,
    RateLimitDecision,
    RateLimitPolicy,
)
from app.core.errors import RateLimitBackendError

logger = logging.getLogger(__name__)


# KEYS[1] = key; ARGV = now_ms, window_ms, member, exclusive cutoff "(<ms>"
# Returns {count, oldest_score_ms}
SLIDING_WINDOW_SCRIPT = """
local key = KEYS[1]
local now = tonumber(ARGV[1])
local window = tonumber(ARGV[2])
redis.call('ZREMRANGEBYSCORE', key, '-inf', ARGV[4])
redis.call('ZADD', key, now, ARGV[3])
local count = redis.call('ZCARD', key)
redis.call('PEXPIRE', key, window)
local oldest = redis.call('ZRANGE', key, 0, 0, 'WITHSCORES')
return {count, tonumber(oldest[2])}
"""


class RedisSlidingWindowBackend(AbstractRateLimitBackend):
    """Shared rate limit store backed by Redis sorted sets.

    Attributes:
        client: ``redis.asyncio.Redis`` client owned by this backend.
    """

    name = "redis"

    def __init__(self, client: redis.Redis) -> None:
        self.client = client
        self._script = client.register_script(SLIDING_WINDOW_SCRIPT)

    @classmethod
    def from_url(
        cls,
        url: str,
        *,
        connect_timeout_seconds: float = 5.0,
        socket_timeout_seconds: float = 2.0,
    ) -> "RedisSlidingWindowBackend":
        """Build a backend from a connection URL.

        The client connects lazily; call :meth:`ping` to perform the handshake.
        Commands are never retried by the client: a failed command surfaces
        at once and the limiter's reconnect task owns recovery.

        Args:
            url: Redis connection URL.
            connect_timeout_seconds: Socket connect timeout.
            socket_timeout_seconds: Per-command socket timeout.

        Returns:
            Configured backend instance.
        """
        client = redis.Redis.from_url(
            url,
            socket_connect_timeout=connect_timeout_seconds,
            socket_timeout=socket_timeout_seconds,
            retry=Retry(NoBackoff(), 0),
        )
        return cls(client)

    async def ping(self) -> None:
        try:
            await self.client.ping()
        except (RedisError, OSError, asyncio.TimeoutError) as exc:
            raise RateLimitBackendError(
                code="rate_limit_backend_unavailable",
                message=f"Redis handshake failed: {exc}",
                details={"backend": self.name},
            ) from exc

    async def hit(self, key: str, policy: RateLimitPolicy, now: float) -> RateLimitDecision:
        """Record one request in the key's sliding log and count the window.

        Args:
            key: Namespaced storage key.
            policy: Policy supplying window and ceiling.
            now: Current UNIX time in seconds.

        Returns:
            RateLimitDecision whose reset_at is when the oldest entry leaves
            the window.

        Raises:
            RateLimitBackendError: If Redis errors or cannot be reached.
        """
        now_ms = int(now * 1000)
        member = f"{now_ms}-{uuid.uuid4().hex}"
        try:
            count, oldest_ms = await self._script(
                keys=[key],
                args=[now_ms, policy.window_ms, member, f"({now_ms - policy.window_ms}"],
            )
        except (RedisError, OSError, asyncio.TimeoutError) as exc:
            raise RateLimitBackendError(
                code="rate_limit_backend_error",
                message=f"Redis rate limit script failed: {exc}",
                details={"backend": self.name, "policy": policy.name},
            ) from exc

        oldest_ms = int(oldest_ms) if oldest_ms is not None else now_ms
        reset_at = (oldest_ms + policy.window_ms) / 1000
        return RateLimitDecision.from_count(policy, int(count), reset_at)

    async def close(self) -> None:
        try:
            await self.client.aclose()
        except (RedisError, OSError) as exc:
            logger.warning(
                "rate_limit.redis_close_failed",
                extra={"error_type": type(exc).__name__, "error_msg": str(exc)},
            )
