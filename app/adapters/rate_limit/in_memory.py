"""In-memory window rate limit backend.

Notes:
- Per-process only: running multiple workers multiplies the effective limit.
- Event-loop confined: ``hit`` and ``sweep`` never suspend mid-update, so no
  lock is needed between concurrent requests and the periodic sweep.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass

from app.adapters.rate_limit.base import (
    AbstractRateLimitBackend,
    RateLimitDecision,
    RateLimitPolicy,
)

logger = logging.getLogger(__name__)


@dataclass
class _WindowState:
    window_start: float
    count: int
    window_seconds: float

    def is_expired(self, now: float) -> bool:
        return now - self.window_start > self.window_seconds


class InMemoryWindowBackend(AbstractRateLimitBackend):
    """Rate limit store keeping one counter per key.

    A window opens on the first request from a key and lasts ``window_ms``.
    The request arriving after the window has elapsed starts a fresh window
    with a count of one; earlier counts are discarded.

    Important:
        Records of idle keys are only reclaimed by :meth:`sweep`, which the
        limiter service runs on a fixed interval.
    """

    name = "memory"

    def __init__(self) -> None:
        self._state_by_key: dict[str, _WindowState] = {}

    def __len__(self) -> int:
        return len(self._state_by_key)

    def __contains__(self, key: object) -> bool:
        return key in self._state_by_key

    async def hit(self, key: str, policy: RateLimitPolicy, now: float) -> RateLimitDecision:
        """Count one request for ``key`` under ``policy``.

        Args:
            key: Namespaced storage key.
            policy: Policy supplying window and ceiling.
            now: Current UNIX time in seconds.

        Returns:
            RateLimitDecision with the updated count.
        """
        state = self._state_by_key.get(key)
        if state is None or state.is_expired(now):
            state = _WindowState(window_start=now, count=1, window_seconds=policy.window_seconds)
            self._state_by_key[key] = state
        else:
            state.count += 1

        reset_at = state.window_start + state.window_seconds
        return RateLimitDecision.from_count(policy, state.count, reset_at)

    def sweep(self, now: float) -> int:
        """Delete records whose window has elapsed.

        Records still inside their window are left untouched.

        Args:
            now: Current UNIX time in seconds.

        Returns:
            Number of records removed.
        """
        expired_keys = [k for k, state in self._state_by_key.items() if state.is_expired(now)]
        for key in expired_keys:
            self._state_by_key.pop(key, None)

        if expired_keys:
            logger.debug(
                "rate_limit.sweep",
                extra={"removed": len(expired_keys), "remaining_keys": len(self._state_by_key)},
            )
        return len(expired_keys)

    async def close(self) -> None:
        self._state_by_key.clear()
