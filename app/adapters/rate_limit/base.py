"""Rate limiter interfaces.

The limiter service depends on this abstraction (not a concrete store) so the
in-memory and Redis backends stay interchangeable at runtime.
"""

from __future__ import annotations

import math
from abc import ABC, abstractmethod
from dataclasses import dataclass

from app.core.errors import RateLimitConfigError


@dataclass(frozen=True)
class RateLimitPolicy:
    """Immutable admission policy applied to a class of routes.

    Attributes:
        name: Logical bucket name (e.g., "standard", "strict").
        window_ms: Window length in milliseconds.
        max_requests: Admission ceiling per window.
        key_prefix: Namespace isolating this policy's counters per client.
        message: Human-readable message returned when a request is rejected.

    Raises:
        RateLimitConfigError: If window_ms or max_requests is not positive.
    """

    name: str
    window_ms: int
    max_requests: int
    key_prefix: str = "rl:"
    message: str = "Too many requests, please try again later"

    def __post_init__(self) -> None:
        if self.window_ms <= 0:
            raise RateLimitConfigError(
                code="invalid_rate_limit_policy",
                message=f"Policy '{self.name}': window_ms must be > 0",
                details={"policy": self.name, "window_ms": self.window_ms},
            )
        if self.max_requests <= 0:
            raise RateLimitConfigError(
                code="invalid_rate_limit_policy",
                message=f"Policy '{self.name}': max_requests must be > 0",
                details={"policy": self.name, "max_requests": self.max_requests},
            )

    @property
    def window_seconds(self) -> float:
        return self.window_ms / 1000

    @property
    def retry_after_seconds(self) -> int:
        """Whole seconds a rejected client is told to wait."""
        return math.ceil(self.window_ms / 1000)

    def storage_key(self, client_key: str) -> str:
        return f"{self.key_prefix}{client_key}"


@dataclass(frozen=True)
class RateLimitDecision:
    """Result of a single check-and-increment.

    Attributes:
        admitted: Whether the request may proceed (count <= limit).
        count: Requests observed in the current window, this one included.
        limit: Max requests per window.
        remaining: Requests left in the current window (never negative).
        reset_at: UNIX epoch seconds when the current window ends.
        retry_after_seconds: Suggested wait in seconds when rejected.
    """

    admitted: bool
    count: int
    limit: int
    remaining: int
    reset_at: float
    retry_after_seconds: int | None

    @classmethod
    def from_count(cls, policy: RateLimitPolicy, count: int, reset_at: float) -> "RateLimitDecision":
        admitted = count <= policy.max_requests
        return cls(
            admitted=admitted,
            count=count,
            limit=policy.max_requests,
            remaining=max(0, policy.max_requests - count),
            reset_at=reset_at,
            retry_after_seconds=None if admitted else policy.retry_after_seconds,
        )


class AbstractRateLimitBackend(ABC):
    """Interface for rate limit stores.

    Every call is a coroutine so callers suspend uniformly, even when the
    store is local and completes immediately.
    """

    name: str = "abstract"

    @abstractmethod
    async def hit(self, key: str, policy: RateLimitPolicy, now: float) -> RateLimitDecision:
        """Record one request for ``key`` and return the resulting decision.

        Args:
            key: Fully namespaced storage key.
            policy: Policy supplying window and ceiling.
            now: Current UNIX time in seconds.

        Returns:
            RateLimitDecision for this request.

        Raises:
            RateLimitBackendError: If the store cannot be reached.
        """
        raise NotImplementedError

    async def ping(self) -> None:
        """Verify the store is reachable. Local stores are always reachable."""

    async def close(self) -> None:
        """Release any resources held by the store."""
