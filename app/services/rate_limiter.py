"""Rate limiter service selecting between the shared and local backends.

The limiter owns both stores and a small state machine:

- ``UNCONFIGURED``: no shared store given; the local store is used forever.
- ``CONNECTING``: startup handshake with the shared store in progress.
- ``SHARED_ACTIVE``: the shared store answers every check.
- ``DEGRADED_LOCAL``: the shared store failed; checks fall back to the local
  store until a reconnection attempt succeeds.

Backend faults never reach the caller. A check that hits a failing shared
store is admitted (fail-open) and the following checks use the local store.
"""

from __future__ import annotations

import asyncio
import logging
import time
from enum import Enum
from typing import Any, Callable

from app.adapters.rate_limit.base import (
    AbstractRateLimitBackend,
    RateLimitDecision,
    RateLimitPolicy,
)
from app.adapters.rate_limit.in_memory import InMemoryWindowBackend
from app.core.errors import RateLimitConfigError

logger = logging.getLogger(__name__)


class BackendState(str, Enum):
    UNCONFIGURED = "unconfigured"
    CONNECTING = "connecting"
    SHARED_ACTIVE = "shared_active"
    DEGRADED_LOCAL = "degraded_local"


class RateLimiter:
    """Admit-or-reject decisions per (client, policy) pair.

    Construct once per process and share the instance with the HTTP layer.
    :meth:`start` performs the shared-store handshake and launches the
    background sweep (and reconnect) tasks; :meth:`close` cancels them and
    releases the shared-store connection.
    """

    def __init__(
        self,
        *,
        shared_backend: AbstractRateLimitBackend | None = None,
        local_backend: InMemoryWindowBackend | None = None,
        connect_timeout_seconds: float = 5.0,
        check_timeout_seconds: float = 1.0,
        sweep_interval_seconds: float = 60.0,
        reconnect_interval_seconds: float = 30.0,
        clock: Callable[[], float] = time.time,
    ) -> None:
        """Initialize the limiter.

        Args:
            shared_backend: Cross-process store, or None to stay local.
            local_backend: In-memory store used directly or as fallback.
            connect_timeout_seconds: Bound on each shared-store handshake.
            check_timeout_seconds: Bound on each shared-store check; a slower
                check counts as a backend failure.
            sweep_interval_seconds: Interval between local store sweeps.
            reconnect_interval_seconds: Interval between reconnection
                attempts while degraded.
            clock: Time source returning UNIX time in seconds.

        Raises:
            RateLimitConfigError: If any interval or timeout is not positive.
        """
        for name, value in (
            ("connect_timeout_seconds", connect_timeout_seconds),
            ("check_timeout_seconds", check_timeout_seconds),
            ("sweep_interval_seconds", sweep_interval_seconds),
            ("reconnect_interval_seconds", reconnect_interval_seconds),
        ):
            if value <= 0:
                raise RateLimitConfigError(
                    code="invalid_rate_limiter_config",
                    message=f"{name} must be > 0",
                )

        self._shared = shared_backend
        self._local = local_backend or InMemoryWindowBackend()
        self._connect_timeout = connect_timeout_seconds
        self._check_timeout = check_timeout_seconds
        self._sweep_interval = sweep_interval_seconds
        self._reconnect_interval = reconnect_interval_seconds
        self._clock = clock
        self._state = BackendState.UNCONFIGURED if shared_backend is None else BackendState.CONNECTING
        self._tasks: list[asyncio.Task[None]] = []
        self._started = False
        self._closed = False

    @property
    def state(self) -> BackendState:
        return self._state

    @property
    def local_backend(self) -> InMemoryWindowBackend:
        return self._local

    @property
    def active_backend(self) -> AbstractRateLimitBackend:
        if self._state is BackendState.SHARED_ACTIVE and self._shared is not None:
            return self._shared
        return self._local

    def snapshot(self) -> dict[str, Any]:
        """Return lightweight limiter status without exposing client keys."""
        return {
            "backend": self._state.value,
            "store": self.active_backend.name,
            "local_keys": len(self._local),
        }

    async def start(self) -> None:
        """Connect the shared store (if any) and launch background tasks.

        Calling it more than once has no effect.
        """
        if self._started:
            return
        self._started = True

        if self._shared is not None:
            if await self._handshake():
                self._transition(BackendState.SHARED_ACTIVE, reason="handshake_ok")
            self._tasks.append(
                asyncio.create_task(self._reconnect_loop(), name="rate-limit-reconnect")
            )

        self._tasks.append(asyncio.create_task(self._sweep_loop(), name="rate-limit-sweep"))

    async def check(self, client_key: str, policy: RateLimitPolicy) -> RateLimitDecision:
        """Count the current request and decide whether to admit it.

        Args:
            client_key: Client identifier (network address or "unknown").
            policy: Policy to enforce; its key prefix isolates the counter.

        Returns:
            RateLimitDecision for this request.

        Raises:
            ValueError: If client_key is empty.
        """
        if not client_key:
            raise ValueError("client_key must be a non-empty string")

        key = policy.storage_key(client_key)
        now = self._clock()

        if self._state is BackendState.SHARED_ACTIVE and self._shared is not None:
            try:
                return await asyncio.wait_for(
                    self._shared.hit(key, policy, now), timeout=self._check_timeout
                )
            except Exception as exc:
                self._transition(BackendState.DEGRADED_LOCAL, reason="runtime_error", error=exc)
                return self._fail_open(policy, now)

        return await self._local.hit(key, policy, now)

    async def reconnect(self) -> bool:
        """Try to move back to the shared store.

        Returns:
            True if the shared store is active after the attempt.
        """
        if self._shared is None or self._closed:
            return False
        if self._state is BackendState.SHARED_ACTIVE:
            return True

        if await self._handshake():
            self._transition(BackendState.SHARED_ACTIVE, reason="reconnected")
            return True
        return False

    def sweep(self) -> int:
        """Remove expired records from the local store now."""
        return self._local.sweep(self._clock())

    async def close(self) -> None:
        """Cancel background tasks and release the shared-store connection."""
        if self._closed:
            return
        self._closed = True

        for task in self._tasks:
            task.cancel()
        await asyncio.gather(*self._tasks, return_exceptions=True)
        self._tasks.clear()

        if self._shared is not None:
            await self._shared.close()
        await self._local.close()

        logger.info("rate_limit.closed", extra={"backend": self._state.value})

    async def _handshake(self) -> bool:
        if self._shared is None:
            return False
        try:
            await asyncio.wait_for(self._shared.ping(), timeout=self._connect_timeout)
        except Exception as exc:
            if self._state is BackendState.DEGRADED_LOCAL:
                logger.debug(
                    "rate_limit.reconnect_failed",
                    extra={"error_type": type(exc).__name__, "error_msg": str(exc)},
                )
            else:
                self._transition(BackendState.DEGRADED_LOCAL, reason="handshake_failed", error=exc)
            return False
        return True

    def _transition(
        self,
        new_state: BackendState,
        *,
        reason: str,
        error: BaseException | None = None,
    ) -> None:
        """Switch state, logging only when the state actually changes."""
        if new_state is self._state:
            return

        previous = self._state
        self._state = new_state

        extra: dict[str, Any] = {
            "from_state": previous.value,
            "to_state": new_state.value,
            "reason": reason,
        }
        if error is not None:
            extra["error_type"] = type(error).__name__
            extra["error_msg"] = str(error)

        if new_state is BackendState.DEGRADED_LOCAL:
            logger.warning("rate_limit.backend_state", extra=extra)
        else:
            logger.info("rate_limit.backend_state", extra=extra)

    def _fail_open(self, policy: RateLimitPolicy, now: float) -> RateLimitDecision:
        return RateLimitDecision(
            admitted=True,
            count=0,
            limit=policy.max_requests,
            remaining=policy.max_requests,
            reset_at=now + policy.window_seconds,
            retry_after_seconds=None,
        )

    async def _sweep_loop(self) -> None:
        while True:
            await asyncio.sleep(self._sweep_interval)
            self.sweep()

    async def _reconnect_loop(self) -> None:
        while True:
            await asyncio.sleep(self._reconnect_interval)
            if self._state is BackendState.DEGRADED_LOCAL:
                await self.reconnect()
