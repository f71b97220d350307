"""Rate limiting dependencies for FastAPI routes.

This module wires the limiter service into the HTTP layer.

Design goals:
- Minimal coupling: routes depend on a dependency function only.
- Explicit state: the limiter lives on ``app.state`` and is created and
  closed by the application lifespan, never as a module global.
- Named policies: ``standard`` (every route), ``api`` and ``strict`` (login,
  bulk delete) share one algorithm and differ only in configuration.

Client identity:
- The socket peer address, else the first X-Forwarded-For entry, else the
  literal "unknown". With ``RATE_LIMIT_TRUST_FORWARDED_FOR`` enabled the
  forwarded entry is preferred (deployments behind a reverse proxy).
"""

from __future__ import annotations

import hashlib
import logging
import math
from contextlib import asynccontextmanager
from typing import AsyncIterator, Awaitable, Callable

from fastapi import FastAPI, Request, Response

from app.adapters.rate_limit.base import RateLimitDecision, RateLimitPolicy
from app.adapters.rate_limit.redis_store import RedisSlidingWindowBackend
from app.core.config import RateLimitSettings, RedisSettings, settings
from app.core.errors import RateLimitConfigError, RateLimitExceededError
from app.core.logging import mask_url
from app.services.rate_limiter import RateLimiter

logger = logging.getLogger(__name__)

UNKNOWN_CLIENT = "unknown"

POLICY_PREFIXES = {
    "standard": "rl:",
    "api": "rl:api:",
    "strict": "rl:strict:",
}


def build_policy(name: str, rate_settings: RateLimitSettings | None = None) -> RateLimitPolicy:
    """Build a named policy from configuration.

    Args:
        name: One of "standard", "api" or "strict".
        rate_settings: Settings to read; defaults to the global settings.

    Returns:
        RateLimitPolicy with the configured window, ceiling and message.

    Raises:
        RateLimitConfigError: If the name is unknown or the numbers are invalid.
    """
    cfg = rate_settings or settings.rate_limit
    if name not in POLICY_PREFIXES:
        raise RateLimitConfigError(
            code="unknown_rate_limit_policy",
            message=f"Unknown rate limit policy: '{name}'",
            details={"hint": f"Expected one of: {', '.join(POLICY_PREFIXES)}"},
        )

    return RateLimitPolicy(
        name=name,
        window_ms=getattr(cfg, f"{name}_window_ms"),
        max_requests=getattr(cfg, f"{name}_max_requests"),
        key_prefix=POLICY_PREFIXES[name],
        message=getattr(cfg, f"{name}_message"),
    )


def create_rate_limiter(
    rate_settings: RateLimitSettings | None = None,
    redis_settings: RedisSettings | None = None,
) -> RateLimiter:
    """Factory building the process-wide limiter from configuration.

    A Redis backend is attached only when ``REDIS_URL`` is set; otherwise the
    limiter stays on its in-memory store for the lifetime of the process.
    """
    rate_cfg = rate_settings or settings.rate_limit
    redis_cfg = redis_settings or settings.redis

    shared_backend = None
    if redis_cfg.url:
        logger.info("rate_limit.redis_configured", extra={"redis_url": mask_url(redis_cfg.url)})
        shared_backend = RedisSlidingWindowBackend.from_url(
            redis_cfg.url,
            connect_timeout_seconds=redis_cfg.connect_timeout_seconds,
            socket_timeout_seconds=redis_cfg.socket_timeout_seconds,
        )
    else:
        logger.info("rate_limit.redis_not_configured", extra={"store": "memory"})

    return RateLimiter(
        shared_backend=shared_backend,
        connect_timeout_seconds=redis_cfg.connect_timeout_seconds,
        check_timeout_seconds=redis_cfg.check_timeout_seconds,
        sweep_interval_seconds=rate_cfg.sweep_interval_seconds,
        reconnect_interval_seconds=redis_cfg.reconnect_interval_seconds,
    )


@asynccontextmanager
async def rate_limiter_lifespan(app: FastAPI) -> AsyncIterator[None]:
    """Application lifespan owning the limiter.

    Policies are validated first so a misconfiguration aborts startup.
    """
    for name in POLICY_PREFIXES:
        build_policy(name)

    limiter = create_rate_limiter()
    await limiter.start()
    app.state.rate_limiter = limiter
    try:
        yield
    finally:
        await limiter.close()


def get_rate_limiter(request: Request) -> RateLimiter:
    """Return the limiter attached to the running application."""
    return request.app.state.rate_limiter


def get_client_key(request: Request, *, trust_forwarded_for: bool | None = None) -> str:
    """Derive the client identifier used for rate limit attribution.

    Args:
        request: FastAPI request.
        trust_forwarded_for: Prefer X-Forwarded-For; defaults to settings.

    Returns:
        str: Never empty; "unknown" when no address can be determined.
    """
    if trust_forwarded_for is None:
        trust_forwarded_for = settings.rate_limit.trust_forwarded_for

    forwarded = request.headers.get("x-forwarded-for", "")
    forwarded_first = forwarded.split(",")[0].strip()
    peer = request.client.host if request.client else ""

    candidates = (forwarded_first, peer) if trust_forwarded_for else (peer, forwarded_first)
    for candidate in candidates:
        if candidate:
            return candidate
    return UNKNOWN_CLIENT


def _hash_client_key(key: str) -> str:
    """Hash the client key for logging without exposing addresses."""
    return hashlib.sha256(key.encode()).hexdigest()[:16]


def build_rate_limit_headers(decision: RateLimitDecision) -> dict[str, str]:
    """Headers describing the client's budget after this request."""
    return {
        "X-RateLimit-Limit": str(decision.limit),
        "X-RateLimit-Remaining": str(decision.remaining),
        "X-RateLimit-Reset": str(math.ceil(decision.reset_at)),
    }


def rate_limit(policy_name: str) -> Callable[[Request, Response], Awaitable[None]]:
    """Create a FastAPI dependency enforcing the named policy.

    Usage:
        @router.post("/users/login", dependencies=[Depends(strict_rate_limit)])
        async def login(): ...

    Args:
        policy_name: One of "standard", "api" or "strict".

    Returns:
        Dependency callable consuming one unit of the client's budget.
    """
    if policy_name not in POLICY_PREFIXES:
        raise RateLimitConfigError(
            code="unknown_rate_limit_policy",
            message=f"Unknown rate limit policy: '{policy_name}'",
        )

    async def enforce_rate_limit(request: Request, response: Response) -> None:
        """Count this request and reject it with 429 when over the limit.

        Raises:
            RateLimitExceededError: When the policy's ceiling is exceeded.
        """
        cfg = settings.rate_limit
        if not cfg.enabled:
            return

        policy = build_policy(policy_name, cfg)
        limiter = get_rate_limiter(request)
        client_key = get_client_key(request, trust_forwarded_for=cfg.trust_forwarded_for)

        decision = await limiter.check(client_key, policy)
        headers = build_rate_limit_headers(decision) if cfg.include_headers else {}

        if decision.admitted:
            response.headers.update(headers)
            return

        retry_after = decision.retry_after_seconds or policy.retry_after_seconds
        logger.warning(
            "rate_limit.exceeded",
            extra={
                "policy": policy.name,
                "key_hash": _hash_client_key(client_key),
                "limit": decision.limit,
                "count": decision.count,
                "window_ms": policy.window_ms,
                "retry_after_s": retry_after,
                "backend": limiter.state.value,
            },
        )

        raise RateLimitExceededError(
            code="rate_limit_exceeded",
            message=policy.message,
            details={
                "policy": policy.name,
                "limit": decision.limit,
                "remaining": decision.remaining,
                "retry_after": retry_after,
            },
            headers={"Retry-After": str(retry_after), **headers},
        )

    enforce_rate_limit.__name__ = f"enforce_{policy_name}_rate_limit"
    return enforce_rate_limit


standard_rate_limit = rate_limit("standard")
api_rate_limit = rate_limit("api")
strict_rate_limit = rate_limit("strict")
