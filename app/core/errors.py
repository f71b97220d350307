"""Application-level exception types.

This module defines domain errors used across services/adapters, enabling
consistent error handling, logging, and API responses.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any, NotRequired, TypedDict


class ErrorDetails(TypedDict, total=False):
    """Structured error context for observability and clients.

    Fields are optional so each error only carries what it knows.
    """

    hint: str
    policy: str
    limit: int
    remaining: int
    reset_at: int
    retry_after: int
    window_ms: int
    max_requests: int
    backend: str
    request_id: str
    context: NotRequired[dict[str, Any]]


@dataclass
class AppError(Exception):
    """Base error for application/domain failures.

    Attributes:
        code: Stable, machine-readable error code.
        message: Human-readable error message.
        details: Optional structured details for debugging/observability.
    """

    code: str
    message: str
    details: ErrorDetails | None = None

    def __post_init__(self) -> None:
        # Populate Exception args so str(error) is useful in logs/tracebacks.
        super().__init__(self.message)


class ValidationAppError(AppError):
    """Raised when input/config validation fails."""


class RateLimitConfigError(ValidationAppError):
    """Raised when a rate limit policy or limiter setting is invalid.

    Fatal at startup: a misconfigured policy is never silently admitted.
    """


class RateLimitBackendError(AppError):
    """Raised by a rate limit backend when its store is unreachable or errors."""


@dataclass
class RateLimitExceededError(AppError):
    """Raised by the HTTP layer when a request is rejected by its policy.

    Attributes:
        headers: Response headers (Retry-After, X-RateLimit-*) to send with 429.
    """

    headers: dict[str, str] = field(default_factory=dict)
