"""Pydantic schemas for the JSON response envelope."""

from __future__ import annotations

from typing import Any, Dict

from pydantic import BaseModel, Field


class ErrorBody(BaseModel):
    """Error description carried by every failed response."""

    statusCode: int = Field(..., description="HTTP status code repeated in the body.")
    message: str = Field(..., description="Human-readable error message.")
    code: str | None = Field(
        default=None, description="Machine-readable error code (e.g., 'rate_limit_exceeded')."
    )
    request_id: str | None = Field(
        default=None, description="Correlation id of the failed request."
    )
    details: Dict[str, Any] | None = Field(
        default=None, description="Optional structured context."
    )


class ErrorEnvelope(BaseModel):
    """Envelope returned for every error, including 429 rejections."""

    success: bool = Field(False, description="Always false for errors.")
    error: ErrorBody
    timestamp: str = Field(..., description="ISO-8601 UTC time the error was produced.")


class RateLimiterStatus(BaseModel):
    """Limiter backend status exposed by the health endpoint."""

    backend: str = Field(
        ...,
        description=(
            "Backend state: 'unconfigured', 'connecting', 'shared_active' or 'degraded_local'."
        ),
    )
    store: str = Field(..., description="Store answering checks: 'memory' or 'redis'.")


class HealthData(BaseModel):
    status: str = Field("healthy", description="Liveness status.")
    timestamp: str = Field(..., description="ISO-8601 UTC time of the check.")
    version: str = Field(..., description="Service version.")
    rate_limiter: RateLimiterStatus


class HealthResponse(BaseModel):
    """Success envelope wrapping the health payload."""

    success: bool = True
    message: str = "Service is healthy"
    data: HealthData
    timestamp: str
