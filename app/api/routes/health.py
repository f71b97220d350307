from __future__ import annotations

from datetime import datetime, timezone

from fastapi import APIRouter, Request

from app.core.config import settings
from app.core.rate_limit import get_rate_limiter
from app.schemas.envelope import HealthData, HealthResponse, RateLimiterStatus

router = APIRouter(tags=["Health"])


@router.get("/health", response_model=HealthResponse)
def health_check(request: Request) -> HealthResponse:
    """Health check endpoint.

    Used by load balancers and monitoring systems to determine service
    health. Also reports which rate limit store is answering checks, so a
    degraded Redis connection is visible without reading logs.
    """

    now = datetime.now(timezone.utc).isoformat()
    limiter = get_rate_limiter(request).snapshot()

    return HealthResponse(
        data=HealthData(
            timestamp=now,
            version=settings.app.version,
            rate_limiter=RateLimiterStatus(backend=limiter["backend"], store=limiter["store"]),
        ),
        timestamp=now,
    )
