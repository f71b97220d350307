from __future__ import annotations

"""Application factory for FastAPI app.

Centralizes app construction (metadata, middleware, handlers, lifespan,
routers) so tests can build isolated instances with their own limiter.
"""

from fastapi import Depends, FastAPI

from app.api.routes import health_router
from app.core.config import settings
from app.core.exception_handlers import setup_exception_handlers
from app.core.logging import configure_logging
from app.core.middleware import request_id_middleware
from app.core.openapi import apply_openapi_customizations
from app.core.rate_limit import rate_limiter_lifespan, standard_rate_limit


def create_app() -> FastAPI:
    """Create and configure the FastAPI application instance.

    The standard rate limit policy applies to every route through app-level
    dependencies; sensitive routes add ``strict_rate_limit`` on top.

    Returns:
        Configured FastAPI app with middleware, handlers, routers and docs.
    """
    # Logging first so subsequent init logs are formatted as desired
    configure_logging(settings.log)

    app = FastAPI(
        title=settings.app.name,
        description=(
            "Notes API request throttling core. Every route is rate limited per "
            "client address; sensitive routes use a stricter policy. Limits are "
            "shared across processes through Redis when configured, with an "
            "in-memory fallback."
        ),
        version=settings.app.version,
        debug=settings.app.debug,
        lifespan=rate_limiter_lifespan,
        dependencies=[Depends(standard_rate_limit)],
    )

    app.middleware("http")(request_id_middleware)

    setup_exception_handlers(app)

    app.include_router(health_router)

    apply_openapi_customizations(app)

    return app
