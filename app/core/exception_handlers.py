"""Global exception handlers for consistent error responses.

Every error leaves the API in the same envelope:

    {"success": false,
     "error": {"statusCode": 429, "message": "...", "code": "...", "request_id": "..."},
     "timestamp": "2024-01-01T00:00:00+00:00"}

Design:
- RateLimitExceededError → 429 with Retry-After and X-RateLimit-* headers
- AppError subclasses → appropriate HTTP status (400, 503, 500)
- HTTPException → its own status, same envelope
- Unexpected Exception → generic 500 (safety net)
"""

import logging
from datetime import datetime, timezone
from typing import Any

from fastapi import Request
from fastapi.responses import JSONResponse
from starlette.exceptions import HTTPException as StarletteHTTPException

from app.core.errors import (
    AppError,
    RateLimitBackendError,
    RateLimitExceededError,
    ValidationAppError,
)
from app.core.logging import get_request_id

logger = logging.getLogger(__name__)


def build_error_body(
    status_code: int,
    message: str,
    *,
    code: str | None = None,
    details: Any = None,
) -> dict[str, Any]:
    """Build the JSON error envelope shared by all handlers."""
    error: dict[str, Any] = {
        "statusCode": status_code,
        "message": message,
        "request_id": get_request_id(),
    }
    if code:
        error["code"] = code
    if details:
        error["details"] = details

    return {
        "success": False,
        "error": error,
        "timestamp": datetime.now(timezone.utc).isoformat(),
    }


async def rate_limit_exceeded_handler(request: Request, exc: RateLimitExceededError) -> JSONResponse:
    """Render a rate limit rejection as HTTP 429.

    Rejections are normal decisions, so they are not logged here; the
    dependency that raised them already logged ``rate_limit.exceeded``.
    """
    return JSONResponse(
        status_code=429,
        content=build_error_body(429, exc.message, code=exc.code),
        headers=exc.headers or None,
    )


async def app_error_handler(request: Request, exc: AppError) -> JSONResponse:
    """Handle domain application errors with consistent JSON format.

    Routes domain errors to HTTP status codes:
    - ValidationAppError → 400 Bad Request (client fault)
    - RateLimitBackendError → 503 Service Unavailable
    - Any other AppError → 500 Internal Server Error

    Args:
        request: FastAPI request object.
        exc: AppError instance (or subclass).

    Returns:
        JSONResponse with appropriate status code and error details.
    """
    status_code = 500
    if isinstance(exc, ValidationAppError):
        status_code = 400
    elif isinstance(exc, RateLimitBackendError):
        status_code = 503

    logger.warning(
        "app_error_handled",
        extra={
            "error_code": exc.code,
            "error_message": exc.message,
            "status_code": status_code,
            "has_details": bool(exc.details),
            "request_id": get_request_id(),
        },
    )

    return JSONResponse(
        status_code=status_code,
        content=build_error_body(status_code, exc.message, code=exc.code, details=exc.details),
    )


async def http_exception_handler(request: Request, exc: StarletteHTTPException) -> JSONResponse:
    """Wrap framework HTTP errors (404, 405, ...) in the error envelope."""
    message = exc.detail if isinstance(exc.detail, str) else "Request failed"
    return JSONResponse(
        status_code=exc.status_code,
        content=build_error_body(exc.status_code, message),
        headers=getattr(exc, "headers", None),
    )


async def general_exception_handler(request: Request, exc: Exception) -> JSONResponse:
    """Fallback handler for unexpected errors (safety net).

    Logs detailed information for debugging while returning a generic
    message. No stack traces or exception text reach the client.
    """
    logger.error(
        "unhandled_exception",
        extra={
            "error_type": type(exc).__name__,
            "error_msg": str(exc),
            "request_path": request.url.path,
            "request_method": request.method,
            "request_id": get_request_id(),
        },
    )

    return JSONResponse(
        status_code=500,
        content=build_error_body(
            500,
            "An unexpected error occurred. Please try again later.",
            code="internal_server_error",
        ),
    )


def setup_exception_handlers(app) -> None:
    """Register all exception handlers with FastAPI app.

    Handlers are resolved by exception class hierarchy, so the rate limit
    handler wins over the generic AppError handler for 429 rejections.

    Args:
        app: FastAPI application instance.
    """
    app.exception_handler(RateLimitExceededError)(rate_limit_exceeded_handler)
    app.exception_handler(AppError)(app_error_handler)
    app.exception_handler(StarletteHTTPException)(http_exception_handler)
    app.exception_handler(Exception)(general_exception_handler)
