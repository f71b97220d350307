"""Tests for global exception handlers.

Validates that every exception type leaves the API in the shared error
envelope with the proper HTTP status code and without information leakage.
"""

import asyncio
import json
from unittest.mock import AsyncMock

import pytest
from fastapi import FastAPI
from fastapi.testclient import TestClient

from app.core.errors import (
    AppError,
    RateLimitBackendError,
    RateLimitExceededError,
    ValidationAppError,
)
from app.core.exception_handlers import general_exception_handler, setup_exception_handlers


@pytest.fixture
def app_with_handlers() -> FastAPI:
    """Create FastAPI app with exception handlers registered."""
    app = FastAPI()
    setup_exception_handlers(app)
    return app


@pytest.fixture
def client(app_with_handlers: FastAPI) -> TestClient:
    return TestClient(app_with_handlers)


class TestRateLimitExceededHandler:
    def test_returns_429_envelope_with_headers(self, client: TestClient, app_with_handlers: FastAPI):
        @app_with_handlers.get("/limited")
        async def limited():
            raise RateLimitExceededError(
                code="rate_limit_exceeded",
                message="Too many attempts, please try again later",
                headers={
                    "Retry-After": "900",
                    "X-RateLimit-Limit": "10",
                    "X-RateLimit-Remaining": "0",
                    "X-RateLimit-Reset": "1700000900",
                },
            )

        response = client.get("/limited")

        assert response.status_code == 429
        assert response.headers["Retry-After"] == "900"
        assert response.headers["X-RateLimit-Reset"] == "1700000900"
        data = response.json()
        assert data["success"] is False
        assert data["error"]["statusCode"] == 429
        assert data["error"]["message"] == "Too many attempts, please try again later"
        assert "timestamp" in data


class TestAppErrorHandler:
    def test_validation_error_returns_400(self, client: TestClient, app_with_handlers: FastAPI):
        @app_with_handlers.get("/test-validation")
        async def test_endpoint():
            raise ValidationAppError(code="test_validation", message="Test validation error")

        response = client.get("/test-validation")

        assert response.status_code == 400
        data = response.json()
        assert data["error"]["code"] == "test_validation"
        assert data["error"]["statusCode"] == 400
        assert data["error"]["message"] == "Test validation error"
        assert "request_id" in data["error"]

    def test_validation_error_includes_details(self, client: TestClient, app_with_handlers: FastAPI):
        @app_with_handlers.get("/test-validation-details")
        async def test_endpoint():
            raise ValidationAppError(
                code="invalid_rate_limit_policy",
                message="window_ms must be > 0",
                details={"policy": "strict", "window_ms": 0},
            )

        response = client.get("/test-validation-details")

        assert response.json()["error"]["details"] == {"policy": "strict", "window_ms": 0}

    def test_backend_error_returns_503(self, client: TestClient, app_with_handlers: FastAPI):
        @app_with_handlers.get("/test-backend")
        async def test_endpoint():
            raise RateLimitBackendError(code="rate_limit_backend_unavailable", message="Redis down")

        response = client.get("/test-backend")

        assert response.status_code == 503
        assert response.json()["error"]["code"] == "rate_limit_backend_unavailable"

    def test_plain_app_error_returns_500(self, client: TestClient, app_with_handlers: FastAPI):
        @app_with_handlers.get("/test-app-error")
        async def test_endpoint():
            raise AppError(code="broken", message="Something broke")

        response = client.get("/test-app-error")

        assert response.status_code == 500


class TestHttpExceptionHandler:
    def test_not_found_uses_envelope(self, client: TestClient):
        response = client.get("/does-not-exist")

        assert response.status_code == 404
        data = response.json()
        assert data["success"] is False
        assert data["error"]["statusCode"] == 404
        assert data["error"]["message"] == "Not Found"


class TestGeneralExceptionHandler:
    def test_unexpected_exception_handler_registered(self, app_with_handlers: FastAPI):
        assert Exception in app_with_handlers.exception_handlers

    def test_general_exception_handler_logic(self):
        request = AsyncMock()
        request.url.path = "/test"
        request.method = "GET"

        exc = RuntimeError("Unexpected error: redis password is hunter2")
        response = asyncio.run(general_exception_handler(request, exc))

        data = json.loads(bytes(response.body).decode())
        assert response.status_code == 500
        assert data["error"]["code"] == "internal_server_error"
        assert "hunter2" not in data["error"]["message"]

    def test_general_exception_handler_never_leaks_stack_trace(self):
        request = AsyncMock()
        request.url.path = "/test"
        request.method = "GET"

        response = asyncio.run(general_exception_handler(request, ValueError("Test error")))

        response_text = bytes(response.body).decode()
        assert "Traceback" not in response_text
        assert "File \"" not in response_text
        assert "ValueError" not in response_text


def test_multiple_handler_setups_does_not_fail():
    app = FastAPI()

    setup_exception_handlers(app)
    setup_exception_handlers(app)

    assert AppError in app.exception_handlers
    assert RateLimitExceededError in app.exception_handlers
