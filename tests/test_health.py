"""Tests for the health endpoint and the assembled application."""

from __future__ import annotations

import pytest
from fastapi.testclient import TestClient

from app.core.app_factory import create_app
from app.core.config import settings


@pytest.fixture
def client():
    with TestClient(create_app()) as test_client:
        yield test_client


def test_health_reports_limiter_backend(client: TestClient) -> None:
    response = client.get("/health")

    assert response.status_code == 200
    body = response.json()
    assert body["success"] is True
    assert body["data"]["status"] == "healthy"
    assert body["data"]["version"] == settings.app.version
    assert body["data"]["rate_limiter"] == {"backend": "unconfigured", "store": "memory"}


def test_every_route_sits_behind_standard_policy(client: TestClient) -> None:
    first = client.get("/health")
    second = client.get("/health")

    assert first.headers["X-RateLimit-Limit"] == "100"
    assert first.headers["X-RateLimit-Remaining"] == "99"
    assert second.headers["X-RateLimit-Remaining"] == "98"


def test_openapi_documents_rate_limit_response(client: TestClient) -> None:
    schema = client.get("/openapi.json").json()

    too_many = schema["components"]["responses"]["TooManyRequests"]
    assert set(too_many["headers"]) == {
        "Retry-After",
        "X-RateLimit-Limit",
        "X-RateLimit-Remaining",
        "X-RateLimit-Reset",
    }
    assert "ErrorEnvelope" in schema["components"]["schemas"]
    assert schema["paths"]["/health"]["get"]["responses"]["429"] == {
        "$ref": "#/components/responses/TooManyRequests"
    }


def test_openapi_is_not_rate_limited(client: TestClient) -> None:
    response = client.get("/openapi.json")

    assert "X-RateLimit-Limit" not in response.headers
