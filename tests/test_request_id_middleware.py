from __future__ import annotations

from fastapi.testclient import TestClient

from app.core.app_factory import create_app


def test_preserves_incoming_request_id_header():
    incoming_id = "test-request-id-123"
    with TestClient(create_app()) as client:
        resp = client.get("/health", headers={"X-Request-ID": incoming_id})

    assert resp.status_code == 200
    assert resp.headers.get("X-Request-ID") == incoming_id


def test_generates_request_id_when_missing():
    with TestClient(create_app()) as client:
        resp = client.get("/health")

    assert resp.status_code == 200
    assert resp.headers.get("X-Request-ID")
    assert resp.headers.get("X-Request-Duration-ms") is not None


def test_rejected_request_carries_request_id():
    with TestClient(create_app()) as client:
        statuses = [client.get("/health", headers={"X-Request-ID": f"req-{i}"}) for i in range(101)]

    rejected = statuses[-1]
    assert rejected.status_code == 429
    assert rejected.headers.get("X-Request-ID") == "req-100"
    assert rejected.json()["error"]["request_id"] == "req-100"
