from __future__ import annotations

from fastapi.testclient import TestClient


def test_generated_correlation_id_returned_in_header(client: TestClient) -> None:
    response = client.get("/api/companies/doesnotexist")

    assert response.status_code == 404
    assert response.headers.get("x-correlation-id")


def test_correlation_id_respected_when_provided(client: TestClient) -> None:
    response = client.get("/api/leads", headers={"X-Correlation-Id": "abc-123"})

    assert response.status_code == 200
    assert response.headers.get("x-correlation-id") == "abc-123"


def test_each_request_gets_its_own_correlation_id(client: TestClient) -> None:
    first = client.get("/health")
    second = client.get("/health")

    assert first.headers["x-correlation-id"] != second.headers["x-correlation-id"]


def test_validation_envelope_carries_correlation_header(client: TestClient) -> None:
    response = client.post("/api/leads", json={}, headers={"X-Correlation-Id": "corr-400"})

    assert response.status_code == 400
    assert response.headers.get("x-correlation-id") == "corr-400"


def test_oversized_correlation_id_is_replaced(client: TestClient) -> None:
    response = client.get("/health", headers={"X-Correlation-Id": "x" * 500})

    returned = response.headers["x-correlation-id"]
    assert returned != "x" * 500
    assert len(returned) == 36
