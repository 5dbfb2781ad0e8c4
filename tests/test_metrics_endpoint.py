from __future__ import annotations

from collections.abc import Generator

import pytest
from fastapi.testclient import TestClient
from sqlalchemy.orm import Session

from pymecrm.core.config import get_settings
from pymecrm.core.database import Base


@pytest.fixture()
def metrics_enabled(monkeypatch: pytest.MonkeyPatch) -> Generator[None, None, None]:
    monkeypatch.setenv("METRICS_ENABLED", "true")
    get_settings.cache_clear()
    yield
    get_settings.cache_clear()


def test_metrics_endpoint_exposes_http_and_crm_metrics(client: TestClient, metrics_enabled: None) -> None:
    assert client.get("/health").status_code == 200

    company = client.post("/api/companies", json={"name": "Metrics Co"})
    assert company.status_code == 201
    assert client.put(f"/api/companies/{company.json()['data']['id']}", json={"city": "Heredia"}).status_code == 200

    metrics = client.get("/metrics")
    assert metrics.status_code == 200
    body = metrics.text

    assert "http_requests_total" in body
    assert "http_request_duration_seconds" in body
    assert "crm_entity_mutations_total" in body

    assert 'path="/health"' in body
    assert 'path="/api/companies/{id}"' in body
    assert 'entity="company",operation="create"' in body
    assert 'entity="company",operation="update"' in body


def test_persistence_failures_are_counted(client: TestClient, db_session: Session, metrics_enabled: None) -> None:
    Base.metadata.tables["crm_follow_up"].drop(bind=db_session.get_bind())

    assert client.get("/api/follow-ups").status_code == 500

    body = client.get("/metrics").text
    assert 'crm_persistence_failures_total{entity="follow_up",operation="list"}' in body


def test_metrics_endpoint_hidden_when_disabled(client: TestClient) -> None:
    response = client.get("/metrics")

    assert response.status_code == 404
    assert response.json()["success"] is False


def test_health(client: TestClient) -> None:
    response = client.get("/health")

    assert response.status_code == 200
    assert response.json() == {"status": "ok", "service": "PYME CRM API", "environment": "local"}
