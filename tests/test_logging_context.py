from __future__ import annotations

import json
import logging
import sys

import pytest
from fastapi.testclient import TestClient
from sqlalchemy.orm import Session

from pymecrm.context import correlation_scope
from pymecrm.core.database import Base
from pymecrm.logging import JsonLogFormatter


def test_logs_include_correlation_id_for_http(client: TestClient, caplog: pytest.LogCaptureFixture) -> None:
    caplog.set_level(logging.INFO)

    response = client.get("/api/companies/doesnotexist", headers={"X-Correlation-Id": "abc-123"})
    assert response.status_code == 404

    records = [
        record for record in caplog.records if record.name == "pymecrm.request" and record.getMessage() == "http.request"
    ]
    assert records
    assert any(
        getattr(record, "correlation_id", None) == "abc-123"
        and getattr(record, "method", None) == "GET"
        and getattr(record, "path", None) == "/api/companies/{id}"
        and getattr(record, "status_code", None) == 404
        and isinstance(getattr(record, "duration_ms", None), float)
        for record in records
    )


def test_mutations_are_logged_with_entity_context(client: TestClient, caplog: pytest.LogCaptureFixture) -> None:
    caplog.set_level(logging.INFO)

    response = client.post("/api/companies", json={"name": "Acme"}, headers={"X-Correlation-Id": "corr-log-1"})
    assert response.status_code == 201

    records = [record for record in caplog.records if record.name == "pymecrm.crm"]
    assert any(
        record.getMessage() == "crm.entity.created"
        and getattr(record, "entity", None) == "company"
        and getattr(record, "entity_id", None) == response.json()["data"]["id"]
        and getattr(record, "correlation_id", None) == "corr-log-1"
        for record in records
    )


def test_persistence_failure_is_logged_with_detail(
    client: TestClient,
    db_session: Session,
    caplog: pytest.LogCaptureFixture,
) -> None:
    caplog.set_level(logging.INFO)
    Base.metadata.tables["crm_lead"].drop(bind=db_session.get_bind())

    response = client.get("/api/leads")

    assert response.status_code == 500
    assert "crm_lead" not in response.text
    failures = [record for record in caplog.records if record.getMessage() == "crm.persistence_failed"]
    assert failures
    assert failures[0].levelno == logging.ERROR
    assert getattr(failures[0], "entity", None) == "lead"
    assert "crm_lead" in getattr(failures[0], "error", "")


def test_validation_errors_are_not_logged_as_faults(client: TestClient, caplog: pytest.LogCaptureFixture) -> None:
    caplog.set_level(logging.INFO)

    response = client.post("/api/companies", json={})
    assert response.status_code == 400

    assert not [record for record in caplog.records if record.levelno >= logging.ERROR]


def test_json_formatter_keeps_whitelisted_fields_only() -> None:
    with correlation_scope("fmt-1"):
        record = logging.getLogRecordFactory()(
            "pymecrm.crm", logging.INFO, __file__, 1, "crm.entity.created", None, None
        )
        record.entity = "lead"
        record.entity_id = "lead-1"
        record.secret = "do-not-log"
        record.error = "x" * 600

        payload = json.loads(JsonLogFormatter(service="PYME CRM API").format(record))

    assert payload["msg"] == "crm.entity.created"
    assert payload["service"] == "PYME CRM API"
    assert payload["correlation_id"] == "fmt-1"
    assert payload["fields"]["entity"] == "lead"
    assert payload["fields"]["entity_id"] == "lead-1"
    assert "secret" not in payload["fields"]
    assert len(payload["fields"]["error"]) == 500


def test_json_formatter_includes_exception() -> None:
    try:
        raise RuntimeError("boom")
    except RuntimeError:
        record = logging.LogRecord(
            "pymecrm.request", logging.ERROR, __file__, 1, "http.error", None, sys.exc_info()
        )

    payload = json.loads(JsonLogFormatter().format(record))

    assert "RuntimeError: boom" in payload["fields"]["exception"]
