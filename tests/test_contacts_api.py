from __future__ import annotations

from fastapi.testclient import TestClient


def _create_company(client: TestClient, name: str = "Acme") -> dict:
    response = client.post("/api/companies", json={"name": name})
    assert response.status_code == 201
    return response.json()["data"]


def _create_contact(client: TestClient, **fields) -> dict:  # type: ignore[no-untyped-def]
    payload = {"firstName": "Ana", "lastName": "Mora", "email": "ana@acme.cr", **fields}
    response = client.post("/api/contacts", json=payload)
    assert response.status_code == 201
    return response.json()["data"]


def test_create_contact_returns_composite_with_company(client: TestClient) -> None:
    company = _create_company(client)

    created = _create_contact(client, companyId=company["id"], position="CEO", isPrimary=True)

    assert created["contact"]["firstName"] == "Ana"
    assert created["contact"]["isPrimary"] is True
    assert created["contact"]["companyId"] == company["id"]
    assert created["company"]["name"] == "Acme"


def test_create_contact_without_company(client: TestClient) -> None:
    created = _create_contact(client)

    assert created["contact"]["companyId"] is None
    assert created["contact"]["isPrimary"] is False
    assert created["company"] is None


def test_create_contact_reports_all_issues(client: TestClient) -> None:
    response = client.post("/api/contacts", json={"lastName": "Mora", "email": "not-an-email"})

    assert response.status_code == 400
    assert [detail["field"] for detail in response.json()["details"]] == ["firstName", "email"]


def test_create_contact_with_unknown_company_is_rejected(client: TestClient) -> None:
    response = client.post(
        "/api/contacts",
        json={"companyId": "missing", "firstName": "Ana", "lastName": "Mora", "email": "ana@acme.cr"},
    )

    assert response.status_code == 400
    assert response.json()["details"] == [{"field": "companyId", "message": "Company not found"}]


def test_list_contacts_filters_by_company_and_search(client: TestClient) -> None:
    acme = _create_company(client, "Acme")
    other = _create_company(client, "Other")
    ana = _create_contact(client, companyId=acme["id"])
    _create_contact(client, companyId=other["id"], firstName="Luis", email="luis@other.cr")

    by_company = client.get("/api/contacts", params={"companyId": acme["id"]})
    assert [item["contact"]["id"] for item in by_company.json()["data"]] == [ana["contact"]["id"]]

    by_email = client.get("/api/contacts", params={"search": "OTHER.cr"})
    assert [item["contact"]["firstName"] for item in by_email.json()["data"]] == ["Luis"]


def test_update_contact_and_move_company(client: TestClient) -> None:
    acme = _create_company(client, "Acme")
    other = _create_company(client, "Other")
    contact = _create_contact(client, companyId=acme["id"])

    response = client.put(
        f"/api/contacts/{contact['contact']['id']}",
        json={"companyId": other["id"], "phone": "+506 8888-0000"},
    )

    assert response.status_code == 200
    data = response.json()["data"]
    assert data["contact"]["phone"] == "+506 8888-0000"
    assert data["contact"]["email"] == "ana@acme.cr"
    assert data["company"]["name"] == "Other"


def test_contact_of_deleted_company_reads_without_company(client: TestClient) -> None:
    company = _create_company(client)
    contact = _create_contact(client, companyId=company["id"])

    assert client.delete(f"/api/companies/{company['id']}").status_code == 200

    response = client.get(f"/api/contacts/{contact['contact']['id']}")
    assert response.status_code == 200
    data = response.json()["data"]
    assert data["contact"]["companyId"] == company["id"]
    assert data["company"] is None


def test_delete_contact(client: TestClient) -> None:
    contact = _create_contact(client)

    response = client.delete(f"/api/contacts/{contact['contact']['id']}")

    assert response.status_code == 200
    assert response.json()["data"]["contact"]["email"] == "ana@acme.cr"
    assert client.get(f"/api/contacts/{contact['contact']['id']}").status_code == 404
