from __future__ import annotations

from fastapi.testclient import TestClient


def test_create_and_list_stages_in_order(client: TestClient) -> None:
    for name, order in [("Closed Won", 5), ("Lead", 1), ("Proposal", 3)]:
        response = client.post("/api/pipeline-stages", json={"name": name, "order": order})
        assert response.status_code == 201

    response = client.get("/api/pipeline-stages")

    assert response.status_code == 200
    stages = response.json()["data"]
    assert [stage["name"] for stage in stages] == ["Lead", "Proposal", "Closed Won"]
    assert stages[0]["color"] == "#3b82f6"
    assert stages[0]["isDefault"] is False


def test_stage_requires_name_and_non_negative_order(client: TestClient) -> None:
    response = client.post("/api/pipeline-stages", json={"order": -1})

    assert response.status_code == 400
    assert [detail["field"] for detail in response.json()["details"]] == ["name", "order"]


def test_update_stage_recolours_and_reorders(client: TestClient) -> None:
    stage = client.post("/api/pipeline-stages", json={"name": "Lead", "order": 1}).json()["data"]

    response = client.put(f"/api/pipeline-stages/{stage['id']}", json={"color": "#10b981", "order": 7})

    assert response.status_code == 200
    assert response.json()["data"]["color"] == "#10b981"
    assert response.json()["data"]["order"] == 7


def test_delete_stage_leaves_leads_unassigned_on_board(client: TestClient) -> None:
    stage = client.post("/api/pipeline-stages", json={"name": "Lead", "order": 1}).json()["data"]
    client.post("/api/leads", json={"title": "Deal", "pipelineStageId": stage["id"], "value": 300})

    response = client.delete(f"/api/pipeline-stages/{stage['id']}")

    assert response.status_code == 200
    assert response.json()["data"]["stage"]["name"] == "Lead"

    board = client.get("/api/dashboard/pipeline").json()["data"]
    assert board == [
        {"stageId": None, "name": "Unassigned", "color": None, "order": None, "leadCount": 1, "totalValue": 300.0}
    ]


def test_get_missing_stage_returns_404(client: TestClient) -> None:
    response = client.get("/api/pipeline-stages/missing")

    assert response.status_code == 404
    assert response.json()["error"]["message"] == "Pipeline stage not found"
