from __future__ import annotations

from fastapi.testclient import TestClient

from weldtrack.utils import local_today


def _create_welder(client: TestClient, name: str = "Ivanov") -> str:
    response = client.post("/welders", json={"name": name})
    assert response.status_code == 201
    return response.json()["id"]


def test_healthz(client: TestClient) -> None:
    assert client.get("/healthz").json() == {"status": "ok"}


def test_work_flow_accrues_overtime_and_locks_plan(client: TestClient) -> None:
    norm_resp = client.post("/norms", json={"article": "xt44", "timePerUnit": 0.5})
    assert norm_resp.status_code == 201
    assert norm_resp.json()["article"] == "XT44"

    plan_resp = client.post("/plan", json={"article": "XT44", "planned": 20})
    assert plan_resp.status_code == 201

    welder_id = _create_welder(client)
    work_resp = client.post(f"/welders/{welder_id}/work", json={"article": "XT44", "quantity": 20})
    assert work_resp.status_code == 201
    record = work_resp.json()
    assert record["quantity"] == 20
    assert record["welderId"] == welder_id
    assert record["date"] == local_today().isoformat()

    state = client.get("/state").json()
    assert state["welders"][0]["overtime"] == 2.0
    assert state["plan"][0]["completed"] == 20
    assert state["plan"][0]["isLocked"] is True

    delete_resp = client.delete(f"/welders/{welder_id}/work/{record['id']}")
    assert delete_resp.status_code == 204
    state = client.get("/state").json()
    assert state["plan"][0]["completed"] == 0
    assert state["plan"][0]["isLocked"] is False
    assert state["welders"][0]["overtime"] == 2.0


def test_day_summary_and_available_overtime(client: TestClient) -> None:
    client.post("/norms", json={"article": "XT44", "timePerUnit": 0.5})
    welder_id = _create_welder(client)
    client.post(f"/welders/{welder_id}/work", json={"article": "XT44", "quantity": 10})
    client.put(f"/welders/{welder_id}/overtime", json={"hours": 4})
    today = local_today().isoformat()

    summary = client.get(f"/welders/{welder_id}/days/{today}").json()
    assert summary["workHours"] == 5.0
    assert summary["articles"] == {"XT44": 10.0}
    assert summary["availableOvertime"] == 3.0

    available = client.get(f"/welders/{welder_id}/overtime/available", params={"day": today}).json()
    assert available == {"welderId": welder_id, "date": today, "hours": 3.0}

    use_resp = client.post(f"/welders/{welder_id}/overtime/use", json={"date": today, "hours": 3})
    assert use_resp.status_code == 200
    assert use_resp.json()["overtime"] == 1.0
    assert use_resp.json()["timeAdjustments"] == {today: 3.0}

    refused = client.post(f"/welders/{welder_id}/overtime/use", json={"date": today, "hours": 5})
    assert refused.status_code == 200
    assert refused.json()["overtime"] == 1.0


def test_error_mapping(client: TestClient) -> None:
    client.post("/norms", json={"article": "XT44", "timePerUnit": 0.5})

    duplicate = client.post("/norms", json={"article": "xt44", "timePerUnit": 1})
    assert duplicate.status_code == 409
    assert "already exists" in duplicate.json()["detail"]

    invalid = client.post("/norms", json={"article": "XT-1", "timePerUnit": 1})
    assert invalid.status_code == 400

    missing = client.put("/norms/missing", json={"article": "AB1", "timePerUnit": 1})
    assert missing.status_code == 404

    negative = client.put(f"/welders/{_create_welder(client)}/overtime", json={"hours": -1})
    assert negative.status_code == 400

    unknown_plan_article = client.post("/plan", json={"article": "NOPE1", "planned": 5})
    assert unknown_plan_article.status_code == 400

    assert client.delete("/norms/missing").status_code == 204
    assert client.delete("/welders/missing/work/missing").status_code == 204


def test_plan_update_and_stats(client: TestClient) -> None:
    client.post("/norms", json={"article": "XT44", "timePerUnit": 0.5})
    item_id = client.post("/plan", json={"article": "XT44", "planned": 10}).json()["id"]
    merged = client.post("/plan", json={"article": "XT44", "planned": 5}).json()
    assert merged["id"] == item_id
    assert merged["planned"] == 15

    updated = client.put(f"/plan/{item_id}", json={"planned": 4}).json()
    assert updated["planned"] == 4

    welder_id = _create_welder(client)
    client.post(f"/welders/{welder_id}/work", json={"article": "XT44", "quantity": 4})
    stats = client.get("/articles/xt44/stats").json()
    assert stats["totalCompleted"] == 4
    assert stats["welderStats"] == [{"welderId": welder_id, "welderName": "Ivanov", "quantity": 4.0}]

    assert client.get("/articles/AB1/stats").status_code == 404
    assert client.get("/suggestions", params={"q": "xt", "source": "plan"}).json() == []
    assert client.get(
        "/suggestions", params={"q": "xt", "source": "plan", "include_locked": True}
    ).json() == ["XT44"]
    assert client.get("/suggestions", params={"q": "4"}).json() == ["XT44"]


def test_export_import_and_reset(client: TestClient) -> None:
    client.post("/norms", json={"article": "XT44", "timePerUnit": 0.5})
    _create_welder(client)
    export_resp = client.get("/export")
    assert export_resp.status_code == 200
    assert "attachment" in export_resp.headers["content-disposition"]
    document = export_resp.json()
    assert "exportedAt" in document

    reset = client.post("/reset").json()
    assert sorted(reset["changed"]) == ["norms", "plan", "welders"]
    assert client.get("/state").json() == {"welders": [], "norms": [], "plan": []}

    imported = client.post("/import", json=document)
    assert imported.status_code == 200
    assert imported.json()["changed"] == ["welders", "norms"]
    state = client.get("/state").json()
    assert state["welders"][0]["name"] == "Ivanov"
    assert state["welders"][0]["id"] != document["welders"][0]["id"]

    malformed = client.post("/import", json={"norms": [{"article": "??", "timePerUnit": 1}]})
    assert malformed.status_code == 400


def test_resolve_time_endpoint(client: TestClient) -> None:
    client.post("/norms", json={"article": "XT44", "timePerUnit": 0.5})
    body = client.get("/resolve-time", params={"article": "xt44", "quantity": 20}).json()
    assert body == {"article": "XT44", "quantity": 20.0, "hours": 10.0}


def test_rename_and_delete_welder(client: TestClient) -> None:
    welder_id = _create_welder(client)
    renamed = client.patch(f"/welders/{welder_id}", json={"name": "Petrov"})
    assert renamed.json()["name"] == "Petrov"
    assert client.delete(f"/welders/{welder_id}").status_code == 204
    assert client.get("/state").json()["welders"] == []
    assert client.patch(f"/welders/{welder_id}", json={"name": "X"}).status_code == 404


def test_work_booking_requires_a_norm(client: TestClient) -> None:
    welder_id = _create_welder(client)
    client.post("/norms", json={"article": "XT44", "timePerUnit": 0.5})

    rejected = client.post(f"/welders/{welder_id}/work", json={"article": "zz9", "quantity": 500})
    assert rejected.status_code == 400
    assert rejected.json()["detail"] == "Article not found in norms"
    assert client.get("/state").json()["welders"][0]["workRecords"] == []

    accepted = client.post(f"/welders/{welder_id}/work", json={"article": "xt44", "quantity": 2})
    assert accepted.status_code == 201


def test_locked_plan_item_cannot_be_edited(client: TestClient) -> None:
    client.post("/norms", json={"article": "XT44", "timePerUnit": 0.5})
    item_id = client.post("/plan", json={"article": "XT44", "planned": 4}).json()["id"]
    welder_id = _create_welder(client)
    client.post(f"/welders/{welder_id}/work", json={"article": "XT44", "quantity": 4})
    assert client.get("/state").json()["plan"][0]["isLocked"] is True

    refused = client.put(f"/plan/{item_id}", json={"planned": 100})
    assert refused.status_code == 409
    plan = client.get("/state").json()["plan"][0]
    assert plan["planned"] == 4
    assert plan["isLocked"] is True

    assert client.put("/plan/missing", json={"planned": 1}).status_code == 404
