import uuid

import pytest
from fastapi.testclient import TestClient

from rollcall.api.deps import get_feed, get_store
from rollcall.core.exceptions import StoreError
from rollcall.main import app


@pytest.fixture
def client(store, feed):
    app.dependency_overrides[get_store] = lambda: store
    app.dependency_overrides[get_feed] = lambda: feed
    yield TestClient(app)
    app.dependency_overrides.clear()


def register(client, name="Ada", descriptor=(0.0, 0.0, 0.0)):
    response = client.post(
        "/api/v1/identities",
        json={
            "name": name,
            "employee_id": f"E-{name}",
            "department": "Engineering",
            "position": "Engineer",
            "image_reference": f"https://img/{name}.jpg",
            "descriptor": list(descriptor),
        },
    )
    assert response.status_code == 201
    return response.json()


def test_register_and_list_identities(client):
    created = register(client)

    listed = client.get("/api/v1/identities").json()
    assert [row["identity_id"] for row in listed] == [created["identity_id"]]
    assert client.get(f"/api/v1/identities/{created['identity_id']}").json()["name"] == "Ada"
    assert client.get(f"/api/v1/identities/{uuid.uuid4()}").status_code == 404


def test_register_rejects_blank_fields(client):
    response = client.post(
        "/api/v1/identities",
        json={
            "name": "   ",
            "employee_id": "E-1",
            "department": "Ops",
            "position": "Lead",
            "image_reference": "img",
            "descriptor": [0.1],
        },
    )
    assert response.status_code == 422


def test_recognition_records_attendance(client):
    ada = register(client)

    hit = client.post(
        "/api/v1/recognitions",
        json={"descriptor": [0.1, 0.0, 0.0], "timestamp": "2026-03-02T08:00:00Z"},
    ).json()
    miss = client.post("/api/v1/recognitions", json={"descriptor": [2.0, 2.0, 2.0]}).json()

    assert hit["recognized"] is True
    assert hit["identity"]["identity_id"] == ada["identity_id"]
    assert hit["record"]["status"] == "present"
    assert miss["recognized"] is False
    assert miss["record"]["identity_id"] is None
    assert miss["record"]["status"] == "unauthorized"
    assert miss["record"]["stored_status"] == "present"


def test_recognition_rejects_mismatched_probe_gracefully(client):
    register(client)

    body = client.post("/api/v1/recognitions", json={"descriptor": [0.0, 0.0]}).json()

    assert body["recognized"] is False
    assert body["distance"] is None


def test_attendance_endpoints(client):
    ada = register(client)

    created = client.post(
        "/api/v1/attendance",
        json={"identity_id": ada["identity_id"], "status": "late", "confidence": 0.8},
    )
    assert created.status_code == 201
    assert created.json()["device_info"]["metadata"]["name"] == "Ada"

    assert client.post("/api/v1/attendance", json={"status": "present"}).status_code == 422
    assert client.post("/api/v1/attendance", json={"identity_id": str(uuid.uuid4()), "status": "present"}).status_code == 422

    history = client.get("/api/v1/attendance", params={"identity_id": ada["identity_id"]}).json()
    assert [row["status"] for row in history] == ["registered", "late"]

    recent = client.get("/api/v1/attendance/recent", params={"limit": 5}).json()
    assert recent[0]["display_name"] == "Ada"


def test_calendar_for_past_month(client):
    ada = register(client)
    for when in ("2026-03-02T08:00:00Z", "2026-03-03T08:30:00Z", "2026-03-04T09:45:00Z"):
        client.post("/api/v1/recognitions", json={"descriptor": [0.0, 0.0, 0.0], "timestamp": when})

    response = client.get(
        f"/api/v1/calendar/{ada['identity_id']}",
        params={"year": 2026, "month": 3, "selected_date": "2026-03-04"},
    )
    assert response.status_code == 200
    body = response.json()

    assert body["present_days"] == ["2026-03-02", "2026-03-03"]
    assert body["late_days"] == ["2026-03-04"]
    assert len(body["working_days"]) == 22
    assert len(body["absent_days"]) == 19
    assert "2026-03-05" in body["absent_days"]
    assert body["daily_detail"]["source"] == "history"
    assert body["daily_detail"]["badge"] == "late"


def test_calendar_unknown_identity(client):
    assert client.get(f"/api/v1/calendar/{uuid.uuid4()}").status_code == 404


class UnavailableStore:
    def get_identity(self, identity_id):
        raise StoreError("database unavailable")


def test_store_outage_maps_to_service_unavailable():
    app.dependency_overrides[get_store] = UnavailableStore
    try:
        client = TestClient(app)
        assert client.get(f"/api/v1/identities/{uuid.uuid4()}").status_code == 503
        assert client.get(f"/api/v1/calendar/{uuid.uuid4()}").status_code == 503
    finally:
        app.dependency_overrides.clear()
