import uuid

import pytest
from fastapi.testclient import TestClient

from triplog.auth.security import create_access_token
from triplog.db import get_db
from triplog.main import app


@pytest.fixture
def client(db):
    def _get_db():
        yield db

    app.dependency_overrides[get_db] = _get_db
    try:
        yield TestClient(app)
    finally:
        app.dependency_overrides.pop(get_db, None)


def _auth(user_id, tenant_id, roles=None):
    return {"Authorization": f"Bearer {create_access_token(str(user_id), tenant_id, roles)}"}


@pytest.fixture
def driver_headers(driver_id, tenant_id):
    return _auth(driver_id, tenant_id, ["driver"])


@pytest.fixture
def manager_headers(tenant_id):
    return _auth(uuid.uuid4(), tenant_id, ["fleet_manager"])


def _start_payload(vehicle, odometer=100000, defects=None):
    return {
        "vehicle_id": str(vehicle.id),
        "start_odometer": odometer,
        "start_fuel_level": 80,
        "start_defects": defects,
    }


def test_trip_lifecycle_over_http(client, vehicle, driver_headers):
    resp = client.post("/driver/trips/start", json=_start_payload(vehicle), headers=driver_headers)
    assert resp.status_code == 201
    trip = resp.json()
    assert trip["status"] == "in_progress"
    assert "X-Request-ID" in resp.headers

    resp = client.get("/driver/trips/current", headers=driver_headers)
    assert resp.status_code == 200
    assert resp.json()["id"] == trip["id"]

    resp = client.post(
        f"/driver/trips/{trip['id']}/end",
        json={"end_odometer": 100250, "end_fuel_level": 55},
        headers=driver_headers,
    )
    assert resp.status_code == 200
    body = resp.json()
    assert body["status"] == "completed"
    assert body["distance_traveled"] == 250

    resp = client.get("/driver/trips", headers=driver_headers)
    assert resp.status_code == 200
    assert resp.json()["total"] == 1
    assert resp.json()["page"] == 1
    assert resp.json()["limit"] == 10


def test_current_trip_is_null_when_idle(client, vehicle, driver_headers):
    resp = client.get("/driver/trips/current", headers=driver_headers)

    assert resp.status_code == 200
    assert resp.json() is None


def test_second_start_returns_409(client, vehicle, driver_headers):
    client.post("/driver/trips/start", json=_start_payload(vehicle), headers=driver_headers)

    resp = client.post("/driver/trips/start", json=_start_payload(vehicle), headers=driver_headers)

    assert resp.status_code == 409
    assert resp.json() == {"detail": "session already in progress"}


def test_end_below_start_returns_400(client, vehicle, driver_headers):
    trip = client.post("/driver/trips/start", json=_start_payload(vehicle), headers=driver_headers).json()

    resp = client.post(
        f"/driver/trips/{trip['id']}/end",
        json={"end_odometer": 99000, "end_fuel_level": 55},
        headers=driver_headers,
    )

    assert resp.status_code == 400
    assert resp.json()["detail"] == "end odometer below start odometer"


def test_cancel_and_unknown_trip(client, vehicle, driver_headers):
    trip = client.post("/driver/trips/start", json=_start_payload(vehicle), headers=driver_headers).json()

    resp = client.post(f"/driver/trips/{trip['id']}/cancel", headers=driver_headers)
    assert resp.status_code == 200
    assert resp.json()["status"] == "cancelled"

    resp = client.post(f"/driver/trips/{uuid.uuid4()}/cancel", headers=driver_headers)
    assert resp.status_code == 404


def test_unassigned_vehicle_returns_404(client, make_vehicle, driver_headers):
    foreign = make_vehicle(assigned_driver_id=uuid.uuid4(), registration="XX-000-XX")

    resp = client.post("/driver/trips/start", json=_start_payload(foreign), headers=driver_headers)

    assert resp.status_code == 404


def test_invalid_payload_returns_422(client, vehicle, driver_headers):
    payload = _start_payload(vehicle)
    payload["start_fuel_level"] = 140

    resp = client.post("/driver/trips/start", json=payload, headers=driver_headers)

    assert resp.status_code == 422


def test_manual_mileage_update_and_history(client, vehicle, driver_headers):
    resp = client.post(
        f"/driver/vehicles/{vehicle.id}/mileage",
        json={"mileage": 100300, "notes": "weekly check"},
        headers=driver_headers,
    )
    assert resp.status_code == 200
    body = resp.json()
    assert body["message"] == "Mileage updated successfully"
    assert body["previous_mileage"] == 100000
    assert body["new_mileage"] == 100300
    assert body["difference"] == 300

    resp = client.get(f"/driver/vehicles/{vehicle.id}/mileage-history", headers=driver_headers)
    assert resp.status_code == 200
    history = resp.json()
    assert history["vehicle"]["registration"] == "AB-123-CD"
    assert history["vehicle"]["current_odometer"] == 100300
    assert history["total"] == 1
    assert history["history"][0]["notes"] == "weekly check"


def test_fraudulent_mileage_jump_returns_400(client, vehicle, driver_headers):
    resp = client.post(
        f"/driver/vehicles/{vehicle.id}/mileage",
        json={"mileage": 111000},
        headers=driver_headers,
    )

    assert resp.status_code == 400
    assert "possible fraud" in resp.json()["detail"]


def test_mileage_history_of_unassigned_vehicle_returns_404(client, vehicle, other_driver_id, tenant_id):
    resp = client.get(
        f"/driver/vehicles/{vehicle.id}/mileage-history",
        headers=_auth(other_driver_id, tenant_id, ["driver"]),
    )

    assert resp.status_code == 404


def test_missing_or_bad_token_returns_401(client):
    assert client.get("/driver/trips/current").status_code == 401

    resp = client.get("/driver/trips/current", headers={"Authorization": "Bearer not-a-token"})
    assert resp.status_code == 401
    assert resp.json()["detail"] == "Invalid token"


def test_fleet_listing_requires_manager_role(client, vehicle, driver_headers, manager_headers, tenant_id):
    trip = client.post("/driver/trips/start", json=_start_payload(vehicle), headers=driver_headers).json()

    assert client.get("/trips", headers=driver_headers).status_code == 403

    resp = client.get("/trips", params={"status": "in_progress"}, headers=manager_headers)
    assert resp.status_code == 200
    assert [t["id"] for t in resp.json()["data"]] == [trip["id"]]

    resp = client.get(f"/trips/{trip['id']}", headers=manager_headers)
    assert resp.status_code == 200
    assert resp.json()["vehicle_id"] == str(vehicle.id)

    admin = _auth(uuid.uuid4(), tenant_id, ["admin"])
    assert client.get(f"/trips/{trip['id']}", headers=admin).status_code == 200


def test_fleet_trip_detail_is_tenant_scoped(client, vehicle, driver_headers, other_tenant_id):
    trip = client.post("/driver/trips/start", json=_start_payload(vehicle), headers=driver_headers).json()

    resp = client.get(f"/trips/{trip['id']}", headers=_auth(uuid.uuid4(), other_tenant_id, ["fleet_manager"]))

    assert resp.status_code == 404


def test_healthz(client):
    assert client.get("/healthz").json() == {"status": "ok"}
