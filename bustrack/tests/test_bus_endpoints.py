"""
Integration tests for the driver registry, tracking and student view endpoints.
"""

import pytest
from fastapi.testclient import TestClient
from starlette.websockets import WebSocketDisconnect

from bustrack.app.main import app
from bustrack.app.schemas.tracking import BusLocation

from conftest import DRIVER_UID, GEOCODED_ADDRESS, seed_driver


# Driver registry

@pytest.mark.asyncio
async def test_add_and_list_drivers(client, driver_headers):
    response = await client.get("/v1/driver/drivers", headers=driver_headers)
    assert response.json() == {"drivers": []}

    response = await client.post("/v1/driver/drivers", json={"name": "Raj", "number": "9876543210"},
                                 headers=driver_headers)
    assert response.status_code == 201
    created = response.json()
    assert created["name"] == "Raj"
    assert created["id"]

    response = await client.get("/v1/driver/drivers", headers=driver_headers)
    assert response.json() == {"drivers": [created]}


@pytest.mark.asyncio
async def test_blank_driver_rejected(client, driver_headers):
    response = await client.post("/v1/driver/drivers", json={"name": "  ", "number": "9876543210"},
                                 headers=driver_headers)
    assert response.status_code == 422
    assert response.json()["error_code"] == "ERR_VALIDATION"


@pytest.mark.asyncio
async def test_students_cannot_manage_drivers(client, student_headers):
    response = await client.get("/v1/driver/drivers", headers=student_headers)
    assert response.status_code == 403

    response = await client.post("/v1/driver/drivers", json={"name": "Raj", "number": "1"}, headers=student_headers)
    assert response.status_code == 403


@pytest.mark.asyncio
async def test_registry_outage_is_retryable(client, driver_headers, mock_redis):
    # Revocation checks fail open during the outage; registry writes do not
    mock_redis.fail = True
    response = await client.post("/v1/driver/drivers", json={"name": "Raj", "number": "9876543210"},
                                 headers=driver_headers)

    assert response.status_code == 503
    assert response.json()["details"]["retryable"] is True


@pytest.mark.asyncio
async def test_registry_read_outage_is_retryable(client, driver_headers, mock_redis):
    mock_redis.fail = True
    response = await client.get("/v1/driver/drivers", headers=driver_headers)

    assert response.status_code == 503
    assert response.json()["error_code"] == "ERR_REGISTRY_001"
    assert response.json()["details"]["retryable"] is True


# Tracking

@pytest.mark.asyncio
async def test_tracking_flow_reaches_student(client, driver_headers, student_headers, mock_redis):
    """Raj starts tracking, the device reports a fix, a student sees it."""
    driver = seed_driver(mock_redis)

    response = await client.post("/v1/driver/tracking/start", json={"driver_id": driver["id"]},
                                  headers=driver_headers)
    assert response.status_code == 200
    assert response.json()["tracking"] is True
    assert response.json()["driver"]["name"] == "Raj"

    response = await client.post("/v1/driver/tracking/samples",
                                 json={"sample": {"latitude": 23.4123, "longitude": 85.4399, "accuracy": 8}},
                                 headers=driver_headers)
    assert response.status_code == 202
    assert response.json()["kind"] == "sample"
    await app.state.tracking_registry.get(DRIVER_UID).drain()

    response = await client.get("/v1/driver/tracking", headers=driver_headers)
    status_data = response.json()
    assert status_data["samples_published"] == 1
    assert status_data["last_location"]["driverName"] == "Raj"

    response = await client.get("/v1/student/bus-location", headers=student_headers)
    view = response.json()
    assert view["status"] == "Online"
    assert view["location"]["latitude"] == 23.4123
    assert view["location"]["driverNumber"] == "9876543210"
    assert view["address"] == GEOCODED_ADDRESS
    assert view["call_link"] == "tel:9876543210"
    assert view["last_seen"].endswith("seconds ago")

    response = await client.post("/v1/driver/tracking/stop", headers=driver_headers)
    assert response.json() == {
        "tracking": False,
        "driver": None,
        "started_at": None,
        "samples_published": 0,
        "last_location": None,
    }

    # The last broadcast stays visible after the driver stops
    response = await client.get("/v1/student/bus-location", headers=student_headers)
    assert response.json()["status"] == "Online"


@pytest.mark.asyncio
async def test_stop_when_not_tracking(client, driver_headers):
    response = await client.post("/v1/driver/tracking/stop", headers=driver_headers)
    assert response.status_code == 200
    assert response.json()["tracking"] is False


@pytest.mark.asyncio
async def test_start_for_unknown_driver(client, driver_headers):
    response = await client.post("/v1/driver/tracking/start", json={"driver_id": "nope"}, headers=driver_headers)
    assert response.status_code == 404


@pytest.mark.asyncio
async def test_start_with_permission_denied(client, driver_headers, mock_redis):
    driver = seed_driver(mock_redis)
    response = await client.post("/v1/driver/tracking/start",
                                 json={"driver_id": driver["id"], "permission": "denied"},
                                 headers=driver_headers)
    assert response.status_code == 403
    assert response.json()["error_code"] == "ERR_GEO_002"
    assert app.state.tracking_registry.get(DRIVER_UID) is None


@pytest.mark.asyncio
async def test_start_without_geolocation_support(client, driver_headers, mock_redis):
    driver = seed_driver(mock_redis)
    response = await client.post("/v1/driver/tracking/start",
                                 json={"driver_id": driver["id"], "geolocation_supported": False},
                                 headers=driver_headers)
    assert response.status_code == 400
    assert response.json()["error_code"] == "ERR_GEO_001"


@pytest.mark.asyncio
async def test_samples_require_active_session(client, driver_headers):
    response = await client.post("/v1/driver/tracking/samples",
                                 json={"sample": {"latitude": 1, "longitude": 1}},
                                 headers=driver_headers)
    assert response.status_code == 409


@pytest.mark.asyncio
async def test_sample_push_needs_exactly_one_payload(client, driver_headers):
    response = await client.post("/v1/driver/tracking/samples", json={}, headers=driver_headers)
    assert response.status_code == 422


@pytest.mark.asyncio
async def test_device_error_is_accepted(client, driver_headers, mock_redis):
    driver = seed_driver(mock_redis)
    await client.post("/v1/driver/tracking/start", json={"driver_id": driver["id"]}, headers=driver_headers)

    response = await client.post("/v1/driver/tracking/samples",
                                 json={"error": {"code": 3, "message": "Timeout expired"}},
                                 headers=driver_headers)

    assert response.status_code == 202
    assert response.json()["code"] == "TIMEOUT"
    assert app.state.tracking_registry.get(DRIVER_UID).active


@pytest.mark.asyncio
async def test_logout_stops_tracking(client, driver_headers, mock_redis):
    driver = seed_driver(mock_redis)
    await client.post("/v1/driver/tracking/start", json={"driver_id": driver["id"]}, headers=driver_headers)

    response = await client.post("/v1/auth/logout", headers=driver_headers)

    assert response.json()["tracking_stopped"] is True
    assert app.state.tracking_registry.get(DRIVER_UID) is None


@pytest.mark.asyncio
async def test_students_cannot_track(client, student_headers):
    response = await client.post("/v1/driver/tracking/start", json={"driver_id": "x"}, headers=student_headers)
    assert response.status_code == 403


# Student view

@pytest.mark.asyncio
async def test_bus_offline_before_first_broadcast(client, student_headers, geocoder_requests):
    response = await client.get("/v1/student/bus-location", headers=student_headers)
    assert response.json() == {
        "status": "Offline",
        "location": None,
        "last_seen": "Never",
        "address": None,
        "call_link": None,
    }
    assert geocoder_requests == []


@pytest.mark.asyncio
async def test_bus_location_requires_login(client):
    response = await client.get("/v1/student/bus-location")
    assert response.status_code in (401, 403)


# Push channels

def test_bus_location_stream_sends_current_value(mock_redis, student_token):
    location = BusLocation(latitude=23.41, longitude=85.44, timestamp=1000, driver_name="Raj",
                           driver_number="9876543210")
    mock_redis.store["busLocation"] = location.model_dump_json(by_alias=True)

    ws_client = TestClient(app)
    with ws_client.websocket_connect(f"/v1/student/bus-location/ws?token={student_token}") as websocket:
        message = websocket.receive_json()

    assert message == {"busLocation": {
        "latitude": 23.41,
        "longitude": 85.44,
        "timestamp": 1000,
        "driverName": "Raj",
        "driverNumber": "9876543210",
    }}


def test_bus_location_stream_starts_empty(student_token):
    ws_client = TestClient(app)
    with ws_client.websocket_connect(f"/v1/student/bus-location/ws?token={student_token}") as websocket:
        assert websocket.receive_json() == {"busLocation": None}


def test_bus_location_stream_rejects_bad_token():
    ws_client = TestClient(app)
    with pytest.raises(WebSocketDisconnect) as exc_info:
        with ws_client.websocket_connect("/v1/student/bus-location/ws?token=garbage") as websocket:
            websocket.receive_json()
    assert exc_info.value.code == 1008


def test_drivers_stream_sends_registry(mock_redis, driver_token):
    seed_driver(mock_redis)
    ws_client = TestClient(app)
    with ws_client.websocket_connect(f"/v1/driver/drivers/ws?token={driver_token}") as websocket:
        message = websocket.receive_json()
    assert message == {"drivers": [{"id": "drv-raj", "name": "Raj", "number": "9876543210"}]}


def test_drivers_stream_is_driver_only(student_token):
    ws_client = TestClient(app)
    with pytest.raises(WebSocketDisconnect) as exc_info:
        with ws_client.websocket_connect(f"/v1/driver/drivers/ws?token={student_token}") as websocket:
            websocket.receive_json()
    assert exc_info.value.code == 1008
