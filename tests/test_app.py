from typing import Iterator

import pytest
from fastapi.testclient import TestClient

from app.main import create_app
from datastore.database import build_default_database
from datastore.readings import build_default_store
from datastore.registry import build_default_registry
from services.broadcast import build_default_hub
from services.ingestion import build_default_ingestion
from settings import get_settings

_CACHES = (
    get_settings,
    build_default_database,
    build_default_store,
    build_default_registry,
    build_default_hub,
    build_default_ingestion,
)


def _clear_caches() -> None:
    for cache in _CACHES:
        cache.cache_clear()


@pytest.fixture
def api_client(tmp_path, monkeypatch) -> Iterator[TestClient]:
    monkeypatch.setenv("READINGS_DB_PATH", str(tmp_path / "readings.db"))
    _clear_caches()

    app = create_app()
    with TestClient(app) as client:
        yield client

    _clear_caches()


def _register(client: TestClient, name: str = "room_12", campus: str = "North", location: str = "Gym") -> None:
    response = client.post("/api/devices", json={"name": name, "campus": campus, "location": location})
    assert response.status_code == 201


def test_lifespan_closes_hub_and_clears_cache(tmp_path, monkeypatch) -> None:
    monkeypatch.setenv("READINGS_DB_PATH", str(tmp_path / "readings.db"))
    _clear_caches()
    app = create_app()

    with TestClient(app):
        hub_during = build_default_hub()

    hub_after = build_default_hub()
    try:
        assert hub_after is not hub_during
        assert hub_during.subscriber_count == 0
    finally:
        _clear_caches()


def test_healthcheck(api_client: TestClient) -> None:
    response = api_client.get("/health")

    assert response.status_code == 200
    assert response.json() == {"status": "ok", "subscribers": 0}


def test_register_and_list_devices(api_client: TestClient) -> None:
    _register(api_client, "s_lib", "South", "Library")
    _register(api_client, "n_gym", "North", "Gym")

    response = api_client.get("/api/devices")

    assert response.status_code == 200
    assert [device["name"] for device in response.json()] == ["n_gym", "s_lib"]


def test_register_duplicate_returns_conflict(api_client: TestClient) -> None:
    _register(api_client)

    response = api_client.post("/api/devices", json={"name": "room_12", "campus": "X", "location": "Y"})

    assert response.status_code == 409
    assert "room_12" in response.json()["detail"]


def test_register_invalid_name_returns_bad_request(api_client: TestClient) -> None:
    response = api_client.post(
        "/api/devices", json={"name": "room; DROP TABLE devices", "campus": "X", "location": "Y"}
    )

    assert response.status_code == 400


def test_write_then_read_latest_and_history(api_client: TestClient) -> None:
    _register(api_client)

    response = api_client.post("/api/write", json={"device": "room-12", "temp": 72, "humidity": 45})

    assert response.status_code == 201
    body = response.json()
    assert body["message"] == "Temperature data recorded"
    assert body["device"] == "room_12"
    reading = body["reading"]
    assert reading["campus"] == "North"
    assert reading["location"] == "Gym"
    assert reading["temperature"] == 72
    assert reading["humidity"] == 45

    latest = api_client.get("/api/temperature/room_12")
    assert latest.status_code == 200
    assert latest.json() == reading

    api_client.post("/api/write", json={"device": "room_12", "temperature": 73})
    history = api_client.get("/api/temperature/room_12/history", params={"date": reading["date"]})
    assert history.status_code == 200
    assert [item["temperature"] for item in history.json()] == [73, 72]

    other_day = api_client.get("/api/temperature/room_12/history", params={"date": "1999-01-01"})
    assert other_day.json() == []


def test_write_ignores_client_supplied_location(api_client: TestClient) -> None:
    _register(api_client)

    response = api_client.post(
        "/api/write",
        json={
            "device": "room_12",
            "temp": 70,
            "campus": "Elsewhere",
            "location": "Nowhere",
            "date": "1970-01-01",
            "time": "00:00:00",
        },
    )

    assert response.status_code == 201
    reading = response.json()["reading"]
    assert reading["campus"] == "North"
    assert reading["location"] == "Gym"
    assert reading["date"] != "1970-01-01"


def test_write_answers_with_registered_device_name(api_client: TestClient) -> None:
    _register(api_client)

    response = api_client.post("/api/write", json={"device": "ROOM-12", "temp": 70})

    assert response.status_code == 201
    assert response.json()["device"] == "room_12"


def test_write_unknown_device_returns_not_found(api_client: TestClient) -> None:
    response = api_client.post("/api/write", json={"device": "ghost", "temp": 70})

    assert response.status_code == 404
    assert "ghost" in response.json()["detail"]
    assert api_client.get("/api/temperature/ghost").status_code == 404


def test_write_invalid_identifier_returns_bad_request(api_client: TestClient) -> None:
    response = api_client.post("/api/write", json={"device": "1; DROP TABLE devices", "temp": 70})

    assert response.status_code == 400


@pytest.mark.parametrize(
    "payload",
    [
        {"device": "room_12"},
        {"temp": 70},
        {"device": "room_12", "temp": "hot"},
        {"device": "room_12", "temp": 70.5},
        {"device": "room_12", "temp": 70, "humidity": "wet"},
    ],
)
def test_write_malformed_payload_is_rejected(api_client: TestClient, payload: dict) -> None:
    _register(api_client)

    response = api_client.post("/api/write", json=payload)

    assert response.status_code == 422
    assert api_client.get("/api/temperature/room_12/history").json() == []


def test_latest_without_readings_returns_not_found(api_client: TestClient) -> None:
    _register(api_client)

    response = api_client.get("/api/temperature/room_12")

    assert response.status_code == 404
    assert response.json()["detail"] == "No data found"


def test_reset_history(api_client: TestClient) -> None:
    _register(api_client)
    api_client.post("/api/write", json={"device": "room_12", "temp": 70})

    response = api_client.delete("/api/temperature/room_12/history")

    assert response.status_code == 200
    assert api_client.get("/api/temperature/room_12/history").json() == []
    assert api_client.get("/api/temperature/ghost/history").status_code == 404


def test_dashboard_lists_latest_reading_per_device(api_client: TestClient) -> None:
    _register(api_client, "n_gym", "North", "Gym")
    _register(api_client, "s_lib", "South", "Library")
    api_client.post("/api/write", json={"device": "n_gym", "temp": 70, "humidity": 50})
    api_client.post("/api/write", json={"device": "n_gym", "temp": 71, "humidity": 51})

    response = api_client.get("/api/dashboard")

    assert response.status_code == 200
    entries = {entry["name"]: entry for entry in response.json()}
    assert entries["n_gym"]["temperature"] == 71
    assert entries["n_gym"]["humidity"] == 51
    assert entries["s_lib"]["temperature"] is None
    assert entries["s_lib"]["date"] is None

    filtered = api_client.get("/api/dashboard", params={"filter": "South"})
    assert [entry["name"] for entry in filtered.json()] == ["s_lib"]


def test_delete_device_removes_its_readings(api_client: TestClient) -> None:
    _register(api_client)
    api_client.post("/api/write", json={"device": "room_12", "temp": 70})

    response = api_client.delete("/api/devices/room_12")

    assert response.status_code == 200
    assert api_client.get("/api/devices").json() == []
    assert api_client.get("/api/temperature/room_12").status_code == 404
    assert api_client.delete("/api/devices/room_12").status_code == 404
