from datetime import datetime, timedelta, timezone
from typing import Dict, Iterator, Optional

import pytest
from fastapi import Request
from fastapi.testclient import TestClient

from app.api import get_verifier
from app.main import create_app
from auth.rights import UserRights, is_entitled
from auth.tokens import Claims, TokenAuthenticator
from datastore.devices import DeviceDirectory
from datastore.readings import ReadingStore
from models.records import Device, Reading
from services.aggregator import Aggregator
from services.telemetry import TelemetryService, build_default_service


class FixedClaimsVerifier:
    """Accepts ``Bearer <name>`` for names registered in ``claims``."""

    def __init__(self, claims: Dict[str, Claims]) -> None:
        self.claims = claims

    def verify_request(self, request: Request) -> Optional[Claims]:
        header = request.headers.get("authorization", "")
        return self.claims.get(header.removeprefix("Bearer "))

    def is_entitled(self, claims: Claims, required: UserRights) -> bool:
        return is_entitled(claims.rights, required)


USER = {"Authorization": "Bearer user"}
DEVICE = {"Authorization": "Bearer device"}


@pytest.fixture
def service(tmp_path) -> Iterator[TelemetryService]:
    service = TelemetryService(
        readings=ReadingStore(persistence_path=tmp_path / "readings.json"),
        devices=DeviceDirectory(persistence_path=tmp_path / "devices.json"),
        aggregator=Aggregator(),
        workers=1,
    )
    yield service
    service.shutdown()


@pytest.fixture
def api_client(service: TelemetryService, monkeypatch) -> Iterator[TestClient]:
    def build_test_service(workers: int | None = None) -> TelemetryService:
        return service

    build_test_service.cache_clear = lambda: None  # type: ignore[attr-defined]

    monkeypatch.setattr("app.main.build_default_service", build_test_service)
    monkeypatch.setattr("app.api.build_default_service", build_test_service)

    verifier = FixedClaimsVerifier(
        {
            "user": Claims(user_id="user-1", rights=("create-device",)),
            "device": Claims(
                user_id="user-1", device_id="dev-1", rights=("create-data-point",)
            ),
            "deviceless": Claims(user_id="user-1", rights=("create-data-point",)),
        }
    )
    app = create_app()
    app.dependency_overrides[get_verifier] = lambda: verifier
    with TestClient(app) as client:
        yield client


def _seed(service: TelemetryService, created_at: datetime, **metrics) -> None:
    service.readings.put_reading(
        Reading(
            id=f"r-{created_at.isoformat()}",
            owner_user_id="user-1",
            owner_device_id="dev-1",
            created_at=created_at,
            **metrics,
        )
    )


def test_lifespan_shuts_down_service_and_clears_cache(tmp_path, monkeypatch) -> None:
    monkeypatch.setenv("TELEMETRY_READINGS_PATH", "")
    monkeypatch.setenv("TELEMETRY_DEVICES_PATH", "")
    from datastore.devices import build_default_device_directory
    from datastore.readings import build_default_reading_store
    from settings import get_settings

    for cache in (get_settings, build_default_reading_store, build_default_device_directory):
        cache.cache_clear()
    build_default_service.cache_clear()

    app = create_app()
    try:
        with TestClient(app):
            service_during = build_default_service()
            assert service_during.executor._shutdown is False

        service_after = build_default_service()
        try:
            assert service_after is not service_during
            assert service_during.executor._shutdown is True
        finally:
            service_after.shutdown()
            build_default_service.cache_clear()
    finally:
        for cache in (get_settings, build_default_reading_store, build_default_device_directory):
            cache.cache_clear()


def test_missing_token_returns_unauthorized_without_body(api_client: TestClient) -> None:
    for path in ("/api/v1/sensors/hourly", "/api/v1/sensors/latest", "/api/v1/data"):
        response = api_client.get(path)
        assert response.status_code == 401
        assert response.content == b""

    response = api_client.get("/api/v1/sensors/latest", headers={"Authorization": "Bearer x"})
    assert response.status_code == 401


def test_hourly_rollup_returns_rows_for_recent_readings(
    api_client: TestClient, service: TelemetryService
) -> None:
    now = datetime.now(timezone.utc)
    _seed(service, now - timedelta(minutes=1), humidity=40.0, gas_resistance=1000.0)
    _seed(service, now - timedelta(hours=30), humidity=99.0)

    response = api_client.get("/api/v1/sensors/hourly", headers=USER)

    assert response.status_code == 200
    rows = response.json()
    assert len(rows) == 1
    assert rows[0]["humidity"] == 40.0
    assert rows[0]["gasResistance"] == 1000.0
    assert "pressure" not in rows[0]
    assert 0 <= rows[0]["hour"] <= 23


def test_hourly_rollup_metric_filter(api_client: TestClient, service: TelemetryService) -> None:
    _seed(service, datetime.now(timezone.utc), humidity=40.0, pressure=1000.0)

    only_pressure = api_client.get(
        "/api/v1/sensors/hourly", params={"metrics": ["pressure", "bogus"]}, headers=USER
    ).json()
    nothing = api_client.get("/api/v1/sensors/hourly?metrics=", headers=USER).json()

    assert set(only_pressure[0]) == {"hour", "pressure"}
    assert set(nothing[0]) == {"hour"}


def test_device_summary_payload(api_client: TestClient, service: TelemetryService) -> None:
    day = datetime(2024, 5, 10, tzinfo=timezone.utc)
    service.devices.put_device(
        Device(id="dev-1", owner_user_id="user-1", created_at=day, name="Kitchen")
    )
    _seed(service, day.replace(hour=3), humidity=50.0, temperature=20.0)
    _seed(service, day.replace(hour=3, minute=30), humidity=70.0, temperature=22.0)
    _seed(service, day.replace(hour=5), humidity=60.0, temperature=21.0)

    first = api_client.get("/api/v1/sensors/latest", headers=USER)
    second = api_client.get("/api/v1/sensors/latest", headers=USER)

    assert first.status_code == 200
    assert first.json() == [
        {
            "device": "Kitchen",
            "latest": {"humidity": 60.0, "temperature": 21.0},
            "humidity": {"3": 60.0, "5": 60.0},
            "temperature": {"3": 21.0, "5": 21.0},
        }
    ]
    assert first.content == second.content


def test_empty_result_is_success(api_client: TestClient) -> None:
    response = api_client.get("/api/v1/sensors/latest", headers=USER)

    assert response.status_code == 200
    assert response.json() == []


def test_create_reading_requires_right_and_device(api_client: TestClient) -> None:
    body = {"humidity": 45.0, "temp": 19.5}

    assert api_client.post("/api/v1/data", json=body, headers=USER).status_code == 403
    deviceless = {"Authorization": "Bearer deviceless"}
    assert api_client.post("/api/v1/data", json=body, headers=deviceless).status_code == 403

    response = api_client.post("/api/v1/data", json=body, headers=DEVICE)

    assert response.status_code == 200
    payload = response.json()
    assert payload["deviceId"] == "dev-1"
    assert payload["temperature"] == 19.5
    assert "pressure" not in payload

    recent = api_client.get("/api/v1/data", headers=USER).json()
    assert [item["id"] for item in recent] == [payload["id"]]


def test_create_reading_rejects_unknown_fields(api_client: TestClient) -> None:
    response = api_client.post("/api/v1/data", json={"co2": 400}, headers=DEVICE)

    assert response.status_code == 422


def test_create_reading_rejects_non_finite_values(
    api_client: TestClient, service: TelemetryService
) -> None:
    _seed(service, datetime.now(timezone.utc) - timedelta(minutes=1), humidity=40.0)

    nan = api_client.post("/api/v1/data", json={"humidity": "NaN"}, headers=DEVICE)
    overflow = api_client.post(
        "/api/v1/data",
        content='{"humidity": 1e999}',
        headers={**DEVICE, "Content-Type": "application/json"},
    )

    assert nan.status_code == 422
    assert overflow.status_code == 422
    assert len(api_client.get("/api/v1/data", headers=USER).json()) == 1
    rows = api_client.get("/api/v1/sensors/hourly", headers=USER).json()
    assert [row["humidity"] for row in rows] == [40.0]


def test_device_summary_omits_name_for_unnamed_device(
    api_client: TestClient, service: TelemetryService
) -> None:
    day = datetime(2024, 5, 10, tzinfo=timezone.utc)
    service.devices.put_device(
        Device(id="dev-1", owner_user_id="user-1", created_at=day, name="Kitchen")
    )
    service.devices.put_device(Device(id="dev-2", owner_user_id="user-1", created_at=day))
    _seed(service, day.replace(hour=3), humidity=50.0)
    service.readings.put_reading(
        Reading(
            id="r-unnamed",
            owner_user_id="user-1",
            owner_device_id="dev-2",
            created_at=day.replace(hour=4),
            pressure=1000.0,
        )
    )

    rows = api_client.get("/api/v1/sensors/latest", headers=USER).json()

    assert rows == [
        {"latest": {"pressure": 1000.0}, "pressure": {"4": 1000.0}},
        {"device": "Kitchen", "latest": {"humidity": 50.0}, "humidity": {"3": 50.0}},
    ]


def test_store_failure_returns_opaque_server_error(
    api_client: TestClient, service: TelemetryService, monkeypatch
) -> None:
    def broken(user_id, since=None):
        raise OSError("database unreachable")

    monkeypatch.setattr(service.readings, "query", broken)

    response = api_client.get("/api/v1/sensors/latest", headers=USER)

    assert response.status_code == 500
    assert response.content == b""


def test_real_tokens_are_accepted(service: TelemetryService, monkeypatch) -> None:
    def build_test_service(workers: int | None = None) -> TelemetryService:
        return service

    build_test_service.cache_clear = lambda: None  # type: ignore[attr-defined]
    monkeypatch.setattr("app.main.build_default_service", build_test_service)
    monkeypatch.setattr("app.api.build_default_service", build_test_service)
    authenticator = TokenAuthenticator("app-secret")
    app = create_app()
    app.dependency_overrides[get_verifier] = lambda: authenticator
    token = authenticator.sign("user-1")

    with TestClient(app) as client:
        response = client.get(
            "/api/v1/sensors/hourly", headers={"Authorization": f"Bearer {token}"}
        )

    assert response.status_code == 200
    assert response.json() == []


def test_healthcheck(api_client: TestClient) -> None:
    assert api_client.get("/health").json() == {"status": "ok"}
