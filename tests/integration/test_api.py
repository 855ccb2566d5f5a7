"""
Integration tests for the HTTP API.
The app is built around a service with scripted transports; the lifespan does not run.
"""
import asyncio
from unittest.mock import AsyncMock

import pytest
from httpx import ASGITransport, AsyncClient

from oltpoller.main import create_app
from oltpoller.polling.registry import DeviceRegistry
from oltpoller.services.polling_service import PollingService
from tests.conftest import make_device, make_onu


@pytest.fixture
def service(transports):
    return PollingService(
        transports=transports,
        registry=DeviceRegistry([make_device(1), make_device(2, brand="Huawei")]),
    )


@pytest.fixture
async def client(service):
    app = create_app(service=service)
    async with AsyncClient(transport=ASGITransport(app=app), base_url="http://test") as ac:
        yield ac
    await service.stop()


@pytest.fixture
def healthy_dependencies(monkeypatch):
    for name in ("check_db_health", "check_redis_health", "check_influx_health"):
        monkeypatch.setattr(f"oltpoller.main.{name}", AsyncMock(return_value=True))


class TestDevices:

    async def test_list_devices(self, client):
        response = await client.get("/api/devices")

        assert response.status_code == 200
        body = response.json()
        assert body["total"] == 2
        assert [d["status"] for d in body["data"]] == ["unknown", "unknown"]
        assert body["data"][1]["brand"] == "Huawei"
        assert "password" not in body["data"][0]

    async def test_state_before_first_poll(self, client):
        response = await client.get("/api/devices/1/state")

        assert response.status_code == 200
        assert response.json()["data"]["status"] == "unknown"

    async def test_state_of_unknown_device(self, client):
        response = await client.get("/api/devices/99/state")

        assert response.status_code == 404
        assert response.json()["detail"] == "Device not found"

    async def test_request_id_header(self, client):
        response = await client.get("/api/devices")

        assert len(response.headers["X-Request-ID"]) == 36


class TestManualPoll:

    async def test_poll_one_device(self, client, fake_transport):
        fake_transport.readings[1] = [make_onu(onu_index=1), make_onu(onu_index=2, status="offline")]

        response = await client.post("/api/poll/1")

        assert response.status_code == 200
        data = response.json()["data"]
        assert data["success"] is True
        assert data["onu_count"] == 2

        state = (await client.get("/api/devices/1/state")).json()["data"]
        assert state["status"] == "online"
        assert state["metrics"]["online_count"] == 1
        assert set(state["onus"]) == {"1/1/1:1", "1/1/1:2"}

    async def test_failed_poll_is_reported(self, client, fake_transport, unreachable_error):
        fake_transport.errors[1] = unreachable_error

        response = await client.post("/api/poll/1")

        assert response.status_code == 200
        assert response.json()["data"]["error"] == "SSH connection timeout"
        state = (await client.get("/api/devices/1/state")).json()["data"]
        assert state["status"] == "offline"
        assert state["last_error"] == "SSH connection timeout"

    async def test_poll_unknown_device(self, client):
        response = await client.post("/api/poll/99")

        assert response.status_code == 404
        assert response.json()["detail"] == "OLT not found"

    async def test_poll_device_in_flight(self, client, service, fake_transport):
        fake_transport.gate = asyncio.Event()
        running = asyncio.create_task(service.scheduler.trigger(1))
        for _ in range(5):
            await asyncio.sleep(0)
        assert service.scheduler.is_in_flight(1)

        response = await client.post("/api/poll/1")

        assert response.status_code == 409
        fake_transport.gate.set()
        await running

    async def test_invalid_device_id(self, client):
        response = await client.post("/api/poll/abc")

        assert response.status_code == 422
        assert response.json()["error"]["code"] == "VALIDATION_ERROR"


class TestPollAll:

    async def test_poll_all_runs_in_background(self, client, service, fake_transport):
        fake_transport.gate = asyncio.Event()

        response = await client.post("/api/poll-all")

        assert response.status_code == 202
        assert response.json()["data"]["device_count"] == 2
        assert service.scheduler.poll_all_running

        second = await client.post("/api/poll-all")
        assert second.status_code == 409
        assert second.json()["detail"] == "Polling already in progress"

        fake_transport.gate.set()
        await asyncio.gather(*service.scheduler._background)
        assert sorted(fake_transport.calls) == [1, 2]


class TestStatusAndHealth:

    async def test_status(self, client):
        await client.post("/api/poll/2")

        response = await client.get("/api/status")

        assert response.status_code == 200
        data = response.json()["data"]
        assert data["process"] is None
        assert data["scheduler"]["is_polling"] is False
        assert "2" in data["scheduler"]["last_results"]

    async def test_health(self, client, healthy_dependencies):
        response = await client.get("/health")

        assert response.status_code == 200
        body = response.json()
        assert body["status"] == "ok"
        assert body["is_polling"] is False
        assert body["dependencies"] == {"mysql": "ok", "redis": "ok", "influxdb": "ok"}

    async def test_metrics(self, client):
        await client.post("/api/poll/1")

        response = await client.get("/metrics")

        assert response.status_code == 200
        assert "oltpoller_polls_total" in response.text


class TestConnectionCheck:

    async def test_reachable_device(self, client, fake_transport):
        response = await client.post(
            "/api/test-connection",
            json={"host": "10.0.9.1", "username": "admin", "password": "secret"},
        )

        assert response.status_code == 200
        data = response.json()["data"]
        assert data["success"] is True
        assert data["error"] is None
        assert data["protocol"] == "ssh"
        assert data["host"] == "10.0.9.1"
        assert fake_transport.checks == [("10.0.9.1", 10.0)]
        # Checking a device neither registers nor polls it
        assert fake_transport.calls == []
        assert (await client.get("/api/devices")).json()["total"] == 2

    async def test_unreachable_device_is_still_200(self, client, fake_transport, unreachable_error):
        fake_transport.errors[0] = unreachable_error

        response = await client.post("/api/test-connection", json={"host": "10.0.9.2", "timeout_s": 3})

        assert response.status_code == 200
        data = response.json()["data"]
        assert data["success"] is False
        assert data["error"] == "SSH connection timeout"
        assert fake_transport.checks == [("10.0.9.2", 3.0)]

    async def test_unknown_protocol(self, client):
        response = await client.post("/api/test-connection", json={"host": "10.0.9.3", "protocol": "http"})

        assert response.status_code == 422

    async def test_missing_host(self, client):
        response = await client.post("/api/test-connection", json={"protocol": "ssh"})

        assert response.status_code == 422
