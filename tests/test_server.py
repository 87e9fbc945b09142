"""Tests for the JSON control API."""

from __future__ import annotations

import pytest
from httpx import ASGITransport, AsyncClient

from ampfleet import server
from ampfleet.errors import DeviceUnreachable
from ampfleet.linkplay import CommandKind
from ampfleet.models import DeviceFound, DeviceStatus, VendorVariant


@pytest.fixture
async def api(coordinator, fake_client):
    fake_client.statuses["192.168.1.50"] = DeviceStatus(volume=65)
    await coordinator.handle_event(DeviceFound("Lobby", "192.168.1.50", 80, VendorVariant.WIIM))
    server.set_coordinator(coordinator)
    async with AsyncClient(transport=ASGITransport(app=server.app), base_url="http://test") as client:
        yield client
    server.set_coordinator(None)


class TestReadEndpoints:
    async def test_health(self, api):
        resp = await api.get("/health")
        assert resp.status_code == 200
        assert resp.json()["status"] == "ok"
        assert resp.json()["devices"] == 1

    async def test_list_devices(self, api):
        resp = await api.get("/devices")
        body = resp.json()
        assert [d["name"] for d in body["devices"]] == ["Lobby"]
        assert body["last_error"] is None

    async def test_get_device(self, api):
        resp = await api.get("/devices/Lobby")
        assert resp.status_code == 200
        assert resp.json()["host"] == "192.168.1.50"

    async def test_unknown_device_404(self, api):
        resp = await api.get("/devices/Nowhere")
        assert resp.status_code == 404


class TestCommandEndpoints:
    async def test_set_volume_clamped(self, api):
        resp = await api.post("/devices/Lobby/volume", json={"level": 140})
        assert resp.status_code == 200
        assert resp.json()["status"]["volume"] == 100

    async def test_toggle_mute(self, api):
        resp = await api.post("/devices/Lobby/mute")
        assert resp.json()["status"]["is_muted"] is True

    async def test_play_pause(self, api):
        resp = await api.post("/devices/Lobby/play-pause")
        assert resp.json()["status"]["playback_state"] == "Playing"

    async def test_preset(self, api, fake_client):
        resp = await api.post("/devices/Lobby/preset", json={"index": 2})
        assert resp.status_code == 200
        assert fake_client.commands[-1][2:] == (CommandKind.TRIGGER_PRESET, 2)

    async def test_preset_index_validated(self, api, fake_client):
        resp = await api.post("/devices/Lobby/preset", json={"index": 0})
        assert resp.status_code == 422
        assert fake_client.commands == []

    async def test_command_failure_502(self, api, fake_client):
        fake_client.command_error = DeviceUnreachable("192.168.1.50:80 returned 500")
        resp = await api.post("/devices/Lobby/mute")
        assert resp.status_code == 502
        assert "returned 500" in resp.json()["detail"]

    async def test_command_unknown_device(self, api):
        resp = await api.post("/devices/Nowhere/mute")
        assert resp.status_code == 404

    async def test_update_address(self, api):
        resp = await api.put("/devices/Lobby/address", json={"host": "192.168.1.60"})
        assert resp.status_code == 200
        assert resp.json()["host"] == "192.168.1.60"
        assert resp.json()["port"] == 80

    async def test_refresh(self, api, fake_discovery):
        resp = await api.post("/refresh")
        assert resp.status_code == 200
        assert resp.json()["devices"] == []
        assert fake_discovery.starts == 1

    async def test_device_removed_during_command_404(self, api, coordinator, monkeypatch):
        async def mute_then_clear(name):
            coordinator._devices.clear()
            return True

        monkeypatch.setattr(coordinator, "toggle_mute", mute_then_clear)
        resp = await api.post("/devices/Lobby/mute")
        assert resp.status_code == 404
