"""Tests for FleetConfig loading and environment overrides."""

from __future__ import annotations

import json

from ampfleet.config import BLUOS_SERVICE, LINKPLAY_SERVICE, FleetConfig, VendorSignature
from ampfleet.models import VendorVariant


class TestFleetConfig:
    def test_defaults(self):
        config = FleetConfig()
        assert config.poll_interval == 4.0
        assert config.request_timeout == 5.0
        assert config.resource_timeout == 10.0
        assert config.signatures == [VendorSignature(LINKPLAY_SERVICE, VendorVariant.WIIM)]

    def test_missing_file_uses_defaults(self, tmp_path):
        config = FleetConfig.load(tmp_path / "nope.json")
        assert config == FleetConfig()

    def test_load_ignores_unknown_keys(self, tmp_path):
        path = tmp_path / "fleet.json"
        path.write_text(json.dumps({
            "poll_interval": 2.5,
            "colour": "green",
            "signatures": [
                {"service_type": LINKPLAY_SERVICE},
                {"service_type": BLUOS_SERVICE, "variant": "Bluesound"},
            ],
        }))
        config = FleetConfig.load(path)
        assert config.poll_interval == 2.5
        assert config.signatures[1] == VendorSignature(BLUOS_SERVICE, VendorVariant.BLUESOUND)
        assert config.signatures[0].variant is VendorVariant.WIIM

    def test_save_and_load(self, tmp_path):
        path = tmp_path / "sub" / "fleet.json"
        FleetConfig(scan_window=1.5).save(path)
        assert FleetConfig.load(path).scan_window == 1.5

    def test_env_overrides(self, monkeypatch):
        monkeypatch.setenv("AMPFLEET_POLL_INTERVAL", "1.5")
        monkeypatch.setenv("AMPFLEET_REQUEST_TIMEOUT", "2")
        monkeypatch.delenv("AMPFLEET_CONFIG", raising=False)
        config = FleetConfig.from_env()
        assert config.poll_interval == 1.5
        assert config.request_timeout == 2.0

    def test_env_config_path(self, tmp_path, monkeypatch):
        path = tmp_path / "fleet.json"
        path.write_text(json.dumps({"resolve_timeout": 7}))
        monkeypatch.setenv("AMPFLEET_CONFIG", str(path))
        assert FleetConfig.from_env().resolve_timeout == 7

    def test_bad_env_value_ignored(self, monkeypatch):
        monkeypatch.setenv("AMPFLEET_SCAN_WINDOW", "soon")
        monkeypatch.delenv("AMPFLEET_CONFIG", raising=False)
        assert FleetConfig.from_env().scan_window == 3.0
