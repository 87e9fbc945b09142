"""Configuration for AmpFleet — loaded from a JSON file and the environment."""

from __future__ import annotations

import json
import logging
import os
from dataclasses import dataclass, field
from pathlib import Path

from ampfleet.models import VendorVariant

logger = logging.getLogger(__name__)

LINKPLAY_SERVICE = "_linkplay._tcp.local."
# BluOS players announce _musc._tcp.local.; add the signature once the
# BluOS status dialect is implemented.
BLUOS_SERVICE = "_musc._tcp.local."

_ENV_FLOATS = {
    "poll_interval": "AMPFLEET_POLL_INTERVAL",
    "request_timeout": "AMPFLEET_REQUEST_TIMEOUT",
    "resource_timeout": "AMPFLEET_RESOURCE_TIMEOUT",
    "resolve_timeout": "AMPFLEET_RESOLVE_TIMEOUT",
    "scan_window": "AMPFLEET_SCAN_WINDOW",
}


@dataclass(frozen=True)
class VendorSignature:
    """An mDNS service type and the device family that announces it."""

    service_type: str
    variant: VendorVariant = VendorVariant.WIIM

    @classmethod
    def from_dict(cls, data: dict) -> VendorSignature:
        return cls(
            service_type=data["service_type"],
            variant=VendorVariant(data.get("variant", VendorVariant.WIIM.value)),
        )


def default_signatures() -> list[VendorSignature]:
    return [VendorSignature(LINKPLAY_SERVICE, VendorVariant.WIIM)]


@dataclass
class FleetConfig:
    """Timings and discovery signatures for a fleet."""

    poll_interval: float = 4.0
    request_timeout: float = 5.0
    resource_timeout: float = 10.0
    resolve_timeout: float = 3.0
    scan_window: float = 3.0
    signatures: list[VendorSignature] = field(default_factory=default_signatures)

    @classmethod
    def load(cls, path: str | Path) -> FleetConfig:
        path = Path(path)
        if not path.exists():
            logger.warning("Config not found at %s, using defaults", path)
            return cls()
        with open(path) as f:
            data = json.load(f)
        known = {k for k in cls.__dataclass_fields__}
        filtered = {k: v for k, v in data.items() if k in known}
        if "signatures" in filtered:
            filtered["signatures"] = [
                VendorSignature.from_dict(s) for s in filtered["signatures"]
            ]
        return cls(**filtered)

    @classmethod
    def from_env(cls, path: str | Path | None = None) -> FleetConfig:
        """Load *path* (or ``AMPFLEET_CONFIG``) and apply env overrides."""
        path = path or os.environ.get("AMPFLEET_CONFIG")
        config = cls.load(path) if path else cls()
        for attr, var in _ENV_FLOATS.items():
            raw = os.environ.get(var)
            if raw is None:
                continue
            try:
                setattr(config, attr, float(raw))
            except ValueError:
                logger.warning("Ignoring %s=%r (not a number)", var, raw)
        return config

    def save(self, path: str | Path) -> None:
        path = Path(path)
        path.parent.mkdir(parents=True, exist_ok=True)
        data = {k: v for k, v in self.__dict__.items() if k != "signatures"}
        data["signatures"] = [
            {"service_type": s.service_type, "variant": s.variant.value}
            for s in self.signatures
        ]
        with open(path, "w") as f:
            json.dump(data, f, indent=2)
