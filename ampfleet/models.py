"""Fleet data model.

Value types shared by the codec, the discovery service and the coordinator:

  - :class:`DeviceStatus` — immutable playback snapshot for one device
  - :class:`Device`       — registry entry owned by the coordinator
  - discovery events      — :class:`DeviceFound`, :class:`DeviceLost`,
    :class:`DiscoveryFailed`
  - :class:`FleetSnapshot` — what readers observe
"""

from __future__ import annotations

import dataclasses
import enum
from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Any, Union

import httpx

from ampfleet.errors import DiscoveryError

VOLUME_MIN = 0
VOLUME_MAX = 100
DEFAULT_VOLUME = 50
DEFAULT_PORT = 80


def clamp_volume(level: int) -> int:
    """Clamp *level* into the 0–100 range devices accept."""
    return max(VOLUME_MIN, min(VOLUME_MAX, int(level)))


class VendorVariant(str, enum.Enum):
    """Device family; selects the control dialect and discovery signature."""

    WIIM = "WiiM"
    BLUESOUND = "Bluesound"

    @property
    def accent_color(self) -> str:
        if self is VendorVariant.BLUESOUND:
            return "BluesoundBlue"
        return "WiiMGreen"


class PlaybackState(str, enum.Enum):
    PLAYING = "Playing"
    PAUSED = "Paused"
    STOPPED = "Stopped"
    IDLE = "Idle"


@dataclass(frozen=True)
class DeviceSource:
    """Active input as shown to the user: display name plus icon token."""

    name: str
    icon: str = "music.note"


DeviceSource.UNKNOWN = DeviceSource("Unknown", "speaker.wave.2")
DeviceSource.SPOTIFY = DeviceSource("Spotify Connect", "music.note")
DeviceSource.AIRPLAY = DeviceSource("AirPlay", "airplayaudio")
DeviceSource.TIDAL = DeviceSource("Tidal", "waveform")
DeviceSource.BLUETOOTH = DeviceSource("Bluetooth", "antenna.radiowaves.left.and.right")
DeviceSource.LINE_IN = DeviceSource("Line In", "cable.connector")
DeviceSource.OPTICAL = DeviceSource("Optical", "opticaldisc")
DeviceSource.READY = DeviceSource("Ready", "speaker.wave.2")


@dataclass(frozen=True)
class DeviceStatus:
    """Playback state of one device.

    ``volume`` is clamped on construction, so every instance (decoded from a
    device, or produced by an optimistic update via :func:`dataclasses.replace`)
    holds a value in range.
    """

    source: DeviceSource = DeviceSource.READY
    playback_state: PlaybackState = PlaybackState.IDLE
    artist: str | None = None
    title: str | None = None
    volume: int = DEFAULT_VOLUME
    is_muted: bool = False

    def __post_init__(self) -> None:
        object.__setattr__(self, "volume", clamp_volume(self.volume))

    @classmethod
    def idle(cls) -> DeviceStatus:
        return cls()

    def replace(self, **changes: Any) -> DeviceStatus:
        return dataclasses.replace(self, **changes)

    @property
    def metadata_display(self) -> str:
        """One-line "title - artist" summary for a card."""
        if self.artist and self.title:
            return f"{self.title} - {self.artist}"
        if self.title:
            return self.title
        if self.playback_state in (PlaybackState.IDLE, PlaybackState.STOPPED):
            return "Ready"
        return ""

    def to_dict(self) -> dict[str, Any]:
        return {
            "source": self.source.name,
            "source_icon": self.source.icon,
            "playback_state": self.playback_state.value,
            "artist": self.artist,
            "title": self.title,
            "volume": self.volume,
            "is_muted": self.is_muted,
            "metadata_display": self.metadata_display,
        }


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


@dataclass
class Device:
    """A discovered amplifier, keyed by its announced name."""

    name: str
    host: str
    port: int = DEFAULT_PORT
    variant: VendorVariant = VendorVariant.WIIM
    model: str = ""
    status: DeviceStatus = field(default_factory=DeviceStatus.idle)
    is_online: bool = True
    last_seen: datetime = field(default_factory=_utcnow)

    @property
    def address(self) -> tuple[str, int]:
        return (self.host, self.port)

    @property
    def base_url(self) -> str:
        return str(httpx.URL(scheme="http", host=self.host, port=self.port)).rstrip("/")

    def copy(self) -> Device:
        # DeviceStatus is frozen, a shallow copy is a full snapshot.
        return dataclasses.replace(self)

    def to_dict(self) -> dict[str, Any]:
        return {
            "name": self.name,
            "host": self.host,
            "port": self.port,
            "variant": self.variant.value,
            "accent_color": self.variant.accent_color,
            "model": self.model,
            "is_online": self.is_online,
            "last_seen": self.last_seen.isoformat(),
            "status": self.status.to_dict(),
        }


# ── Discovery events ──────────────────────────────────────────────


@dataclass(frozen=True)
class DeviceFound:
    name: str
    host: str
    port: int
    variant: VendorVariant = VendorVariant.WIIM
    model: str = ""


@dataclass(frozen=True)
class DeviceLost:
    name: str


@dataclass(frozen=True)
class DiscoveryFailed:
    cause: DiscoveryError


DiscoveryEvent = Union[DeviceFound, DeviceLost, DiscoveryFailed]


# ── Read model ────────────────────────────────────────────────────


def sort_devices(devices: Any) -> tuple[Device, ...]:
    """Return copies of *devices* ordered by case-insensitive name."""
    return tuple(d.copy() for d in sorted(devices, key=lambda d: (d.name.casefold(), d.name)))


@dataclass(frozen=True)
class FleetSnapshot:
    """Immutable view of the fleet handed to readers and listeners."""

    devices: tuple[Device, ...] = ()
    is_scanning: bool = False
    last_error: str | None = None

    def get(self, name: str) -> Device | None:
        for device in self.devices:
            if device.name == name:
                return device
        return None

    def to_dict(self) -> dict[str, Any]:
        return {
            "devices": [d.to_dict() for d in self.devices],
            "is_scanning": self.is_scanning,
            "last_error": self.last_error,
        }
