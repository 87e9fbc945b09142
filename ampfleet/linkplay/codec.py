"""Linkplay ``httpapi.asp`` codec.

Pure functions, no I/O:

  - :func:`encode_command` — command kind + argument → request descriptor
  - :func:`decode_status`  — ``getPlayerStatus`` JSON → :class:`DeviceStatus`

Linkplay firmware reports ``Artist``/``Title``/``Album`` as hex-encoded UTF-8
on most sources, but some sources pass plain text through; see
:func:`decode_metadata`.
"""

from __future__ import annotations

import enum
import json
import string
from dataclasses import dataclass
from typing import Any

from ampfleet.errors import ProtocolDecodeError
from ampfleet.models import (
    DEFAULT_VOLUME,
    DeviceSource,
    DeviceStatus,
    PlaybackState,
    clamp_volume,
)

API_PATH = "/httpapi.asp"

_HEX_DIGITS = frozenset(string.hexdigits)

_SOURCES: dict[str, DeviceSource] = {
    "spotify": DeviceSource.SPOTIFY,
    "airplay": DeviceSource.AIRPLAY,
    "tidal": DeviceSource.TIDAL,
    "bluetooth": DeviceSource.BLUETOOTH,
    "line-in": DeviceSource.LINE_IN,
    "linein": DeviceSource.LINE_IN,
    "optical": DeviceSource.OPTICAL,
    "idle": DeviceSource.READY,
    "": DeviceSource.READY,
}

_PLAYBACK: dict[str, PlaybackState] = {
    "play": PlaybackState.PLAYING,
    "pause": PlaybackState.PAUSED,
    "stop": PlaybackState.STOPPED,
}


class CommandKind(str, enum.Enum):
    GET_STATUS = "get_status"
    SET_VOLUME = "set_volume"
    SET_MUTE = "set_mute"
    TOGGLE_PLAY_PAUSE = "toggle_play_pause"
    TRIGGER_PRESET = "trigger_preset"


@dataclass(frozen=True)
class CommandRequest:
    """One ``GET /httpapi.asp?command=<token>`` request."""

    token: str
    path: str = API_PATH

    @property
    def params(self) -> dict[str, str]:
        return {"command": self.token}


# ── Encoding ──────────────────────────────────────────────────────


def encode_command(kind: CommandKind, arg: Any = None) -> CommandRequest:
    """Build the request for *kind*.

    ``SET_VOLUME`` clamps *arg* into 0–100. ``TRIGGER_PRESET`` takes a 1-based
    preset index and raises :class:`ValueError` below 1.
    """
    kind = CommandKind(kind)
    if kind is CommandKind.GET_STATUS:
        return CommandRequest("getPlayerStatus")
    if kind is CommandKind.SET_VOLUME:
        return CommandRequest(f"setPlayerCmd:vol:{clamp_volume(arg)}")
    if kind is CommandKind.SET_MUTE:
        return CommandRequest(f"setPlayerCmd:mute:{1 if arg else 0}")
    if kind is CommandKind.TOGGLE_PLAY_PAUSE:
        return CommandRequest("setPlayerCmd:onepause")
    index = int(arg)
    if index < 1:
        raise ValueError(f"Preset index must be >= 1, got {index}")
    return CommandRequest(f"MCUKeyShortClick:{index}")


# ── Decoding ──────────────────────────────────────────────────────


def source_for_mode(mode: str) -> DeviceSource:
    """Map a Linkplay ``mode`` token to a display source.

    Unknown tokens are shown title-cased rather than rejected.
    """
    key = (mode or "").lower()
    if key in _SOURCES:
        return _SOURCES[key]
    return DeviceSource(mode.title(), "music.note")


def decode_metadata(value: str | None) -> str | None:
    """Decode a hex-encoded UTF-8 metadata field.

    Values containing any non-hex character are returned unchanged. A plain
    name made only of hex digits ("Deadbeef") is indistinguishable from an
    encoded one and gets decoded. Bytes that are not valid UTF-8 yield
    ``None``.
    """
    if not value:
        return None
    if not all(c in _HEX_DIGITS for c in value):
        return value
    # A trailing odd digit is read as a byte on its own.
    raw = bytes(int(value[i:i + 2], 16) for i in range(0, len(value), 2))
    try:
        return raw.decode("utf-8")
    except UnicodeDecodeError:
        return None


def _parse_volume(raw: Any) -> int:
    if isinstance(raw, bool):
        return DEFAULT_VOLUME
    if isinstance(raw, int):
        return raw
    if isinstance(raw, str):
        try:
            return int(raw.strip())
        except ValueError:
            return DEFAULT_VOLUME
    return DEFAULT_VOLUME


def decode_status(payload: str | bytes) -> DeviceStatus:
    """Parse a ``getPlayerStatus`` response body.

    Raises:
        ProtocolDecodeError: the body is not a JSON object.
    """
    try:
        data = json.loads(payload)
    except (ValueError, TypeError, RecursionError) as exc:
        raise ProtocolDecodeError(f"Status payload is not JSON: {exc}") from exc
    if not isinstance(data, dict):
        raise ProtocolDecodeError(
            f"Status payload is {type(data).__name__}, expected an object"
        )

    mode = data.get("mode", "")
    state_token = str(data.get("status", "stop")).lower()
    artist = data.get("Artist")
    title = data.get("Title")

    return DeviceStatus(
        source=source_for_mode(mode) if isinstance(mode, str) else DeviceSource.UNKNOWN,
        playback_state=_PLAYBACK.get(state_token, PlaybackState.IDLE),
        artist=decode_metadata(artist) if isinstance(artist, str) else None,
        title=decode_metadata(title) if isinstance(title, str) else None,
        volume=_parse_volume(data.get("vol", str(DEFAULT_VOLUME))),
        is_muted=str(data.get("mute", "0")) == "1",
    )
