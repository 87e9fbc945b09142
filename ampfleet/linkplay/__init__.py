"""ampfleet.linkplay — Linkplay (WiiM) control protocol.

Exports:
    LinkplayClient  — async httpx client for ``httpapi.asp``
    CommandKind     — commands the client can send
    encode_command  — command → request descriptor
    decode_status   — ``getPlayerStatus`` body → DeviceStatus
"""

from __future__ import annotations

from ampfleet.linkplay.client import LinkplayClient
from ampfleet.linkplay.codec import (
    CommandKind,
    CommandRequest,
    decode_metadata,
    decode_status,
    encode_command,
    source_for_mode,
)

__all__ = [
    "LinkplayClient",
    "CommandKind",
    "CommandRequest",
    "decode_metadata",
    "decode_status",
    "encode_command",
    "source_for_mode",
]
