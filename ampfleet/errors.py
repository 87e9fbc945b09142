"""Exception hierarchy for AmpFleet.

Every failure a device or the network can cause is an :class:`AmpFleetError`,
so the coordinator can contain them at its boundary with a single ``except``.
"""

from __future__ import annotations


class AmpFleetError(Exception):
    """Base error for fleet failures."""


class TransportError(AmpFleetError):
    """A request to a device did not complete."""

    kind = "transport"


class TransportTimeout(TransportError):
    """Raised when a device exceeds the request or resource timeout."""

    kind = "timeout"


class DeviceUnreachable(TransportError):
    """Raised on connection failures and non-2xx responses."""

    kind = "unreachable"

    def __init__(self, message: str, status_code: int | None = None) -> None:
        super().__init__(message)
        self.status_code = status_code


class ProtocolError(AmpFleetError):
    """A device answered with something the codec cannot use."""


class ProtocolDecodeError(ProtocolError):
    """Raised when a status payload is not a JSON object."""


class DiscoveryError(AmpFleetError):
    """The network watcher failed."""


class WatcherFailed(DiscoveryError):
    """Raised (and emitted as an event) when mDNS browsing cannot continue."""
