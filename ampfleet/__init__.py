"""AmpFleet — discovery, polling and control for Linkplay/WiiM amplifiers.

Components:
  - Discovery: mDNS browser turned into an async event stream
  - Linkplay: ``httpapi.asp`` codec and async HTTP client
  - Coordinator: device registry, per-device polling, optimistic commands
  - Server: JSON control API over the coordinator
"""

__version__ = "0.1.0"
