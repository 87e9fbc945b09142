"""pytest configuration and shared fakes for AmpFleet tests."""

from __future__ import annotations

import asyncio

import pytest

from ampfleet.config import FleetConfig
from ampfleet.coordinator import FleetCoordinator
from ampfleet.linkplay import encode_command
from ampfleet.models import DeviceStatus


def pytest_configure(config):
    config.addinivalue_line(
        "markers", "asyncio: mark test as async"
    )


class FakeDiscovery:
    """Discovery stand-in; tests push events with :meth:`emit`."""

    def __init__(self) -> None:
        self.queue: asyncio.Queue | None = None
        self.starts = 0
        self.stops = 0

    async def start(self):
        self.starts += 1
        queue: asyncio.Queue = asyncio.Queue()
        self.queue = queue

        async def events():
            while True:
                item = await queue.get()
                if item is None:
                    return
                yield item

        return events()

    async def stop(self) -> None:
        self.stops += 1
        if self.queue is not None:
            self.queue.put_nowait(None)
            self.queue = None

    def emit(self, event) -> None:
        self.queue.put_nowait(event)


class FakeClient:
    """LinkplayClient stand-in recording every call.

    ``statuses`` maps host → DeviceStatus or an exception to raise.
    Setting ``gate`` to an :class:`asyncio.Event` blocks fetches until set.
    """

    def __init__(self) -> None:
        self.statuses: dict = {}
        self.fetches: list[tuple[str, int]] = []
        self.commands: list[tuple] = []
        self.command_error: Exception | None = None
        self.gate: asyncio.Event | None = None
        self.closed = False

    async def fetch_status(self, host: str, port: int = 80) -> DeviceStatus:
        self.fetches.append((host, port))
        if self.gate is not None:
            await self.gate.wait()
        result = self.statuses.get(host, DeviceStatus())
        if isinstance(result, Exception):
            raise result
        return result

    async def send_command(self, host, port, kind, arg=None) -> bool:
        encode_command(kind, arg)
        self.commands.append((host, port, kind, arg))
        if self.command_error is not None:
            raise self.command_error
        return True

    async def aclose(self) -> None:
        self.closed = True


@pytest.fixture
def fake_discovery():
    return FakeDiscovery()


@pytest.fixture
def fake_client():
    return FakeClient()


@pytest.fixture
async def coordinator(fake_discovery, fake_client):
    config = FleetConfig(poll_interval=30.0, scan_window=0.01)
    coord = FleetCoordinator(config, discovery=fake_discovery, client=fake_client)
    yield coord
    await coord.close()
