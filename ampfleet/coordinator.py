"""Fleet coordinator.

Owns the device registry and is the only writer to it. Consumes the
discovery event stream, runs one polling task per online device, and
dispatches user commands with optimistic status updates. Readers get an
immutable :class:`~ampfleet.models.FleetSnapshot`, either by calling
:meth:`FleetCoordinator.snapshot` or by registering an :meth:`on_change`
listener.

Locking:
  - ``_lock`` serialises structural changes (insert, readdress, lost,
    clear) together with starting/stopping the polling tasks.
  - one lock per device is held across a poll exchange and across a
    command exchange, so a poll result never lands on top of a newer
    optimistic update. Devices never share a lock.
"""

from __future__ import annotations

import asyncio
import logging
from datetime import datetime, timezone
from typing import AsyncIterator, Any, Callable

from ampfleet.config import FleetConfig
from ampfleet.discovery import DeviceDiscovery
from ampfleet.errors import AmpFleetError
from ampfleet.linkplay import CommandKind, LinkplayClient
from ampfleet.models import (
    Device,
    DeviceFound,
    DeviceLost,
    DeviceStatus,
    DiscoveryEvent,
    DiscoveryFailed,
    FleetSnapshot,
    PlaybackState,
    clamp_volume,
    sort_devices,
)

logger = logging.getLogger(__name__)

Listener = Callable[[FleetSnapshot], None]


class FleetCoordinator:
    """Central manager for discovery, status polling and commands."""

    def __init__(
        self,
        config: FleetConfig | None = None,
        *,
        discovery: DeviceDiscovery | None = None,
        client: LinkplayClient | None = None,
    ) -> None:
        self.config = config or FleetConfig()
        self._discovery = discovery or DeviceDiscovery(
            self.config.signatures,
            resolve_timeout=self.config.resolve_timeout,
        )
        self._client = client or LinkplayClient(
            request_timeout=self.config.request_timeout,
            resource_timeout=self.config.resource_timeout,
        )
        self._devices: dict[str, Device] = {}
        self._polling: dict[str, asyncio.Task] = {}
        self._device_locks: dict[str, asyncio.Lock] = {}
        self._lock = asyncio.Lock()
        self._discovery_task: asyncio.Task | None = None
        self._scan_task: asyncio.Task | None = None
        self._is_scanning = False
        self._last_error: str | None = None
        self._listeners: list[Listener] = []

    async def close(self) -> None:
        """Stop everything and close the device client."""
        await self.stop_discovery()
        await self._client.aclose()

    async def __aenter__(self) -> FleetCoordinator:
        return self

    async def __aexit__(self, *_: object) -> None:
        await self.close()

    # ── Read model ─────────────────────────────────────────────────

    @property
    def devices(self) -> list[Device]:
        """Copies of every known device, sorted by name."""
        return list(sort_devices(self._devices.values()))

    def get_device(self, name: str) -> Device | None:
        device = self._devices.get(name)
        return device.copy() if device else None

    @property
    def is_scanning(self) -> bool:
        return self._is_scanning

    @property
    def last_error(self) -> str | None:
        return self._last_error

    def is_polling(self, name: str) -> bool:
        task = self._polling.get(name)
        return task is not None and not task.done()

    def snapshot(self) -> FleetSnapshot:
        return FleetSnapshot(
            devices=sort_devices(self._devices.values()),
            is_scanning=self._is_scanning,
            last_error=self._last_error,
        )

    def on_change(self, callback: Listener) -> None:
        """Register a callback receiving a :class:`FleetSnapshot` on every change."""
        if callback not in self._listeners:
            self._listeners.append(callback)

    def remove_listener(self, callback: Listener) -> None:
        if callback in self._listeners:
            self._listeners.remove(callback)

    def _notify(self) -> None:
        snapshot = self.snapshot()
        for callback in list(self._listeners):
            try:
                callback(snapshot)
            except Exception:
                logger.exception("Error in fleet listener")

    def _set_error(self, message: str) -> None:
        self._last_error = message
        self._notify()

    def _set_scanning(self, scanning: bool) -> None:
        if self._is_scanning != scanning:
            self._is_scanning = scanning
            self._notify()

    # ── Discovery ──────────────────────────────────────────────────

    async def start_discovery(self) -> None:
        """Subscribe to discovery, restarting any running subscription."""
        await self._cancel_discovery_tasks()
        self._last_error = None
        self._is_scanning = True
        self._notify()
        events = await self._discovery.start()
        self._discovery_task = asyncio.create_task(self._consume(events))
        self._scan_task = asyncio.create_task(self._end_scan_window())
        logger.info("Fleet discovery started")

    async def stop_discovery(self) -> None:
        """Cancel the subscription and every polling task."""
        await self._cancel_discovery_tasks()
        await self._discovery.stop()
        async with self._lock:
            for name in list(self._polling):
                await self._stop_polling(name)
        self._set_scanning(False)
        logger.info("Fleet discovery stopped")

    async def refresh(self) -> None:
        """Drop the whole fleet view and discover from scratch."""
        await self.stop_discovery()
        async with self._lock:
            self._devices.clear()
            self._device_locks.clear()
        self._notify()
        await self.start_discovery()

    async def handle_event(self, event: DiscoveryEvent) -> None:
        """Apply one discovery event to the registry."""
        if isinstance(event, DeviceFound):
            await self._handle_found(event)
        elif isinstance(event, DeviceLost):
            await self._handle_lost(event.name)
        elif isinstance(event, DiscoveryFailed):
            logger.error("Discovery failed: %s", event.cause)
            self._last_error = str(event.cause)
            self._is_scanning = False
            self._notify()

    async def update_address(self, device: Device | str, host: str, port: int | None = None) -> bool:
        """Point a known device at a new address (manual override)."""
        name = _name_of(device)
        existing = self._devices.get(name)
        if existing is None:
            self._set_error(f"Unknown device: {name}")
            return False
        await self._handle_found(DeviceFound(
            name=name,
            host=host,
            port=port or existing.port,
            variant=existing.variant,
            model=existing.model,
        ))
        return True

    async def _consume(self, events: AsyncIterator[DiscoveryEvent]) -> None:
        async for event in events:
            try:
                await self.handle_event(event)
            except asyncio.CancelledError:
                raise
            except Exception:
                logger.exception("Failed to apply discovery event %r", event)

    async def _end_scan_window(self) -> None:
        await asyncio.sleep(self.config.scan_window)
        self._set_scanning(False)

    async def _cancel_discovery_tasks(self) -> None:
        for attr in ("_discovery_task", "_scan_task"):
            task = getattr(self, attr)
            setattr(self, attr, None)
            if task is None:
                continue
            task.cancel()
            await asyncio.gather(task, return_exceptions=True)

    async def _handle_found(self, event: DeviceFound) -> None:
        async with self._lock:
            existing = self._devices.get(event.name)
            if existing is None:
                self._devices[event.name] = Device(
                    name=event.name,
                    host=event.host,
                    port=event.port,
                    variant=event.variant,
                    model=event.model,
                )
                logger.info("New device: %s at %s:%d", event.name, event.host, event.port)
            elif existing.address != (event.host, event.port):
                await self._stop_polling(event.name)
                logger.info(
                    "Device %s moved from %s:%d to %s:%d",
                    event.name, existing.host, existing.port, event.host, event.port,
                )
                existing.host = event.host
                existing.port = event.port
                existing.variant = event.variant
                existing.model = event.model or existing.model
                existing.is_online = True
            elif existing.is_online and self.is_polling(event.name):
                logger.debug("Duplicate announcement for %s", event.name)
                return
            else:
                logger.info("Device rediscovered: %s", event.name)
                existing.is_online = True
            self._start_polling(event.name)
        self._notify()

    async def _handle_lost(self, name: str) -> None:
        async with self._lock:
            device = self._devices.get(name)
            if device is None:
                return
            await self._stop_polling(name)
            device.is_online = False
            logger.info("Device lost: %s", name)
        self._notify()

    # ── Status polling ─────────────────────────────────────────────

    def _start_polling(self, name: str) -> None:
        self._polling[name] = asyncio.create_task(self._poll_loop(name), name=f"poll:{name}")

    async def _stop_polling(self, name: str) -> None:
        task = self._polling.pop(name, None)
        if task is None:
            return
        task.cancel()
        # gather() re-raises if the caller itself is being cancelled.
        await asyncio.gather(task, return_exceptions=True)

    def _device_lock(self, name: str) -> asyncio.Lock:
        return self._device_locks.setdefault(name, asyncio.Lock())

    async def _poll_loop(self, name: str) -> None:
        """Poll one device until cancelled; cycles start every ``poll_interval``."""
        loop = asyncio.get_running_loop()
        while True:
            started = loop.time()
            try:
                await self._poll_once(name)
            except asyncio.CancelledError:
                raise
            except Exception:
                logger.exception("Unexpected error polling %s", name)
            elapsed = loop.time() - started
            await asyncio.sleep(max(0.0, self.config.poll_interval - elapsed))

    async def _poll_once(self, name: str) -> None:
        device = self._devices.get(name)
        if device is None:
            return
        async with self._device_lock(name):
            host, port = device.address
            try:
                status = await self._client.fetch_status(host, port)
            except AmpFleetError as exc:
                # Last-known status stays; only discovery takes a device offline.
                logger.warning("Polling %s (%s:%d) failed: %s", name, host, port, exc)
                return
            if self._polling.get(name) is not asyncio.current_task():
                return
            device.status = status
            device.is_online = True
            device.last_seen = datetime.now(timezone.utc)
        self._notify()

    # ── Commands ───────────────────────────────────────────────────

    async def set_volume(self, device: Device | str, level: int) -> bool:
        level = clamp_volume(level)
        return await self._command(
            device,
            CommandKind.SET_VOLUME,
            lambda status: level,
            lambda status: status.replace(volume=level),
        )

    async def toggle_mute(self, device: Device | str) -> bool:
        return await self._command(
            device,
            CommandKind.SET_MUTE,
            lambda status: not status.is_muted,
            lambda status: status.replace(is_muted=not status.is_muted),
        )

    async def toggle_play_pause(self, device: Device | str) -> bool:
        return await self._command(
            device,
            CommandKind.TOGGLE_PLAY_PAUSE,
            lambda status: None,
            _flip_playback,
        )

    async def trigger_preset(self, device: Device | str, index: int) -> bool:
        """Recall preset *index* (1-based). Status is left to the next poll."""
        if index < 1:
            self._set_error(f"Preset index must be >= 1, got {index}")
            return False
        return await self._command(
            device,
            CommandKind.TRIGGER_PRESET,
            lambda status: index,
            lambda status: status,
        )

    async def _command(
        self,
        target: Device | str,
        kind: CommandKind,
        argument: Callable[[DeviceStatus], Any],
        optimistic: Callable[[DeviceStatus], DeviceStatus],
    ) -> bool:
        """Send one command and apply *optimistic* to the status on success."""
        name = _name_of(target)
        device = self._devices.get(name)
        if device is None:
            self._set_error(f"Unknown device: {name}")
            return False
        async with self._device_lock(name):
            host, port = device.address
            try:
                await self._client.send_command(host, port, kind, argument(device.status))
            except AmpFleetError as exc:
                logger.warning("%s on %s failed: %s", kind.value, name, exc)
                self._set_error(str(exc))
                return False
            if self._devices.get(name) is device:
                device.status = optimistic(device.status)
        self._notify()
        return True


def _name_of(device: Device | str) -> str:
    return device.name if isinstance(device, Device) else device


def _flip_playback(status: DeviceStatus) -> DeviceStatus:
    if status.playback_state is PlaybackState.PLAYING:
        return status.replace(playback_state=PlaybackState.PAUSED)
    return status.replace(playback_state=PlaybackState.PLAYING)
