"""Device discovery for amplifiers: mDNS browser exposed as an async event stream.

Amplifiers announce themselves via mDNS (``_linkplay._tcp.local.`` for
WiiM/Linkplay). :class:`DeviceDiscovery` browses one service type per vendor
family and turns announcements into :class:`~ampfleet.models.DeviceFound` /
:class:`~ampfleet.models.DeviceLost` events. An announcement is only reported
once it resolves to a concrete address; announcements that never resolve
are dropped.

Usage::

    discovery = DeviceDiscovery()
    async for event in await discovery.start():
        ...
    await discovery.stop()
"""

from __future__ import annotations

import asyncio
import logging
from typing import AsyncIterator, Callable

from zeroconf import IPVersion, ServiceStateChange, Zeroconf
from zeroconf.asyncio import AsyncServiceBrowser, AsyncServiceInfo, AsyncZeroconf

from ampfleet.config import VendorSignature, default_signatures
from ampfleet.errors import WatcherFailed
from ampfleet.models import DeviceFound, DeviceLost, DiscoveryEvent, DiscoveryFailed

logger = logging.getLogger(__name__)

_END = object()


def display_name(name: str, service_type: str) -> str:
    """Strip the ``.<service_type>`` suffix from an mDNS instance name."""
    suffix = f".{service_type}"
    if name.endswith(suffix):
        return name[: -len(suffix)]
    return name


def _decode_properties(properties: dict | None) -> dict[str, str]:
    return {
        k.decode() if isinstance(k, bytes) else k:
        v.decode() if isinstance(v, bytes) else (v or "")
        for k, v in (properties or {}).items()
    }


class DeviceDiscovery:
    """Browses mDNS for amplifiers and streams discovery events."""

    def __init__(
        self,
        signatures: list[VendorSignature] | None = None,
        resolve_timeout: float = 3.0,
        zeroconf_factory: Callable[[], AsyncZeroconf] = AsyncZeroconf,
    ) -> None:
        self.signatures = list(signatures) if signatures is not None else default_signatures()
        self.resolve_timeout = resolve_timeout
        self._zeroconf_factory = zeroconf_factory
        self._aiozc: AsyncZeroconf | None = None
        self._browsers: list[AsyncServiceBrowser] = []
        self._queue: asyncio.Queue | None = None
        self._loop: asyncio.AbstractEventLoop | None = None
        self._resolving: set[asyncio.Task] = set()

    @property
    def running(self) -> bool:
        return self._queue is not None

    # ── Lifecycle ──────────────────────────────────────────────────

    async def start(self) -> AsyncIterator[DiscoveryEvent]:
        """Start browsing and return the event stream.

        The stream ends when :meth:`stop` is called or after a single
        :class:`DiscoveryFailed` event if the watcher cannot run. Calling
        :meth:`start` again stops the previous watch first.
        """
        if self.running:
            await self.stop()

        queue: asyncio.Queue = asyncio.Queue()
        self._queue = queue
        self._loop = asyncio.get_running_loop()

        try:
            self._aiozc = self._zeroconf_factory()
        except Exception as exc:
            logger.error("mDNS watcher failed to start: %s", exc)
            await self._fail(queue, WatcherFailed(f"mDNS unavailable: {exc}"))
            return self._drain(queue)

        for signature in self.signatures:
            try:
                browser = AsyncServiceBrowser(
                    self._aiozc.zeroconf,
                    signature.service_type,
                    handlers=[self._make_handler(signature)],
                )
            except Exception as exc:
                logger.warning("Cannot browse %s: %s", signature.service_type, exc)
                continue
            self._browsers.append(browser)
            logger.info("mDNS browser started for %s", signature.service_type)

        if not self._browsers and self.signatures:
            await self._fail(queue, WatcherFailed("No mDNS browser could be started"))
        return self._drain(queue)

    async def stop(self) -> None:
        """Stop browsing, cancel pending resolutions and end the stream."""
        queue, self._queue = self._queue, None
        for task in list(self._resolving):
            task.cancel()
        if self._resolving:
            await asyncio.gather(*self._resolving, return_exceptions=True)
        self._resolving.clear()
        await self._release()
        if queue is not None:
            queue.put_nowait(_END)
            logger.info("mDNS discovery stopped")

    # ── Internal ───────────────────────────────────────────────────

    async def _release(self) -> None:
        browsers, self._browsers = self._browsers, []
        for browser in browsers:
            await browser.async_cancel()
        if self._aiozc is not None:
            aiozc, self._aiozc = self._aiozc, None
            await aiozc.async_close()

    async def _fail(self, queue: asyncio.Queue, cause: WatcherFailed) -> None:
        await self._release()
        queue.put_nowait(DiscoveryFailed(cause))
        queue.put_nowait(_END)
        if self._queue is queue:
            self._queue = None

    @staticmethod
    async def _drain(queue: asyncio.Queue) -> AsyncIterator[DiscoveryEvent]:
        while True:
            item = await queue.get()
            if item is _END:
                return
            yield item

    def _make_handler(self, signature: VendorSignature) -> Callable[..., None]:
        def handler(
            zeroconf: Zeroconf,
            service_type: str,
            name: str,
            state_change: ServiceStateChange,
        ) -> None:
            self._on_state_change(signature, name, state_change)

        return handler

    def _on_state_change(
        self,
        signature: VendorSignature,
        name: str,
        state_change: ServiceStateChange,
    ) -> None:
        """Called by zeroconf for every browse result change."""
        if self._loop is None or self._queue is None:
            return
        self._loop.call_soon_threadsafe(self._dispatch, self._queue, signature, name, state_change)

    def _dispatch(
        self,
        queue: asyncio.Queue,
        signature: VendorSignature,
        name: str,
        state_change: ServiceStateChange,
    ) -> None:
        if queue is not self._queue:
            return
        if state_change is ServiceStateChange.Removed:
            device = display_name(name, signature.service_type)
            logger.info("Device withdrawn: %s", device)
            queue.put_nowait(DeviceLost(device))
            return
        # Added and Updated both re-resolve; an update may carry a new address.
        task = asyncio.ensure_future(self._resolve(queue, signature, name))
        self._resolving.add(task)
        task.add_done_callback(self._resolving.discard)

    async def _request_info(self, service_type: str, name: str) -> AsyncServiceInfo | None:
        if self._aiozc is None:
            return None
        info = AsyncServiceInfo(service_type, name)
        found = await info.async_request(self._aiozc.zeroconf, int(self.resolve_timeout * 1000))
        return info if found else None

    async def _resolve(self, queue: asyncio.Queue, signature: VendorSignature, name: str) -> None:
        device = display_name(name, signature.service_type)
        try:
            info = await self._request_info(signature.service_type, name)
        except asyncio.CancelledError:
            raise
        except Exception as exc:
            logger.debug("Resolution of %s failed: %s", device, exc)
            return
        if info is None:
            logger.debug("Dropping unresolved announcement %s", device)
            return

        addresses = info.parsed_addresses(IPVersion.V4Only) or info.parsed_addresses()
        if not addresses or not info.port:
            logger.debug("Dropping %s: no usable address", device)
            return

        properties = _decode_properties(info.properties)
        event = DeviceFound(
            name=device,
            host=addresses[0],
            port=info.port,
            variant=signature.variant,
            model=properties.get("model") or properties.get("project", ""),
        )
        if queue is self._queue:
            logger.info("Device announced: %s at %s:%d", device, event.host, event.port)
            queue.put_nowait(event)
