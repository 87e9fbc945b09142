"""Linkplay HTTP client.

Uses httpx for async HTTP. One :class:`LinkplayClient` serves every device;
each call is a single request/response exchange against the address it is
given. No retries happen here — the coordinator's polling loop is the retry
policy.
"""

from __future__ import annotations

import asyncio
import logging
from typing import Any

import httpx

from ampfleet.errors import DeviceUnreachable, TransportTimeout
from ampfleet.linkplay.codec import CommandKind, CommandRequest, decode_status, encode_command
from ampfleet.models import DEFAULT_PORT, DeviceStatus

logger = logging.getLogger(__name__)


class LinkplayClient:
    """Thin async wrapper around the Linkplay ``httpapi.asp`` endpoint.

    A single :class:`httpx.AsyncClient` is reused across calls for connection
    pooling. ``request_timeout`` bounds connect and read of each request;
    ``resource_timeout`` bounds the whole exchange including the body.
    Call :meth:`aclose` (or use as an async context manager) when done.
    """

    def __init__(
        self,
        request_timeout: float = 5.0,
        resource_timeout: float = 10.0,
        transport: httpx.AsyncBaseTransport | None = None,
    ) -> None:
        self.request_timeout = request_timeout
        self.resource_timeout = resource_timeout
        self._client = httpx.AsyncClient(
            timeout=httpx.Timeout(request_timeout),
            transport=transport,
        )

    async def aclose(self) -> None:
        """Close the underlying HTTP client and free resources."""
        await self._client.aclose()

    async def __aenter__(self) -> LinkplayClient:
        return self

    async def __aexit__(self, *_: object) -> None:
        await self.aclose()

    # ------------------------------------------------------------------ #
    # Public API
    # ------------------------------------------------------------------ #

    async def fetch_status(self, host: str, port: int = DEFAULT_PORT) -> DeviceStatus:
        """Return the decoded ``getPlayerStatus`` of the device at *host*."""
        response = await self._get(host, port, encode_command(CommandKind.GET_STATUS))
        return decode_status(response.content)

    async def send_command(
        self,
        host: str,
        port: int,
        kind: CommandKind,
        arg: Any = None,
    ) -> bool:
        """Send one command; returns ``True`` or raises a transport error."""
        request = encode_command(kind, arg)
        await self._get(host, port, request)
        logger.debug("%s:%d accepted %s", host, port, request.token)
        return True

    async def set_volume(self, host: str, port: int, level: int) -> bool:
        return await self.send_command(host, port, CommandKind.SET_VOLUME, level)

    async def set_mute(self, host: str, port: int, muted: bool) -> bool:
        return await self.send_command(host, port, CommandKind.SET_MUTE, muted)

    async def toggle_play_pause(self, host: str, port: int) -> bool:
        return await self.send_command(host, port, CommandKind.TOGGLE_PLAY_PAUSE)

    async def trigger_preset(self, host: str, port: int, index: int) -> bool:
        return await self.send_command(host, port, CommandKind.TRIGGER_PRESET, index)

    # ------------------------------------------------------------------ #
    # Private helpers
    # ------------------------------------------------------------------ #

    async def _get(self, host: str, port: int, request: CommandRequest) -> httpx.Response:
        try:
            # httpx.URL brackets IPv6 literals.
            url = httpx.URL(scheme="http", host=host, port=port, path=request.path)
            response = await asyncio.wait_for(
                self._client.get(url, params=request.params),
                timeout=self.resource_timeout,
            )
        except (httpx.TimeoutException, asyncio.TimeoutError) as exc:
            raise TransportTimeout(f"{host}:{port} timed out on {request.token}") from exc
        except (httpx.HTTPError, httpx.InvalidURL) as exc:
            raise DeviceUnreachable(f"Cannot reach {host}:{port}: {exc}") from exc
        if not response.is_success:
            raise DeviceUnreachable(
                f"{host}:{port} returned {response.status_code} for {request.token}",
                status_code=response.status_code,
            )
        return response
