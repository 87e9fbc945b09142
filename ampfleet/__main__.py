"""AmpFleet command-line entry point.

Usage::

    python -m ampfleet watch [--seconds N]
    python -m ampfleet serve
    python -m ampfleet status HOST [--port P]
    python -m ampfleet volume HOST LEVEL [--port P]
    python -m ampfleet mute|unmute|play-pause HOST [--port P]
    python -m ampfleet preset HOST INDEX [--port P]
"""

from __future__ import annotations

import argparse
import asyncio
import logging
import os
import sys

from ampfleet.config import FleetConfig
from ampfleet.errors import AmpFleetError
from ampfleet.linkplay import LinkplayClient
from ampfleet.models import DEFAULT_PORT, DeviceStatus, FleetSnapshot

logger = logging.getLogger("ampfleet")


def format_status(status: DeviceStatus) -> str:
    mute = " (muted)" if status.is_muted else ""
    line = f"{status.playback_state.value:<8} {status.source.name:<16} vol {status.volume:>3}{mute}"
    if status.metadata_display:
        line += f"  {status.metadata_display}"
    return line


def format_fleet(snapshot: FleetSnapshot) -> str:
    """Render the fleet as a plain-text table, one device per line."""
    if not snapshot.devices:
        return "Scanning…" if snapshot.is_scanning else "No devices found."
    width = max(len(d.name) for d in snapshot.devices)
    lines = []
    for device in snapshot.devices:
        state = format_status(device.status) if device.is_online else "offline"
        lines.append(f"{device.name:<{width}}  {device.host:<15}  {state}")
    if snapshot.last_error:
        lines.append(f"! {snapshot.last_error}")
    return "\n".join(lines)


async def _watch(config: FleetConfig, seconds: float | None) -> None:
    from ampfleet.coordinator import FleetCoordinator

    last = ""

    def show(snapshot: FleetSnapshot) -> None:
        nonlocal last
        text = format_fleet(snapshot)
        if text != last:
            last = text
            print(text, end="\n\n", flush=True)

    async with FleetCoordinator(config) as coordinator:
        coordinator.on_change(show)
        await coordinator.start_discovery()
        if seconds is None:
            await asyncio.Event().wait()
        else:
            await asyncio.sleep(seconds)


async def _device_command(config: FleetConfig, args: argparse.Namespace) -> int:
    async with LinkplayClient(config.request_timeout, config.resource_timeout) as client:
        try:
            if args.command == "volume":
                await client.set_volume(args.host, args.port, args.level)
            elif args.command in ("mute", "unmute"):
                await client.set_mute(args.host, args.port, args.command == "mute")
            elif args.command == "play-pause":
                await client.toggle_play_pause(args.host, args.port)
            elif args.command == "preset":
                await client.trigger_preset(args.host, args.port, args.index)
            status = await client.fetch_status(args.host, args.port)
        except AmpFleetError as exc:
            print(f"error: {exc}", file=sys.stderr)
            return 1
    print(format_status(status))
    return 0


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="python -m ampfleet",
        description="Discover and control Linkplay/WiiM amplifiers",
    )
    parser.add_argument(
        "--config",
        metavar="PATH",
        default=None,
        help="JSON config file (default: AMPFLEET_CONFIG env var)",
    )
    parser.add_argument("-v", "--verbose", action="store_true", help="Debug logging")
    sub = parser.add_subparsers(dest="command", required=True)

    watch = sub.add_parser("watch", help="Discover devices and print the fleet as it changes")
    watch.add_argument("--seconds", type=float, default=None, help="Stop after N seconds")

    sub.add_parser("serve", help="Run the JSON control API")

    def device_parser(name: str, help_text: str) -> argparse.ArgumentParser:
        p = sub.add_parser(name, help=help_text)
        p.add_argument("host")
        p.add_argument("--port", type=int, default=DEFAULT_PORT)
        return p

    device_parser("status", "Print one device's status")
    device_parser("volume", "Set volume (clamped to 0-100)").add_argument("level", type=int)
    device_parser("mute", "Mute a device")
    device_parser("unmute", "Unmute a device")
    device_parser("play-pause", "Toggle play/pause")
    device_parser("preset", "Recall a preset").add_argument("index", type=int)
    return parser


def main(argv: list[str] | None = None) -> None:
    args = build_parser().parse_args(argv)
    logging.basicConfig(
        level=logging.DEBUG if args.verbose else logging.WARNING,
        format="%(levelname)s: %(message)s",
    )

    if args.command == "serve":
        if args.config:
            os.environ["AMPFLEET_CONFIG"] = args.config
        from ampfleet.server import main as serve

        serve()
        return

    config = FleetConfig.from_env(args.config)
    if args.command == "preset" and args.index < 1:
        print("error: preset index must be >= 1", file=sys.stderr)
        sys.exit(2)

    try:
        if args.command == "watch":
            asyncio.run(_watch(config, args.seconds))
        else:
            sys.exit(asyncio.run(_device_command(config, args)))
    except KeyboardInterrupt:
        print("\nStopped.")
        sys.exit(1)


if __name__ == "__main__":
    main()
