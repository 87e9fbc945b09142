"""AmpFleet — JSON control API over the fleet coordinator.

Exposes:
  GET  /health                       — liveness check
  GET  /devices                      — fleet snapshot
  GET  /devices/{name}               — one device
  POST /devices/{name}/volume        — set volume ({"level": 0-100})
  POST /devices/{name}/mute          — toggle mute
  POST /devices/{name}/play-pause    — toggle play/pause
  POST /devices/{name}/preset        — recall preset ({"index": >= 1})
  PUT  /devices/{name}/address       — manual address override
  POST /refresh                      — rediscover from scratch

Start with::

    python -m ampfleet serve
    # or
    uvicorn ampfleet.server:app --host 0.0.0.0 --port 8080
"""

from __future__ import annotations

import logging
import os
from contextlib import asynccontextmanager

from fastapi import FastAPI, HTTPException
from pydantic import BaseModel, Field

from ampfleet.config import FleetConfig
from ampfleet.coordinator import FleetCoordinator

logger = logging.getLogger(__name__)

_coordinator: FleetCoordinator | None = None


def get_coordinator() -> FleetCoordinator:
    global _coordinator
    if _coordinator is None:
        _coordinator = FleetCoordinator(FleetConfig.from_env())
    return _coordinator


def set_coordinator(coordinator: FleetCoordinator | None) -> None:
    global _coordinator
    _coordinator = coordinator


@asynccontextmanager
async def lifespan(_: FastAPI):
    coordinator = get_coordinator()
    await coordinator.start_discovery()
    try:
        yield
    finally:
        await coordinator.close()


# ──────────────────────────────────────────────────────────────────
# FastAPI app
# ──────────────────────────────────────────────────────────────────

app = FastAPI(title="AmpFleet", version="0.1.0", lifespan=lifespan)


# ──────────────────────────────────────────────────────────────────
# Request models
# ──────────────────────────────────────────────────────────────────

class VolumeRequest(BaseModel):
    # Out-of-range levels are clamped by the coordinator, not rejected.
    level: int


class PresetRequest(BaseModel):
    index: int = Field(ge=1)


class AddressRequest(BaseModel):
    host: str = Field(min_length=1)
    port: int | None = Field(default=None, ge=1, le=65535)


# ──────────────────────────────────────────────────────────────────
# Helpers
# ──────────────────────────────────────────────────────────────────

def _require_device(name: str) -> FleetCoordinator:
    coordinator = get_coordinator()
    if coordinator.get_device(name) is None:
        raise HTTPException(status_code=404, detail=f"Unknown device: {name}")
    return coordinator


def _command_result(coordinator: FleetCoordinator, name: str, ok: bool) -> dict:
    if not ok:
        raise HTTPException(status_code=502, detail=coordinator.last_error or "Command failed")
    device = coordinator.get_device(name)
    if device is None:
        raise HTTPException(status_code=404, detail=f"Unknown device: {name}")
    return device.to_dict()


# ──────────────────────────────────────────────────────────────────
# Endpoints
# ──────────────────────────────────────────────────────────────────

@app.get("/health")
async def health():
    coordinator = get_coordinator()
    return {
        "status": "ok",
        "devices": len(coordinator.devices),
        "scanning": coordinator.is_scanning,
    }


@app.get("/devices")
async def list_devices():
    return get_coordinator().snapshot().to_dict()


@app.get("/devices/{name}")
async def get_device(name: str):
    return _require_device(name).get_device(name).to_dict()


@app.post("/devices/{name}/volume")
async def set_volume(name: str, req: VolumeRequest):
    coordinator = _require_device(name)
    ok = await coordinator.set_volume(name, req.level)
    return _command_result(coordinator, name, ok)


@app.post("/devices/{name}/mute")
async def toggle_mute(name: str):
    coordinator = _require_device(name)
    ok = await coordinator.toggle_mute(name)
    return _command_result(coordinator, name, ok)


@app.post("/devices/{name}/play-pause")
async def toggle_play_pause(name: str):
    coordinator = _require_device(name)
    ok = await coordinator.toggle_play_pause(name)
    return _command_result(coordinator, name, ok)


@app.post("/devices/{name}/preset")
async def trigger_preset(name: str, req: PresetRequest):
    coordinator = _require_device(name)
    ok = await coordinator.trigger_preset(name, req.index)
    return _command_result(coordinator, name, ok)


@app.put("/devices/{name}/address")
async def update_address(name: str, req: AddressRequest):
    coordinator = _require_device(name)
    ok = await coordinator.update_address(name, req.host, req.port)
    return _command_result(coordinator, name, ok)


@app.post("/refresh")
async def refresh():
    coordinator = get_coordinator()
    await coordinator.refresh()
    return coordinator.snapshot().to_dict()


# ──────────────────────────────────────────────────────────────────
# Entry point
# ──────────────────────────────────────────────────────────────────

def main():
    import uvicorn
    host = os.environ.get("AMPFLEET_HOST", "0.0.0.0")
    port = int(os.environ.get("AMPFLEET_PORT", "8080"))
    logging.basicConfig(level=logging.INFO)
    logger.info("Starting AmpFleet control API on %s:%d", host, port)
    uvicorn.run("ampfleet.server:app", host=host, port=port, reload=False)


if __name__ == "__main__":
    main()
