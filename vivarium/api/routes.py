from __future__ import annotations

import logging
from datetime import timedelta

from fastapi import APIRouter, Depends, HTTPException

from ..core.config import settings
from ..core.timeutil import now_utc, now_local
from ..domain.models import Message
from ..sensors.simulated import PatternConfig, SimulatedSensor
from ..services.control_loop import ControlLoopService
from ..storage.sqlite_repo import SQLiteRepository
from .schemas import (
    BoundsRequest,
    NightRequest,
    PulseTimingRequest,
    SimManualRequest,
    SimPatternRequest,
)

logger = logging.getLogger(__name__)

router = APIRouter()


# --- Dependency getters, overridden in main via app.dependency_overrides ---
def get_service() -> ControlLoopService:  # overridden in main
    raise RuntimeError("Control loop dependency not configured")

def get_repo() -> SQLiteRepository:  # overridden in main
    raise RuntimeError("Repo dependency not configured")

def get_sim_sensors() -> dict[str, SimulatedSensor]:  # overridden in main
    raise RuntimeError("Simulated sensor dependency not configured")


def _reading_dict(r):
    return {
        "ts_utc": r.ts_utc.isoformat(),
        "sensor_id": r.sensor_id,
        "quantity": r.quantity,
        "value": r.value,
        "unit": r.unit,
        "ok": r.ok,
        "error": r.error,
    }


def _sim_sensor(quantity: str, sensors: dict[str, SimulatedSensor]) -> SimulatedSensor:
    sensor = sensors.get(quantity)
    if sensor is None:
        raise HTTPException(status_code=404, detail=f"No simulated {quantity} sensor")
    return sensor


@router.get("/live")
async def get_live(svc: ControlLoopService = Depends(get_service)):
    live = svc.live
    return {
        "app": settings.app_name,
        "mode": live.mode,
        "now_local": now_local().isoformat(),
        "readings": {q: _reading_dict(r) for q, r in live.readings.items()},
        "targets": live.targets,
        "outputs": live.outputs,
        "efforts": live.efforts,
        "night": live.night,
        "statuses": live.statuses,
    }


@router.get("/rhythm/{channel}")
async def get_rhythm(channel: str, svc: ControlLoopService = Depends(get_service)):
    gen = svc.rhythms.get(channel)
    if gen is None:
        raise HTTPException(status_code=404, detail=f"Unknown rhythm channel: {channel}")
    return {
        "channel": channel,
        "absolute_min": gen.bounds.absolute_min,
        "absolute_max": gen.bounds.absolute_max,
        "target": gen.state.last_target,
        "simulated_time": gen.state.last_simulated_time.isoformat() if gen.state.last_simulated_time else None,
        "time_scale": gen.config.time_scale,
    }


@router.put("/rhythm/{channel}/bounds")
async def put_bounds(channel: str, req: BoundsRequest, svc: ControlLoopService = Depends(get_service)):
    if channel not in svc.rhythms:
        raise HTTPException(status_code=404, detail=f"Unknown rhythm channel: {channel}")
    await svc.set_bounds(channel, req.absolute_min, req.absolute_max)
    return {"ok": True, "target": svc.live.targets.get(channel)}


@router.post("/precipitation/night")
async def post_night(req: NightRequest, svc: ControlLoopService = Depends(get_service)):
    if "precipitation" not in svc.controllers:
        raise HTTPException(status_code=404, detail="Precipitation controller not configured")
    await svc.send("precipitation", Message("night", req.night))
    return {"ok": True, "night": req.night}


@router.put("/precipitation/timing")
async def put_timing(req: PulseTimingRequest, svc: ControlLoopService = Depends(get_service)):
    if "precipitation" not in svc.controllers:
        raise HTTPException(status_code=404, detail="Precipitation controller not configured")
    if req.interval_s is not None:
        await svc.send("precipitation", Message("interval", req.interval_s))
    if req.duration_s is not None:
        await svc.send("precipitation", Message("duration", req.duration_s))
    return {"ok": True}


@router.get("/readings")
async def readings(
    minutes: int = 60,
    limit: int = 5000,
    repo: SQLiteRepository = Depends(get_repo),
):
    end = now_utc()
    start = end - timedelta(minutes=max(1, minutes))
    rows = await repo.query_readings(start.isoformat(), end.isoformat(), limit=min(limit, 20000))
    return {
        "start_utc": start.isoformat(),
        "end_utc": end.isoformat(),
        "rows": [_reading_dict(r) for r in rows],
    }


@router.get("/actions")
async def actions(
    minutes: int = 240,
    limit: int = 2000,
    repo: SQLiteRepository = Depends(get_repo),
):
    end = now_utc()
    start = end - timedelta(minutes=max(1, minutes))
    rows = await repo.query_actions(start.isoformat(), end.isoformat(), limit=min(limit, 20000))
    return {
        "start_utc": start.isoformat(),
        "end_utc": end.isoformat(),
        "rows": [{"ts_utc": a.ts_utc.isoformat(), "source": a.source, "outputs": a.outputs} for a in rows],
    }


@router.get("/status")
async def status_history(
    minutes: int = 240,
    limit: int = 2000,
    repo: SQLiteRepository = Depends(get_repo),
):
    end = now_utc()
    start = end - timedelta(minutes=max(1, minutes))
    rows = await repo.query_status(start.isoformat(), end.isoformat(), limit=min(limit, 20000))
    return {
        "start_utc": start.isoformat(),
        "end_utc": end.isoformat(),
        "rows": [
            {
                "ts_utc": e.ts_utc.isoformat(),
                "source": e.source,
                "state": e.state,
                "severity": e.severity,
                "payload": e.payload,
            }
            for e in rows
        ],
    }


# --- Simulation endpoints ---
@router.get("/sim/{quantity}/status")
async def sim_status(quantity: str, sensors: dict[str, SimulatedSensor] = Depends(get_sim_sensors)):
    return _sim_sensor(quantity, sensors).status()


@router.post("/sim/{quantity}/enable")
async def sim_enable(quantity: str, sensors: dict[str, SimulatedSensor] = Depends(get_sim_sensors)):
    _sim_sensor(quantity, sensors).enable()
    return {"ok": True, "enabled": True}


@router.post("/sim/{quantity}/disable")
async def sim_disable(quantity: str, sensors: dict[str, SimulatedSensor] = Depends(get_sim_sensors)):
    _sim_sensor(quantity, sensors).disable()
    return {"ok": True, "enabled": False}


@router.post("/sim/{quantity}/manual")
async def sim_set_manual(quantity: str, req: SimManualRequest, sensors: dict[str, SimulatedSensor] = Depends(get_sim_sensors)):
    _sim_sensor(quantity, sensors).set_manual(req.value)
    return {"ok": True, "mode": "manual", "value": req.value}


@router.post("/sim/{quantity}/pattern")
async def sim_set_pattern(quantity: str, req: SimPatternRequest, sensors: dict[str, SimulatedSensor] = Depends(get_sim_sensors)):
    cfg = PatternConfig(**req.model_dump())
    _sim_sensor(quantity, sensors).set_pattern(cfg)
    return {"ok": True, "pattern": cfg.__dict__}


@router.get("/settings")
async def get_settings():
    return {"settings": settings.model_dump()}
