from __future__ import annotations

import logging
from datetime import datetime, timezone
from typing import Optional

from fastapi import APIRouter, Depends, Query

from ..core.config import settings
from ..devices.simulator import SimulatedChamberSensor
from ..domain.errors import NotFoundError
from ..domain.models import DeviceType
from ..services.ingestion import IngestionService
from ..services.queries import QueryService
from .schemas import ActuatorCommandIn, SensorReadingIn

logger = logging.getLogger(__name__)

router = APIRouter()


# --- Dependency getters ---
# main.py points these at the instances built in its lifespan via app.dependency_overrides.
def get_ingestion() -> IngestionService:  # overridden in main
    raise RuntimeError("Ingestion dependency not configured")

def get_queries() -> QueryService:  # overridden in main
    raise RuntimeError("Query dependency not configured")

def get_sim_sensor() -> SimulatedChamberSensor:  # overridden in main
    raise RuntimeError("Simulated sensor dependency not configured")


def device_id_param(deviceId: Optional[str] = None) -> str:
    return deviceId or settings.default_device_id


def _utc(dt: Optional[datetime]) -> Optional[datetime]:
    if dt is not None and dt.tzinfo is None:
        return dt.replace(tzinfo=timezone.utc)
    return dt


# --- Sensors ---
@router.post("/sensors", status_code=201)
async def create_reading(req: SensorReadingIn, svc: IngestionService = Depends(get_ingestion)):
    reading = await svc.submit_sensor_reading(req.deviceId, req.channels(), req.timestamp)
    return {"ok": True, "message": "Sensor reading saved successfully", "data": reading.to_dict()}


@router.get("/sensors/latest")
async def latest_reading(
    device_id: str = Depends(device_id_param),
    q: QueryService = Depends(get_queries),
):
    reading = await q.get_latest_reading(device_id)
    return {"ok": True, "data": reading.to_dict()}


@router.get("/sensors/statistics")
async def reading_statistics(
    hours: float = Query(default=24, gt=0, le=24 * 365),
    device_id: str = Depends(device_id_param),
    q: QueryService = Depends(get_queries),
):
    stats = await q.get_stats(device_id, hours)
    if stats is None:
        raise NotFoundError("No readings found for the specified period")
    return {"ok": True, "data": stats.to_dict()}


@router.get("/sensors")
async def list_readings(
    limit: int = Query(default=100, ge=1),
    startDate: Optional[datetime] = None,
    endDate: Optional[datetime] = None,
    device_id: str = Depends(device_id_param),
    q: QueryService = Depends(get_queries),
):
    rows = await q.get_readings_in_range(device_id, _utc(startDate), _utc(endDate), limit)
    return {"ok": True, "count": len(rows), "data": [r.to_dict() for r in rows]}


@router.delete("/sensors/old")
async def purge_old_readings(
    days: int = Query(default=30, ge=0),
    deviceId: Optional[str] = None,
    q: QueryService = Depends(get_queries),
):
    # no deviceId purges every device, like the retention job
    deleted = await q.purge_readings_older_than(deviceId, days)
    return {"ok": True, "message": f"Deleted {deleted} old readings", "deletedCount": deleted}


# --- Actuators ---
@router.post("/actuators", status_code=201)
async def control_actuator(req: ActuatorCommandIn, svc: IngestionService = Depends(get_ingestion)):
    event = await svc.submit_actuator_command(
        req.deviceType,
        req.deviceId,
        req.action,
        triggered_by=req.triggeredBy,
        duration_s=req.duration,
    )
    return {
        "ok": True,
        "message": f"Actuator {event.device_type.value} turned {'ON' if event.resolved_state else 'OFF'}",
        "data": event.to_dict(),
    }


@router.get("/actuators/states")
async def actuator_states(
    device_id: str = Depends(device_id_param),
    q: QueryService = Depends(get_queries),
):
    return {"ok": True, "data": await q.get_actuator_states(device_id)}


@router.get("/actuators/history")
async def actuator_history(
    deviceType: Optional[DeviceType] = None,
    limit: int = Query(default=50, ge=1, le=1000),
    device_id: str = Depends(device_id_param),
    q: QueryService = Depends(get_queries),
):
    rows = await q.get_actuator_history(device_id, deviceType, limit)
    return {"ok": True, "count": len(rows), "data": [e.to_dict() for e in rows]}


@router.get("/actuators/{deviceType}/latest")
async def actuator_latest(
    deviceType: DeviceType,
    device_id: str = Depends(device_id_param),
    q: QueryService = Depends(get_queries),
):
    event = await q.get_latest_actuator_event(deviceType, device_id)
    return {"ok": True, "data": event.to_dict()}


# --- System ---
@router.get("/system/status")
async def system_status(
    device_id: str = Depends(device_id_param),
    q: QueryService = Depends(get_queries),
):
    return {"ok": True, "status": await q.get_system_status(device_id)}


@router.get("/system/dashboard")
async def system_dashboard(
    device_id: str = Depends(device_id_param),
    q: QueryService = Depends(get_queries),
):
    return {"ok": True, "data": await q.get_dashboard(device_id)}


# --- Simulation endpoints ---
@router.get("/sim/status")
async def sim_status(sensor: SimulatedChamberSensor = Depends(get_sim_sensor)):
    return sensor.status()


@router.post("/sim/enable")
async def sim_enable(sensor: SimulatedChamberSensor = Depends(get_sim_sensor)):
    sensor.enable()
    return {"ok": True, "enabled": True}


@router.post("/sim/disable")
async def sim_disable(sensor: SimulatedChamberSensor = Depends(get_sim_sensor)):
    sensor.disable()
    return {"ok": True, "enabled": False}
