from __future__ import annotations

import logging
from datetime import datetime, timedelta
from typing import Any, Optional

from ..core.config import settings
from ..core.timeutil import now_local, now_utc
from ..domain.aggregator import window_stats
from ..domain.errors import NotFoundError, ValidationError
from ..domain.event_store import EventStore
from ..domain.models import ActuatorEvent, DeviceType, SensorReading, WindowStats
from ..domain.state_resolver import StateResolver

logger = logging.getLogger(__name__)


class QueryService:
    """Read side: every answer is derived from the event log on request."""

    def __init__(self, store: EventStore, resolver: StateResolver) -> None:
        self._store = store
        self._resolver = resolver

    async def get_latest_reading(self, device_id: str) -> SensorReading:
        reading = await self._store.latest_reading(device_id)
        if reading is None:
            raise NotFoundError(f"No sensor readings found for {device_id}")
        return reading

    async def get_readings_in_range(
        self,
        device_id: str,
        start: Optional[datetime] = None,
        end: Optional[datetime] = None,
        limit: int = 100,
    ) -> list[SensorReading]:
        if start and end and start > end:
            raise ValidationError("startDate must not be after endDate")
        return await self._store.query_range(device_id, start, end, limit=min(limit, settings.readings_max_limit))

    async def get_stats(self, device_id: str, window_hours: float = 24) -> Optional[WindowStats]:
        if window_hours <= 0:
            raise ValidationError("hours must be positive")
        end = now_utc()
        start = end - timedelta(hours=window_hours)
        readings = await self._store.query_range(device_id, start, end)
        return window_stats(readings, start, end)

    async def get_actuator_states(self, device_id: str) -> dict[str, bool]:
        return await self._resolver.current_states_snapshot(device_id)

    async def get_actuator_history(
        self,
        device_id: str,
        device_type: Optional[DeviceType] = None,
        limit: Optional[int] = None,
    ) -> list[ActuatorEvent]:
        return await self._store.actuator_history(
            device_id, device_type, limit or settings.history_default_limit
        )

    async def get_latest_actuator_event(self, device_type: DeviceType, device_id: str) -> ActuatorEvent:
        event = await self._store.latest_for(device_type, device_id)
        if event is None:
            raise NotFoundError(f"No logs found for {device_type.value}")
        return event

    async def purge_readings_older_than(self, device_id: Optional[str], days: int) -> int:
        if days < 0:
            raise ValidationError("days must not be negative")
        cutoff = now_utc() - timedelta(days=days)
        return await self._store.purge_older_than(cutoff, device_id)

    async def get_system_status(self, device_id: str) -> dict[str, Any]:
        now = now_utc()
        latest = await self._store.latest_reading(device_id)
        first = await self._store.first_reading(device_id)
        today_start = now_local().replace(hour=0, minute=0, second=0, microsecond=0)

        online = latest is not None and (now - latest.ts_utc) < timedelta(seconds=settings.online_threshold_seconds)
        return {
            "online": online,
            "lastUpdate": latest.ts_utc.isoformat() if latest else None,
            "uptime_s": (now - first.ts_utc).total_seconds() if first else None,
            "totalReadings": await self._store.count_readings(device_id),
            "todayReadings": await self._store.count_readings(device_id, since=today_start),
            "latestSensor": latest.to_dict() if latest else None,
            "actuators": await self._resolver.current_states_snapshot(device_id),
        }

    async def get_dashboard(self, device_id: str) -> dict[str, Any]:
        now = now_utc()
        latest = await self._store.latest_reading(device_id)
        recent = await self._store.query_range(device_id, now - timedelta(hours=24), now, limit=100)
        return {
            "current": latest.to_dict() if latest else None,
            "history": [r.to_dict() for r in recent],
            "actuators": await self._resolver.current_states_snapshot(device_id),
            "timestamp": now.isoformat(),
        }
