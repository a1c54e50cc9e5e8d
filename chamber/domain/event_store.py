from __future__ import annotations

import asyncio
import logging
import math
import uuid
from dataclasses import replace
from datetime import datetime
from typing import Optional, Union

from ..core.timeutil import now_utc, to_db_ts
from .errors import ValidationError
from .interfaces import EventRepository, Publisher
from .models import (
    CHANNEL_RANGES,
    Action,
    ActuatorEvent,
    BroadcastMessage,
    DeviceType,
    SensorReading,
    TriggerSource,
)

logger = logging.getLogger(__name__)

Event = Union[SensorReading, ActuatorEvent]


def _require_common(event: Event) -> None:
    if not isinstance(event.device_id, str) or not event.device_id.strip():
        raise ValidationError("deviceId is required")
    if not isinstance(event.ts_utc, datetime):
        raise ValidationError("timestamp is required")
    if event.ts_utc.tzinfo is None:
        raise ValidationError("timestamp must be timezone-aware")


def validate_reading(r: SensorReading) -> None:
    _require_common(r)
    if not r.readings:
        raise ValidationError("at least one sensor channel is required")
    for ch, value in r.readings.items():
        bounds = CHANNEL_RANGES.get(ch)
        if bounds is None:
            raise ValidationError(f"Unknown sensor channel: {ch}")
        if isinstance(value, bool) or not isinstance(value, (int, float)) or not math.isfinite(value):
            raise ValidationError(f"{ch} must be a finite number")
        lo, hi = bounds
        if not lo <= value <= hi:
            raise ValidationError(f"{ch}={value} outside [{lo:g}, {hi:g}]")


def validate_actuator_event(a: ActuatorEvent) -> None:
    _require_common(a)
    if not isinstance(a.device_type, DeviceType):
        raise ValidationError(f"Invalid device type: {a.device_type!r}")
    if not isinstance(a.requested_action, Action):
        raise ValidationError(f"Invalid action: {a.requested_action!r}")
    if not isinstance(a.resolved_state, bool):
        raise ValidationError("resolved state must be a bool")
    if not isinstance(a.triggered_by, TriggerSource):
        raise ValidationError(f"Invalid trigger source: {a.triggered_by!r}")
    if a.duration_s is not None and a.duration_s < 0:
        raise ValidationError("duration must not be negative")


class EventStore:
    """Append-only log of sensor readings and actuator transitions.

    ``append`` persists the event and then hands it to the publisher before
    returning, so observers only ever see committed events. Appends are
    serialized so publish order matches commit order across devices.
    """

    def __init__(self, repo: EventRepository, publisher: Publisher) -> None:
        self._repo = repo
        self._publisher = publisher
        self._append_lock = asyncio.Lock()

    async def append(self, event: Event) -> Event:
        if isinstance(event, SensorReading):
            validate_reading(event)
            # own copy, ints normalised
            readings = {ch: float(v) for ch, v in event.readings.items()}
            stored = replace(event, id=uuid.uuid4().hex, readings=readings)
            insert = self._repo.insert_reading
            kind = "sensor_update"
        elif isinstance(event, ActuatorEvent):
            validate_actuator_event(event)
            stored = replace(event, id=uuid.uuid4().hex)
            insert = self._repo.insert_actuator_event
            kind = "actuator_status"
        else:
            raise ValidationError(f"Unsupported event type: {type(event).__name__}")

        async with self._append_lock:
            await insert(stored)
            logger.debug("append: %s id=%s device=%s", kind, stored.id, stored.device_id)
            self._publisher.publish(BroadcastMessage(kind, stored.to_dict(), now_utc()))
        return stored

    async def latest_for(self, device_type: DeviceType, device_id: str) -> Optional[ActuatorEvent]:
        return await self._repo.latest_actuator_event(device_type, device_id)

    async def latest_reading(self, device_id: str) -> Optional[SensorReading]:
        return await self._repo.latest_reading(device_id)

    async def first_reading(self, device_id: str) -> Optional[SensorReading]:
        return await self._repo.first_reading(device_id)

    async def query_range(
        self,
        device_id: str,
        start: Optional[datetime],
        end: Optional[datetime],
        limit: Optional[int] = None,
    ) -> list[SensorReading]:
        """Readings with ``start <= ts <= end``, newest first."""
        return await self._repo.query_readings(
            device_id,
            to_db_ts(start) if start else None,
            to_db_ts(end) if end else None,
            limit,
        )

    async def actuator_history(
        self,
        device_id: str,
        device_type: Optional[DeviceType] = None,
        limit: int = 50,
    ) -> list[ActuatorEvent]:
        return await self._repo.query_actuator_events(device_id, device_type, limit)

    async def ping(self) -> None:
        await self._repo.ping()

    async def count_readings(self, device_id: str, since: Optional[datetime] = None) -> int:
        return await self._repo.count_readings(device_id, to_db_ts(since) if since else None)

    async def purge_older_than(self, cutoff: datetime, device_id: Optional[str] = None) -> int:
        # Actuator events are kept: current state is derived from them
        deleted = await self._repo.delete_readings_before(to_db_ts(cutoff), device_id)
        if deleted:
            logger.info("Purged %d readings older than %s (device=%s)", deleted, cutoff.isoformat(), device_id or "*")
        return deleted
