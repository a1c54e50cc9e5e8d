from __future__ import annotations

import logging
from datetime import datetime
from typing import Mapping, Optional

from ..core.timeutil import now_utc
from ..domain.event_store import EventStore
from ..domain.models import Action, ActuatorEvent, DeviceType, SensorReading, TriggerSource
from ..domain.state_resolver import StateResolver

logger = logging.getLogger(__name__)


class IngestionService:
    """Entry point for readings from the sensing device and operator commands."""

    def __init__(self, store: EventStore, resolver: StateResolver) -> None:
        self._store = store
        self._resolver = resolver

    async def submit_sensor_reading(
        self,
        device_id: str,
        readings: Mapping[str, float],
        ts_utc: Optional[datetime] = None,
    ) -> SensorReading:
        reading = SensorReading(
            ts_utc=ts_utc or now_utc(),
            device_id=device_id,
            readings={ch: v for ch, v in readings.items() if v is not None},
        )
        stored = await self._store.append(reading)
        logger.debug("Reading %s from %s: %s", stored.id, device_id, stored.readings)
        return stored

    async def submit_actuator_command(
        self,
        device_type: DeviceType,
        device_id: str,
        action: Action,
        triggered_by: TriggerSource = TriggerSource.APP,
        duration_s: Optional[int] = None,
    ) -> ActuatorEvent:
        return await self._resolver.commit(
            device_type,
            device_id,
            action,
            triggered_by=triggered_by,
            duration_s=duration_s,
        )
