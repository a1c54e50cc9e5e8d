from __future__ import annotations
from typing import Protocol, Optional, runtime_checkable
from .models import ActuatorEvent, BroadcastMessage, DeviceType, SensorReading


@runtime_checkable
class EventRepository(Protocol):
    async def init(self) -> None:
        ...

    async def insert_reading(self, reading: SensorReading) -> None:
        ...

    async def insert_actuator_event(self, event: ActuatorEvent) -> None:
        ...

    async def latest_reading(self, device_id: str) -> Optional[SensorReading]:
        ...

    async def first_reading(self, device_id: str) -> Optional[SensorReading]:
        ...

    async def latest_actuator_event(self, device_type: DeviceType, device_id: str) -> Optional[ActuatorEvent]:
        ...

    async def query_readings(
        self, device_id: str, start_ts: Optional[str], end_ts: Optional[str], limit: Optional[int]
    ) -> list[SensorReading]:
        ...

    async def query_actuator_events(
        self, device_id: str, device_type: Optional[DeviceType], limit: int
    ) -> list[ActuatorEvent]:
        ...

    async def count_readings(self, device_id: str, since_ts: Optional[str]) -> int:
        ...

    async def delete_readings_before(self, cutoff_ts: str, device_id: Optional[str]) -> int:
        ...

    async def ping(self) -> None:
        ...


@runtime_checkable
class Publisher(Protocol):
    def publish(self, message: BroadcastMessage) -> None:
        ...


@runtime_checkable
class ChamberSensor(Protocol):
    sensor_id: str

    def read(self) -> dict[str, float]:
        ...

