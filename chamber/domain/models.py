from __future__ import annotations
from dataclasses import dataclass, field
from datetime import datetime
from enum import Enum
from typing import Any, Optional


class DeviceType(str, Enum):
    EXHAUST_FAN_1 = "exhaustFan1"
    EXHAUST_FAN_2 = "exhaustFan2"
    MIST_MAKER = "mistMaker"
    WATER_PUMP = "waterPump"
    LED_GROW_LIGHT = "ledGrowLight"
    PELTIER_WITH_FAN = "peltierWithFan"


class Action(str, Enum):
    ON = "on"
    OFF = "off"
    TOGGLE = "toggle"


class TriggerSource(str, Enum):
    MANUAL = "manual"
    AUTOMATION = "automation"
    SCHEDULE = "schedule"
    APP = "app"


DEVICE_TYPES: tuple[DeviceType, ...] = tuple(DeviceType)

# Channel name -> (min, max) accepted from the sensing device
CHANNEL_RANGES: dict[str, tuple[float, float]] = {
    "temperature": (-50.0, 100.0),
    "humidity": (0.0, 100.0),
    "soilMoisture": (0.0, 100.0),
    "co2": (0.0, 10000.0),
    "light": (0.0, 100000.0),
}
CHANNELS: tuple[str, ...] = tuple(CHANNEL_RANGES)


@dataclass(frozen=True)
class SensorReading:
    ts_utc: datetime
    device_id: str
    readings: dict[str, float] = field(default_factory=dict)
    id: Optional[str] = None

    def to_dict(self) -> dict[str, Any]:
        return {
            "id": self.id,
            "deviceId": self.device_id,
            "timestamp": self.ts_utc.isoformat(),
            **{ch: self.readings.get(ch) for ch in CHANNELS},
        }


@dataclass(frozen=True)
class ActuatorEvent:
    ts_utc: datetime
    device_id: str
    device_type: DeviceType
    requested_action: Action
    resolved_state: bool
    triggered_by: TriggerSource = TriggerSource.MANUAL
    duration_s: Optional[int] = None  # advisory only
    id: Optional[str] = None

    def to_dict(self) -> dict[str, Any]:
        return {
            "id": self.id,
            "deviceId": self.device_id,
            "deviceType": self.device_type.value,
            "action": self.requested_action.value,
            "state": self.resolved_state,
            "triggeredBy": self.triggered_by.value,
            "duration": self.duration_s,
            "timestamp": self.ts_utc.isoformat(),
        }


@dataclass(frozen=True)
class ChannelStats:
    min: float
    max: float
    average: float
    median: float
    latest: float


@dataclass(frozen=True)
class WindowStats:
    period_start: datetime
    period_end: datetime
    total_readings: int
    channels: dict[str, Optional[ChannelStats]]

    def to_dict(self) -> dict[str, Any]:
        out: dict[str, Any] = {
            ch: (s.__dict__ if s else None) for ch, s in self.channels.items()
        }
        out["totalReadings"] = self.total_readings
        out["period"] = {
            "start": self.period_start.isoformat(),
            "end": self.period_end.isoformat(),
        }
        return out


@dataclass(frozen=True)
class BroadcastMessage:
    type: str  # "connection" | "sensor_update" | "actuator_status" | "pong" | "error"
    data: dict[str, Any]
    ts_utc: datetime

    def to_dict(self) -> dict[str, Any]:
        return {"type": self.type, "data": self.data, "timestamp": self.ts_utc.isoformat()}
