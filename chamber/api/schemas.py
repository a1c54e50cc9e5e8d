from __future__ import annotations
from datetime import datetime, timezone
from pydantic import AliasChoices, BaseModel, ConfigDict, Field, field_validator, model_validator
from typing import Optional

from ..core.config import settings
from ..domain.models import Action, DeviceType, TriggerSource


class SensorReadingIn(BaseModel):
    """Payload sent by the ESP32 (HTTP body or WebSocket message)."""

    model_config = ConfigDict(populate_by_name=True)

    temperature: Optional[float] = Field(default=None, ge=-50, le=100)
    humidity: Optional[float] = Field(default=None, ge=0, le=100)
    soilMoisture: Optional[float] = Field(default=None, ge=0, le=100)
    co2: Optional[float] = Field(
        default=None, ge=0, le=10000, validation_alias=AliasChoices("co2", "co2Level")
    )
    light: Optional[float] = Field(
        default=None, ge=0, le=100000, validation_alias=AliasChoices("light", "lightIntensity")
    )
    deviceId: str = Field(default_factory=lambda: settings.default_device_id, min_length=1)
    timestamp: Optional[datetime] = None

    @field_validator("timestamp")
    @classmethod
    def _assume_utc(cls, v: Optional[datetime]) -> Optional[datetime]:
        if v is not None and v.tzinfo is None:
            return v.replace(tzinfo=timezone.utc)
        return v

    @model_validator(mode="after")
    def _at_least_one_channel(self) -> "SensorReadingIn":
        if not self.channels():
            raise ValueError("at least one sensor channel is required")
        return self

    def channels(self) -> dict[str, float]:
        values = {
            "temperature": self.temperature,
            "humidity": self.humidity,
            "soilMoisture": self.soilMoisture,
            "co2": self.co2,
            "light": self.light,
        }
        return {k: v for k, v in values.items() if v is not None}


class ActuatorCommandIn(BaseModel):
    deviceType: DeviceType
    action: Action
    duration: Optional[int] = Field(default=None, ge=1, le=24 * 3600)  # seconds, advisory
    triggeredBy: TriggerSource = TriggerSource.APP
    deviceId: str = Field(default_factory=lambda: settings.default_device_id, min_length=1)
