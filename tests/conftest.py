"""
Shared fixtures for the chamber test suite.

Every test gets its own SQLite file under ``tmp_path``; the API client runs the
real lifespan against it with the simulator and retention loop switched off.
"""

from __future__ import annotations

import logging
from datetime import datetime, timedelta, timezone

import pytest
import pytest_asyncio
from fastapi.testclient import TestClient

from chamber.core.config import settings
from chamber.domain.event_store import EventStore
from chamber.domain.models import (
    Action,
    ActuatorEvent,
    BroadcastMessage,
    DeviceType,
    SensorReading,
    TriggerSource,
)
from chamber.domain.state_resolver import StateResolver
from chamber.services.broadcaster import Broadcaster
from chamber.storage.sqlite_repo import SQLiteRepository

logging.getLogger("chamber").setLevel(logging.WARNING)

T0 = datetime(2026, 3, 1, 12, 0, tzinfo=timezone.utc)


class RecordingPublisher:
    """Publisher stand-in that keeps every message it is handed."""

    def __init__(self) -> None:
        self.messages: list[BroadcastMessage] = []

    def publish(self, message: BroadcastMessage) -> None:
        self.messages.append(message)


def reading(device_id: str = "esp32-main", minutes: float = 0, **channels: float) -> SensorReading:
    return SensorReading(
        ts_utc=T0 + timedelta(minutes=minutes),
        device_id=device_id,
        readings=channels or {"temperature": 22.0, "humidity": 85.0},
    )


def actuator_event(
    device_type: DeviceType = DeviceType.EXHAUST_FAN_1,
    state: bool = True,
    minutes: float = 0,
    device_id: str = "esp32-main",
    action: Action = Action.ON,
) -> ActuatorEvent:
    return ActuatorEvent(
        ts_utc=T0 + timedelta(minutes=minutes),
        device_id=device_id,
        device_type=device_type,
        requested_action=action,
        resolved_state=state,
        triggered_by=TriggerSource.MANUAL,
    )


@pytest_asyncio.fixture
async def repo(tmp_path):
    r = SQLiteRepository(str(tmp_path / "events.db"))
    await r.init()
    return r


@pytest.fixture
def publisher():
    return RecordingPublisher()


@pytest.fixture
def store(repo, publisher):
    """EventStore whose broadcasts are recorded rather than fanned out."""
    return EventStore(repo, publisher)


@pytest.fixture
def broadcaster():
    return Broadcaster(buffer_size=4, app_name="Test Chamber")


@pytest.fixture
def live_store(repo, broadcaster):
    """EventStore wired to a real Broadcaster."""
    return EventStore(repo, broadcaster)


@pytest.fixture
def resolver(store):
    return StateResolver(store, lock_timeout_s=1.0)


@pytest.fixture
def client(tmp_path, monkeypatch):
    monkeypatch.setattr(settings, "sqlite_path", str(tmp_path / "api.db"))
    monkeypatch.setattr(settings, "sensor_mode", "device")
    monkeypatch.setattr(settings, "log_file", "")
    monkeypatch.setattr(settings, "retention_days", 0)

    from chamber.main import app

    with TestClient(app) as c:
        yield c
