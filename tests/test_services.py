import asyncio
from datetime import timedelta

import pytest

from chamber.core.timeutil import now_utc
from chamber.devices.simulator import SimulatedChamberSensor
from chamber.domain.errors import NotFoundError, ValidationError
from chamber.domain.models import CHANNEL_RANGES, Action, DeviceType, SensorReading
from chamber.services.ingestion import IngestionService
from chamber.services.queries import QueryService
from chamber.services.retention import RetentionService
from chamber.services.sampler import SimulationService


@pytest.fixture
def ingestion(store, resolver):
    return IngestionService(store, resolver)


@pytest.fixture
def queries(store, resolver):
    return QueryService(store, resolver)


def test_simulated_sensor_stays_in_range():
    sensor = SimulatedChamberSensor()
    for _ in range(20):
        values = sensor.read()
        assert set(values) == set(CHANNEL_RANGES)
        for ch, v in values.items():
            lo, hi = CHANNEL_RANGES[ch]
            assert lo <= v <= hi


def test_disabled_simulated_sensor_raises():
    sensor = SimulatedChamberSensor()
    sensor.disable()
    assert sensor.status()["enabled"] is False
    with pytest.raises(RuntimeError):
        sensor.read()


@pytest.mark.asyncio
async def test_simulation_sample_once(ingestion, store, publisher):
    svc = SimulationService(SimulatedChamberSensor(sensor_id="sim-1"), ingestion, sample_seconds=60)
    await svc.sample_once()

    latest = await store.latest_reading("sim-1")
    assert latest is not None
    assert set(latest.readings) == set(CHANNEL_RANGES)
    assert publisher.messages[-1].type == "sensor_update"


@pytest.mark.asyncio
async def test_simulation_loop_start_stop(ingestion, store):
    sensor = SimulatedChamberSensor(sensor_id="sim-2")
    svc = SimulationService(sensor, ingestion, sample_seconds=60)
    await svc.start()
    for _ in range(50):
        if svc.samples:
            break
        await asyncio.sleep(0.02)
    await asyncio.wait_for(svc.stop(), timeout=2.0)

    assert svc.samples == 1
    assert await store.count_readings("sim-2") == 1


@pytest.mark.asyncio
async def test_retention_purge_once(store):
    now = now_utc()
    await store.append(SensorReading(ts_utc=now - timedelta(days=10), device_id="r", readings={"co2": 500.0}))
    await store.append(SensorReading(ts_utc=now, device_id="r", readings={"co2": 600.0}))

    svc = RetentionService(store, retention_days=7, interval_seconds=3600)
    assert await svc.purge_once() == 1
    assert await svc.purge_once() == 0


@pytest.mark.asyncio
async def test_retention_disabled_does_not_start(store):
    svc = RetentionService(store, retention_days=0, interval_seconds=1)
    await svc.start()
    await svc.stop()


@pytest.mark.asyncio
async def test_ingestion_drops_missing_channels(ingestion):
    stored = await ingestion.submit_sensor_reading("esp32-main", {"temperature": 20, "co2": None})
    assert stored.readings == {"temperature": 20.0}
    assert isinstance(stored.readings["temperature"], float)


@pytest.mark.asyncio
@pytest.mark.parametrize(
    "values",
    [
        {"temperature": "warm"},
        {"ph": "x"},
        {"humidity": True},
    ],
)
async def test_ingestion_rejects_non_numeric_values(ingestion, store, publisher, values):
    with pytest.raises(ValidationError):
        await ingestion.submit_sensor_reading("esp32-main", values)
    assert await store.count_readings("esp32-main") == 0
    assert publisher.messages == []


@pytest.mark.asyncio
async def test_query_service_latest_and_stats(ingestion, queries):
    with pytest.raises(NotFoundError):
        await queries.get_latest_reading("esp32-main")
    assert await queries.get_stats("esp32-main", 1) is None

    await ingestion.submit_sensor_reading("esp32-main", {"humidity": 80})
    await ingestion.submit_sensor_reading("esp32-main", {"humidity": 90})

    stats = await queries.get_stats("esp32-main", 1)
    assert stats.channels["humidity"].latest == 90.0
    assert stats.channels["humidity"].median == 90.0


@pytest.mark.asyncio
async def test_query_service_actuator_views(ingestion, queries):
    with pytest.raises(NotFoundError):
        await queries.get_latest_actuator_event(DeviceType.LED_GROW_LIGHT, "esp32-main")

    await ingestion.submit_actuator_command(DeviceType.LED_GROW_LIGHT, "esp32-main", Action.TOGGLE)
    latest = await queries.get_latest_actuator_event(DeviceType.LED_GROW_LIGHT, "esp32-main")
    assert latest.resolved_state is True

    states = await queries.get_actuator_states("esp32-main")
    assert states["ledGrowLight"] is True
    assert len(await queries.get_actuator_history("esp32-main")) == 1
