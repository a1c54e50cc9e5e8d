import asyncio

import pytest

from chamber.domain.errors import ConcurrencyConflict
from chamber.domain.models import Action, DeviceType, TriggerSource
from chamber.domain.state_resolver import KeyedLocks, StateResolver

FAN = DeviceType.EXHAUST_FAN_1
PUMP = DeviceType.WATER_PUMP


@pytest.mark.asyncio
async def test_toggles_alternate_starting_on(resolver):
    states = []
    for _ in range(5):
        event = await resolver.commit(FAN, "esp32-main", Action.TOGGLE)
        states.append(event.resolved_state)
    assert states == [True, False, True, False, True]


@pytest.mark.asyncio
async def test_on_and_off_ignore_history(resolver):
    await resolver.commit(FAN, "esp32-main", Action.ON)
    assert await resolver.resolve(FAN, "esp32-main", Action.ON) is True
    assert await resolver.resolve(FAN, "esp32-main", Action.OFF) is False

    await resolver.commit(FAN, "esp32-main", Action.OFF)
    assert await resolver.resolve(FAN, "esp32-main", Action.ON) is True
    assert await resolver.resolve(FAN, "esp32-main", Action.OFF) is False


@pytest.mark.asyncio
async def test_toggle_after_explicit_on(resolver):
    await resolver.commit(FAN, "esp32-main", Action.ON)
    event = await resolver.commit(FAN, "esp32-main", Action.TOGGLE)
    assert event.resolved_state is False
    assert event.requested_action is Action.TOGGLE


@pytest.mark.asyncio
async def test_devices_are_independent(resolver):
    await resolver.commit(FAN, "esp32-main", Action.ON)
    assert await resolver.resolve(PUMP, "esp32-main", Action.TOGGLE) is True
    # same device type on another controller has its own history
    assert await resolver.resolve(FAN, "esp32-other", Action.TOGGLE) is True


@pytest.mark.asyncio
async def test_snapshot_defaults_to_off(resolver):
    states = await resolver.current_states_snapshot("esp32-main")
    assert set(states) == {dt.value for dt in DeviceType}
    assert not any(states.values())


@pytest.mark.asyncio
async def test_snapshot_reflects_latest_event(resolver):
    await resolver.commit(FAN, "esp32-main", Action.ON)
    await resolver.commit(PUMP, "esp32-main", Action.TOGGLE)
    await resolver.commit(PUMP, "esp32-main", Action.TOGGLE)

    states = await resolver.current_states_snapshot("esp32-main")
    assert states["exhaustFan1"] is True
    assert states["waterPump"] is False
    assert states["mistMaker"] is False


@pytest.mark.asyncio
async def test_snapshot_limited_device_set(resolver):
    states = await resolver.current_states_snapshot("esp32-main", [PUMP])
    assert states == {"waterPump": False}


@pytest.mark.asyncio
async def test_concurrent_toggles_on_one_device_serialize(resolver, repo):
    events = await asyncio.gather(
        *(resolver.commit(FAN, "esp32-main", Action.TOGGLE) for _ in range(6))
    )
    assert sorted(e.resolved_state for e in events) == [False, False, False, True, True, True]

    history = await repo.query_actuator_events("esp32-main", FAN, 10)
    chronological = [e.resolved_state for e in reversed(history)]
    assert chronological == [True, False, True, False, True, False]


@pytest.mark.asyncio
async def test_commit_records_provenance(resolver, publisher):
    event = await resolver.commit(
        PUMP, "esp32-main", Action.ON, triggered_by=TriggerSource.SCHEDULE, duration_s=30
    )
    assert event.id
    assert event.triggered_by is TriggerSource.SCHEDULE
    assert event.duration_s == 30

    assert publisher.messages[-1].type == "actuator_status"
    assert publisher.messages[-1].data["state"] is True
    assert publisher.messages[-1].data["deviceType"] == "waterPump"


@pytest.mark.asyncio
async def test_busy_device_times_out(store):
    resolver = StateResolver(store, lock_timeout_s=0.05)
    held = asyncio.Event()
    release = asyncio.Event()

    async def hold_device():
        async with resolver._locks.hold((FAN, "esp32-main"), timeout=1.0):
            held.set()
            await release.wait()

    holder = asyncio.create_task(hold_device())
    await held.wait()

    with pytest.raises(ConcurrencyConflict):
        await resolver.commit(FAN, "esp32-main", Action.TOGGLE)

    # another device is not affected
    event = await resolver.commit(PUMP, "esp32-main", Action.TOGGLE)
    assert event.resolved_state is True

    release.set()
    await holder


@pytest.mark.asyncio
async def test_lock_registry_is_cleaned_up():
    locks = KeyedLocks()
    async with locks.hold((FAN, "a"), timeout=1.0):
        assert len(locks) == 1
    assert len(locks) == 0

    with pytest.raises(ConcurrencyConflict):
        async with locks.hold((FAN, "a"), timeout=1.0):
            async with locks.hold((FAN, "a"), timeout=0.01):
                pass
    assert len(locks) == 0
