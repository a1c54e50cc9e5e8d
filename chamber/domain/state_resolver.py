from __future__ import annotations

import asyncio
import logging
from contextlib import asynccontextmanager
from datetime import datetime
from typing import AsyncIterator, Iterable, Optional

from ..core.timeutil import now_utc
from .errors import ConcurrencyConflict
from .event_store import EventStore
from .models import DEVICE_TYPES, Action, ActuatorEvent, DeviceType, TriggerSource

logger = logging.getLogger(__name__)

DeviceKey = tuple[DeviceType, str]


class KeyedLocks:
    """One asyncio.Lock per key, dropped again once nobody holds or waits on it."""

    def __init__(self) -> None:
        self._locks: dict[DeviceKey, asyncio.Lock] = {}
        self._users: dict[DeviceKey, int] = {}

    def __len__(self) -> int:
        return len(self._locks)

    @asynccontextmanager
    async def hold(self, key: DeviceKey, timeout: float) -> AsyncIterator[None]:
        lock = self._locks.setdefault(key, asyncio.Lock())
        self._users[key] = self._users.get(key, 0) + 1
        try:
            try:
                async with asyncio.timeout(timeout):
                    await lock.acquire()
            except TimeoutError:
                raise ConcurrencyConflict(
                    f"{key[0].value}@{key[1]} is busy, retry the command"
                ) from None
            try:
                yield
            finally:
                lock.release()
        finally:
            self._users[key] -= 1
            if self._users[key] == 0:
                del self._users[key]
                del self._locks[key]


class StateResolver:
    def __init__(self, store: EventStore, lock_timeout_s: float = 5.0) -> None:
        self._store = store
        self._lock_timeout_s = lock_timeout_s
        self._locks = KeyedLocks()

    async def resolve(self, device_type: DeviceType, device_id: str, action: Action) -> bool:
        if action is Action.ON:
            return True
        if action is Action.OFF:
            return False
        latest = await self._store.latest_for(device_type, device_id)
        return not latest.resolved_state if latest else True

    async def commit(
        self,
        device_type: DeviceType,
        device_id: str,
        action: Action,
        triggered_by: TriggerSource = TriggerSource.APP,
        duration_s: Optional[int] = None,
        ts_utc: Optional[datetime] = None,
    ) -> ActuatorEvent:
        """Resolve ``action`` and append the transition with no other
        command for the same device in between."""
        async with self._locks.hold((device_type, device_id), self._lock_timeout_s):
            state = await self.resolve(device_type, device_id, action)
            event = ActuatorEvent(
                ts_utc=ts_utc or now_utc(),
                device_id=device_id,
                device_type=device_type,
                requested_action=action,
                resolved_state=state,
                triggered_by=triggered_by,
                duration_s=duration_s,
            )
            stored = await self._store.append(event)

        logger.info(
            "Actuator %s@%s %s -> %s (by %s)",
            device_type.value, device_id, action.value, "ON" if state else "OFF", triggered_by.value,
        )
        return stored

    async def current_states_snapshot(
        self,
        device_id: str,
        device_types: Iterable[DeviceType] = DEVICE_TYPES,
    ) -> dict[str, bool]:
        states: dict[str, bool] = {}
        for dt in device_types:
            latest = await self._store.latest_for(dt, device_id)
            states[dt.value] = latest.resolved_state if latest else False
        return states
