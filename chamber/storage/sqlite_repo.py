from __future__ import annotations
import sqlite3
from typing import List, Optional

import aiosqlite

from ..core.timeutil import from_db_ts, to_db_ts
from ..domain.errors import StorageError
from ..domain.models import (
    CHANNELS,
    Action,
    ActuatorEvent,
    DeviceType,
    SensorReading,
    TriggerSource,
)

# Channel name -> column name
_CHANNEL_COLUMNS = {
    "temperature": "temperature",
    "humidity": "humidity",
    "soilMoisture": "soil_moisture",
    "co2": "co2",
    "light": "light",
}
_READING_COLUMNS = "id,device_id,ts_utc," + ",".join(_CHANNEL_COLUMNS[ch] for ch in CHANNELS)
_ACTUATOR_COLUMNS = "id,device_id,device_type,requested_action,resolved_state,triggered_by,duration_s,ts_utc"


def _row_to_reading(row) -> SensorReading:
    rid, device_id, ts, *values = row
    readings = {ch: float(v) for ch, v in zip(CHANNELS, values) if v is not None}
    return SensorReading(ts_utc=from_db_ts(ts), device_id=device_id, readings=readings, id=rid)


def _row_to_actuator_event(row) -> ActuatorEvent:
    rid, device_id, dtype, action, state, trig, duration, ts = row
    return ActuatorEvent(
        ts_utc=from_db_ts(ts),
        device_id=device_id,
        device_type=DeviceType(dtype),
        requested_action=Action(action),
        resolved_state=bool(state),
        triggered_by=TriggerSource(trig),
        duration_s=duration,
        id=rid,
    )


class SQLiteRepository:
    """Append-only event tables.

    Each call opens its own connection; the ``seq`` rowid breaks ties between
    events that share a timestamp so that "latest" is always the last appended.
    """

    def __init__(self, path: str) -> None:
        self._path = path

    async def init(self) -> None:
        try:
            async with aiosqlite.connect(self._path) as db:
                await db.execute("PRAGMA journal_mode=WAL")
                await db.execute(
                    """
                    CREATE TABLE IF NOT EXISTS sensor_readings (
                        seq INTEGER PRIMARY KEY AUTOINCREMENT,
                        id TEXT NOT NULL UNIQUE,
                        device_id TEXT NOT NULL,
                        ts_utc TEXT NOT NULL,
                        temperature REAL,
                        humidity REAL,
                        soil_moisture REAL,
                        co2 REAL,
                        light REAL
                    )
                    """
                )
                await db.execute(
                    """
                    CREATE TABLE IF NOT EXISTS actuator_events (
                        seq INTEGER PRIMARY KEY AUTOINCREMENT,
                        id TEXT NOT NULL UNIQUE,
                        device_id TEXT NOT NULL,
                        device_type TEXT NOT NULL,
                        requested_action TEXT NOT NULL,
                        resolved_state INTEGER NOT NULL,
                        triggered_by TEXT NOT NULL,
                        duration_s INTEGER,
                        ts_utc TEXT NOT NULL
                    )
                    """
                )
                await db.execute(
                    "CREATE INDEX IF NOT EXISTS idx_readings_device_ts ON sensor_readings(device_id, ts_utc)"
                )
                await db.execute(
                    "CREATE INDEX IF NOT EXISTS idx_actuator_device_ts "
                    "ON actuator_events(device_id, device_type, ts_utc)"
                )
                await db.commit()
        except sqlite3.Error as e:
            raise StorageError(f"Failed to initialise {self._path}: {e}") from e

    async def insert_reading(self, r: SensorReading) -> None:
        values = [r.readings.get(ch) for ch in CHANNELS]
        await self._write(
            f"INSERT INTO sensor_readings({_READING_COLUMNS}) VALUES (?,?,?,?,?,?,?,?)",
            (r.id, r.device_id, to_db_ts(r.ts_utc), *values),
        )

    async def insert_actuator_event(self, a: ActuatorEvent) -> None:
        await self._write(
            f"INSERT INTO actuator_events({_ACTUATOR_COLUMNS}) VALUES (?,?,?,?,?,?,?,?)",
            (
                a.id,
                a.device_id,
                a.device_type.value,
                a.requested_action.value,
                1 if a.resolved_state else 0,
                a.triggered_by.value,
                a.duration_s,
                to_db_ts(a.ts_utc),
            ),
        )

    async def latest_reading(self, device_id: str) -> Optional[SensorReading]:
        rows = await self._read(
            f"SELECT {_READING_COLUMNS} FROM sensor_readings WHERE device_id = ? "
            "ORDER BY ts_utc DESC, seq DESC LIMIT 1",
            (device_id,),
        )
        return _row_to_reading(rows[0]) if rows else None

    async def first_reading(self, device_id: str) -> Optional[SensorReading]:
        rows = await self._read(
            f"SELECT {_READING_COLUMNS} FROM sensor_readings WHERE device_id = ? "
            "ORDER BY ts_utc ASC, seq ASC LIMIT 1",
            (device_id,),
        )
        return _row_to_reading(rows[0]) if rows else None

    async def latest_actuator_event(self, device_type: DeviceType, device_id: str) -> Optional[ActuatorEvent]:
        rows = await self._read(
            f"SELECT {_ACTUATOR_COLUMNS} FROM actuator_events WHERE device_id = ? AND device_type = ? "
            "ORDER BY ts_utc DESC, seq DESC LIMIT 1",
            (device_id, device_type.value),
        )
        return _row_to_actuator_event(rows[0]) if rows else None

    async def query_readings(
        self,
        device_id: str,
        start_ts: Optional[str],
        end_ts: Optional[str],
        limit: Optional[int],
    ) -> List[SensorReading]:
        sql = f"SELECT {_READING_COLUMNS} FROM sensor_readings WHERE device_id = ?"
        params: list = [device_id]
        if start_ts is not None:
            sql += " AND ts_utc >= ?"
            params.append(start_ts)
        if end_ts is not None:
            sql += " AND ts_utc <= ?"
            params.append(end_ts)
        sql += " ORDER BY ts_utc DESC, seq DESC"
        if limit is not None:
            sql += " LIMIT ?"
            params.append(limit)
        rows = await self._read(sql, tuple(params))
        return [_row_to_reading(row) for row in rows]

    async def query_actuator_events(
        self,
        device_id: str,
        device_type: Optional[DeviceType],
        limit: int,
    ) -> List[ActuatorEvent]:
        sql = f"SELECT {_ACTUATOR_COLUMNS} FROM actuator_events WHERE device_id = ?"
        params: list = [device_id]
        if device_type is not None:
            sql += " AND device_type = ?"
            params.append(device_type.value)
        sql += " ORDER BY ts_utc DESC, seq DESC LIMIT ?"
        params.append(limit)
        rows = await self._read(sql, tuple(params))
        return [_row_to_actuator_event(row) for row in rows]

    async def count_readings(self, device_id: str, since_ts: Optional[str]) -> int:
        if since_ts is None:
            rows = await self._read("SELECT COUNT(*) FROM sensor_readings WHERE device_id = ?", (device_id,))
        else:
            rows = await self._read(
                "SELECT COUNT(*) FROM sensor_readings WHERE device_id = ? AND ts_utc >= ?",
                (device_id, since_ts),
            )
        return int(rows[0][0])

    async def delete_readings_before(self, cutoff_ts: str, device_id: Optional[str]) -> int:
        if device_id is None:
            return await self._write("DELETE FROM sensor_readings WHERE ts_utc < ?", (cutoff_ts,))
        return await self._write(
            "DELETE FROM sensor_readings WHERE ts_utc < ? AND device_id = ?",
            (cutoff_ts, device_id),
        )

    async def ping(self) -> None:
        """Raises StorageError when the database cannot be opened."""
        await self._read("SELECT 1", ())

    async def _write(self, sql: str, params: tuple) -> int:
        try:
            async with aiosqlite.connect(self._path) as db:
                cur = await db.execute(sql, params)
                await db.commit()
                return cur.rowcount
        except sqlite3.Error as e:
            raise StorageError(f"Database write failed: {e}") from e

    async def _read(self, sql: str, params: tuple) -> list:
        try:
            async with aiosqlite.connect(self._path) as db:
                cur = await db.execute(sql, params)
                return list(await cur.fetchall())
        except sqlite3.Error as e:
            raise StorageError(f"Database read failed: {e}") from e
