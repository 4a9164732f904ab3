from __future__ import annotations
import json
import aiosqlite
from datetime import datetime
from typing import List
from ..domain.models import ActionEvent, Reading, StatusEvent


class SQLiteRepository:
    """History of readings, actuator commands and controller statuses."""

    def __init__(self, path: str) -> None:
        self._path = path

    async def init(self) -> None:
        async with aiosqlite.connect(self._path) as db:
            await db.execute(
                """
                CREATE TABLE IF NOT EXISTS readings (
                    ts_utc TEXT NOT NULL,
                    sensor_id TEXT NOT NULL,
                    quantity TEXT NOT NULL,
                    value REAL,
                    unit TEXT NOT NULL,
                    ok INTEGER NOT NULL,
                    error TEXT
                )
                """
            )
            await db.execute(
                """
                CREATE TABLE IF NOT EXISTS actions (
                    ts_utc TEXT NOT NULL,
                    source TEXT NOT NULL,
                    outputs TEXT NOT NULL
                )
                """
            )
            await db.execute(
                """
                CREATE TABLE IF NOT EXISTS status_events (
                    ts_utc TEXT NOT NULL,
                    source TEXT NOT NULL,
                    state TEXT NOT NULL,
                    severity TEXT,
                    payload TEXT NOT NULL
                )
                """
            )
            await db.execute("CREATE INDEX IF NOT EXISTS idx_readings_ts ON readings(ts_utc)")
            await db.execute("CREATE INDEX IF NOT EXISTS idx_actions_ts ON actions(ts_utc)")
            await db.execute("CREATE INDEX IF NOT EXISTS idx_status_ts ON status_events(ts_utc)")
            await db.commit()

    async def insert_reading(self, r: Reading) -> None:
        async with aiosqlite.connect(self._path) as db:
            await db.execute(
                "INSERT INTO readings(ts_utc,sensor_id,quantity,value,unit,ok,error) VALUES (?,?,?,?,?,?,?)",
                (r.ts_utc.isoformat(), r.sensor_id, r.quantity, r.value, r.unit, 1 if r.ok else 0, r.error),
            )
            await db.commit()

    async def insert_action(self, a: ActionEvent) -> None:
        async with aiosqlite.connect(self._path) as db:
            await db.execute(
                "INSERT INTO actions(ts_utc,source,outputs) VALUES (?,?,?)",
                (a.ts_utc.isoformat(), a.source, json.dumps(a.outputs)),
            )
            await db.commit()

    async def insert_status(self, e: StatusEvent) -> None:
        async with aiosqlite.connect(self._path) as db:
            await db.execute(
                "INSERT INTO status_events(ts_utc,source,state,severity,payload) VALUES (?,?,?,?,?)",
                (e.ts_utc.isoformat(), e.source, e.state, e.severity, json.dumps(e.payload, default=str)),
            )
            await db.commit()

    async def query_readings(self, start_ts: str, end_ts: str, limit: int) -> List[Reading]:
        async with aiosqlite.connect(self._path) as db:
            cur = await db.execute(
                """
                SELECT ts_utc,sensor_id,quantity,value,unit,ok,error
                FROM readings
                WHERE ts_utc >= ? AND ts_utc <= ?
                ORDER BY ts_utc DESC
                LIMIT ?
                """,
                (start_ts, end_ts, limit),
            )
            rows = await cur.fetchall()
        out: list[Reading] = []
        for ts, sid, qty, val, unit, ok, err in rows:
            out.append(
                Reading(
                    ts_utc=datetime.fromisoformat(ts),
                    sensor_id=sid,
                    quantity=qty,
                    value=val,
                    unit=unit,
                    ok=bool(ok),
                    error=err,
                )
            )
        return list(reversed(out))

    async def query_actions(self, start_ts: str, end_ts: str, limit: int) -> List[ActionEvent]:
        async with aiosqlite.connect(self._path) as db:
            cur = await db.execute(
                """
                SELECT ts_utc,source,outputs
                FROM actions
                WHERE ts_utc >= ? AND ts_utc <= ?
                ORDER BY ts_utc DESC
                LIMIT ?
                """,
                (start_ts, end_ts, limit),
            )
            rows = await cur.fetchall()
        out = [
            ActionEvent(ts_utc=datetime.fromisoformat(ts), source=src, outputs=json.loads(outputs))
            for ts, src, outputs in rows
        ]
        return list(reversed(out))

    async def query_status(self, start_ts: str, end_ts: str, limit: int) -> List[StatusEvent]:
        async with aiosqlite.connect(self._path) as db:
            cur = await db.execute(
                """
                SELECT ts_utc,source,state,severity,payload
                FROM status_events
                WHERE ts_utc >= ? AND ts_utc <= ?
                ORDER BY ts_utc DESC
                LIMIT ?
                """,
                (start_ts, end_ts, limit),
            )
            rows = await cur.fetchall()
        out = [
            StatusEvent(
                ts_utc=datetime.fromisoformat(ts),
                source=src,
                state=state,
                severity=sev,
                payload=json.loads(payload),
            )
            for ts, src, state, sev, payload in rows
        ]
        return list(reversed(out))
