"""Audit Trail — append-only log of the traffic of one host call.

Each entry-point call owns an ``AuditBuffer``. The Session Guard hands the
buffer to an ``AuditSink`` exactly once, when the call ends.
"""

from __future__ import annotations

from abc import ABC, abstractmethod
from datetime import datetime
from pathlib import Path
from typing import Any

import aiosqlite
import orjson
from pydantic import BaseModel, Field

from a2ahost.types import utcnow

MAX_FIELD_CHARS = 40_000

AuditRow = tuple[str, str | None, Any, str, str]


class Direction:
    CLIENT_TO_SERVER = "client --> server"
    SERVER_TO_CLIENT = "server --> client"
    AT_SERVER = "At server"
    CLIENT_SIDE = "Client side"


class AuditRecord(BaseModel):
    """A single audit log entry."""

    timestamp: datetime = Field(default_factory=utcnow)
    method: str | None = None
    correlation_id: Any = None
    direction: str = ""
    payload: str = ""

    def to_row(self, max_chars: int = MAX_FIELD_CHARS) -> AuditRow:
        def cut(value: Any) -> Any:
            return value[:max_chars] if isinstance(value, str) else value

        return (
            self.timestamp.isoformat(),
            cut(self.method),
            cut(self.correlation_id),
            cut(self.direction),
            cut(self.payload),
        )


class AuditBuffer:
    """Pending audit records of one call."""

    def __init__(self) -> None:
        self._records: list[AuditRecord] = []

    def record(
        self,
        direction: str,
        payload: Any,
        method: str | None = None,
        correlation_id: Any = None,
    ) -> AuditRecord:
        if not isinstance(payload, str):
            payload = orjson.dumps(payload, default=str).decode()
        entry = AuditRecord(
            method=method,
            correlation_id=correlation_id,
            direction=direction,
            payload=payload,
        )
        self._records.append(entry)
        return entry

    @property
    def records(self) -> list[AuditRecord]:
        return list(self._records)

    def rows(self, max_chars: int = MAX_FIELD_CHARS) -> list[AuditRow]:
        return [r.to_row(max_chars) for r in self._records]

    def __len__(self) -> int:
        return len(self._records)

    def __repr__(self) -> str:
        return f"AuditBuffer(records={len(self._records)})"


class AuditSink(ABC):
    @abstractmethod
    async def append(self, rows: list[AuditRow]) -> None:
        """Store ``rows`` in order. Strings are already truncated."""


class SqliteAuditSink(AuditSink):
    """Append-only audit sink backed by SQLite."""

    def __init__(self, db_path: str) -> None:
        self._db_path = db_path
        self._initialized = False

    async def initialize(self) -> None:
        """Create the log table if needed."""
        Path(self._db_path).parent.mkdir(parents=True, exist_ok=True)
        async with aiosqlite.connect(self._db_path) as db:
            await db.execute("""
                CREATE TABLE IF NOT EXISTS a2a_log (
                    seq INTEGER PRIMARY KEY AUTOINCREMENT,
                    timestamp TEXT NOT NULL,
                    method TEXT,
                    correlation_id TEXT,
                    direction TEXT NOT NULL,
                    payload TEXT
                )
            """)
            await db.commit()
        self._initialized = True

    async def append(self, rows: list[AuditRow]) -> None:
        if not rows:
            return
        if not self._initialized:
            await self.initialize()
        async with aiosqlite.connect(self._db_path) as db:
            await db.executemany(
                """INSERT INTO a2a_log
                   (timestamp, method, correlation_id, direction, payload)
                   VALUES (?, ?, ?, ?, ?)""",
                [
                    (ts, method, None if cid is None else str(cid), direction, payload)
                    for ts, method, cid, direction, payload in rows
                ],
            )
            await db.commit()

    async def query(self, method: str = "", limit: int = 50) -> list[AuditRow]:
        """Most recent rows first, optionally filtered by method."""
        if not self._initialized:
            await self.initialize()
        sql = "SELECT timestamp, method, correlation_id, direction, payload FROM a2a_log"
        args: tuple = ()
        if method:
            sql += " WHERE method = ?"
            args = (method,)
        sql += " ORDER BY seq DESC LIMIT ?"
        async with aiosqlite.connect(self._db_path) as db:
            async with db.execute(sql, (*args, limit)) as cursor:
                return [tuple(row) for row in await cursor.fetchall()]

    def __repr__(self) -> str:
        return f"SqliteAuditSink(db_path={self._db_path!r})"
