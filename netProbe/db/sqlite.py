"""SQLite result sink, the default persistence backend."""
from __future__ import annotations

import asyncio
import sqlite3
import time
from typing import Optional, Tuple

from netProbe.db.sinks import COLUMNS, TABLE_NAME, SinkError
from netProbe.scanner.models import QueryRecord
from netProbe.logging_config import get_logger

logger = get_logger("db")


SQL_CREATE_TABLE = f"""
CREATE TABLE IF NOT EXISTS {TABLE_NAME} (
    timestamp TIMESTAMP,
    ip TEXT,
    domain TEXT,
    query TEXT,
    answer TEXT
)
"""

SQL_INSERT_QUERY = f"""
INSERT INTO {TABLE_NAME} ({", ".join(COLUMNS)})
VALUES (?, ?, ?, ?, ?)
"""


def _row(entry: QueryRecord) -> Tuple[str, str, str, str, str]:
    return (entry.timestamp.isoformat(), entry.ip, entry.domain, entry.query, entry.answer)


class SQLiteSink:
    """
    Appends records to a single SQLite file.

    One connection is shared by all work units. Writes are serialised by an
    asyncio lock and executed in a worker thread so the event loop keeps
    serving DNS exchanges while the file is written.
    """

    def __init__(self, path: str) -> None:
        self.path = path
        self._conn: Optional[sqlite3.Connection] = None
        self._lock = asyncio.Lock()
        self.rows_written = 0

    @classmethod
    async def open(cls, path: str) -> "SQLiteSink":
        sink = cls(path)
        await asyncio.to_thread(sink._connect)
        return sink

    def _connect(self) -> None:
        logger.info(
            "Opening SQLite database",
            extra={"db_target": self.path, "action": "sink_open"}
        )
        try:
            conn = sqlite3.connect(self.path, check_same_thread=False)
        except sqlite3.Error as exc:
            raise SinkError(f"Failed to open database {self.path}: {exc}") from exc
        try:
            conn.execute(SQL_CREATE_TABLE)
            conn.commit()
        except sqlite3.Error as exc:
            conn.close()
            raise SinkError(f"Failed to create table in {self.path}: {exc}") from exc
        try:
            # Compiles the insert without running it
            conn.execute(f"EXPLAIN {SQL_INSERT_QUERY}", (None,) * len(COLUMNS)).fetchall()
        except sqlite3.Error as exc:
            conn.close()
            raise SinkError(f"Failed to prepare insert statement: {exc}") from exc
        self._conn = conn
        logger.info(
            "SQLite database ready",
            extra={"db_target": self.path, "outcome": "success"}
        )

    @staticmethod
    def _insert(conn: sqlite3.Connection, row: Tuple[str, str, str, str, str]) -> None:
        with conn:
            conn.execute(SQL_INSERT_QUERY, row)

    async def record(self, entry: QueryRecord) -> None:
        row = _row(entry)
        async with self._lock:
            if self._conn is None:
                raise SinkError(f"SQLite sink {self.path} is closed")
            start_time = time.time()
            try:
                await asyncio.to_thread(self._insert, self._conn, row)
            except sqlite3.Error as exc:
                raise SinkError(f"Failed to insert record for {entry.ip}: {exc}") from exc
            self.rows_written += 1
        logger.debug(
            "Record inserted",
            extra={
                "target": entry.ip,
                "domain": entry.domain,
                "duration": round((time.time() - start_time) * 1000, 2),
                "outcome": "success",
            }
        )

    async def close(self) -> None:
        async with self._lock:
            if self._conn is None:
                return
            conn, self._conn = self._conn, None
            await asyncio.to_thread(conn.close)
        logger.info(
            "SQLite database closed",
            extra={"db_target": self.path, "rows_affected": self.rows_written}
        )
