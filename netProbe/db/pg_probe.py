"""PostgreSQL result sink backed by an asyncpg pool."""
from __future__ import annotations

import asyncio
import time
from typing import Optional

import asyncpg
from asyncpg import Pool

from netProbe.db.sinks import COLUMNS, TABLE_NAME, SinkError
from netProbe.scanner.models import QueryRecord
from netProbe.logging_config import get_logger, sanitize_dsn

logger = get_logger("db")

_CONNECT_ERRORS = (OSError, asyncio.TimeoutError, asyncpg.PostgresError, asyncpg.InterfaceError)


# SQL statements
SQL_CREATE_TABLE = f"""
CREATE TABLE IF NOT EXISTS {TABLE_NAME} (
    timestamp TIMESTAMPTZ,
    ip TEXT,
    domain TEXT,
    query TEXT,
    answer TEXT
)
"""


SQL_INSERT_QUERY = f"""
INSERT INTO {TABLE_NAME} ({", ".join(COLUMNS)})
VALUES ($1, $2, $3, $4, $5)
"""


class PostgresSink:
    """Appends records through a connection pool; the pool makes concurrent writes safe."""

    def __init__(self, pool: Pool, dsn: str) -> None:
        self.pool: Optional[Pool] = pool
        self.dsn = dsn
        self.rows_written = 0

    @classmethod
    async def open(cls, dsn: str, *, max_size: int = 10) -> "PostgresSink":
        sanitized_dsn = sanitize_dsn(dsn)
        logger.info(
            "Creating PostgreSQL connection pool",
            extra={"db_target": sanitized_dsn, "action": "sink_open"}
        )
        try:
            pool = await asyncpg.create_pool(dsn, min_size=1, max_size=max_size)
        except _CONNECT_ERRORS as exc:
            raise SinkError(f"Failed to connect to {sanitized_dsn}: {exc}") from exc

        try:
            async with pool.acquire() as conn:
                await conn.execute(SQL_CREATE_TABLE)
                await conn.prepare(SQL_INSERT_QUERY)
        except _CONNECT_ERRORS as exc:
            await pool.close()
            raise SinkError(f"Failed to initialise {TABLE_NAME} on {sanitized_dsn}: {exc}") from exc

        logger.info(
            "PostgreSQL sink ready",
            extra={"db_target": sanitized_dsn, "outcome": "success"}
        )
        return cls(pool, dsn)

    async def record(self, entry: QueryRecord) -> None:
        if self.pool is None:
            raise SinkError("PostgreSQL sink is closed")
        start_time = time.time()
        try:
            async with self.pool.acquire() as conn:
                await conn.execute(
                    SQL_INSERT_QUERY,
                    entry.timestamp,
                    entry.ip,
                    entry.domain,
                    entry.query,
                    entry.answer,
                )
        except _CONNECT_ERRORS as exc:
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
        if self.pool is None:
            return
        pool, self.pool = self.pool, None
        await pool.close()
        logger.info(
            "PostgreSQL sink closed",
            extra={"db_target": sanitize_dsn(self.dsn), "rows_affected": self.rows_written}
        )
