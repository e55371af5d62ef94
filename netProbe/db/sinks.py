"""Result sink interface and backend selection."""
from __future__ import annotations

from typing import Protocol

from netProbe.scanner.models import QueryRecord

POSTGRES_SCHEMES = ("postgres://", "postgresql://")

# Shared by every backend; the table is append-only
TABLE_NAME = "dns_queries"
COLUMNS = ("timestamp", "ip", "domain", "query", "answer")


class SinkError(Exception):
    """Persistence failed, either at startup or for a single record."""


class ResultSink(Protocol):
    async def record(self, entry: QueryRecord) -> None:
        ...

    async def close(self) -> None:
        ...


def is_postgres_target(target: str) -> bool:
    return target.startswith(POSTGRES_SCHEMES)


async def open_sink(target: str) -> ResultSink:
    """Open the sink for ``target``: a PostgreSQL DSN or a SQLite file path."""
    if not target or not target.strip():
        raise SinkError("Persistence target is empty")
    if is_postgres_target(target):
        from netProbe.db.pg_probe import PostgresSink

        return await PostgresSink.open(target)

    from netProbe.db.sqlite import SQLiteSink

    return await SQLiteSink.open(target)
