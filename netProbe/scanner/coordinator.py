"""Bounded-concurrency scan loop: one work unit per address, results to a sink."""
from __future__ import annotations

import asyncio
import logging
import time
import uuid
from collections import Counter
from dataclasses import dataclass, field
from typing import Any, Dict, Iterable, Optional, Sequence, Set

from netProbe.db.sinks import ResultSink, SinkError
from netProbe.scanner.addresses import IPAddress
from netProbe.scanner.dispatcher import QueryDispatcher, QueryError
from netProbe.scanner.gate import ConcurrencyGate, Permit
from netProbe.scanner.models import QueryRecord, QueryTask
from netProbe.logging_config import get_logger, get_scan_id, reset_scan_id, set_scan_id

logger = get_logger("scanner")


@dataclass
class ScanStats:
    """Counters for one run. Only mutated from the event loop thread."""
    addresses: int = 0
    queries: int = 0
    records: int = 0
    failures: Counter = field(default_factory=Counter)
    sink_errors: int = 0
    unit_errors: int = 0
    peak_in_flight: int = 0
    duration: float = 0.0

    @property
    def query_failures(self) -> int:
        return sum(self.failures.values())

    def as_dict(self) -> Dict[str, Any]:
        return {
            "addresses": self.addresses,
            "queries": self.queries,
            "records": self.records,
            "query_failures": dict(self.failures),
            "sink_errors": self.sink_errors,
            "unit_errors": self.unit_errors,
            "peak_in_flight": self.peak_in_flight,
            "duration": round(self.duration, 3),
        }


class ScanCoordinator:
    """
    Runs one work unit per address under a fixed concurrency ceiling.

    A unit queries every configured domain against its address, one after
    the other and in order, and writes each successful answer to the sink
    before sending the next query. Query and sink failures stay inside the
    unit that hit them.
    """

    def __init__(
        self,
        dispatcher: QueryDispatcher,
        sink: ResultSink,
        domains: Sequence[str],
        concurrency: int,
        *,
        timeout: float,
        log_failures: bool = False,
    ) -> None:
        if not domains:
            raise ValueError("At least one domain is required")
        if timeout <= 0:
            raise ValueError(f"Timeout must be positive, got {timeout!r}")
        self.dispatcher = dispatcher
        self.sink = sink
        self.domains = tuple(domains)
        self.timeout = timeout
        self.gate = ConcurrencyGate(concurrency)
        self._failure_level = logging.INFO if log_failures else logging.DEBUG

    async def run(self, addresses: Iterable[IPAddress]) -> ScanStats:
        """Scan every address and return once all units have drained."""
        stats = ScanStats()
        token: Optional[Any] = None
        if not get_scan_id():
            token = set_scan_id(uuid.uuid4().hex)

        logger.info(
            "Scan starting",
            extra={
                "state": "starting",
                "concurrency": self.gate.limit,
                "timeout": self.timeout,
                "domain": ",".join(self.domains),
            }
        )
        start_time = time.time()
        pending: Set[asyncio.Task] = set()
        try:
            for address in addresses:
                permit = await self.gate.admit()
                try:
                    task = asyncio.create_task(self._unit(permit, str(address), stats))
                except BaseException:
                    permit.release()
                    raise
                stats.addresses += 1
                pending.add(task)
                task.add_done_callback(pending.discard)
        finally:
            # Barrier: nothing is written once run() has returned, even when
            # the address source raised partway
            while pending:
                await asyncio.gather(*pending, return_exceptions=True)
            stats.peak_in_flight = self.gate.peak
            stats.duration = time.time() - start_time
            logger.info(
                "Scan completed",
                extra={"state": "completed", "stats": stats.as_dict()}
            )
            if token is not None:
                reset_scan_id(token)
        return stats

    async def _unit(self, permit: Permit, target: str, stats: ScanStats) -> None:
        async with permit:
            for domain in self.domains:
                try:
                    await self._query(QueryTask(target=target, domain=domain), stats)
                except Exception as exc:
                    stats.unit_errors += 1
                    logger.error(
                        f"Query raised unexpectedly: {exc}",
                        exc_info=True,
                        extra={
                            "target": target,
                            "domain": domain,
                            "outcome": "error",
                            "error_type": type(exc).__name__,
                        }
                    )

    async def _query(self, task: QueryTask, stats: ScanStats) -> None:
        stats.queries += 1
        try:
            result = await self.dispatcher.exchange(task.target, task.domain, self.timeout)
        except QueryError as exc:
            stats.failures[exc.kind] += 1
            logger.log(
                self._failure_level,
                f"Query failed: {exc}",
                extra={
                    "target": task.target,
                    "domain": task.domain,
                    "outcome": exc.kind,
                    "error_type": type(exc).__name__,
                }
            )
            return

        try:
            await self.sink.record(QueryRecord.from_result(task, result))
        except SinkError as exc:
            stats.sink_errors += 1
            logger.error(
                f"Failed to record result: {exc}",
                extra={
                    "target": task.target,
                    "domain": task.domain,
                    "outcome": "error",
                    "error_type": type(exc).__name__,
                }
            )
            return
        stats.records += 1


async def run_scan(
    addresses: Iterable[IPAddress],
    domains: Sequence[str],
    dispatcher: QueryDispatcher,
    sink: ResultSink,
    concurrency_limit: int,
    timeout: float = 5.0,
    *,
    log_failures: bool = False,
) -> ScanStats:
    """Scan ``addresses`` for ``domains`` (primary first) and wait for full drain."""
    coordinator = ScanCoordinator(
        dispatcher,
        sink,
        domains,
        concurrency_limit,
        timeout=timeout,
        log_failures=log_failures,
    )
    return await coordinator.run(addresses)
