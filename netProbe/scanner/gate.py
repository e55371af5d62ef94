"""Admission control for concurrent work units."""
from __future__ import annotations

import asyncio
from typing import Optional


class Permit:
    """
    One admitted slot of a ConcurrencyGate.

    Meant to be held in an ``async with`` block by the unit that owns it.
    Releasing is idempotent, so the slot goes back to the gate exactly once
    no matter how the block exits.

    Usage:
        permit = await gate.admit()
        async with permit:
            await do_work()
    """

    __slots__ = ("_gate", "_released")

    def __init__(self, gate: "ConcurrencyGate") -> None:
        self._gate = gate
        self._released = False

    @property
    def released(self) -> bool:
        return self._released

    def release(self) -> None:
        if self._released:
            return
        self._released = True
        self._gate._release()

    async def __aenter__(self) -> "Permit":
        return self

    async def __aexit__(self, exc_type, exc, tb) -> Optional[bool]:
        self.release()
        return None


class ConcurrencyGate:
    """Counting permit pool bounding how many units run at once."""

    def __init__(self, limit: int) -> None:
        if isinstance(limit, bool) or not isinstance(limit, int) or limit < 1:
            raise ValueError(f"Concurrency limit must be a positive integer, got {limit!r}")
        self.limit = limit
        self._semaphore = asyncio.Semaphore(limit)
        self._in_flight = 0
        self._peak = 0

    @property
    def in_flight(self) -> int:
        return self._in_flight

    @property
    def peak(self) -> int:
        return self._peak

    async def admit(self) -> Permit:
        """Wait for a free slot and return the permit holding it."""
        await self._semaphore.acquire()
        self._in_flight += 1
        self._peak = max(self._peak, self._in_flight)
        return Permit(self)

    def _release(self) -> None:
        self._in_flight -= 1
        self._semaphore.release()
