"""Admission gate bounding simultaneous remote calls."""

import asyncio
from types import TracebackType


class ConcurrencyLimiter:
    """Counting gate: at most ``limit`` holders at once.

    Waiters are woken in FIFO order, so a burst of hundreds of acquirers
    cannot starve an early one.
    """

    def __init__(self, limit: int = 10):
        if limit < 1:
            raise ValueError("Concurrency limit must be at least 1")
        self._limit = limit
        self._semaphore = asyncio.Semaphore(limit)
        self._in_flight = 0
        self._peak = 0

    @property
    def limit(self) -> int:
        return self._limit

    @property
    def in_flight(self) -> int:
        """Number of slots currently held."""
        return self._in_flight

    @property
    def peak(self) -> int:
        """Highest ``in_flight`` observed since creation or ``reset_peak``."""
        return self._peak

    def reset_peak(self) -> None:
        self._peak = self._in_flight

    async def acquire(self) -> None:
        """Wait until fewer than ``limit`` operations are in flight, then take a slot."""
        await self._semaphore.acquire()
        self._in_flight += 1
        if self._in_flight > self._peak:
            self._peak = self._in_flight

    def release(self) -> None:
        """Free a slot."""
        self._in_flight -= 1
        self._semaphore.release()

    async def __aenter__(self) -> "ConcurrencyLimiter":
        await self.acquire()
        return self

    async def __aexit__(
        self,
        exc_type: type[BaseException] | None,
        exc_val: BaseException | None,
        exc_tb: TracebackType | None,
    ) -> None:
        self.release()
