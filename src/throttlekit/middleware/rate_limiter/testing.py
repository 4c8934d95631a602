"""
Test doubles for code that uses the rate limiter.

``ManualClock`` makes window arithmetic deterministic and
``FailingCounterStore`` simulates outages and write contention.
"""

from typing import Optional

from ...cache.backends import CounterStore, MemoryCounterStore, Record
from ...clock import Clock
from ...exceptions import StoreUnavailableError


class ManualClock(Clock):
    """Clock that only moves when told to."""

    def __init__(self, start: float = 1_000_000.0):
        self._now = float(start)

    def now(self) -> float:
        return self._now

    def advance(self, seconds: float) -> float:
        """Move the clock forward and return the new time."""
        self._now += seconds
        return self._now

    def set(self, timestamp: float) -> None:
        self._now = float(timestamp)


class FailingCounterStore(CounterStore):
    """
    Counter store wrapper that fails on demand.

    Args:
        inner: Store that serves requests while the wrapper is healthy
        available: Start in the healthy state
        conflicts: Number of compare-and-set calls to reject before
            delegating to ``inner``
    """

    def __init__(
        self,
        inner: Optional[CounterStore] = None,
        available: bool = True,
        conflicts: int = 0,
    ):
        self.inner = inner if inner is not None else MemoryCounterStore()
        self.available = available
        self.conflicts = conflicts
        self.calls = 0

    def _check(self, operation: str, key: Optional[str] = None) -> None:
        self.calls += 1
        if not self.available:
            raise StoreUnavailableError(
                "Simulated store outage", operation=operation, key=key
            )

    async def get(self, key: str) -> Optional[Record]:
        self._check("get", key)
        return await self.inner.get(key)

    async def set(self, key: str, record: Record, ttl: float) -> None:
        self._check("set", key)
        await self.inner.set(key, record, ttl)

    async def delete(self, key: str) -> bool:
        self._check("delete", key)
        return await self.inner.delete(key)

    async def compare_and_set(
        self, key: str, expected: Optional[Record], record: Record, ttl: float
    ) -> bool:
        self._check("compare_and_set", key)
        if self.conflicts > 0:
            self.conflicts -= 1
            return False
        return await self.inner.compare_and_set(key, expected, record, ttl)

    async def close(self) -> None:
        await self.inner.close()
