"""
Counter store implementations for the rate limiter.

A counter store is the shared key-value resource every rate limiting
strategy reads and writes. Records are small JSON-compatible dictionaries.
Backends must offer an atomic compare-and-set so that concurrent attempts on
the same key never lose updates; both backends here do.
"""

import asyncio
import json
import math
from abc import ABC, abstractmethod
from collections import OrderedDict
from typing import Any, Dict, Optional, Tuple

import redis.asyncio as redis
from loguru import logger
from redis.exceptions import RedisError

from ..clock import Clock, system_clock
from ..exceptions import (
    RateLimitConfigError,
    StoreUnavailableError,
)
from .redis_lua import COMPARE_AND_SET_SCRIPT

Record = Dict[str, Any]


class CounterStore(ABC):
    """Abstract base class for counter stores."""

    @abstractmethod
    async def get(self, key: str) -> Optional[Record]:
        """Get a record, or None when it is absent or expired."""
        pass

    @abstractmethod
    async def set(self, key: str, record: Record, ttl: float) -> None:
        """Store a record with an expiry in seconds."""
        pass

    @abstractmethod
    async def delete(self, key: str) -> bool:
        """Delete a record. Returns True if a record was removed."""
        pass

    @abstractmethod
    async def compare_and_set(
        self, key: str, expected: Optional[Record], record: Record, ttl: float
    ) -> bool:
        """
        Atomically replace a record if it still equals ``expected``.

        Args:
            key: Record key
            expected: Record previously read, or None if the key was absent
            record: New record to store
            ttl: Expiry in seconds

        Returns:
            True if the record was written, False if another writer got there first
        """
        pass

    async def close(self) -> None:
        """Release any resources held by the store."""
        pass

    @staticmethod
    def ttl_seconds(ttl: float) -> int:
        """Round a TTL up to whole seconds, never below one."""
        return max(1, int(math.ceil(ttl)))


class MemoryCounterStore(CounterStore):
    """
    In-process counter store.

    Suitable for single-instance deployments and tests. Expiry is evaluated
    against the injected clock, and a bounded number of entries is kept with
    oldest-first eviction.
    """

    DEFAULT_MAX_ENTRIES = 10000

    def __init__(
        self, clock: Optional[Clock] = None, max_entries: int = DEFAULT_MAX_ENTRIES
    ):
        if max_entries <= 0:
            raise RateLimitConfigError("max_entries must be positive")

        self.clock = clock or system_clock
        self.max_entries = max_entries
        self._entries: "OrderedDict[str, Tuple[Record, float]]" = OrderedDict()
        self._lock = asyncio.Lock()
        self.evictions = 0

    def _read(self, key: str) -> Optional[Record]:
        entry = self._entries.get(key)
        if entry is None:
            return None

        record, expires_at = entry
        if self.clock.now() >= expires_at:
            del self._entries[key]
            return None
        return record

    def _write(self, key: str, record: Record, ttl: float) -> None:
        self._entries[key] = (dict(record), self.clock.now() + self.ttl_seconds(ttl))
        self._entries.move_to_end(key)
        self._enforce_max_entries()

    def _enforce_max_entries(self) -> None:
        if len(self._entries) <= self.max_entries:
            return

        # Expired entries go first, then the least recently written ones
        now = self.clock.now()
        for key in [k for k, (_, exp) in self._entries.items() if exp <= now]:
            del self._entries[key]

        while len(self._entries) > self.max_entries:
            self._entries.popitem(last=False)
            self.evictions += 1

    async def get(self, key: str) -> Optional[Record]:
        async with self._lock:
            record = self._read(key)
            return dict(record) if record is not None else None

    async def set(self, key: str, record: Record, ttl: float) -> None:
        async with self._lock:
            self._write(key, record, ttl)

    async def delete(self, key: str) -> bool:
        async with self._lock:
            return self._entries.pop(key, None) is not None

    async def compare_and_set(
        self, key: str, expected: Optional[Record], record: Record, ttl: float
    ) -> bool:
        async with self._lock:
            if self._read(key) != expected:
                return False
            self._write(key, record, ttl)
            return True

    def __len__(self) -> int:
        return len(self._entries)


class RedisCounterStore(CounterStore):
    """
    Redis-based counter store for limits shared across processes.

    Records are stored as canonical JSON so that a record read and written
    back compares byte-for-byte equal inside the compare-and-set script.
    """

    def __init__(
        self,
        redis_url: str = "redis://localhost:6379",
        redis_client: Optional[Any] = None,
        key_prefix: str = "throttlekit:",
    ):
        self.redis_url = redis_url
        self.key_prefix = key_prefix
        self._redis = redis_client

    async def _get_redis(self):
        """Get or create the Redis connection."""
        if self._redis is None:
            self._redis = redis.from_url(self.redis_url)
            logger.info(f"Connected counter store to {self.redis_url}")
        return self._redis

    def _make_key(self, key: str) -> str:
        return f"{self.key_prefix}{key}"

    @staticmethod
    def _serialize(record: Record) -> str:
        return json.dumps(record, sort_keys=True, separators=(",", ":"))

    @staticmethod
    def _deserialize(data: Any) -> Record:
        if isinstance(data, bytes):
            data = data.decode("utf-8")
        record = json.loads(data)
        if not isinstance(record, dict):
            raise ValueError(f"expected a JSON object, got {type(record).__name__}")
        return record

    def _unavailable(
        self, operation: str, key: str, error: Exception
    ) -> StoreUnavailableError:
        logger.error(f"Redis {operation} error for key {key}: {error}")
        return StoreUnavailableError(
            f"Counter store {operation} failed: {error}", operation=operation, key=key
        )

    async def get(self, key: str) -> Optional[Record]:
        try:
            redis_client = await self._get_redis()
            data = await redis_client.get(self._make_key(key))
            return self._deserialize(data) if data is not None else None
        except (RedisError, ValueError) as e:
            raise self._unavailable("get", key, e) from e

    async def set(self, key: str, record: Record, ttl: float) -> None:
        try:
            redis_client = await self._get_redis()
            await redis_client.set(
                self._make_key(key), self._serialize(record), ex=self.ttl_seconds(ttl)
            )
        except RedisError as e:
            raise self._unavailable("set", key, e) from e

    async def delete(self, key: str) -> bool:
        try:
            redis_client = await self._get_redis()
            result = await redis_client.delete(self._make_key(key))
            return result > 0
        except RedisError as e:
            raise self._unavailable("delete", key, e) from e

    async def compare_and_set(
        self, key: str, expected: Optional[Record], record: Record, ttl: float
    ) -> bool:
        try:
            redis_client = await self._get_redis()
            result = await redis_client.eval(
                COMPARE_AND_SET_SCRIPT,
                1,
                self._make_key(key),
                "1" if expected is not None else "0",
                self._serialize(expected) if expected is not None else "",
                self._serialize(record),
                self.ttl_seconds(ttl),
            )
            return int(result) == 1
        except RedisError as e:
            raise self._unavailable("compare_and_set", key, e) from e

    async def close(self) -> None:
        """Close the Redis connection."""
        if self._redis is not None:
            await self._redis.aclose()
            self._redis = None


def create_store(backend_type: str, **kwargs) -> CounterStore:
    """
    Factory function to create counter stores.

    Args:
        backend_type: Type of store ('memory' or 'redis')
        **kwargs: Store-specific configuration

    Returns:
        Configured counter store instance
    """
    if backend_type == "memory":
        return MemoryCounterStore(**kwargs)
    elif backend_type == "redis":
        return RedisCounterStore(**kwargs)
    else:
        raise RateLimitConfigError(f"Unknown counter store type: {backend_type}")
