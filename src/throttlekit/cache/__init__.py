"""
Counter store package.

Provides the key-value backends shared by the rate limiting strategies:
- MemoryCounterStore for single-process deployments and tests
- RedisCounterStore for limits shared across processes and hosts
"""

from .backends import (
    CounterStore,
    MemoryCounterStore,
    Record,
    RedisCounterStore,
    create_store,
)

__all__ = [
    "CounterStore",
    "MemoryCounterStore",
    "RedisCounterStore",
    "Record",
    "create_store",
]
