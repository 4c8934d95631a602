"""
Abstract base class for all rate limiting algorithms.
"""

import math
import time
from abc import ABC, abstractmethod
from dataclasses import dataclass
from enum import Enum
from typing import Any, Dict, Optional, Tuple

from loguru import logger

from ....cache.backends import CounterStore, Record
from ....clock import Clock, system_clock
from ....exceptions import RateLimitConfigError, StoreContentionError
from ..utils import format_reset_date


class Strategy(str, Enum):
    """The closed set of rate limiting strategies."""

    SLIDING_WINDOW = "sliding_window"
    TOKEN_BUCKET = "token_bucket"
    FIXED_WINDOW = "fixed_window"

    @classmethod
    def parse(
        cls, value: Any, fallback: Optional["Strategy"] = None
    ) -> "Strategy":
        """
        Convert a configuration value to a Strategy.

        Args:
            value: Strategy enum member or its string name
            fallback: Strategy used for unknown names; if None they raise

        Raises:
            RateLimitConfigError: If the name is unknown and no fallback is given
        """
        if isinstance(value, cls):
            return value
        try:
            return cls(str(value).lower())
        except ValueError:
            if fallback is not None:
                logger.warning(f"Unknown strategy '{value}', using {fallback.value}")
                return fallback
            available = ", ".join(s.value for s in cls)
            raise RateLimitConfigError(
                f"Unknown strategy '{value}'. Available: {available}"
            )


@dataclass(frozen=True)
class RateLimitDecision:
    """Result of a single rate limit attempt."""

    allowed: bool
    limit: int
    remaining: int
    reset: int

    def retry_after(self, now: Optional[float] = None) -> int:
        """Seconds until the caller should retry, never less than one."""
        now = time.time() if now is None else now
        return max(1, self.reset - int(math.ceil(now)))

    def to_headers(self) -> Dict[str, str]:
        """Quota visibility headers for an outgoing response."""
        return {
            "X-RateLimit-Limit": str(self.limit),
            "X-RateLimit-Remaining": str(self.remaining),
            "X-RateLimit-Reset": str(self.reset),
            "X-RateLimit-Reset-Date": format_reset_date(self.reset),
        }


# What a strategy decides for one attempt: the decision, plus the record and
# TTL to persist (None when nothing should be written).
Evaluation = Tuple[RateLimitDecision, Optional[Record], float]


class RateLimitAlgorithm(ABC):
    """
    Abstract base class for rate limiting algorithms.

    Subclasses implement ``_evaluate`` as a pure function of the stored record
    and the current time. This class owns the store round trips: it reads the
    record, asks the strategy for a decision, and commits the new record with
    an atomic compare-and-set, retrying when a concurrent writer won the race.
    """

    namespace = "algorithm"

    DEFAULT_MAX_RETRIES = 5

    def __init__(
        self,
        store: CounterStore,
        clock: Optional[Clock] = None,
        name: Optional[str] = None,
        max_retries: int = DEFAULT_MAX_RETRIES,
    ):
        """
        Initialize the rate limiting algorithm.

        Args:
            store: Counter store holding one record per key
            clock: Time source, defaults to the system clock
            name: Name identifier for this algorithm instance
            max_retries: Compare-and-set attempts before giving up on a contended key
        """
        if max_retries <= 0:
            raise RateLimitConfigError("max_retries must be positive")

        self.store = store
        self.clock = clock or system_clock
        self.name = name or self.namespace
        self.max_retries = max_retries
        self.created_at = self.clock.now()

        # Statistics
        self.total_requests = 0
        self.allowed_requests = 0
        self.denied_requests = 0
        self.conflicts = 0

    @abstractmethod
    def _evaluate(
        self,
        record: Optional[Record],
        now: float,
        limit: int,
        window: int,
        cost: int,
    ) -> Evaluation:
        """
        Decide one attempt from the stored record.

        Args:
            record: Record currently stored for the key, or None
            now: Current timestamp
            limit: Configured ceiling
            window: Window length in seconds
            cost: Quota units requested

        Returns:
            The decision, the record to persist (None to leave the store
            untouched) and its TTL in seconds
        """
        pass

    def storage_key(self, key: str) -> str:
        """Store key for ``key`` inside this strategy's namespace."""
        return f"{key}:{self.namespace}"

    @staticmethod
    def _validate(limit: int, window: int, cost: int) -> None:
        if not isinstance(limit, int) or isinstance(limit, bool) or limit <= 0:
            raise RateLimitConfigError(f"limit must be a positive integer, got {limit!r}")
        if not isinstance(window, int) or isinstance(window, bool) or window <= 0:
            raise RateLimitConfigError(
                f"window must be a positive integer, got {window!r}"
            )
        if not isinstance(cost, int) or isinstance(cost, bool) or cost < 1:
            raise RateLimitConfigError(f"cost must be an integer >= 1, got {cost!r}")

    async def attempt(
        self, key: str, limit: int, window: int, cost: int = 1
    ) -> RateLimitDecision:
        """
        Attempt to consume ``cost`` units of quota for ``key``.

        Args:
            key: Limiter key (already derived from the identifier)
            limit: Maximum units per window
            window: Window length in seconds
            cost: Units this attempt consumes

        Returns:
            RateLimitDecision describing the outcome

        Raises:
            RateLimitConfigError: If limit, window or cost are invalid
            StoreUnavailableError: If the store fails
            StoreContentionError: If the key stays contended through every retry
        """
        self._validate(limit, window, cost)
        storage_key = self.storage_key(key)

        for _ in range(self.max_retries):
            now = self.clock.now()
            record = await self.store.get(storage_key)
            decision, new_record, ttl = self._evaluate(record, now, limit, window, cost)

            if new_record is None:
                self.total_requests += 1
                if decision.allowed:
                    self.allowed_requests += 1
                else:
                    self.denied_requests += 1
                return decision

            if await self.store.compare_and_set(storage_key, record, new_record, ttl):
                self.total_requests += 1
                self.allowed_requests += 1
                return decision

            self.conflicts += 1
            logger.debug(f"Concurrent update on '{storage_key}', retrying")

        raise StoreContentionError(
            f"Could not commit rate limit update after {self.max_retries} attempts",
            operation="compare_and_set",
            key=storage_key,
        )

    async def reset(self, key: str) -> bool:
        """
        Remove the record for ``key``, restoring its full quota.

        Returns:
            True if a record existed
        """
        return await self.store.delete(self.storage_key(key))

    def get_algorithm_stats(self) -> Dict[str, Any]:
        """Get statistics about this algorithm instance."""
        success_rate = 0.0
        if self.total_requests > 0:
            success_rate = self.allowed_requests / self.total_requests

        return {
            "name": self.name,
            "algorithm": self.__class__.__name__,
            "total_requests": self.total_requests,
            "allowed_requests": self.allowed_requests,
            "denied_requests": self.denied_requests,
            "conflicts": self.conflicts,
            "success_rate": f"{success_rate:.2%}",
            "uptime_seconds": self.clock.now() - self.created_at,
        }
