"""
Clock abstraction used by the rate limiting strategies and counter stores.
"""

import time
from abc import ABC, abstractmethod


class Clock(ABC):
    """Source of wall-clock time in epoch seconds."""

    @abstractmethod
    def now(self) -> float:
        """Return the current time as epoch seconds."""
        pass


class SystemClock(Clock):
    """Clock backed by ``time.time()``."""

    def now(self) -> float:
        return time.time()


# Shared default instance
system_clock = SystemClock()
