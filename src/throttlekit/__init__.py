"""
throttlekit - request rate limiting for FastAPI and Starlette.
"""

from .clock import Clock, SystemClock, system_clock
from .exceptions import (
    RateLimitConfigError,
    RateLimitError,
    RateLimitExceededError,
    StoreContentionError,
    StoreUnavailableError,
)

__version__ = "0.1.0"

__all__ = [
    "Clock",
    "SystemClock",
    "system_clock",
    "RateLimitError",
    "RateLimitConfigError",
    "RateLimitExceededError",
    "StoreUnavailableError",
    "StoreContentionError",
    "__version__",
]
