"""
Rate Limiter Package

Request throttling for FastAPI/Starlette applications with three strategies
(sliding window, token bucket, fixed window) running over a shared counter
store, configurable client identification, per-route limiter profiles and
fail-open/fail-closed handling of store outages.

Quick Start:
-----------

HTTP middleware:
    from fastapi import FastAPI
    from throttlekit.middleware.rate_limiter import RateLimitMiddleware, RateLimitConfig

    app = FastAPI()
    app.add_middleware(
        RateLimitMiddleware,
        config=RateLimitConfig(limit=100, window=60, identifier=["user", "ip"]),
    )

Explicit checks:
    from throttlekit.middleware.rate_limiter import RateLimiter

    limiter = RateLimiter()
    decision = await limiter.attempt("client_123", limit=100, window=60)
    if decision.allowed:
        # Process request
        pass

Shared Redis store:
    from throttlekit.cache import RedisCounterStore

    limiter = RateLimiter(config, store=RedisCounterStore("redis://localhost:6379"))
"""

from ...exceptions import (
    RateLimitConfigError,
    RateLimitError,
    RateLimitExceededError,
    StoreContentionError,
    StoreUnavailableError,
)

# Algorithms
from .algorithms import (
    AVAILABLE_ALGORITHMS,
    FixedWindowAlgorithm,
    RateLimitAlgorithm,
    RateLimitDecision,
    SlidingWindowAlgorithm,
    Strategy,
    TokenBucketAlgorithm,
    create_algorithm,
)

# Core components
from .core import LimiterProfile, RateLimitConfig, RateLimiter
from .middleware import (
    RateLimitMiddleware,
    create_rate_limit_middleware,
    rate_limit_exceeded_handler,
)
from .policies import FailurePolicy
from .stats import RateLimitStats

# Utilities
from .utils import (
    ClientIdentifier,
    default_key_generator,
    format_rate_limit_message,
    format_reset_date,
    hash_identifier,
    safe_identifier,
)

__all__ = [
    # Core classes
    "RateLimiter",
    "RateLimitConfig",
    "LimiterProfile",
    "FailurePolicy",
    "RateLimitStats",
    # Exceptions
    "RateLimitError",
    "RateLimitExceededError",
    "RateLimitConfigError",
    "StoreUnavailableError",
    "StoreContentionError",
    # Algorithms
    "RateLimitAlgorithm",
    "RateLimitDecision",
    "Strategy",
    "TokenBucketAlgorithm",
    "SlidingWindowAlgorithm",
    "FixedWindowAlgorithm",
    "create_algorithm",
    "AVAILABLE_ALGORITHMS",
    # Middleware
    "RateLimitMiddleware",
    "create_rate_limit_middleware",
    "rate_limit_exceeded_handler",
    # Utilities
    "ClientIdentifier",
    "default_key_generator",
    "format_rate_limit_message",
    "format_reset_date",
    "hash_identifier",
    "safe_identifier",
]
