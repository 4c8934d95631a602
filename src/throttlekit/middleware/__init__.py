"""
Middleware components for FastAPI/Starlette applications.
"""

from .rate_limiter import (
    RateLimitConfig,
    RateLimiter,
    RateLimitMiddleware,
    create_rate_limit_middleware,
    rate_limit_exceeded_handler,
)

__all__ = [
    "RateLimitConfig",
    "RateLimiter",
    "RateLimitMiddleware",
    "create_rate_limit_middleware",
    "rate_limit_exceeded_handler",
]
