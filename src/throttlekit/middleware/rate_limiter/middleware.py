"""
HTTP middleware for rate limiting FastAPI and Starlette applications.
"""

from typing import Any, Callable, Dict, Optional

from fastapi import Request, Response, status
from fastapi.responses import JSONResponse
from loguru import logger
from starlette.middleware.base import BaseHTTPMiddleware
from starlette.types import ASGIApp

from ...cache.backends import CounterStore
from ...clock import Clock
from ...exceptions import RateLimitExceededError, StoreUnavailableError
from .core import RateLimitConfig, RateLimiter


def rate_limit_error_response(exc: RateLimitExceededError) -> JSONResponse:
    """Build the 429 response for a denied request."""
    content = {
        "error": {
            "code": "rate_limit_exceeded",
            "message": exc.message,
            "retry_after": exc.retry_after,
        }
    }
    return JSONResponse(
        status_code=status.HTTP_429_TOO_MANY_REQUESTS,
        content=content,
        headers=exc.headers,
    )


def store_unavailable_response() -> JSONResponse:
    """Build the 503 response for a fail-closed store outage."""
    return JSONResponse(
        status_code=status.HTTP_503_SERVICE_UNAVAILABLE,
        content={
            "error": {
                "code": "rate_limiter_unavailable",
                "message": "Rate limiting service unavailable",
            }
        },
    )


async def rate_limit_exceeded_handler(request: Request, exc: Exception) -> Response:
    """
    Exception handler for apps that call ``RateLimiter.check`` from a dependency.

    Register it with ``app.add_exception_handler`` for both
    ``RateLimitExceededError`` and ``StoreUnavailableError``.
    """
    if isinstance(exc, RateLimitExceededError):
        return rate_limit_error_response(exc)
    if isinstance(exc, StoreUnavailableError):
        return store_unavailable_response()
    raise exc


class RateLimitMiddleware(BaseHTTPMiddleware):
    """
    Rate limiting middleware for FastAPI/Starlette applications.

    Every request goes through ``RateLimiter.check``. Allowed responses get
    quota headers, denied requests get a 429 and store outages under a
    fail-closed policy get a 503.
    """

    def __init__(
        self,
        app: ASGIApp,
        config: Optional[RateLimitConfig] = None,
        limiter: Optional[RateLimiter] = None,
        store: Optional[CounterStore] = None,
        clock: Optional[Clock] = None,
    ):
        """
        Initialize the rate limiting middleware.

        Args:
            app: ASGI application
            config: Rate limiting configuration, ignored when ``limiter`` is given
            limiter: Pre-built rate limiter to share with the application
            store: Counter store for a limiter built from ``config``
            clock: Time source for a limiter built from ``config``
        """
        super().__init__(app)
        self.limiter = limiter or RateLimiter(
            config, store=store, clock=clock, name="middleware"
        )
        self.config = self.limiter.config

    async def dispatch(self, request: Request, call_next: Callable) -> Response:
        """Process request with rate limiting."""
        try:
            decision = await self.limiter.check(request)
        except RateLimitExceededError as e:
            return rate_limit_error_response(e)
        except StoreUnavailableError:
            return store_unavailable_response()

        response = await call_next(request)

        if decision is not None and self.config.headers:
            for name, value in decision.to_headers().items():
                response.headers[name] = value

        return response

    def get_stats(self) -> Dict[str, Any]:
        """Get rate limiter statistics."""
        return self.limiter.get_stats()


def create_rate_limit_middleware(
    limit: int = 60,
    window: int = 60,
    strategy: str = "sliding_window",
    store: Optional[CounterStore] = None,
    clock: Optional[Clock] = None,
    **kwargs,
) -> Callable[[ASGIApp], RateLimitMiddleware]:
    """
    Factory function to create rate limiting middleware with simple configuration.

    Args:
        limit: Number of requests allowed per window
        window: Time window in seconds
        strategy: Rate limiting strategy to use
        store: Counter store shared by the limiter
        clock: Time source
        **kwargs: Additional RateLimitConfig options

    Returns:
        Middleware factory function
    """
    config = RateLimitConfig(limit=limit, window=window, strategy=strategy, **kwargs)
    logger.debug(f"Creating rate limit middleware: {limit} req/{window}s using {strategy}")

    def middleware_factory(app: ASGIApp) -> RateLimitMiddleware:
        return RateLimitMiddleware(app, config, store=store, clock=clock)

    return middleware_factory
