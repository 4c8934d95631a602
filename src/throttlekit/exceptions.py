"""
Exceptions raised by the throttlekit package.
"""

from typing import Dict, Optional


class RateLimitError(Exception):
    """Base exception for all rate limiting errors."""

    pass


class RateLimitExceededError(RateLimitError):
    """
    Raised when a request is denied by its rate limit.

    This is the expected "busy" signal for the caller, not a system fault.

    Attributes:
        message: Denial text returned to the client
        retry_after: Seconds to wait before retrying, or None when disabled
        limit: The limit that was exceeded
        remaining: Quota left for the identifier (always 0 or close to it)
        reset: Epoch seconds when quota is expected to replenish
    """

    def __init__(
        self,
        message: str,
        retry_after: Optional[int] = None,
        limit: Optional[int] = None,
        remaining: int = 0,
        reset: Optional[int] = None,
    ):
        super().__init__(message)
        self.message = message
        self.retry_after = retry_after
        self.limit = limit
        self.remaining = remaining
        self.reset = reset

    @property
    def headers(self) -> Dict[str, str]:
        """Headers describing the denial."""
        headers: Dict[str, str] = {}
        if self.retry_after is not None:
            headers["Retry-After"] = str(self.retry_after)
        if self.limit is not None:
            headers["X-RateLimit-Limit"] = str(self.limit)
            headers["X-RateLimit-Remaining"] = str(self.remaining)
        if self.reset is not None:
            headers["X-RateLimit-Reset"] = str(self.reset)
        return headers


class RateLimitConfigError(RateLimitError):
    """Raised when there's an error in rate limiter configuration."""

    pass


class StoreUnavailableError(RateLimitError):
    """
    Raised when the counter store cannot be read or written.

    Attributes:
        operation: Store operation that failed (get, set, delete, ...)
        key: Store key involved, if any
    """

    def __init__(
        self, message: str, operation: Optional[str] = None, key: Optional[str] = None
    ):
        super().__init__(message)
        self.operation = operation
        self.key = key


class StoreContentionError(StoreUnavailableError):
    """
    Raised when a key stays contended through every compare-and-set retry.

    The store itself is healthy; concurrent writers kept winning the race.
    It is handled by the failure policy like any other store failure.
    """

    pass
