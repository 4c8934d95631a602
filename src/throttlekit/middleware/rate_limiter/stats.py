import time
from dataclasses import dataclass, field
from typing import Any, Dict, Optional


@dataclass
class RateLimitStats:
    """
    Statistics for rate limiter monitoring.

    Tracks how requests passing through a limiter were handled:
    allowed, rejected, skipped, or let through after a store failure.
    """

    total_requests: int = 0
    allowed_requests: int = 0
    rejected_requests: int = 0
    skipped_requests: int = 0
    store_errors: int = 0
    failed_open_requests: int = 0

    created_at: float = field(default_factory=time.time)
    last_request_time: Optional[float] = None

    def _touch(self) -> None:
        self.total_requests += 1
        self.last_request_time = time.time()

    def record_allowed(self) -> None:
        self._touch()
        self.allowed_requests += 1

    def record_rejected(self) -> None:
        self._touch()
        self.rejected_requests += 1

    def record_skipped(self) -> None:
        self._touch()
        self.skipped_requests += 1

    def record_store_error(self, failed_open: bool) -> None:
        """Record a store failure and whether the request was let through."""
        self._touch()
        self.store_errors += 1
        if failed_open:
            self.failed_open_requests += 1

    @property
    def success_rate(self) -> float:
        """Fraction of checked requests that were allowed."""
        checked = self.total_requests - self.skipped_requests
        if checked <= 0:
            return 1.0
        return (self.allowed_requests + self.failed_open_requests) / checked

    def reset(self) -> None:
        """Reset all counters."""
        self.total_requests = 0
        self.allowed_requests = 0
        self.rejected_requests = 0
        self.skipped_requests = 0
        self.store_errors = 0
        self.failed_open_requests = 0
        self.created_at = time.time()
        self.last_request_time = None

    def to_dict(self) -> Dict[str, Any]:
        """Convert stats to dictionary."""
        return {
            "total_requests": self.total_requests,
            "allowed_requests": self.allowed_requests,
            "rejected_requests": self.rejected_requests,
            "skipped_requests": self.skipped_requests,
            "store_errors": self.store_errors,
            "failed_open_requests": self.failed_open_requests,
            "success_rate": f"{self.success_rate:.2%}",
            "uptime_seconds": time.time() - self.created_at,
            "last_request_time": self.last_request_time,
        }
