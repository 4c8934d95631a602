"""
Sliding window rate limiting algorithm implementation.
"""

import math
from typing import Optional

from ....cache.backends import Record
from .base import Evaluation, RateLimitAlgorithm, RateLimitDecision


class SlidingWindowAlgorithm(RateLimitAlgorithm):
    """
    Sliding window rate limiting algorithm.

    Approximates a true sliding window with a single decaying counter per key
    instead of a log of request timestamps. The stored count shrinks linearly
    to zero as its window ages, so quota frees up smoothly over time with O(1)
    storage per client.

    The approximation can briefly admit slightly more than ``limit`` requests
    within one window after a long idle period.

    Record: ``{"count": float, "window_start": float}``, kept for two windows.
    """

    namespace = "sliding_window"

    @staticmethod
    def decay_factor(elapsed: float, window: int) -> float:
        """Fraction of a recorded count still in effect after ``elapsed`` seconds."""
        return max(0.0, 1.0 - elapsed / window)

    def _evaluate(
        self,
        record: Optional[Record],
        now: float,
        limit: int,
        window: int,
        cost: int,
    ) -> Evaluation:
        if record is None:
            count, window_start = 0.0, now
        else:
            count = float(record["count"])
            window_start = float(record["window_start"])

        elapsed = max(0.0, now - window_start)
        effective_count = count * self.decay_factor(elapsed, window)

        if effective_count + cost > limit:
            if record is not None and elapsed < window:
                reset = window_start + window
            else:
                reset = now + window
            decision = RateLimitDecision(
                allowed=False,
                limit=limit,
                remaining=max(0, math.floor(limit - effective_count)),
                reset=int(math.ceil(reset)),
            )
            return decision, None, 0

        new_count = effective_count + cost
        decision = RateLimitDecision(
            allowed=True,
            limit=limit,
            remaining=max(0, math.floor(limit - new_count)),
            reset=int(math.ceil(now + window)),
        )
        return decision, {"count": new_count, "window_start": now}, window * 2
