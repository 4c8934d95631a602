"""
Fixed window rate limiting algorithm implementation.
"""

import math
from typing import Optional

from ....cache.backends import Record
from .base import Evaluation, RateLimitAlgorithm, RateLimitDecision


class FixedWindowAlgorithm(RateLimitAlgorithm):
    """
    Fixed window rate limiting algorithm.

    Time is divided into windows aligned to multiples of ``window`` seconds
    (not to the first request of a client), and each window has its own
    counter. This is the cheapest strategy, but a client can make up to
    ``2 * limit`` requests across a window boundary.

    Record: ``{"count": int, "window_end": int}``.
    """

    namespace = "fixed_window"

    @staticmethod
    def get_window_end(now: float, window: int) -> int:
        """End of the window containing ``now``; a boundary instant opens a new window."""
        return (math.floor(now / window) + 1) * window

    def _evaluate(
        self,
        record: Optional[Record],
        now: float,
        limit: int,
        window: int,
        cost: int,
    ) -> Evaluation:
        window_end = self.get_window_end(now, window)

        count = 0
        if record is not None and record.get("window_end") == window_end:
            count = int(record["count"])

        if count + cost > limit:
            decision = RateLimitDecision(
                allowed=False,
                limit=limit,
                remaining=max(0, limit - count),
                reset=window_end,
            )
            return decision, None, 0

        count += cost
        decision = RateLimitDecision(
            allowed=True,
            limit=limit,
            remaining=limit - count,
            reset=window_end,
        )
        return decision, {"count": count, "window_end": window_end}, window_end - now
