"""
Token bucket rate limiting algorithm implementation.
"""

import math
from typing import Optional

from ....cache.backends import Record
from .base import Evaluation, RateLimitAlgorithm, RateLimitDecision


class TokenBucketAlgorithm(RateLimitAlgorithm):
    """
    Token bucket rate limiting algorithm.

    Each client has a bucket holding at most ``limit`` tokens. Tokens refill
    continuously at ``limit / window`` tokens per second and every request
    takes ``cost`` tokens. A full bucket lets a client burst up to ``limit``
    requests after an idle period.

    Record: ``{"tokens": float, "last_refill": float}``.
    """

    namespace = "token_bucket"

    def _evaluate(
        self,
        record: Optional[Record],
        now: float,
        limit: int,
        window: int,
        cost: int,
    ) -> Evaluation:
        refill_rate = limit / window  # tokens per second

        if record is None:
            tokens, last_refill = float(limit), now
        else:
            tokens = float(record["tokens"])
            last_refill = float(record["last_refill"])

        time_passed = max(0.0, now - last_refill)
        tokens = min(float(limit), tokens + time_passed * refill_rate)

        if tokens < cost:
            # Time until enough tokens accumulate, counted from this refill
            time_to_tokens = (cost - tokens) / refill_rate
            decision = RateLimitDecision(
                allowed=False,
                limit=limit,
                remaining=math.floor(tokens),
                reset=int(math.ceil(now + time_to_tokens)),
            )
            return decision, None, 0

        tokens -= cost
        time_to_full = (limit - tokens) / refill_rate
        decision = RateLimitDecision(
            allowed=True,
            limit=limit,
            remaining=math.floor(tokens),
            reset=int(math.ceil(now + time_to_full)),
        )
        return decision, {"tokens": tokens, "last_refill": now}, window
