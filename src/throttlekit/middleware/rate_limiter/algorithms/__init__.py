"""
Rate limiting algorithms package.

Available algorithms:
- SlidingWindowAlgorithm: Decaying counter approximating a sliding window
- TokenBucketAlgorithm: Allows bursts while maintaining an average rate
- FixedWindowAlgorithm: Cheapest, counters reset at aligned window boundaries

Example usage:
    from throttlekit.cache import MemoryCounterStore
    from throttlekit.middleware.rate_limiter.algorithms import TokenBucketAlgorithm

    algorithm = TokenBucketAlgorithm(MemoryCounterStore())
    decision = await algorithm.attempt("client_123", limit=100, window=60)
    if decision.allowed:
        # Process request
        pass
"""

from typing import Any, Dict, Optional, Type

from ....cache.backends import CounterStore
from ....clock import Clock
from .base import RateLimitAlgorithm, RateLimitDecision, Strategy
from .fixed_window import FixedWindowAlgorithm
from .sliding_window import SlidingWindowAlgorithm
from .token_bucket import TokenBucketAlgorithm

AVAILABLE_ALGORITHMS: Dict[Strategy, Type[RateLimitAlgorithm]] = {
    Strategy.SLIDING_WINDOW: SlidingWindowAlgorithm,
    Strategy.TOKEN_BUCKET: TokenBucketAlgorithm,
    Strategy.FIXED_WINDOW: FixedWindowAlgorithm,
}


def create_algorithm(
    strategy: Any,
    store: CounterStore,
    clock: Optional[Clock] = None,
    **kwargs,
) -> RateLimitAlgorithm:
    """
    Factory function to create rate limiting algorithms.

    Args:
        strategy: Strategy enum member or name
        store: Counter store the algorithm reads and writes
        clock: Optional time source
        **kwargs: Additional algorithm parameters

    Returns:
        Configured rate limiting algorithm

    Raises:
        RateLimitConfigError: If the strategy is not recognized
    """
    algorithm_class = AVAILABLE_ALGORITHMS[Strategy.parse(strategy)]
    return algorithm_class(store, clock=clock, **kwargs)


__all__ = [
    "RateLimitAlgorithm",
    "RateLimitDecision",
    "Strategy",
    "SlidingWindowAlgorithm",
    "TokenBucketAlgorithm",
    "FixedWindowAlgorithm",
    "AVAILABLE_ALGORITHMS",
    "create_algorithm",
]
