import math

import pytest

from throttlekit.exceptions import (
    RateLimitConfigError,
    StoreContentionError,
    StoreUnavailableError,
)
from throttlekit.middleware.rate_limiter.algorithms import (
    AVAILABLE_ALGORITHMS,
    FixedWindowAlgorithm,
    RateLimitDecision,
    SlidingWindowAlgorithm,
    Strategy,
    TokenBucketAlgorithm,
    create_algorithm,
)
from throttlekit.middleware.rate_limiter.testing import FailingCounterStore

ALL = [SlidingWindowAlgorithm, TokenBucketAlgorithm, FixedWindowAlgorithm]


@pytest.mark.asyncio
@pytest.mark.parametrize("algorithm_class", ALL)
async def test_quota_monotonicity(algorithm_class, store, clock):
    algorithm = algorithm_class(store, clock=clock)
    for n in range(1, 5):
        decision = await algorithm.attempt("k", limit=10, window=60, cost=2)
        assert decision.allowed
        assert decision.remaining == 10 - n * 2


@pytest.mark.asyncio
@pytest.mark.parametrize("algorithm_class", ALL)
async def test_denial_does_not_consume(algorithm_class, store, clock):
    algorithm = algorithm_class(store, clock=clock)
    await algorithm.attempt("k", limit=3, window=60, cost=2)
    before = await store.get(algorithm.storage_key("k"))

    denied = await algorithm.attempt("k", limit=3, window=60, cost=2)
    assert not denied.allowed
    assert await store.get(algorithm.storage_key("k")) == before

    allowed = await algorithm.attempt("k", limit=3, window=60, cost=1)
    assert allowed.allowed
    assert allowed.remaining == 0


@pytest.mark.asyncio
@pytest.mark.parametrize("algorithm_class", ALL)
async def test_keys_are_isolated(algorithm_class, store, clock):
    algorithm = algorithm_class(store, clock=clock)
    await algorithm.attempt("a", limit=1, window=60)
    assert not (await algorithm.attempt("a", limit=1, window=60)).allowed
    assert (await algorithm.attempt("b", limit=1, window=60)).allowed


@pytest.mark.asyncio
@pytest.mark.parametrize("algorithm_class", ALL)
async def test_reset_restores_full_quota(algorithm_class, store, clock):
    algorithm = algorithm_class(store, clock=clock)
    await algorithm.attempt("k", limit=2, window=60)
    await algorithm.attempt("k", limit=2, window=60)

    assert await algorithm.reset("k") is True
    decision = await algorithm.attempt("k", limit=2, window=60)
    assert decision.allowed
    assert decision.remaining == 1
    assert await algorithm.reset("missing") is False


@pytest.mark.asyncio
@pytest.mark.parametrize("algorithm_class", ALL)
async def test_cost_above_limit_always_denied(algorithm_class, store, clock):
    algorithm = algorithm_class(store, clock=clock)
    decision = await algorithm.attempt("k", limit=5, window=60, cost=6)
    assert not decision.allowed
    assert decision.remaining <= decision.limit
    assert await store.get(algorithm.storage_key("k")) is None


@pytest.mark.asyncio
@pytest.mark.parametrize(
    "limit,window,cost",
    [(0, 60, 1), (10, 0, 1), (10, 60, 0), (-1, 60, 1), (10, 60, True)],
)
async def test_invalid_arguments_raise_before_store_access(limit, window, cost, clock):
    store = FailingCounterStore(available=False)
    algorithm = SlidingWindowAlgorithm(store, clock=clock)
    with pytest.raises(RateLimitConfigError):
        await algorithm.attempt("k", limit=limit, window=window, cost=cost)
    assert store.calls == 0


# Sliding window


@pytest.mark.asyncio
async def test_sliding_window_two_request_scenario(store, clock):
    algorithm = SlidingWindowAlgorithm(store, clock=clock)

    first = await algorithm.attempt("a", limit=2, window=60)
    second = await algorithm.attempt("a", limit=2, window=60)
    third = await algorithm.attempt("a", limit=2, window=60)

    assert (first.allowed, first.remaining) == (True, 1)
    assert (second.allowed, second.remaining) == (True, 0)
    assert (third.allowed, third.remaining) == (False, 0)


@pytest.mark.asyncio
async def test_sliding_window_decay_bound(store, clock):
    algorithm = SlidingWindowAlgorithm(store, clock=clock)
    for _ in range(5):
        await algorithm.attempt("k", limit=10, window=60)

    clock.advance(30)
    decision = await algorithm.attempt("k", limit=10, window=60)

    assert decision.allowed
    assert 4 < decision.remaining <= 9


@pytest.mark.asyncio
async def test_sliding_window_denial_reset_is_end_of_current_window(store, clock):
    algorithm = SlidingWindowAlgorithm(store, clock=clock)
    await algorithm.attempt("k", limit=1, window=60)
    clock.advance(10)

    decision = await algorithm.attempt("k", limit=1, window=60)

    assert not decision.allowed
    assert decision.reset == int(clock.now()) - 10 + 60


@pytest.mark.asyncio
async def test_sliding_window_fully_decays(store, clock):
    algorithm = SlidingWindowAlgorithm(store, clock=clock)
    for _ in range(3):
        await algorithm.attempt("k", limit=3, window=60)

    clock.advance(60)
    decision = await algorithm.attempt("k", limit=3, window=60)

    assert decision.allowed
    assert decision.remaining == 2


def test_sliding_window_decay_factor():
    assert SlidingWindowAlgorithm.decay_factor(0, 60) == 1.0
    assert SlidingWindowAlgorithm.decay_factor(30, 60) == 0.5
    assert SlidingWindowAlgorithm.decay_factor(90, 60) == 0.0


@pytest.mark.asyncio
async def test_sliding_window_record_ttl_is_two_windows(store, clock):
    algorithm = SlidingWindowAlgorithm(store, clock=clock)
    await algorithm.attempt("k", limit=5, window=60)

    clock.advance(119)
    assert await store.get(algorithm.storage_key("k")) is not None
    clock.advance(1)
    assert await store.get(algorithm.storage_key("k")) is None


# Token bucket


@pytest.mark.asyncio
async def test_token_bucket_refill_scenario(store, clock):
    algorithm = TokenBucketAlgorithm(store, clock=clock)
    drained = await algorithm.attempt("k", limit=10, window=10, cost=10)
    assert (drained.allowed, drained.remaining) == (True, 0)

    clock.advance(5)
    decision = await algorithm.attempt("k", limit=10, window=10, cost=1)

    assert decision.allowed
    assert decision.remaining == 4


@pytest.mark.asyncio
async def test_token_bucket_denial_reset_counts_from_refill(store, clock):
    algorithm = TokenBucketAlgorithm(store, clock=clock)
    await algorithm.attempt("k", limit=10, window=10, cost=10)
    clock.advance(2)

    decision = await algorithm.attempt("k", limit=10, window=10, cost=5)

    assert not decision.allowed
    assert decision.remaining == 2
    # 3 more tokens at 1 token/sec
    assert decision.reset == int(clock.now()) + 3


@pytest.mark.asyncio
async def test_token_bucket_caps_at_limit(store, clock):
    algorithm = TokenBucketAlgorithm(store, clock=clock)
    await algorithm.attempt("k", limit=10, window=10, cost=1)
    clock.advance(1000)

    decision = await algorithm.attempt("k", limit=10, window=10, cost=1)

    assert decision.remaining == 9
    assert decision.reset == int(clock.now()) + 1


# Fixed window


def test_fixed_window_end_alignment():
    assert FixedWindowAlgorithm.get_window_end(61, 60) == 120
    assert FixedWindowAlgorithm.get_window_end(119.9, 60) == 120
    assert FixedWindowAlgorithm.get_window_end(120, 60) == 180


@pytest.mark.asyncio
async def test_fixed_window_rollover(store, clock):
    algorithm = FixedWindowAlgorithm(store, clock=clock)
    clock.set(1_000_020 + 59.5)
    await algorithm.attempt("k", limit=1, window=60)
    denied = await algorithm.attempt("k", limit=1, window=60)
    assert not denied.allowed
    assert denied.reset == 1_000_080

    clock.set(1_000_080 + 0.5)
    decision = await algorithm.attempt("k", limit=1, window=60)

    assert decision.allowed
    assert decision.remaining == 0
    assert decision.reset == 1_000_140


@pytest.mark.asyncio
async def test_fixed_window_boundary_instant_opens_new_window(store, clock):
    algorithm = FixedWindowAlgorithm(store, clock=clock)
    decision = await algorithm.attempt("k", limit=5, window=60)
    assert decision.reset == int(clock.now()) + 60


# Concurrency control


@pytest.mark.asyncio
async def test_conflicts_are_retried(clock):
    store = FailingCounterStore(conflicts=2)
    algorithm = FixedWindowAlgorithm(store, clock=clock)

    decision = await algorithm.attempt("k", limit=5, window=60)

    assert decision.allowed
    assert algorithm.conflicts == 2
    assert algorithm.get_algorithm_stats()["conflicts"] == 2


@pytest.mark.asyncio
async def test_persistent_conflicts_raise_contention_error(clock):
    store = FailingCounterStore(conflicts=100)
    algorithm = TokenBucketAlgorithm(store, clock=clock, max_retries=3)

    with pytest.raises(StoreContentionError) as exc_info:
        await algorithm.attempt("k", limit=5, window=60)
    assert exc_info.value.operation == "compare_and_set"


@pytest.mark.asyncio
async def test_store_failure_propagates(clock):
    algorithm = SlidingWindowAlgorithm(FailingCounterStore(available=False), clock=clock)
    with pytest.raises(StoreUnavailableError):
        await algorithm.attempt("k", limit=5, window=60)


# Decision and registry


def test_decision_retry_after_and_headers():
    decision = RateLimitDecision(allowed=False, limit=10, remaining=0, reset=1_000_060)

    assert decision.retry_after(1_000_000.2) == 59
    assert decision.retry_after(1_000_100) == 1

    headers = decision.to_headers()
    assert headers["X-RateLimit-Limit"] == "10"
    assert headers["X-RateLimit-Remaining"] == "0"
    assert headers["X-RateLimit-Reset"] == "1000060"
    assert headers["X-RateLimit-Reset-Date"].startswith("1970-01-12T13:47:40")


def test_strategy_parse():
    assert Strategy.parse("token_bucket") is Strategy.TOKEN_BUCKET
    assert Strategy.parse("FIXED_WINDOW") is Strategy.FIXED_WINDOW
    assert Strategy.parse("bogus", Strategy.FIXED_WINDOW) is Strategy.FIXED_WINDOW
    with pytest.raises(RateLimitConfigError):
        Strategy.parse("bogus")


def test_create_algorithm(store, clock):
    algorithm = create_algorithm("sliding_window", store, clock=clock, name="api")
    assert isinstance(algorithm, SlidingWindowAlgorithm)
    assert algorithm.name == "api"
    assert set(AVAILABLE_ALGORITHMS) == set(Strategy)
    assert algorithm.storage_key("rate_limit_x") == "rate_limit_x:sliding_window"


@pytest.mark.asyncio
async def test_remaining_never_exceeds_limit(store, clock):
    for algorithm_class in ALL:
        algorithm = algorithm_class(store, clock=clock)
        for _ in range(4):
            decision = await algorithm.attempt("bound", limit=3, window=30)
            assert 0 <= decision.remaining <= decision.limit
            assert decision.reset >= math.floor(clock.now())
        clock.advance(7)


@pytest.mark.asyncio
async def test_contention_is_distinguishable_from_outage(clock):
    algorithm = FixedWindowAlgorithm(FailingCounterStore(conflicts=100), clock=clock, max_retries=2)

    with pytest.raises(StoreContentionError) as exc_info:
        await algorithm.attempt("k", limit=5, window=60)
    assert isinstance(exc_info.value, StoreUnavailableError)

    outage = FixedWindowAlgorithm(FailingCounterStore(available=False), clock=clock)
    with pytest.raises(StoreUnavailableError) as exc_info:
        await outage.attempt("k", limit=5, window=60)
    assert not isinstance(exc_info.value, StoreContentionError)
