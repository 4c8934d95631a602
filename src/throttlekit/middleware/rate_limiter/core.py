"""
Main RateLimiter class that wires identity resolution, per-route limiter
profiles and the rate limiting strategies into one per-request decision.
"""

from dataclasses import dataclass, field
from typing import Any, Callable, Dict, List, Mapping, Optional, Tuple, Union

from loguru import logger
from starlette.requests import Request

from ...cache.backends import CounterStore, MemoryCounterStore, create_store
from ...clock import Clock, system_clock
from ...exceptions import (
    RateLimitConfigError,
    RateLimitExceededError,
    StoreUnavailableError,
)
from .algorithms import (
    AVAILABLE_ALGORITHMS,
    RateLimitAlgorithm,
    RateLimitDecision,
    Strategy,
)
from .policies import FailurePolicy
from .stats import RateLimitStats
from .utils import (
    DEFAULT_IP_HEADERS,
    DEFAULT_TOKEN_HEADERS,
    IDENTIFIER_TYPES,
    ClientIdentifier,
    default_key_generator,
    format_rate_limit_message,
    path_matches_prefix,
    safe_identifier,
)

DEFAULT_MESSAGE = "Rate limit exceeded. Please try again later."

# Request attribute carrying a limiter profile name, set by routes/dependencies
ROUTE_LIMITER_ATTRIBUTE = "rate_limiter"


def _check_positive_int(name: str, value: Any) -> None:
    if not isinstance(value, int) or isinstance(value, bool) or value <= 0:
        raise RateLimitConfigError(f"{name} must be a positive integer, got {value!r}")


@dataclass(frozen=True)
class LimiterProfile:
    """Named override of limit, window, strategy and message for some routes."""

    limit: Optional[int] = None
    window: Optional[int] = None
    strategy: Optional[Strategy] = None
    message: Optional[str] = None

    def __post_init__(self):
        if self.limit is not None:
            _check_positive_int("profile limit", self.limit)
        if self.window is not None:
            _check_positive_int("profile window", self.window)
        if self.message is not None and not isinstance(self.message, str):
            raise RateLimitConfigError(f"profile message must be a string, got {self.message!r}")
        if self.strategy is not None:
            object.__setattr__(self, "strategy", Strategy.parse(self.strategy))

    @classmethod
    def from_value(cls, value: Union["LimiterProfile", Mapping[str, Any]]) -> "LimiterProfile":
        if isinstance(value, cls):
            return value
        if isinstance(value, Mapping):
            unknown = set(value) - {"limit", "window", "strategy", "message"}
            if unknown:
                raise RateLimitConfigError(
                    f"Unknown limiter profile options: {sorted(unknown)}"
                )
            return cls(**value)
        raise RateLimitConfigError(f"Invalid limiter profile: {value!r}")


@dataclass
class RateLimitConfig:
    """Configuration for request rate limiting."""

    # Basic rate limiting
    limit: int = 60
    window: int = 60
    strategy: Union[Strategy, str] = Strategy.SLIDING_WINDOW
    fallback_strategy: Optional[Union[Strategy, str]] = None

    # Client identification
    identifier: Union[str, List[str]] = "ip"
    ip_headers: Tuple[str, ...] = DEFAULT_IP_HEADERS
    token_headers: Tuple[str, ...] = DEFAULT_TOKEN_HEADERS

    # Response configuration
    headers: bool = True
    include_retry_after: bool = True
    message: str = DEFAULT_MESSAGE

    # Hooks
    skip_check: Optional[Callable[[Request], bool]] = None
    cost_callback: Optional[Callable[[Request], int]] = None
    identifier_callback: Optional[Callable[[Request], str]] = None
    limit_callback: Optional[Callable[[Request, str], int]] = None
    key_generator: Optional[Callable[[str, Request], str]] = None

    # Named limiter profiles
    limiters: Dict[str, Any] = field(default_factory=dict)
    limiter_resolver: Optional[Callable[[Request], Optional[str]]] = None
    route_limiters: Dict[str, str] = field(default_factory=dict)  # path prefix -> profile

    # Behavior
    failure_policy: Union[FailurePolicy, str] = FailurePolicy.FAIL_CLOSED
    log_violations: bool = True

    def __post_init__(self):
        """Validate the configuration before any store is touched."""
        _check_positive_int("limit", self.limit)
        _check_positive_int("window", self.window)

        if self.fallback_strategy is not None:
            self.fallback_strategy = Strategy.parse(self.fallback_strategy)
        self.strategy = Strategy.parse(self.strategy, self.fallback_strategy)

        types = [self.identifier] if isinstance(self.identifier, str) else self.identifier
        if not types:
            raise RateLimitConfigError("identifier must name at least one type")
        unknown = [t for t in types if t not in IDENTIFIER_TYPES]
        if unknown:
            raise RateLimitConfigError(
                f"Unknown identifier types {unknown}. Available: {', '.join(IDENTIFIER_TYPES)}"
            )

        self.ip_headers = tuple(self.ip_headers)
        self.token_headers = tuple(self.token_headers)

        self.limiters = {
            name: LimiterProfile.from_value(profile)
            for name, profile in self.limiters.items()
        }
        for prefix, name in self.route_limiters.items():
            if name not in self.limiters:
                raise RateLimitConfigError(
                    f"Route '{prefix}' refers to unknown limiter profile '{name}'"
                )

        if isinstance(self.failure_policy, str):
            policy = FailurePolicy.from_string(self.failure_policy)
            if policy is None:
                raise RateLimitConfigError(
                    f"Unknown failure policy '{self.failure_policy}'"
                )
            self.failure_policy = policy

    @classmethod
    def from_settings(cls, settings: Any, **overrides) -> "RateLimitConfig":
        """
        Build a configuration from environment settings.

        Args:
            settings: ``throttlekit.config.Settings`` instance
            **overrides: Options that take precedence, typically hooks

        Returns:
            Validated configuration
        """
        identifier = [
            part.strip()
            for part in settings.RATE_LIMIT_IDENTIFIER.split(",")
            if part.strip()
        ]
        options: Dict[str, Any] = {
            "limit": settings.RATE_LIMIT_LIMIT,
            "window": settings.RATE_LIMIT_WINDOW,
            "strategy": settings.RATE_LIMIT_STRATEGY,
            "identifier": identifier[0] if len(identifier) == 1 else identifier,
            "headers": settings.RATE_LIMIT_HEADERS,
            "failure_policy": (
                FailurePolicy.FAIL_OPEN
                if settings.RATE_LIMIT_FAIL_OPEN
                else FailurePolicy.FAIL_CLOSED
            ),
        }
        options.update(overrides)
        return cls(**options)


@dataclass(frozen=True)
class ResolvedLimit:
    """Effective limiter settings for one request."""

    limit: int
    window: int
    strategy: Strategy
    message: str
    profile: Optional[str] = None


class RateLimiter:
    """
    Request rate limiter.

    Holds the configuration, the counter store and one strategy instance per
    algorithm. ``check`` runs the full per-request flow; ``attempt`` and
    ``reset`` expose the identifier-level contract directly.
    """

    def __init__(
        self,
        config: Optional[RateLimitConfig] = None,
        store: Optional[CounterStore] = None,
        clock: Optional[Clock] = None,
        name: str = "default",
    ):
        """
        Initialize the rate limiter.

        Args:
            config: Rate limiting configuration
            store: Counter store shared by all strategies (in-memory by default)
            clock: Time source shared by the strategies
            name: Name identifier for this rate limiter
        """
        self.config = config or RateLimitConfig()
        self.clock = clock or system_clock
        self.store = store if store is not None else MemoryCounterStore(clock=self.clock)
        self.name = name

        self.algorithms: Dict[Strategy, RateLimitAlgorithm] = {
            strategy: algorithm_class(
                self.store, clock=self.clock, name=f"{name}_{strategy.value}"
            )
            for strategy, algorithm_class in AVAILABLE_ALGORITHMS.items()
        }

        self._identifier_callback = (
            safe_identifier(self.config.identifier_callback)
            if self.config.identifier_callback
            else None
        )
        self._key_generator = self.config.key_generator or default_key_generator

        self.stats = RateLimitStats()

        logger.info(
            f"RateLimiter '{name}' initialized: {self.config.limit} req/{self.config.window}s "
            f"using {self.config.strategy.value} with {self.config.failure_policy.value} policy"
        )

    @classmethod
    def from_settings(cls, settings: Any, clock: Optional[Clock] = None, **overrides) -> "RateLimiter":
        """Create a limiter and its counter store from environment settings."""
        config = RateLimitConfig.from_settings(settings, **overrides)
        if settings.RATE_LIMIT_BACKEND == "redis":
            store = create_store(
                "redis",
                redis_url=settings.RATE_LIMIT_REDIS_URL,
                key_prefix=settings.RATE_LIMIT_KEY_PREFIX,
            )
        else:
            store = create_store(settings.RATE_LIMIT_BACKEND, clock=clock)
        return cls(config, store=store, clock=clock)

    def get_algorithm(self, strategy: Union[Strategy, str, None] = None) -> RateLimitAlgorithm:
        """Strategy instance for a strategy name (the configured one by default)."""
        if strategy is None:
            return self.algorithms[self.config.strategy]
        return self.algorithms[Strategy.parse(strategy, self.config.fallback_strategy)]

    # Identifier-level contract

    async def attempt(
        self,
        identifier: str,
        limit: Optional[int] = None,
        window: Optional[int] = None,
        cost: int = 1,
        strategy: Union[Strategy, str, None] = None,
    ) -> RateLimitDecision:
        """
        Attempt to consume quota for an identifier.

        Args:
            identifier: Logical subject being limited
            limit: Ceiling for this call (configured limit by default)
            window: Window in seconds (configured window by default)
            cost: Quota units consumed
            strategy: Strategy override

        Returns:
            RateLimitDecision

        Raises:
            RateLimitConfigError: On invalid limit, window, cost or strategy
            StoreUnavailableError: If the counter store fails
        """
        algorithm = self.get_algorithm(strategy)
        return await algorithm.attempt(
            default_key_generator(identifier),
            self.config.limit if limit is None else limit,
            self.config.window if window is None else window,
            cost,
        )

    async def reset(self, identifier: str, request: Optional[Request] = None) -> None:
        """
        Remove all counter records for an identifier, restoring full quota.

        Args:
            identifier: Identifier to reset
            request: Request passed to a custom key generator, if one is configured
        """
        if request is not None:
            key = self._key_generator(identifier, request)
        else:
            if self.config.key_generator is not None:
                logger.warning(
                    f"Rate limiter '{self.name}' reset without a request uses the default "
                    f"key; records written by the custom key generator are left in place"
                )
            key = default_key_generator(identifier)

        removed = 0
        for algorithm in self.algorithms.values():
            if await algorithm.reset(key):
                removed += 1
        logger.info(f"Reset rate limiter '{self.name}' for identifier ({removed} records)")

    # Per-request flow

    def should_skip(self, request: Request) -> bool:
        if self.config.skip_check is None:
            return False
        return bool(self.config.skip_check(request))

    def resolve_profile_name(self, request: Request) -> Optional[str]:
        """
        Name of the limiter profile for a request, if any.

        Checked in order: the resolver callback, route metadata on the
        request, then the longest matching ``route_limiters`` path prefix.
        """
        limiters = self.config.limiters

        if self.config.limiter_resolver is not None:
            name = self.config.limiter_resolver(request)
            if name and name in limiters:
                return name

        name = getattr(request.state, ROUTE_LIMITER_ATTRIBUTE, None) or request.scope.get(
            ROUTE_LIMITER_ATTRIBUTE
        )
        if name and name in limiters:
            return name

        path = request.url.path
        matches = [
            prefix for prefix in self.config.route_limiters if path_matches_prefix(path, prefix)
        ]
        if matches:
            return self.config.route_limiters[max(matches, key=len)]

        return None

    def resolve_identifier(self, request: Request) -> str:
        if self._identifier_callback is not None:
            return self._identifier_callback(request)
        return ClientIdentifier.resolve(
            request,
            self.config.identifier,
            ip_headers=self.config.ip_headers,
            token_headers=self.config.token_headers,
        )

    def resolve_limit(self, request: Request, identifier: str) -> ResolvedLimit:
        """Effective limit, window, strategy and message for a request."""
        name = self.resolve_profile_name(request)
        profile = self.config.limiters[name] if name else LimiterProfile()

        if profile.limit is not None:
            limit = profile.limit
        elif self.config.limit_callback is not None:
            limit = int(self.config.limit_callback(request, identifier))
        else:
            limit = self.config.limit

        return ResolvedLimit(
            limit=limit,
            window=profile.window or self.config.window,
            strategy=profile.strategy or self.config.strategy,
            message=profile.message or self.config.message,
            profile=name,
        )

    def resolve_cost(self, request: Request) -> int:
        if self.config.cost_callback is None:
            return 1
        return int(self.config.cost_callback(request))

    async def check(self, request: Request) -> Optional[RateLimitDecision]:
        """
        Apply the rate limit to a request.

        Returns:
            The decision when the request is allowed, or None when rate
            limiting was skipped or the store failed under a fail-open policy

        Raises:
            RateLimitExceededError: If the request is over its limit
            StoreUnavailableError: If the store failed under a fail-closed policy
        """
        if self.should_skip(request):
            self.stats.record_skipped()
            return None

        identifier = self.resolve_identifier(request)
        resolved = self.resolve_limit(request, identifier)
        cost = self.resolve_cost(request)
        key = self._key_generator(identifier, request)
        algorithm = self.algorithms[resolved.strategy]

        try:
            decision = await algorithm.attempt(key, resolved.limit, resolved.window, cost)
        except StoreUnavailableError as e:
            failed_open = self.config.failure_policy.allows_on_failure()
            self.stats.record_store_error(failed_open)
            if failed_open:
                logger.warning(
                    f"Rate limiter '{self.name}' store unavailable, allowing request: {e}"
                )
                return None
            logger.error(f"Rate limiter '{self.name}' store unavailable, rejecting request: {e}")
            raise

        if decision.allowed:
            self.stats.record_allowed()
            logger.debug(
                f"Request allowed: {decision.remaining}/{decision.limit} remaining "
                f"({resolved.strategy.value}, profile={resolved.profile})"
            )
            return decision

        self.stats.record_rejected()
        if self.config.log_violations:
            logger.warning(
                f"Rate limit exceeded on {request.method} {request.url.path} "
                f"({resolved.strategy.value}, limit={resolved.limit}/{resolved.window}s, "
                f"profile={resolved.profile})"
            )

        retry_after = decision.retry_after(self.clock.now())
        raise RateLimitExceededError(
            format_rate_limit_message(
                resolved.limit,
                resolved.window,
                retry_after,
                custom_message=resolved.message,
            ),
            retry_after=retry_after if self.config.include_retry_after else None,
            limit=decision.limit if self.config.headers else None,
            remaining=decision.remaining,
            reset=decision.reset if self.config.headers else None,
        )

    def get_stats(self) -> Dict[str, Any]:
        """Get rate limiter statistics."""
        stats = self.stats.to_dict()
        stats.update(
            {
                "name": self.name,
                "limit": self.config.limit,
                "window": self.config.window,
                "strategy": self.config.strategy.value,
                "failure_policy": self.config.failure_policy.value,
                "algorithms": {
                    strategy.value: algorithm.get_algorithm_stats()
                    for strategy, algorithm in self.algorithms.items()
                },
            }
        )
        return stats

    async def close(self) -> None:
        """Close the counter store."""
        await self.store.close()
