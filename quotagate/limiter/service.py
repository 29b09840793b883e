"""Rate limiter facade.

Binds a quota policy, a counter store and an algorithm strategy, and runs
the load / decide / compare-and-swap cycle for each check.
"""

import asyncio
import math
from numbers import Integral, Real
from typing import Any, Awaitable, Optional, TypeVar

from quotagate.core.clock import Clock, SystemClock
from quotagate.core.logging import get_log_context, get_logger
from quotagate.exceptions import BackendUnavailable, InvalidCost, InvalidKey, TooMuchContention
from quotagate.limiter.algorithms import get_strategy
from quotagate.limiter.backends.base import CounterStore
from quotagate.limiter.models import BackendErrorPolicy, Decision, QuotaPolicy

logger = get_logger(__name__)

T = TypeVar("T")


class RateLimiter:
    """Admission control for one quota policy.

    Keys are independent; state for each key lives in the counter store and
    is only ever changed through compare-and-swap, so concurrent checks for
    the same key never act on the same prior state.

    Example:
        >>> policy = QuotaPolicy(algorithm="fixed_window", capacity=5, window_duration=60)
        >>> limiter = RateLimiter(policy, InMemoryCounterStore())
        >>> decision = await limiter.check("ip:1.2.3.4")
    """

    DEFAULT_MAX_ATTEMPTS = 5

    def __init__(
        self,
        policy: QuotaPolicy,
        store: CounterStore,
        clock: Optional[Clock] = None,
        *,
        namespace: str = "ratelimit",
        max_attempts: int = DEFAULT_MAX_ATTEMPTS,
        on_backend_error: BackendErrorPolicy = BackendErrorPolicy.ALLOW,
        backend_timeout: Optional[float] = None,
        ttl_multiplier: float = 2.0,
        contention_retry_after: Optional[float] = None,
    ):
        """Initialize the rate limiter.

        Args:
            policy: Quota policy to enforce
            store: Counter store holding per-key state
            clock: Time source (defaults to wall clock)
            namespace: Prefix separating this limiter's keys from others
            max_attempts: Compare-and-swap attempts before giving up on a key
            on_backend_error: Answer when the store is unavailable (fail open by default)
            backend_timeout: Default deadline in seconds for a whole check (None = no deadline)
            ttl_multiplier: Multiplier applied to the policy's idle-state TTL
            contention_retry_after: Retry hint when contention persists
                (defaults to the policy's nominal period)
        """
        if max_attempts < 1:
            raise ValueError("max_attempts must be at least 1")
        if backend_timeout is not None and backend_timeout <= 0:
            raise ValueError("backend_timeout must be positive")
        self._policy = policy
        self._store = store
        self._clock = clock or SystemClock()
        self._strategy = get_strategy(policy.algorithm)
        self._namespace = namespace
        self._max_attempts = max_attempts
        self._on_backend_error = BackendErrorPolicy(on_backend_error)
        self._backend_timeout = backend_timeout
        self._state_ttl = policy.state_ttl(ttl_multiplier)
        self._contention_retry_after = (
            contention_retry_after if contention_retry_after is not None else policy.nominal_period
        )

    @property
    def policy(self) -> QuotaPolicy:
        return self._policy

    @property
    def store(self) -> CounterStore:
        return self._store

    def _storage_key(self, key: str) -> str:
        return f"{self._namespace}:{self._policy.algorithm.value}:{key}"

    @staticmethod
    def _validate_key(key: Any) -> str:
        if not isinstance(key, str) or not key:
            raise InvalidKey()
        return key

    def _validate_cost(self, cost: Any) -> int:
        if cost is None:
            return self._policy.default_cost
        if isinstance(cost, bool) or not isinstance(cost, Real):
            raise InvalidCost(cost)
        if isinstance(cost, Integral):
            # Arbitrarily large ints are valid; they are rejected later as oversized.
            if cost <= 0:
                raise InvalidCost(cost)
            return int(cost)
        if not math.isfinite(cost) or cost <= 0 or cost != int(cost):
            raise InvalidCost(cost)
        return int(cost)

    async def _call(self, awaitable: Awaitable[T], deadline: Optional[float]) -> T:
        """Await a store operation within the remaining deadline."""
        if deadline is None:
            return await awaitable
        remaining = deadline - asyncio.get_running_loop().time()
        if remaining <= 0:
            if asyncio.iscoroutine(awaitable):
                awaitable.close()
            raise BackendUnavailable("Deadline exceeded before store call", backend=self._store.name)
        try:
            return await asyncio.wait_for(awaitable, timeout=remaining)
        except asyncio.TimeoutError as e:
            raise BackendUnavailable("Counter store call timed out", backend=self._store.name) from e

    def _rejection(self) -> Decision:
        return Decision(
            allowed=False,
            retry_after=None,
            limit=self._policy.capacity,
            remaining=0,
        )

    async def try_check(
        self,
        key: str,
        cost: Optional[int] = None,
        *,
        timeout: Optional[float] = None,
    ) -> Decision:
        """Check and consume quota, propagating store and contention errors.

        Args:
            key: Opaque identifier of the limited subject
            cost: Permits to consume (defaults to policy.default_cost)
            timeout: Deadline in seconds for the whole check (overrides backend_timeout)

        Returns:
            Decision for this request.

        Raises:
            InvalidKey: If key is empty.
            InvalidCost: If cost is not a positive finite integer.
            BackendUnavailable: If the store fails or the deadline passes.
            TooMuchContention: If every compare-and-swap attempt lost.
        """
        key = self._validate_key(key)
        cost = self._validate_cost(cost)
        if cost > self._policy.capacity:
            return self._rejection()

        timeout = timeout if timeout is not None else self._backend_timeout
        deadline = asyncio.get_running_loop().time() + timeout if timeout is not None else None
        storage_key = self._storage_key(key)

        for attempt in range(1, self._max_attempts + 1):
            now = self._clock.now()
            state = await self._call(
                self._store.load_or_init(storage_key, self._strategy.initial_state(self._policy, now)),
                deadline,
            )
            result = self._strategy.decide(state, now, self._policy, cost)
            swapped = await self._call(
                self._store.compare_and_swap(storage_key, state, result.new_state),
                deadline,
            )
            if not swapped:
                continue

            try:
                await self._call(self._store.set_ttl(storage_key, self._state_ttl), deadline)
            except BackendUnavailable as e:
                # The decision is already committed; the TTL is only a cleanup hint.
                logger.warning(
                    f"Failed to set TTL on rate limit state: {e}",
                    extra=get_log_context(limiter_key=key, backend=self._store.name),
                )

            if not result.allowed:
                logger.debug(
                    "Rate limit exceeded",
                    extra=get_log_context(
                        limiter_key=key,
                        namespace=self._namespace,
                        algorithm=self._policy.algorithm.value,
                        cost=cost,
                        retry_after=result.retry_after,
                        attempts=attempt,
                    ),
                )
            return Decision(
                allowed=result.allowed,
                retry_after=result.retry_after,
                limit=self._policy.capacity,
                remaining=result.remaining,
                reset_after=result.reset_after,
            )

        raise TooMuchContention(key, self._max_attempts)

    async def check(
        self,
        key: str,
        cost: Optional[int] = None,
        *,
        timeout: Optional[float] = None,
    ) -> Decision:
        """Check and consume quota for a request.

        Never waits for capacity: a denial is returned immediately with a
        retry hint. Store failures are answered according to
        ``on_backend_error``; persistent contention fails closed.

        Raises:
            InvalidKey: If key is empty.
            InvalidCost: If cost is not a positive finite integer.
        """
        try:
            return await self.try_check(key, cost, timeout=timeout)
        except TooMuchContention as e:
            logger.warning(
                "Rate limit contention, denying request",
                extra=get_log_context(
                    limiter_key=key,
                    namespace=self._namespace,
                    algorithm=self._policy.algorithm.value,
                    attempts=e.attempts,
                ),
            )
            return Decision(
                allowed=False,
                retry_after=self._contention_retry_after,
                limit=self._policy.capacity,
                remaining=0,
                degraded=True,
            )
        except BackendUnavailable as e:
            return self._handle_backend_failure(key, e)

    def _handle_backend_failure(self, key: str, error: BackendUnavailable) -> Decision:
        """Answer with the configured fail-open / fail-closed policy."""
        context = get_log_context(
            limiter_key=key,
            namespace=self._namespace,
            algorithm=self._policy.algorithm.value,
            backend=self._store.name,
        )
        if self._on_backend_error == BackendErrorPolicy.DENY:
            logger.warning(
                f"Rate limiting fail-closed triggered: {error}. Request denied.",
                extra=context,
            )
            return Decision(
                allowed=False,
                retry_after=self._policy.nominal_period,
                limit=self._policy.capacity,
                remaining=0,
                degraded=True,
            )

        logger.warning(
            f"Rate limiting fail-open triggered: {error}. Request allowed without rate limit check.",
            extra=context,
        )
        return Decision(
            allowed=True,
            retry_after=None,
            limit=self._policy.capacity,
            remaining=0,
            degraded=True,
        )

    async def cleanup(self) -> int:
        """Clean up expired states in the store."""
        return await self._store.cleanup()

    async def close(self) -> None:
        """Release the store's resources."""
        await self._store.close()
