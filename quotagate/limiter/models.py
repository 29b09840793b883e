"""Rate limiting data models.

This module contains the quota policy, the per-key counter states kept by
the counter stores, and the decision types returned to callers.
"""

import math
from dataclasses import asdict, dataclass
from enum import Enum
from typing import Any, Optional, Union

from pydantic import BaseModel, ConfigDict, Field, model_validator

from quotagate.exceptions import StateDecodeError


class Algorithm(str, Enum):
    """Rate limiting algorithm variants."""
    FIXED_WINDOW = "fixed_window"
    SLIDING_LOG = "sliding_log"
    SLIDING_COUNTER = "sliding_counter"
    TOKEN_BUCKET = "token_bucket"
    LEAKY_BUCKET = "leaky_bucket"


class BackendErrorPolicy(str, Enum):
    """What the facade answers when the counter store is unavailable."""
    ALLOW = "allow"
    DENY = "deny"


class QuotaPolicy(BaseModel):
    """Immutable quota configuration.

    All durations are seconds. Fields that do not apply to the selected
    algorithm keep their defaults and are ignored.

    Example:
        >>> QuotaPolicy(algorithm="token_bucket", capacity=10, refill_rate=1, refill_interval=1.0)
    """

    model_config = ConfigDict(frozen=True, extra="forbid")

    algorithm: Algorithm
    capacity: int = Field(..., ge=1, description="Max permits per window or bucket size")
    window_duration: float = Field(60.0, gt=0, allow_inf_nan=False)
    refill_rate: float = Field(1.0, gt=0, allow_inf_nan=False, description="Tokens added per interval")
    refill_interval: float = Field(1.0, gt=0, allow_inf_nan=False)
    leak_rate: float = Field(1.0, gt=0, allow_inf_nan=False, description="Slots drained per second")
    default_cost: int = Field(1, ge=1)

    @model_validator(mode="after")
    def validate_default_cost(self) -> "QuotaPolicy":
        """A default request must be admissible at least once."""
        if self.default_cost > self.capacity:
            raise ValueError("default_cost must not exceed capacity")
        return self

    @property
    def nominal_period(self) -> float:
        """One accounting period: window, refill interval or one leak."""
        if self.algorithm == Algorithm.TOKEN_BUCKET:
            return self.refill_interval
        if self.algorithm == Algorithm.LEAKY_BUCKET:
            return 1.0 / self.leak_rate
        return self.window_duration

    def state_ttl(self, multiplier: float = 2.0) -> float:
        """Idle time after which a key's state may be dropped by the store.

        Dropping state can only make the limiter more permissive, so the TTL
        only needs to outlive the period after which the state would have
        returned to full quota anyway.
        """
        if self.algorithm == Algorithm.SLIDING_COUNTER:
            base = 2 * self.window_duration
        elif self.algorithm == Algorithm.TOKEN_BUCKET:
            base = math.ceil(self.capacity / self.refill_rate) * self.refill_interval
        elif self.algorithm == Algorithm.LEAKY_BUCKET:
            base = self.capacity / self.leak_rate
        else:
            base = self.window_duration
        return base * multiplier


@dataclass(frozen=True)
class FixedWindowState:
    """Counter for the current fixed window."""
    count: int
    window_start: float

    KIND = "fixed_window"


@dataclass(frozen=True)
class SlidingLogState:
    """Admission timestamps, oldest first."""
    timestamps: tuple[float, ...] = ()

    KIND = "sliding_log"


@dataclass(frozen=True)
class SlidingCounterState:
    """Counts for the previous and current fixed windows."""
    prev_count: int
    prev_window_start: float
    curr_count: int
    curr_window_start: float

    KIND = "sliding_counter"


@dataclass(frozen=True)
class TokenBucketState:
    """Token bucket level."""
    tokens: float
    last_refill: float

    KIND = "token_bucket"


@dataclass(frozen=True)
class LeakyBucketState:
    """Leaky bucket depth (a count, requests are not actually queued)."""
    queue_depth: int
    last_leak: float

    KIND = "leaky_bucket"


CounterState = Union[
    FixedWindowState,
    SlidingLogState,
    SlidingCounterState,
    TokenBucketState,
    LeakyBucketState,
]

_STATE_TYPES: dict[str, type] = {
    cls.KIND: cls
    for cls in (
        FixedWindowState,
        SlidingLogState,
        SlidingCounterState,
        TokenBucketState,
        LeakyBucketState,
    )
}


def state_to_dict(state: CounterState) -> dict[str, Any]:
    """Convert a counter state to a tagged dictionary for serialization."""
    data = asdict(state)
    if isinstance(state, SlidingLogState):
        data["timestamps"] = list(state.timestamps)
    data["kind"] = state.KIND
    return data


def state_from_dict(data: dict[str, Any]) -> CounterState:
    """Rebuild a counter state from a tagged dictionary.

    Raises:
        StateDecodeError: If the kind is unknown or fields are missing.
    """
    if not isinstance(data, dict):
        raise StateDecodeError(f"Expected a mapping, got {type(data).__name__}")
    payload = dict(data)
    kind = payload.pop("kind", None)
    state_cls = _STATE_TYPES.get(kind)
    if state_cls is None:
        raise StateDecodeError(f"Unknown counter state kind: {kind!r}")
    try:
        if state_cls is SlidingLogState and "timestamps" in payload:
            payload["timestamps"] = tuple(float(ts) for ts in payload["timestamps"])
        return state_cls(**payload)
    except (TypeError, ValueError) as e:
        raise StateDecodeError(f"Malformed {kind} state: {e}") from e


@dataclass(frozen=True)
class AlgorithmResult:
    """Outcome of a single algorithm decision.

    Attributes:
        allowed: Whether the request is admitted.
        new_state: State to store back (unchanged when nothing moved).
        retry_after: Seconds until a retry can succeed, None if it never can.
        remaining: Permits left after this decision.
        reset_after: Seconds until the key is back to full quota.
    """
    allowed: bool
    new_state: CounterState
    retry_after: Optional[float]
    remaining: int
    reset_after: float


@dataclass(frozen=True)
class Decision:
    """Admission decision returned to callers.

    ``retry_after`` of None on a denial means the request can never be
    admitted under the current policy (e.g. cost exceeds capacity).
    ``degraded`` marks decisions produced by an error policy (store
    unavailable or persistent contention) instead of the algorithm.
    """
    allowed: bool
    retry_after: Optional[float]
    limit: int
    remaining: int
    reset_after: float = 0.0
    degraded: bool = False
