"""Tests for quota policy and counter state models."""

import math

import pytest
from pydantic import ValidationError

from quotagate.exceptions import StateDecodeError
from quotagate.limiter.models import (
    Algorithm,
    Decision,
    FixedWindowState,
    LeakyBucketState,
    QuotaPolicy,
    SlidingCounterState,
    SlidingLogState,
    TokenBucketState,
    state_from_dict,
    state_to_dict,
)


class TestQuotaPolicy:
    """Tests for QuotaPolicy validation and derived values."""

    def test_defaults(self):
        policy = QuotaPolicy(algorithm=Algorithm.FIXED_WINDOW, capacity=5)
        assert policy.window_duration == 60.0
        assert policy.refill_rate == 1.0
        assert policy.refill_interval == 1.0
        assert policy.leak_rate == 1.0
        assert policy.default_cost == 1

    def test_algorithm_from_string(self):
        policy = QuotaPolicy(algorithm="token_bucket", capacity=10)
        assert policy.algorithm is Algorithm.TOKEN_BUCKET

    def test_is_immutable(self):
        policy = QuotaPolicy(algorithm="fixed_window", capacity=5)
        with pytest.raises(ValidationError):
            policy.capacity = 10

    @pytest.mark.parametrize(
        "kwargs",
        [
            {"capacity": 0},
            {"capacity": 5, "window_duration": 0},
            {"capacity": 5, "window_duration": math.inf},
            {"capacity": 5, "refill_rate": -1},
            {"capacity": 5, "refill_interval": math.nan},
            {"capacity": 5, "leak_rate": 0},
            {"capacity": 5, "default_cost": 0},
            {"capacity": 5, "default_cost": 6},
            {"capacity": 5, "burst": 3},
        ],
    )
    def test_invalid_policies_rejected(self, kwargs):
        with pytest.raises(ValidationError):
            QuotaPolicy(algorithm="fixed_window", **kwargs)

    def test_unknown_algorithm_rejected(self):
        with pytest.raises(ValidationError):
            QuotaPolicy(algorithm="random_drop", capacity=5)

    def test_nominal_period(self):
        assert QuotaPolicy(algorithm="fixed_window", capacity=1, window_duration=30).nominal_period == 30
        assert QuotaPolicy(algorithm="sliding_log", capacity=1, window_duration=30).nominal_period == 30
        assert QuotaPolicy(algorithm="token_bucket", capacity=1, refill_interval=2).nominal_period == 2
        assert QuotaPolicy(algorithm="leaky_bucket", capacity=1, leak_rate=4).nominal_period == 0.25

    def test_state_ttl(self):
        assert QuotaPolicy(algorithm="fixed_window", capacity=5).state_ttl() == 120
        assert QuotaPolicy(algorithm="sliding_log", capacity=5, window_duration=10).state_ttl(1) == 10
        assert QuotaPolicy(algorithm="sliding_counter", capacity=5).state_ttl() == 240
        # Empty bucket refills 10 tokens in 10 intervals of 1s
        assert QuotaPolicy(algorithm="token_bucket", capacity=10).state_ttl() == 20
        # Full bucket drains 5 slots at 0.5/s in 10s
        assert QuotaPolicy(algorithm="leaky_bucket", capacity=5, leak_rate=0.5).state_ttl() == 20


class TestCounterStateSerialization:
    """Tests for tagged dictionary conversion of counter states."""

    def test_kind_tag(self):
        data = state_to_dict(FixedWindowState(count=3, window_start=10.0))
        assert data == {"kind": "fixed_window", "count": 3, "window_start": 10.0}

    def test_sliding_log_timestamps_become_list_and_back(self):
        state = SlidingLogState(timestamps=(1.0, 2.5))
        data = state_to_dict(state)
        assert data["timestamps"] == [1.0, 2.5]
        assert state_from_dict(data) == state

    @pytest.mark.parametrize(
        "state",
        [
            SlidingCounterState(prev_count=2, prev_window_start=0.0, curr_count=1, curr_window_start=60.0),
            TokenBucketState(tokens=2.5, last_refill=7.0),
            LeakyBucketState(queue_depth=4, last_leak=3.25),
        ],
    )
    def test_from_dict_rebuilds_equal_state(self, state):
        assert state_from_dict(state_to_dict(state)) == state

    def test_unknown_kind(self):
        with pytest.raises(StateDecodeError):
            state_from_dict({"kind": "mystery", "count": 1})

    def test_missing_fields(self):
        with pytest.raises(StateDecodeError):
            state_from_dict({"kind": "token_bucket", "tokens": 1.0})

    def test_not_a_mapping(self):
        with pytest.raises(StateDecodeError):
            state_from_dict([1, 2, 3])

    def test_bad_timestamps(self):
        with pytest.raises(StateDecodeError):
            state_from_dict({"kind": "sliding_log", "timestamps": ["soon"]})


class TestDecision:
    """Tests for the Decision value object."""

    def test_defaults(self):
        decision = Decision(allowed=True, retry_after=None, limit=10, remaining=9)
        assert decision.reset_after == 0.0
        assert decision.degraded is False
