"""In-process counter store.

Suitable for single-process admission control: running several worker
processes multiplies the effective quota.

Thread-safe: each key maps onto one of a fixed set of lock stripes, so
updates to the same key are mutually exclusive while different keys rarely
contend. The locks are never held across an ``await``.
"""

import asyncio
import threading
from dataclasses import dataclass
from typing import Optional

from quotagate.core.clock import Clock, SystemClock
from quotagate.core.logging import get_logger
from quotagate.limiter.backends.base import CounterStore
from quotagate.limiter.models import CounterState

logger = get_logger(__name__)


@dataclass
class _StateEntry:
    """Stored state with TTL tracking."""

    state: CounterState
    expires_at: Optional[float] = None

    def is_expired(self, now: float) -> bool:
        if self.expires_at is None:
            return False
        return now >= self.expires_at


class InMemoryCounterStore(CounterStore):
    """Counter states kept in a process-local dictionary.

    Expired entries read as absent, which is the same as a key never seen
    before. An optional background sweeper reclaims them proactively.
    """

    name = "memory"
    DEFAULT_LOCK_STRIPES = 64

    def __init__(
        self,
        clock: Optional[Clock] = None,
        lock_stripes: int = DEFAULT_LOCK_STRIPES,
    ) -> None:
        """Initialize the store.

        Args:
            clock: Time source used for TTL expiry (defaults to wall clock)
            lock_stripes: Number of locks keys are spread over
        """
        if lock_stripes < 1:
            raise ValueError("lock_stripes must be at least 1")
        self._clock = clock or SystemClock()
        self._entries: dict[str, _StateEntry] = {}
        self._locks = [threading.Lock() for _ in range(lock_stripes)]
        self._sweep_task: Optional[asyncio.Task] = None
        self._shutdown_event = asyncio.Event()

    def _lock_for(self, key: str) -> threading.Lock:
        return self._locks[hash(key) % len(self._locks)]

    def __len__(self) -> int:
        return len(self._entries)

    async def load_or_init(self, key: str, initial_state: CounterState) -> CounterState:
        with self._lock_for(key):
            entry = self._entries.get(key)
            if entry is None or entry.is_expired(self._clock.now()):
                self._entries[key] = _StateEntry(state=initial_state)
                return initial_state
            return entry.state

    async def compare_and_swap(
        self,
        key: str,
        expected_state: CounterState,
        new_state: CounterState,
    ) -> bool:
        with self._lock_for(key):
            entry = self._entries.get(key)
            if entry is None or entry.is_expired(self._clock.now()):
                return False
            if entry.state != expected_state:
                return False
            entry.state = new_state
            return True

    async def set_ttl(self, key: str, ttl: float) -> None:
        with self._lock_for(key):
            entry = self._entries.get(key)
            if entry is not None:
                entry.expires_at = self._clock.now() + ttl if ttl > 0 else None

    async def cleanup(self) -> int:
        """Remove all expired entries.

        Returns:
            Number of entries removed.
        """
        now = self._clock.now()
        removed = 0
        for key in list(self._entries):
            with self._lock_for(key):
                entry = self._entries.get(key)
                if entry is not None and entry.is_expired(now):
                    del self._entries[key]
                    removed += 1
        if removed:
            logger.debug(f"Swept {removed} expired rate limit states")
        return removed

    async def start_sweeper(self, interval: float = 60.0) -> None:
        """Start the periodic TTL sweep task."""
        if self._sweep_task is not None:
            return
        if interval <= 0:
            raise ValueError("sweep interval must be positive")
        self._shutdown_event.clear()
        self._sweep_task = asyncio.create_task(self._sweep_loop(interval))
        logger.info("Started rate limit state sweeper")

    async def stop_sweeper(self) -> None:
        """Stop the periodic TTL sweep task."""
        if self._sweep_task is None:
            return
        self._shutdown_event.set()
        try:
            await asyncio.wait_for(self._sweep_task, timeout=5.0)
        except asyncio.TimeoutError:
            self._sweep_task.cancel()
            try:
                await self._sweep_task
            except asyncio.CancelledError:
                pass
        self._sweep_task = None
        logger.info("Stopped rate limit state sweeper")

    async def _sweep_loop(self, interval: float) -> None:
        """Background loop removing expired states."""
        while not self._shutdown_event.is_set():
            try:
                await asyncio.wait_for(self._shutdown_event.wait(), timeout=interval)
            except asyncio.TimeoutError:
                pass
            if self._shutdown_event.is_set():
                break
            try:
                await self.cleanup()
            except Exception as e:
                logger.error(f"Error during rate limit state sweep: {e}")

    async def close(self) -> None:
        await self.stop_sweeper()
