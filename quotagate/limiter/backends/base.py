"""Counter store interface.

The facade depends on this abstraction only, so swapping the in-memory
store for Redis changes whether a quota is per-process or fleet-wide and
nothing else.
"""

from abc import ABC, abstractmethod

from quotagate.limiter.models import CounterState


class CounterStore(ABC):
    """Keyed counter states with atomic read-modify-write.

    Implementations raise BackendUnavailable when an operation cannot be
    completed; they never fabricate state.
    """

    name: str = "abstract"

    @abstractmethod
    async def load_or_init(self, key: str, initial_state: CounterState) -> CounterState:
        """Return the state stored under key.

        If the key is absent (or expired) ``initial_state`` is stored
        atomically and returned.
        """
        pass

    @abstractmethod
    async def compare_and_swap(
        self,
        key: str,
        expected_state: CounterState,
        new_state: CounterState,
    ) -> bool:
        """Replace the state only if it still equals ``expected_state``.

        Returns:
            True if the swap happened, False if another writer got there
            first (the caller retries the whole decide-and-swap cycle).
        """
        pass

    @abstractmethod
    async def set_ttl(self, key: str, ttl: float) -> None:
        """Advisory hint that the key may be dropped after ``ttl`` idle seconds."""
        pass

    async def cleanup(self) -> int:
        """Remove expired entries. Returns the number removed."""
        return 0

    async def close(self) -> None:
        """Release backend resources."""
        pass
