"""
Counter Store Protocol (Abstract Interface)
Contract for the shared, multi-tenant key-value store behind admission control
and idempotency.
"""
from __future__ import annotations

from typing import Optional, Protocol, Tuple


class CounterStore(Protocol):
    """
    Capability interface over the shared counter/cache store.

    Every mutation is a single-key atomic operation; callers namespace keys by
    tenant. Implementations raise StoreUnavailableError when the backing store
    cannot be reached, so callers can apply their own fail-open/closed policy.
    """

    async def incr_window(self, key: str, window_ms: int) -> Tuple[int, int]:
        """
        Atomically increment a windowed counter.

        The expiry is set on the first increment only, so the window is fixed
        from its first hit.

        Args:
            key: Counter key
            window_ms: Window length in milliseconds

        Returns:
            (count after increment, remaining window in milliseconds)
        """
        ...

    async def decr(self, key: str) -> int:
        """Decrement a counter and return the new value."""
        ...

    async def get(self, key: str) -> Optional[str]:
        """Return the raw value stored at key, or None if missing/expired."""
        ...

    async def set(self, key: str, value: str, *, ttl_seconds: int, nx: bool = False) -> bool:
        """
        Store a value with a TTL.

        Args:
            key: Key
            value: Serialized value
            ttl_seconds: Time-to-live in seconds
            nx: Only set when the key does not exist (atomic claim)

        Returns:
            True if the value was written
        """
        ...

    async def delete(self, key: str) -> bool:
        """Delete a key; True if it existed."""
        ...

    async def ping(self) -> bool:
        """True if the store is reachable."""
        ...
