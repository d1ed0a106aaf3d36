"""In-process CounterStore used for local runs and tests."""
from __future__ import annotations

import asyncio
import math
import time
from typing import Callable, Dict, Optional, Tuple


class InMemoryCounterStore:
    """
    Dict-backed CounterStore with per-key expiry.

    Same semantics as the Redis adapter: windowed counters get their expiry on
    the first increment, SET NX is an atomic claim. The clock is injectable so
    tests can move time forward without sleeping.
    """

    def __init__(self, clock: Callable[[], float] = time.monotonic) -> None:
        self._clock = clock
        self._values: Dict[str, str] = {}
        self._expires_at: Dict[str, float] = {}
        self._lock = asyncio.Lock()

    def _purge(self, key: str) -> None:
        deadline = self._expires_at.get(key)
        if deadline is not None and self._clock() >= deadline:
            self._values.pop(key, None)
            self._expires_at.pop(key, None)

    def _ttl_ms(self, key: str) -> int:
        deadline = self._expires_at.get(key)
        if deadline is None:
            return -1
        return max(0, math.ceil((deadline - self._clock()) * 1000))

    async def incr_window(self, key: str, window_ms: int) -> Tuple[int, int]:
        async with self._lock:
            self._purge(key)
            count = int(self._values.get(key, "0")) + 1
            self._values[key] = str(count)
            if count == 1 or key not in self._expires_at:
                self._expires_at[key] = self._clock() + window_ms / 1000.0
            return count, self._ttl_ms(key)

    async def decr(self, key: str) -> int:
        async with self._lock:
            self._purge(key)
            count = int(self._values.get(key, "0")) - 1
            self._values[key] = str(count)
            return count

    async def get(self, key: str) -> Optional[str]:
        async with self._lock:
            self._purge(key)
            return self._values.get(key)

    async def set(self, key: str, value: str, *, ttl_seconds: int, nx: bool = False) -> bool:
        async with self._lock:
            self._purge(key)
            if nx and key in self._values:
                return False
            self._values[key] = value
            self._expires_at[key] = self._clock() + ttl_seconds
            return True

    async def delete(self, key: str) -> bool:
        async with self._lock:
            self._purge(key)
            self._expires_at.pop(key, None)
            return self._values.pop(key, None) is not None

    async def ping(self) -> bool:
        return True

    def clear(self) -> None:
        self._values.clear()
        self._expires_at.clear()
