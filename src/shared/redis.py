# src/shared/redis.py
from __future__ import annotations

import asyncio
from typing import Any, Awaitable, Callable, Optional, Tuple

import redis.asyncio as redis
from redis.asyncio import Redis
from redis.exceptions import NoScriptError, RedisError

from src.shared.exceptions import StoreUnavailableError
from src.shared.logging import get_logger

logger = get_logger(__name__)


class RedisCounterStore:
    """Async Redis adapter for the CounterStore capability (namespaced keys, Lua counters)."""

    # KEYS[1] = counter key
    # ARGV[1] = window in milliseconds
    # Returns {count, pttl}
    _WINDOW_INCR_LUA = """
    local c = redis.call('INCR', KEYS[1])
    if c == 1 then
      redis.call('PEXPIRE', KEYS[1], tonumber(ARGV[1]))
    end
    local ttl = redis.call('PTTL', KEYS[1])
    if ttl < 0 then
      redis.call('PEXPIRE', KEYS[1], tonumber(ARGV[1]))
      ttl = tonumber(ARGV[1])
    end
    return {c, ttl}
    """

    def __init__(self, url: str, namespace: str = "wma", *, client: Optional[Redis] = None) -> None:
        self._url = url
        self._ns = namespace.strip(":")
        self.redis: Optional[Redis] = client
        self._lock = asyncio.Lock()
        self._window_sha: Optional[str] = None

    # ---------- connection management ----------

    async def connect(self) -> None:
        """Create client and verify connection."""
        async with self._lock:
            if self.redis is None:
                # from_url is sync; do NOT await it
                self.redis = redis.from_url(
                    self._url,
                    encoding="utf-8",
                    decode_responses=True,
                    health_check_interval=30,
                    socket_connect_timeout=5.0,
                    socket_timeout=5.0,
                    retry_on_timeout=True,
                    max_connections=100,
                )
            try:
                await self.redis.ping()
                self._window_sha = await self.redis.script_load(self._WINDOW_INCR_LUA)
            except RedisError as e:
                raise StoreUnavailableError(f"Redis connection failed: {e}") from e
        logger.info("Redis connection established")

    async def close(self) -> None:
        if self.redis is not None:
            await self.redis.aclose()
            self.redis = None

    # ---------- low-level helpers ----------

    def _k(self, key: str) -> str:
        return f"{self._ns}:{key}"

    async def _guard(self, fn: Callable[[Redis], Awaitable[Any]]) -> Any:
        if self.redis is None:
            await self.connect()
        try:
            return await fn(self.redis)  # type: ignore[arg-type]
        except RedisError as e:
            raise StoreUnavailableError(f"Redis error: {e}") from e

    # ---------- CounterStore ----------

    async def incr_window(self, key: str, window_ms: int) -> Tuple[int, int]:
        async def _run(r: Redis):
            try:
                if self._window_sha is None:
                    raise NoScriptError("script not loaded")
                return await r.evalsha(self._window_sha, 1, self._k(key), window_ms)
            except NoScriptError:
                return await r.eval(self._WINDOW_INCR_LUA, 1, self._k(key), window_ms)

        count, ttl = await self._guard(_run)
        return int(count), int(ttl)

    async def decr(self, key: str) -> int:
        return int(await self._guard(lambda r: r.decr(self._k(key))))

    async def get(self, key: str) -> Optional[str]:
        return await self._guard(lambda r: r.get(self._k(key)))

    async def set(self, key: str, value: str, *, ttl_seconds: int, nx: bool = False) -> bool:
        result = await self._guard(lambda r: r.set(self._k(key), value, ex=ttl_seconds, nx=nx))
        return bool(result)

    async def delete(self, key: str) -> bool:
        return int(await self._guard(lambda r: r.delete(self._k(key)))) > 0

    async def ping(self) -> bool:
        try:
            return bool(await self._guard(lambda r: r.ping()))
        except StoreUnavailableError:
            return False
