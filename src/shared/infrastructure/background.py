"""
Background task runner.

Fire-and-forget work (webhook processing, partner fan-out) is handed to a
TaskRunner instead of being awaited in the request. Tasks outlive the request
that scheduled them; failures go to the runner's own error channel (logged,
optionally forwarded to an error hook) and never reach the original caller.
"""
from __future__ import annotations

import asyncio
from typing import Any, Awaitable, Callable, Coroutine, Optional, Set

from src.shared.logging import get_logger

logger = get_logger(__name__)

ErrorHook = Callable[[str, BaseException], Awaitable[None] | None]


class TaskRunner:
    def __init__(self, on_error: Optional[ErrorHook] = None) -> None:
        self._tasks: Set[asyncio.Task] = set()
        self._on_error = on_error
        self._closed = False
        self.failures = 0

    @property
    def pending(self) -> int:
        return len(self._tasks)

    def submit(self, coro: Coroutine[Any, Any, Any], *, name: str = "background") -> asyncio.Task:
        if self._closed:
            coro.close()
            raise RuntimeError("TaskRunner is closed")
        # owned by the runner, not by the request that scheduled it
        task = asyncio.get_running_loop().create_task(coro, name=name)
        self._tasks.add(task)
        task.add_done_callback(self._on_done)
        return task

    def _on_done(self, task: asyncio.Task) -> None:
        self._tasks.discard(task)
        if task.cancelled():
            return
        exc = task.exception()
        if exc is None:
            return
        self.failures += 1
        logger.error(
            "Background task failed",
            task=task.get_name(),
            error=str(exc),
            error_type=exc.__class__.__name__,
            exc_info=exc,
        )
        if self._on_error is not None:
            result = self._on_error(task.get_name(), exc)
            if asyncio.iscoroutine(result):
                asyncio.get_running_loop().create_task(result)

    async def drain(self, timeout: Optional[float] = None) -> None:
        """Wait until every submitted task (including ones spawned meanwhile) has finished."""
        async def _wait_all() -> None:
            while self._tasks:
                await asyncio.gather(*list(self._tasks), return_exceptions=True)

        if timeout is None:
            await _wait_all()
        else:
            await asyncio.wait_for(_wait_all(), timeout)

    async def shutdown(self, timeout: float = 10.0) -> None:
        self._closed = True
        try:
            await self.drain(timeout)
        except asyncio.TimeoutError:
            logger.warning("Cancelling background tasks on shutdown", pending=len(self._tasks))
            for task in list(self._tasks):
                task.cancel()
            await asyncio.gather(*list(self._tasks), return_exceptions=True)
