import asyncio

import pytest

from src.shared.infrastructure.background import TaskRunner


async def test_failures_stay_in_the_runner():
    seen = []

    async def on_error(name, exc):
        seen.append((name, str(exc)))

    runner = TaskRunner(on_error=on_error)

    async def boom():
        raise RuntimeError("partner down")

    runner.submit(boom(), name="partner-webhook:message.read")
    await runner.drain(timeout=1)
    await asyncio.sleep(0)

    assert runner.failures == 1
    assert runner.pending == 0
    assert seen == [("partner-webhook:message.read", "partner down")]


async def test_drain_waits_for_tasks_spawned_meanwhile():
    runner = TaskRunner()
    done = []

    async def child():
        done.append("child")

    async def parent():
        runner.submit(child(), name="child")
        done.append("parent")

    runner.submit(parent(), name="parent")
    await runner.drain(timeout=1)
    assert done == ["parent", "child"]


async def test_closed_runner_rejects_work():
    runner = TaskRunner()
    await runner.shutdown()

    async def noop():
        return None

    with pytest.raises(RuntimeError):
        runner.submit(noop())
