import asyncio

import pytest
from conftest import FakeProvider

from src.messaging.application.services.dispatch_queue import DispatchQueue
from src.messaging.domain.entities.message import Message
from src.messaging.domain.exceptions import PermanentProviderError, ProviderError
from src.messaging.domain.value_objects.message_status import MessageState, MessageType
from src.messaging.infrastructure.persistence.repositories.memory_stores import InMemoryMessageStore
from src.shared.exceptions import ConflictError, NotFoundError


def _message(tenant_id: str = "t1") -> Message:
    return Message.outbound(
        tenant_id,
        "+5511987654321",
        MessageType.TEXT,
        {"messaging_product": "whatsapp", "type": "text", "text": {"body": "hi"}},
        metadata={"order": "42"},
    )


@pytest.fixture
def store():
    return InMemoryMessageStore()


def _queue(store, provider, publisher=None, sleep=None, **kwargs) -> DispatchQueue:
    kwargs.setdefault("max_attempts", 5)
    kwargs.setdefault("backoff_base_seconds", 2.0)
    if sleep is not None:
        kwargs["sleep"] = sleep
    return DispatchQueue(store, provider, publisher, **kwargs)


async def test_enqueue_persists_pending_and_returns_ack(store):
    queue = _queue(store, FakeProvider())
    ack = await queue.enqueue(_message())

    assert ack.state == MessageState.PENDING
    assert ack.to_dict() == {"message_id": str(ack.message_id), "state": "pending"}
    assert (await store.get(ack.message_id)).state == MessageState.PENDING
    assert queue.depth == 1


async def test_four_failures_then_success(store, sleep, publisher):
    provider = FakeProvider(*[ProviderError("503")] * 4, "wamid.ok")
    queue = _queue(store, provider, publisher, sleep)
    ack = await queue.enqueue(_message())

    assert await queue.process(ack.message_id) == MessageState.SENT
    assert sleep.delays == [2.0, 4.0, 8.0, 16.0]
    stored = await store.get(ack.message_id)
    assert stored.state == MessageState.SENT
    assert stored.provider_id == "wamid.ok"
    assert stored.attempts == 5
    assert publisher.events == []


async def test_exhaustion_fails_and_publishes(store, sleep, publisher):
    provider = FakeProvider(*[ProviderError("timeout")] * 5)
    queue = _queue(store, provider, publisher, sleep)
    ack = await queue.enqueue(_message())

    assert await queue.process(ack.message_id) == MessageState.FAILED
    assert len(provider.sent) == 5
    assert sleep.delays == [2.0, 4.0, 8.0, 16.0]

    stored = await store.get(ack.message_id)
    assert stored.state == MessageState.FAILED
    assert stored.error == "timeout"
    assert stored.attempts == 5

    assert publisher.names() == ["message.failed"]
    event = publisher.events[0]
    assert event.tenant_id == "t1"
    assert event.data["message_id"] == str(ack.message_id)
    assert event.data["attempts"] == 5


async def test_permanent_error_is_not_retried(store, sleep, publisher):
    provider = FakeProvider(PermanentProviderError("invalid recipient", status_code=400))
    queue = _queue(store, provider, publisher, sleep)
    ack = await queue.enqueue(_message())

    assert await queue.process(ack.message_id) == MessageState.FAILED
    assert len(provider.sent) == 1
    assert sleep.delays == []
    assert (await store.get(ack.message_id)).error == "invalid recipient"


async def test_provider_call_is_bounded_by_timeout(store, sleep):
    class HangingProvider:
        async def send(self, message):
            await asyncio.sleep(10)

    queue = _queue(store, HangingProvider(), sleep=sleep, max_attempts=1, provider_timeout_seconds=0.01)
    ack = await queue.enqueue(_message())

    assert await queue.process(ack.message_id) == MessageState.FAILED
    assert "timed out" in (await store.get(ack.message_id)).error


async def test_non_pending_messages_are_skipped(store):
    provider = FakeProvider()
    queue = _queue(store, provider)
    ack = await queue.enqueue(_message())
    await queue.process(ack.message_id)

    assert await queue.process(ack.message_id) is None
    assert len(provider.sent) == 1


async def test_resend_creates_a_new_pending_copy(store, sleep):
    queue = _queue(store, FakeProvider(PermanentProviderError("rejected")), sleep=sleep)
    original = await queue.enqueue(_message())
    await queue.process(original.message_id)

    ack = await queue.resend("t1", original.message_id)
    assert ack.message_id != original.message_id
    copy = await store.get(ack.message_id)
    assert copy.state == MessageState.PENDING
    assert copy.metadata == {"order": "42", "resend_of": str(original.message_id)}
    assert copy.payload["text"] == {"body": "hi"}
    assert (await store.get(original.message_id)).state == MessageState.FAILED


async def test_resend_requires_a_failed_message_of_the_tenant(store):
    queue = _queue(store, FakeProvider())
    ack = await queue.enqueue(_message())

    with pytest.raises(ConflictError):
        await queue.resend("t1", ack.message_id)
    with pytest.raises(NotFoundError):
        await queue.resend("t2", ack.message_id)


async def test_resend_admission_hook_runs_before_insert(store, sleep):
    queue = _queue(store, FakeProvider(PermanentProviderError("rejected")), sleep=sleep)
    original = await queue.enqueue(_message())
    await queue.process(original.message_id)

    async def over_quota():
        raise RuntimeError("over quota")

    with pytest.raises(RuntimeError):
        await queue.resend("t1", original.message_id, before_enqueue=over_quota)
    assert len(store) == 1


async def test_workers_recover_pending_messages(store):
    stranded = [_message(), _message()]
    for message in stranded:
        await store.insert(message)

    provider = FakeProvider()
    queue = _queue(store, provider, workers=2)
    await queue.start()
    try:
        await asyncio.wait_for(queue.join(), timeout=2)
    finally:
        await queue.stop()

    assert len(provider.sent) == 2
    for message in stranded:
        assert (await store.get(message.id)).state == MessageState.SENT
    assert not queue.running


async def test_ids_are_queued_once(store):
    queue = _queue(store, FakeProvider())
    await queue.enqueue(_message())
    assert await queue.recover_pending() == 1
    assert queue.depth == 1


def test_max_attempts_must_be_positive(store):
    with pytest.raises(ValueError):
        DispatchQueue(store, FakeProvider(), max_attempts=0)
