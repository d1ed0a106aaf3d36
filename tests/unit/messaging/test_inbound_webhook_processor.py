import pytest
from conftest import (
    APP_SECRET,
    OTHER_TENANT,
    PHONE_NUMBER_ID,
    TENANT,
    VERIFY_TOKEN,
    signed,
    wa_button_reply,
    wa_status,
    wa_webhook,
)

from src.messaging.application.services.inbound_webhook_processor import InboundWebhookProcessor
from src.messaging.domain.entities.message import Message
from src.messaging.domain.value_objects.message_status import MessageState, MessageType
from src.messaging.infrastructure.persistence.repositories.memory_stores import InMemoryMessageStore
from src.messaging.infrastructure.tenant_resolver import StaticTenantResolver
from src.shared.exceptions import ForbiddenError, InvalidRequestError, UnauthorizedError
from src.shared.infrastructure.background import TaskRunner
from src.shared.utils.crypto import signature_header


@pytest.fixture
def store():
    return InMemoryMessageStore()


@pytest.fixture
def runner():
    return TaskRunner()


@pytest.fixture
def processor(store, publisher, runner):
    return InboundWebhookProcessor(
        store,
        StaticTenantResolver({PHONE_NUMBER_ID: TENANT}),
        publisher,
        runner,
        app_secret=APP_SECRET,
        verify_token=VERIFY_TOKEN,
    )


async def _sent_message(store, provider_id="wamid.out.1", tenant_id=TENANT) -> Message:
    message = Message.outbound(tenant_id, "+5511987654321", MessageType.TEXT, {})
    await store.insert(message)
    await store.transition(message.id, MessageState.SENT, provider_id=provider_id, attempts=1)
    return message


# ---------- handshake & signature ----------

def test_subscription_handshake_echoes_challenge(processor):
    assert processor.verify_subscription("subscribe", VERIFY_TOKEN, "1158201444") == "1158201444"


@pytest.mark.parametrize(
    "mode, token, challenge",
    [("subscribe", "wrong", "c"), ("unsubscribe", VERIFY_TOKEN, "c"), ("subscribe", None, "c"), ("subscribe", VERIFY_TOKEN, None)],
)
def test_subscription_handshake_rejects(processor, mode, token, challenge):
    with pytest.raises(ForbiddenError):
        processor.verify_subscription(mode, token, challenge)


def test_handshake_without_configured_token_is_forbidden(store, publisher, runner):
    processor = InboundWebhookProcessor(
        store, StaticTenantResolver({}), publisher, runner, app_secret=APP_SECRET, verify_token=None
    )
    with pytest.raises(ForbiddenError):
        processor.verify_subscription("subscribe", "anything", "c")


def test_signature_is_checked_on_raw_bytes(processor):
    body, signature = signed(wa_webhook(statuses=[]))
    processor.verify_signature(body, signature)

    with pytest.raises(UnauthorizedError):
        processor.verify_signature(body + b" ", signature)
    with pytest.raises(UnauthorizedError):
        processor.verify_signature(body, None)
    with pytest.raises(UnauthorizedError):
        processor.verify_signature(body, signed(wa_webhook(statuses=[]), secret="another-secret")[1])


async def test_accept_schedules_processing(processor, store, runner):
    body, signature = signed(wa_webhook(messages=[{"from": "5511987654321", "id": "wamid.in.1", "type": "text"}]))
    processor.accept(body, signature)
    await runner.drain(timeout=1)
    assert (await store.get_by_provider_id("wamid.in.1")).state == MessageState.RECEIVED


async def test_accept_rejects_invalid_json(processor):
    body = b"{not json"
    with pytest.raises(InvalidRequestError):
        processor.accept(body, signature_header(APP_SECRET, body))


# ---------- processing ----------

async def test_status_updates_climb_the_ladder(processor, store, publisher):
    message = await _sent_message(store)

    await processor.process(wa_webhook(statuses=[wa_status("wamid.out.1", "delivered")]))
    await processor.process(wa_webhook(statuses=[wa_status("wamid.out.1", "read")]))

    assert (await store.get(message.id)).state == MessageState.READ
    assert publisher.names() == ["message.delivered", "message.read"]
    assert publisher.events[0].data == {
        "message_id": str(message.id),
        "provider_id": "wamid.out.1",
        "status": "delivered",
        "timestamp": "1735689600",
    }


async def test_late_status_is_ignored(processor, store, publisher):
    message = await _sent_message(store)
    await processor.process(wa_webhook(statuses=[wa_status("wamid.out.1", "delivered")]))
    await processor.process(wa_webhook(statuses=[wa_status("wamid.out.1", "read")]))
    await processor.process(wa_webhook(statuses=[wa_status("wamid.out.1", "delivered")]))

    assert (await store.get(message.id)).state == MessageState.READ
    assert publisher.names() == ["message.delivered", "message.read"]


async def test_status_that_skips_a_rung_is_ignored(processor, store, publisher):
    message = await _sent_message(store)
    await processor.process(wa_webhook(statuses=[wa_status("wamid.out.1", "read")]))

    assert (await store.get(message.id)).state == MessageState.SENT
    assert publisher.events == []


async def test_failed_status_records_provider_error(processor, store, publisher):
    message = await _sent_message(store)
    status = wa_status("wamid.out.1", "failed", errors=[{"code": 131026, "title": "Message undeliverable"}])
    await processor.process(wa_webhook(statuses=[status]))

    stored = await store.get(message.id)
    assert stored.state == MessageState.FAILED
    assert stored.error == "Message undeliverable"
    assert publisher.names() == ["message.failed"]


async def test_status_for_another_tenant_is_not_applied(processor, store, publisher):
    message = await _sent_message(store, tenant_id=OTHER_TENANT)
    await processor.process(wa_webhook(statuses=[wa_status("wamid.out.1", "delivered")]))

    assert (await store.get(message.id)).state == MessageState.SENT
    assert publisher.events == []


async def test_redelivered_inbound_message_is_stored_once(processor, store, publisher):
    payload = wa_webhook(messages=[wa_button_reply("wamid.in.7", "confirm", "Confirm")])
    await processor.process(payload)
    await processor.process(payload)

    assert len(store) == 1
    assert publisher.names() == ["button.clicked"]
    event = publisher.events[0]
    assert event.tenant_id == TENANT
    assert event.data["button"] == {"id": "confirm", "title": "Confirm"}
    assert event.data["contact"] == "5511987654321"


async def test_list_reply_publishes_list_selected(processor, publisher):
    message = {
        "from": "5511987654321",
        "id": "wamid.in.8",
        "timestamp": "1735689600",
        "type": "interactive",
        "interactive": {
            "type": "list_reply",
            "list_reply": {"id": "row-2", "title": "Tomorrow", "description": "After 2pm"},
        },
    }
    await processor.process(wa_webhook(messages=[message]))

    assert publisher.names() == ["list.selected"]
    assert publisher.events[0].data["list"] == {"id": "row-2", "title": "Tomorrow", "description": "After 2pm"}


async def test_unknown_phone_number_and_foreign_objects_are_skipped(processor, store, publisher):
    await processor.process(
        wa_webhook(messages=[{"from": "1", "id": "wamid.in.9", "type": "text"}], phone_number_id="999")
    )
    await processor.process({"object": "page", "entry": []})

    assert len(store) == 0
    assert publisher.events == []


async def test_one_bad_item_does_not_stop_the_batch(processor, store):
    class FlakyStore(InMemoryMessageStore):
        async def upsert_by_provider_id(self, message):
            if message.provider_id == "wamid.bad":
                raise RuntimeError("db hiccup")
            return await super().upsert_by_provider_id(message)

    flaky = FlakyStore()
    processor._store = flaky
    await processor.process(wa_webhook(messages=[
        {"from": "1", "id": "wamid.bad", "type": "text"},
        {"from": "1", "id": "wamid.good", "type": "text"},
    ]))
    assert await flaky.get_by_provider_id("wamid.good") is not None
