import asyncio
import json
import time
import uuid
from datetime import datetime, timezone

import httpx
import pytest
from conftest import OTHER_TENANT, TENANT, PartnerEndpoint, make_settings

from src.messaging.application.services.partner_webhook_dispatcher import (
    SIGNATURE_HEADER,
    PartnerWebhookDispatcher,
    encode_body,
)
from src.messaging.domain.events.partner_events import PartnerEvent
from src.messaging.infrastructure.persistence.repositories.memory_stores import InMemorySubscriptionStore
from src.shared.exceptions import InvalidRequestError, NotFoundError
from src.shared.infrastructure.background import TaskRunner
from src.shared.logging import setup_logging
from src.shared.utils.crypto import verify_signature_header


@pytest.fixture
def runner():
    return TaskRunner()


@pytest.fixture
def dispatcher(runner, partner_endpoint):
    return PartnerWebhookDispatcher(InMemorySubscriptionStore(), runner, client=partner_endpoint.client())


def _delivered(message_id="m-1", tenant_id=TENANT) -> PartnerEvent:
    return PartnerEvent(tenant_id=tenant_id, name="message.delivered", data={"message_id": message_id})


def test_encode_body_is_compact_json():
    sent_at = datetime(2025, 1, 1, 12, 0, 0, tzinfo=timezone.utc)
    body = encode_body(_delivered(), sent_at)
    assert body == b'{"event":"message.delivered","data":{"message_id":"m-1"},"sent_at":"2025-01-01T12:00:00Z"}'


def test_unknown_event_names_are_rejected():
    with pytest.raises(ValueError):
        PartnerEvent(tenant_id=TENANT, name="message.exploded")


async def test_register_validates_events_and_url(dispatcher):
    with pytest.raises(InvalidRequestError) as exc:
        await dispatcher.register(TENANT, "https://partner.example/hook", ["message.read", "bogus"], "s3cr3t")
    assert exc.value.details["invalid_events"] == ["bogus"]
    assert "message.read" in exc.value.details["valid_events"]

    with pytest.raises(InvalidRequestError):
        await dispatcher.register(TENANT, "ftp://partner.example/hook", ["message.read"], "s3cr3t")
    with pytest.raises(InvalidRequestError):
        await dispatcher.register(TENANT, "https://partner.example/hook", [], "s3cr3t")
    with pytest.raises(InvalidRequestError):
        await dispatcher.register(TENANT, "https://partner.example/hook", ["message.read"], "")


async def test_dispatch_signs_and_filters_by_tenant_and_event(dispatcher, partner_endpoint):
    wanted = await dispatcher.register(TENANT, "https://a.example/hook", ["message.delivered"], "secret-a")
    await dispatcher.register(TENANT, "https://b.example/hook", ["message.read"], "secret-b")
    await dispatcher.register(OTHER_TENANT, "https://c.example/hook", ["message.delivered"], "secret-c")

    attempts = await dispatcher.dispatch(_delivered())

    assert [a.subscription_id for a in attempts] == [wanted.id]
    assert attempts[0].ok
    assert len(partner_endpoint.requests) == 1
    request = partner_endpoint.requests[0]
    assert str(request.url) == "https://a.example/hook"
    assert verify_signature_header("secret-a", request.content, request.headers[SIGNATURE_HEADER])
    body = json.loads(request.content)
    assert body["event"] == "message.delivered"
    assert body["data"] == {"message_id": "m-1"}
    assert body["sent_at"].endswith("Z")


async def test_deactivated_subscriptions_receive_nothing(dispatcher, partner_endpoint):
    sub = await dispatcher.register(TENANT, "https://a.example/hook", ["message.delivered"], "secret-a")
    await dispatcher.deactivate(TENANT, sub.id)

    assert await dispatcher.dispatch(_delivered()) == []
    assert partner_endpoint.requests == []
    assert [s.active for s in await dispatcher.list(TENANT)] == [False]


async def test_deactivate_is_tenant_scoped(dispatcher):
    sub = await dispatcher.register(TENANT, "https://a.example/hook", ["message.delivered"], "secret-a")
    with pytest.raises(NotFoundError):
        await dispatcher.deactivate(OTHER_TENANT, sub.id)
    with pytest.raises(NotFoundError):
        await dispatcher.deactivate(TENANT, uuid.uuid4())


async def test_failed_delivery_is_logged_not_raised(runner):
    endpoint = PartnerEndpoint(status_code=500)
    dispatcher = PartnerWebhookDispatcher(InMemorySubscriptionStore(), runner, client=endpoint.client())
    await dispatcher.register(TENANT, "https://a.example/hook", ["message.delivered"], "secret-a")

    attempts = await dispatcher.dispatch(_delivered())
    assert not attempts[0].ok
    assert attempts[0].status_code == 500
    assert attempts[0].error == "HTTP 500"
    assert len(endpoint.requests) == 1


async def test_transport_error_is_a_single_attempt(runner):
    calls = []

    def refuse(request):
        calls.append(request)
        raise httpx.ConnectError("connection refused", request=request)

    client = httpx.AsyncClient(transport=httpx.MockTransport(refuse))
    dispatcher = PartnerWebhookDispatcher(InMemorySubscriptionStore(), runner, client=client)
    await dispatcher.register(TENANT, "https://a.example/hook", ["message.delivered"], "secret-a")

    attempts = await dispatcher.dispatch(_delivered())
    assert attempts[0].status_code is None
    assert "ConnectError" in attempts[0].error
    assert len(calls) == 1


async def test_publish_runs_in_the_background(dispatcher, runner, partner_endpoint):
    await dispatcher.register(TENANT, "https://a.example/hook", ["message.delivered"], "secret-a")
    dispatcher.publish(_delivered())
    assert partner_endpoint.requests == []

    await runner.drain(timeout=1)
    assert len(partner_endpoint.requests) == 1


async def test_event_fans_out_to_every_subscription(dispatcher, partner_endpoint):
    setup_logging(make_settings(log_format="json"))
    secrets = {
        "https://a.example/hook": "secret-a",
        "https://b.example/hook": "secret-b",
        "https://c.example/hook": "secret-c",
    }
    subs = [await dispatcher.register(TENANT, url, ["message.delivered"], secret) for url, secret in secrets.items()]

    attempts = await dispatcher.dispatch(_delivered())

    assert [a.subscription_id for a in attempts] == [s.id for s in subs]
    assert all(a.ok for a in attempts)
    assert sorted(str(r.url) for r in partner_endpoint.requests) == sorted(secrets)
    for request in partner_endpoint.requests:
        own = secrets[str(request.url)]
        assert verify_signature_header(own, request.content, request.headers[SIGNATURE_HEADER])
        for other in set(secrets.values()) - {own}:
            assert not verify_signature_header(other, request.content, request.headers[SIGNATURE_HEADER])


async def test_slow_endpoint_is_cut_off_at_the_deadline(runner):
    async def drip():
        for _ in range(10):
            await asyncio.sleep(0.1)
            yield b"."

    async def slow(request):
        return httpx.Response(200, content=drip())

    client = httpx.AsyncClient(transport=httpx.MockTransport(slow))
    dispatcher = PartnerWebhookDispatcher(InMemorySubscriptionStore(), runner, client=client, timeout_seconds=0.2)
    await dispatcher.register(TENANT, "https://slow.example/hook", ["message.delivered"], "secret-a")
    await dispatcher.register(TENANT, "https://slow2.example/hook", ["message.delivered"], "secret-b")

    started = time.perf_counter()
    attempts = await dispatcher.dispatch(_delivered())
    elapsed = time.perf_counter() - started

    assert len(attempts) == 2
    assert all(a.status_code is None for a in attempts)
    assert all("timed out" in a.error for a in attempts)
    assert elapsed < 0.9
