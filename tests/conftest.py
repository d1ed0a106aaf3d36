import json
import os
from datetime import datetime, timezone
from typing import Any, Dict, List, Optional

import httpx
import pytest
from fastapi.testclient import TestClient

from src.dependencies import build_container
from src.main import create_app
from src.shared.config import Settings
from src.shared.exceptions import StoreUnavailableError
from src.shared.utils.crypto import signature_header

APP_SECRET = "test-app-secret-123"
VERIFY_TOKEN = "test-verify-token"
PHONE_NUMBER_ID = "1000200030004000"
TENANT = "tenant-a"
OTHER_TENANT = "tenant-b"


def require_test_db():
    url = os.getenv("TEST_DATABASE_URL")
    if not url:
        pytest.skip("TEST_DATABASE_URL not set; skipping DB-dependent tests")
    return url


# ---------------------------------------------------------------------
# Fakes
# ---------------------------------------------------------------------

class FakeProvider:
    """
    Scripted ChannelProvider.

    Each queued outcome is either an exception (raised) or a provider id
    (returned); once the script runs out every send succeeds.
    """

    def __init__(self, *outcomes: Any) -> None:
        self.outcomes: List[Any] = list(outcomes)
        self.sent: List[Any] = []
        self._seq = 0

    def script(self, *outcomes: Any) -> None:
        self.outcomes.extend(outcomes)

    async def send(self, message) -> str:
        self.sent.append(message)
        if self.outcomes:
            outcome = self.outcomes.pop(0)
            if isinstance(outcome, BaseException):
                raise outcome
            return outcome
        self._seq += 1
        return f"wamid.{self._seq}"


class RecordingSleep:
    def __init__(self) -> None:
        self.delays: List[float] = []

    async def __call__(self, delay: float) -> None:
        self.delays.append(delay)


class RecordingPublisher:
    def __init__(self) -> None:
        self.events: List[Any] = []

    def publish(self, event) -> None:
        self.events.append(event)

    def names(self) -> List[str]:
        return [e.name for e in self.events]


class FakeClock:
    """Monotonic seconds for InMemoryCounterStore."""

    def __init__(self, start: float = 1_000.0) -> None:
        self.now = start

    def __call__(self) -> float:
        return self.now

    def advance(self, seconds: float) -> None:
        self.now += seconds


class FailingStore:
    """CounterStore whose backend is always down."""

    async def incr_window(self, key, window_ms):
        raise StoreUnavailableError("down")

    async def decr(self, key):
        raise StoreUnavailableError("down")

    async def get(self, key):
        raise StoreUnavailableError("down")

    async def set(self, key, value, *, ttl_seconds, nx=False):
        raise StoreUnavailableError("down")

    async def delete(self, key):
        raise StoreUnavailableError("down")

    async def ping(self):
        return False


class PartnerEndpoint:
    """httpx.MockTransport handler that records partner deliveries."""

    def __init__(self, status_code: int = 200) -> None:
        self.status_code = status_code
        self.requests: List[httpx.Request] = []

    def __call__(self, request: httpx.Request) -> httpx.Response:
        self.requests.append(request)
        return httpx.Response(self.status_code, json={"ok": True})

    def client(self) -> httpx.AsyncClient:
        return httpx.AsyncClient(transport=httpx.MockTransport(self))

    def bodies(self) -> List[Dict[str, Any]]:
        return [json.loads(r.content) for r in self.requests]


# ---------------------------------------------------------------------
# WhatsApp webhook payloads
# ---------------------------------------------------------------------

def wa_webhook(*, messages=None, statuses=None, phone_number_id: str = PHONE_NUMBER_ID) -> Dict[str, Any]:
    value: Dict[str, Any] = {
        "messaging_product": "whatsapp",
        "metadata": {"display_phone_number": "15550001111", "phone_number_id": phone_number_id},
    }
    if messages is not None:
        value["messages"] = messages
    if statuses is not None:
        value["statuses"] = statuses
    return {
        "object": "whatsapp_business_account",
        "entry": [{"id": "WABA_ID", "changes": [{"field": "messages", "value": value}]}],
    }


def wa_status(provider_id: str, status: str, **extra) -> Dict[str, Any]:
    return {"id": provider_id, "status": status, "timestamp": "1735689600", "recipient_id": "5511987654321", **extra}


def wa_button_reply(provider_id: str, button_id: str = "yes", title: str = "Yes") -> Dict[str, Any]:
    return {
        "from": "5511987654321",
        "id": provider_id,
        "timestamp": "1735689600",
        "type": "interactive",
        "interactive": {"type": "button_reply", "button_reply": {"id": button_id, "title": title}},
    }


def signed(payload: Dict[str, Any], secret: str = APP_SECRET):
    body = json.dumps(payload).encode()
    return body, signature_header(secret, body)


# ---------------------------------------------------------------------
# Fixtures
# ---------------------------------------------------------------------

def make_settings(**overrides) -> Settings:
    values: Dict[str, Any] = dict(
        environment="local",
        is_testing=True,
        wa_app_secret=APP_SECRET,
        wa_verify_token=VERIFY_TOKEN,
        wa_phone_number_id=PHONE_NUMBER_ID,
        wa_access_token="test-token",
        wa_phone_number_tenants={PHONE_NUMBER_ID: TENANT},
        dispatch_workers=2,
        log_format="console",
    )
    values.update(overrides)
    return Settings(**values)


@pytest.fixture
def settings() -> Settings:
    return make_settings()


@pytest.fixture
def provider() -> FakeProvider:
    return FakeProvider()


@pytest.fixture
def sleep() -> RecordingSleep:
    return RecordingSleep()


@pytest.fixture
def publisher() -> RecordingPublisher:
    return RecordingPublisher()


@pytest.fixture
def clock() -> FakeClock:
    return FakeClock()


@pytest.fixture
def partner_endpoint() -> PartnerEndpoint:
    return PartnerEndpoint()


@pytest.fixture
def make_client(provider, sleep, partner_endpoint):
    """
    Factory for a TestClient over an in-memory container.

    The client is entered (lifespan runs, dispatch workers start) and closed at
    teardown. `client.app.state.container` gives access to the wiring.
    """
    opened: List[TestClient] = []

    def _make(container_kwargs: Optional[Dict[str, Any]] = None, **setting_overrides) -> TestClient:
        container = build_container(
            make_settings(**setting_overrides),
            provider=provider,
            partner_client=partner_endpoint.client(),
            sleep=sleep,
            **(container_kwargs or {}),
        )
        client = TestClient(create_app(container=container))
        client.__enter__()
        opened.append(client)
        return client

    yield _make
    for client in opened:
        client.__exit__(None, None, None)


@pytest.fixture
def client(make_client) -> TestClient:
    return make_client()


@pytest.fixture
def fixed_now():
    return datetime(2025, 1, 31, 23, 59, 0, tzinfo=timezone.utc)


def settle(client: TestClient) -> None:
    """Wait for queued dispatches and background webhook work to finish."""
    container = client.app.state.container
    client.portal.call(container.dispatch.join)
    client.portal.call(container.runner.drain)
    client.portal.call(container.dispatch.join)

