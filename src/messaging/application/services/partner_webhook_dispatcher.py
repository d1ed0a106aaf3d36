"""
Partner Webhook Dispatcher
Signed, best-effort fan-out of partner events to subscribed endpoints.
"""
from __future__ import annotations

import asyncio
import json
import time
from dataclasses import dataclass
from datetime import datetime, timezone
from typing import Any, Dict, Iterable, List, Optional
from urllib.parse import urlparse
from uuid import UUID

import httpx

from src.messaging.domain.entities.webhook_subscription import WebhookSubscription
from src.messaging.domain.events.partner_events import PARTNER_EVENTS, PartnerEvent
from src.messaging.domain.protocols import SubscriptionStore
from src.shared.exceptions import InvalidRequestError, NotFoundError
from src.shared.infrastructure.background import TaskRunner
from src.shared.logging import get_logger
from src.shared.utils.crypto import signature_header

logger = get_logger(__name__)

SIGNATURE_HEADER = "X-Signature-256"


@dataclass(frozen=True)
class DeliveryAttempt:
    """Outcome of one delivery; logged, never persisted."""
    event: str
    subscription_id: UUID
    target: str
    signature: str
    status_code: Optional[int]
    error: Optional[str]
    duration_ms: float

    @property
    def ok(self) -> bool:
        return self.status_code is not None and 200 <= self.status_code < 300


def encode_body(event: PartnerEvent, sent_at: Optional[datetime] = None) -> bytes:
    """Compact JSON body; the signature covers exactly these bytes."""
    sent_at = sent_at or datetime.now(timezone.utc)
    body = {
        "event": event.name,
        "data": event.data,
        "sent_at": sent_at.isoformat().replace("+00:00", "Z"),
    }
    return json.dumps(body, separators=(",", ":"), ensure_ascii=False, default=str).encode("utf-8")


def _validate_url(url: str) -> str:
    parsed = urlparse(url or "")
    if parsed.scheme not in ("http", "https") or not parsed.netloc:
        raise InvalidRequestError("Invalid webhook URL", details={"url": url})
    return url


def _validate_events(events: Iterable[str]) -> frozenset:
    requested = list(events or [])
    if not requested:
        raise InvalidRequestError("At least one event is required", details={"valid_events": sorted(PARTNER_EVENTS)})
    invalid = sorted({e for e in requested if e not in PARTNER_EVENTS})
    if invalid:
        raise InvalidRequestError(
            "Unknown events",
            details={"invalid_events": invalid, "valid_events": sorted(PARTNER_EVENTS)},
        )
    return frozenset(requested)


class PartnerWebhookDispatcher:
    """
    Registers partner subscriptions and delivers events to them.

    Deliveries are a single attempt with a timeout; failures are logged and
    dropped. publish() schedules dispatch() on the TaskRunner so callers never
    wait on partner endpoints.
    """

    def __init__(
        self,
        store: SubscriptionStore,
        runner: TaskRunner,
        *,
        client: Optional[httpx.AsyncClient] = None,
        timeout_seconds: float = 10.0,
    ) -> None:
        self._store = store
        self._runner = runner
        self._timeout = timeout_seconds
        self._client = client or httpx.AsyncClient(timeout=timeout_seconds)
        self._owns_client = client is None

    async def close(self) -> None:
        if self._owns_client:
            await self._client.aclose()

    # ---------- subscriptions ----------

    async def register(self, tenant_id: str, url: str, events: Iterable[str], secret: str) -> WebhookSubscription:
        if not secret:
            raise InvalidRequestError("secret is required", details={"required": ["url", "events", "secret"]})
        subscription = WebhookSubscription(
            tenant_id=tenant_id,
            url=_validate_url(url),
            events=_validate_events(events),
            secret=secret,
        )
        await self._store.add(subscription)
        logger.info(
            "Partner webhook registered",
            tenant_id=tenant_id,
            subscription_id=str(subscription.id),
            url=url,
            events=sorted(subscription.events),
        )
        return subscription

    async def list(self, tenant_id: str) -> List[WebhookSubscription]:
        return await self._store.list(tenant_id)

    async def deactivate(self, tenant_id: str, subscription_id: UUID) -> None:
        if not await self._store.deactivate(tenant_id, subscription_id):
            raise NotFoundError("Webhook subscription not found", details={"id": str(subscription_id)})
        logger.info("Partner webhook deactivated", tenant_id=tenant_id, subscription_id=str(subscription_id))

    # ---------- delivery ----------

    def publish(self, event: PartnerEvent) -> None:
        self._runner.submit(self.dispatch(event), name=f"partner-webhook:{event.name}")

    async def dispatch(self, event: PartnerEvent) -> List[DeliveryAttempt]:
        subscriptions = await self._store.list_for_event(event.tenant_id, event.name)
        if not subscriptions:
            return []
        body = encode_body(event)
        attempts = [await self._deliver(sub, event.name, body) for sub in subscriptions]
        logger.info(
            "Partner event dispatched",
            event_name=event.name,
            tenant_id=event.tenant_id,
            targets=len(attempts),
            delivered=sum(1 for a in attempts if a.ok),
        )
        return attempts

    async def _deliver(self, subscription: WebhookSubscription, event: str, body: bytes) -> DeliveryAttempt:
        signature = signature_header(subscription.secret, body)
        headers: Dict[str, Any] = {
            "Content-Type": "application/json",
            SIGNATURE_HEADER: signature,
            "User-Agent": "workshop-messaging-webhooks/1.0",
        }
        started = time.perf_counter()
        status_code: Optional[int] = None
        error: Optional[str] = None
        try:
            # total deadline; httpx timeouts apply per phase only
            response = await asyncio.wait_for(
                self._client.post(subscription.url, content=body, headers=headers, timeout=self._timeout),
                timeout=self._timeout,
            )
            status_code = response.status_code
            if not response.is_success:
                error = f"HTTP {status_code}"
        except asyncio.TimeoutError:
            error = f"timed out after {self._timeout}s"
        except httpx.HTTPError as e:
            error = f"{e.__class__.__name__}: {e}"

        attempt = DeliveryAttempt(
            event=event,
            subscription_id=subscription.id,
            target=subscription.url,
            signature=signature,
            status_code=status_code,
            error=error,
            duration_ms=round((time.perf_counter() - started) * 1000, 2),
        )
        if attempt.ok:
            logger.info(
                "Partner webhook delivered",
                subscription_id=str(subscription.id),
                event_name=event,
                status_code=status_code,
                duration_ms=attempt.duration_ms,
            )
        else:
            logger.warning(
                "Partner webhook delivery failed",
                subscription_id=str(subscription.id),
                event_name=event,
                url=subscription.url,
                status_code=status_code,
                error=error,
                duration_ms=attempt.duration_ms,
            )
        return attempt
