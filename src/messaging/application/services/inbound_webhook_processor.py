"""
Inbound Webhook Processor
Verifies and processes WhatsApp Cloud API webhooks.
"""
from __future__ import annotations

import json
from typing import Any, Dict, Optional

from src.messaging.domain.entities.message import Message
from src.messaging.domain.events.partner_events import (
    BUTTON_CLICKED,
    LIST_SELECTED,
    MESSAGE_DELIVERED,
    MESSAGE_FAILED,
    MESSAGE_READ,
    PartnerEvent,
)
from src.messaging.domain.protocols import EventPublisher, MessageStore, TenantResolver
from src.messaging.domain.value_objects.message_status import MessageState, state_from_provider
from src.shared.exceptions import ForbiddenError, InvalidRequestError, UnauthorizedError
from src.shared.infrastructure.background import TaskRunner
from src.shared.logging import get_logger, log_security_event, mask_phone
from src.shared.utils.crypto import constant_time_equals, verify_signature_header

logger = get_logger(__name__)

WHATSAPP_OBJECT = "whatsapp_business_account"
SUBSCRIBE_MODE = "subscribe"

# state reached -> partner event name
_STATE_EVENTS = {
    MessageState.DELIVERED: MESSAGE_DELIVERED,
    MessageState.READ: MESSAGE_READ,
    MessageState.FAILED: MESSAGE_FAILED,
}


class InboundWebhookProcessor:
    """
    Service for processing WhatsApp webhooks.

    accept() does the synchronous part of a POST (signature check, JSON parse)
    and hands the payload to the TaskRunner, so the provider gets its 200
    before any database work happens.
    """

    def __init__(
        self,
        store: MessageStore,
        tenants: TenantResolver,
        publisher: Optional[EventPublisher],
        runner: TaskRunner,
        *,
        app_secret: Optional[str],
        verify_token: Optional[str],
    ) -> None:
        self._store = store
        self._tenants = tenants
        self._publisher = publisher
        self._runner = runner
        self._app_secret = app_secret
        self._verify_token = verify_token

    # ---------- verification ----------

    def verify_subscription(self, mode: Optional[str], verify_token: Optional[str], challenge: Optional[str]) -> str:
        """
        GET handshake: echo the challenge back when the token matches.

        Raises:
            ForbiddenError: wrong mode, wrong token or no token configured
        """
        if (
            mode == SUBSCRIBE_MODE
            and challenge is not None
            and constant_time_equals(verify_token, self._verify_token)
        ):
            logger.info("Webhook subscription verified")
            return challenge
        log_security_event("webhook_verification_failed", details={"mode": mode})
        raise ForbiddenError("Webhook verification failed")

    def verify_signature(self, raw_body: bytes, signature_header: Optional[str]) -> None:
        """
        Check the HMAC-SHA256 of the exact raw body.

        Raises:
            UnauthorizedError: missing, malformed or mismatched signature
        """
        if not verify_signature_header(self._app_secret or "", raw_body, signature_header):
            log_security_event(
                "webhook_signature_invalid",
                details={"has_header": bool(signature_header), "body_size": len(raw_body)},
            )
            raise UnauthorizedError("Invalid webhook signature")

    def accept(self, raw_body: bytes, signature_header: Optional[str]) -> None:
        """Verify, parse and schedule processing; returns before processing runs."""
        self.verify_signature(raw_body, signature_header)
        try:
            payload = json.loads(raw_body)
        except (ValueError, UnicodeDecodeError):
            raise InvalidRequestError("Webhook body is not valid JSON")
        if not isinstance(payload, dict):
            raise InvalidRequestError("Webhook body must be a JSON object")
        self._runner.submit(self.process(payload), name="whatsapp-webhook")

    # ---------- processing ----------

    async def process(self, payload: Dict[str, Any]) -> None:
        if payload.get("object") != WHATSAPP_OBJECT:
            logger.info("Ignoring webhook for foreign object", object=payload.get("object"))
            return

        for entry in payload.get("entry") or []:
            for change in entry.get("changes") or []:
                value = change.get("value") or {}
                phone_number_id = (value.get("metadata") or {}).get("phone_number_id")
                tenant_id = await self._tenants.resolve(str(phone_number_id)) if phone_number_id else None
                if tenant_id is None:
                    logger.warning("Webhook for unknown phone number; skipping", phone_number_id=phone_number_id)
                    continue

                for message in value.get("messages") or []:
                    try:
                        await self._process_message(tenant_id, message)
                    except Exception as e:
                        logger.error(
                            "Failed to process inbound message",
                            tenant_id=tenant_id,
                            provider_id=message.get("id"),
                            error=str(e),
                            exc_info=True,
                        )

                for status in value.get("statuses") or []:
                    try:
                        await self._process_status(tenant_id, status)
                    except Exception as e:
                        logger.error(
                            "Failed to process status update",
                            tenant_id=tenant_id,
                            provider_id=status.get("id"),
                            error=str(e),
                            exc_info=True,
                        )

    async def _process_message(self, tenant_id: str, message: Dict[str, Any]) -> None:
        provider_id = message.get("id")
        if not provider_id:
            logger.warning("Inbound message without id; skipping", tenant_id=tenant_id)
            return

        created = await self._store.upsert_by_provider_id(Message.inbound(tenant_id, str(provider_id), message))
        if not created:
            logger.info("Duplicate inbound message ignored", tenant_id=tenant_id, provider_id=provider_id)
            return

        logger.info(
            "Inbound message stored",
            tenant_id=tenant_id,
            provider_id=provider_id,
            type=message.get("type"),
            sender=mask_phone(message.get("from")),
        )
        if message.get("type") == "interactive":
            self._publish_interaction(tenant_id, message)

    def _publish_interaction(self, tenant_id: str, message: Dict[str, Any]) -> None:
        interactive = message.get("interactive") or {}
        kind = interactive.get("type")
        common = {
            "message_id": message.get("id"),
            "contact": message.get("from"),
            "timestamp": message.get("timestamp"),
        }
        if kind == "button_reply":
            reply = interactive.get("button_reply") or {}
            self._publish(PartnerEvent(
                tenant_id=tenant_id,
                name=BUTTON_CLICKED,
                data={**common, "button": {"id": reply.get("id"), "title": reply.get("title")}},
            ))
        elif kind == "list_reply":
            reply = interactive.get("list_reply") or {}
            self._publish(PartnerEvent(
                tenant_id=tenant_id,
                name=LIST_SELECTED,
                data={
                    **common,
                    "list": {
                        "id": reply.get("id"),
                        "title": reply.get("title"),
                        "description": reply.get("description"),
                    },
                },
            ))

    async def _process_status(self, tenant_id: str, status: Dict[str, Any]) -> None:
        provider_id = status.get("id")
        target = state_from_provider(status.get("status"))
        if not provider_id or target is None:
            logger.info("Ignoring unsupported status", status=status.get("status"))
            return

        error = None
        if target == MessageState.FAILED:
            errors = status.get("errors") or []
            if errors:
                error = errors[0].get("title") or errors[0].get("message") or str(errors[0].get("code"))

        updated = await self._store.transition_by_provider_id(
            str(provider_id), target, tenant_id=tenant_id, error=error
        )
        if updated is None:
            # unknown id, another tenant's message, or a late/out-of-order status
            logger.info("Status not applied", provider_id=provider_id, status=target.value)
            return

        logger.info("Message status updated", message_id=str(updated.id), state=target.value)
        event = _STATE_EVENTS.get(target)
        if event is not None:
            self._publish(PartnerEvent(
                tenant_id=updated.tenant_id,
                name=event,
                data={
                    "message_id": str(updated.id),
                    "provider_id": provider_id,
                    "status": target.value,
                    "timestamp": status.get("timestamp"),
                },
            ))

    def _publish(self, event: PartnerEvent) -> None:
        if self._publisher is not None:
            self._publisher.publish(event)
