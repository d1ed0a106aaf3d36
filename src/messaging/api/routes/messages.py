from __future__ import annotations

from typing import Any, Callable, Dict, Optional
from uuid import UUID

from fastapi import APIRouter, Depends, status
from fastapi.responses import JSONResponse, Response

from src.dependencies import Container, get_container
from src.messaging.api.schemas.message_dto import (
    InteractiveMessageRequest,
    ListMessageRequest,
    MessageAccepted,
    MessageView,
    TemplateMessageRequest,
    TextMessageRequest,
    OutboundMessageRequest,
)
from src.messaging.domain.entities.message import Message
from src.messaging.domain.exceptions import InvalidMessageContentError
from src.messaging.domain.value_objects.message_status import MessageType
from src.messaging.infrastructure.whatsapp_client import (
    build_interactive_payload,
    build_list_payload,
    build_template_payload,
    build_text_payload,
)
from src.platform.api.dependencies import (
    RateLimit,
    enforce_quota,
    enforce_rate_limit,
    get_idempotency_key,
    get_tenant_id,
    rate_limit_headers,
    run_idempotent,
)
from src.platform.domain.entities.tenant import ResourceType
from src.shared.exceptions import InvalidRequestError, NotFoundError

router = APIRouter(prefix="/v1/messages", tags=["Messaging: Messages"])

_ACCEPTED = {status.HTTP_202_ACCEPTED: {"model": MessageAccepted}}


async def _accept(
    container: Container,
    tenant_id: str,
    idempotency_key: Optional[str],
    body: OutboundMessageRequest,
    message_type: MessageType,
    build: Callable[[], Dict[str, Any]],
) -> Response:
    settings = container.settings
    decisions = [
        await enforce_rate_limit(container, tenant_id, "api", settings.rate_limit_max_requests),
        await enforce_rate_limit(
            container, tenant_id, "whatsapp", settings.recipient_rate_limit_max, sub_key=body.to
        ),
    ]

    async def handler() -> Response:
        try:
            payload = build()
        except InvalidMessageContentError as e:
            raise InvalidRequestError(str(e))
        await enforce_quota(container, tenant_id, ResourceType.MESSAGES.value)
        message = Message.outbound(tenant_id, body.to, message_type, payload, metadata=body.metadata)
        ack = await container.dispatch.enqueue(message)
        return JSONResponse(status_code=status.HTTP_202_ACCEPTED, content=ack.to_dict())

    response = await run_idempotent(container, tenant_id, idempotency_key, handler)
    response.headers.update(rate_limit_headers(decisions))
    return response


@router.post("/whatsapp/text", status_code=status.HTTP_202_ACCEPTED, responses=_ACCEPTED)
async def send_text(
    body: TextMessageRequest,
    tenant_id: str = Depends(get_tenant_id),
    idempotency_key: Optional[str] = Depends(get_idempotency_key),
    container: Container = Depends(get_container),
) -> Response:
    return await _accept(
        container, tenant_id, idempotency_key, body, MessageType.TEXT,
        lambda: build_text_payload(to=body.to, text=body.text, preview_url=body.preview_url),
    )


@router.post("/whatsapp/template", status_code=status.HTTP_202_ACCEPTED, responses=_ACCEPTED)
async def send_template(
    body: TemplateMessageRequest,
    tenant_id: str = Depends(get_tenant_id),
    idempotency_key: Optional[str] = Depends(get_idempotency_key),
    container: Container = Depends(get_container),
) -> Response:
    return await _accept(
        container, tenant_id, idempotency_key, body, MessageType.TEMPLATE,
        lambda: build_template_payload(
            to=body.to,
            name=body.name,
            language=body.language,
            body_params=body.components.body,
            header_params=[h.model_dump() for h in body.components.header],
        ),
    )


@router.post("/whatsapp/interactive", status_code=status.HTTP_202_ACCEPTED, responses=_ACCEPTED)
async def send_interactive(
    body: InteractiveMessageRequest,
    tenant_id: str = Depends(get_tenant_id),
    idempotency_key: Optional[str] = Depends(get_idempotency_key),
    container: Container = Depends(get_container),
) -> Response:
    return await _accept(
        container, tenant_id, idempotency_key, body, MessageType.INTERACTIVE,
        lambda: build_interactive_payload(
            to=body.to, body=body.body, buttons=[b.model_dump() for b in body.buttons]
        ),
    )


@router.post("/whatsapp/list", status_code=status.HTTP_202_ACCEPTED, responses=_ACCEPTED)
async def send_list(
    body: ListMessageRequest,
    tenant_id: str = Depends(get_tenant_id),
    idempotency_key: Optional[str] = Depends(get_idempotency_key),
    container: Container = Depends(get_container),
) -> Response:
    return await _accept(
        container, tenant_id, idempotency_key, body, MessageType.LIST,
        lambda: build_list_payload(
            to=body.to,
            body=body.body,
            button_text=body.button,
            sections=[s.model_dump(exclude_none=True) for s in body.sections],
        ),
    )


@router.get("/{message_id}", response_model=MessageView, dependencies=[Depends(RateLimit("api"))])
async def get_message(
    message_id: UUID,
    tenant_id: str = Depends(get_tenant_id),
    container: Container = Depends(get_container),
) -> MessageView:
    message = await container.messages.get(message_id, tenant_id=tenant_id)
    if message is None:
        raise NotFoundError("Message not found", details={"message_id": str(message_id)})
    return MessageView(**message.to_dict())


@router.post("/{message_id}/resend", status_code=status.HTTP_202_ACCEPTED, responses=_ACCEPTED)
async def resend_message(
    message_id: UUID,
    tenant_id: str = Depends(get_tenant_id),
    idempotency_key: Optional[str] = Depends(get_idempotency_key),
    container: Container = Depends(get_container),
) -> Response:
    decision = await enforce_rate_limit(container, tenant_id, "api", container.settings.rate_limit_max_requests)

    async def handler() -> Response:
        ack = await container.dispatch.resend(
            tenant_id,
            message_id,
            before_enqueue=lambda: enforce_quota(container, tenant_id, ResourceType.MESSAGES.value),
        )
        return JSONResponse(status_code=status.HTTP_202_ACCEPTED, content=ack.to_dict())

    response = await run_idempotent(container, tenant_id, idempotency_key, handler)
    response.headers.update(decision.headers())
    return response
