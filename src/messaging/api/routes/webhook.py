from __future__ import annotations

from typing import Optional
from uuid import UUID

from fastapi import APIRouter, Depends, Request, status
from fastapi.responses import JSONResponse, PlainTextResponse, Response

from src.dependencies import Container, get_container
from src.messaging.api.schemas.webhook_dto import PartnerWebhookCreate, PartnerWebhookList, PartnerWebhookView
from src.platform.api.dependencies import (
    RateLimit,
    enforce_rate_limit,
    get_idempotency_key,
    get_tenant_id,
    run_idempotent,
)
from src.platform.domain.value_objects import AdmissionDecision

router = APIRouter(prefix="/v1/webhooks", tags=["Messaging: Webhooks"])

SIGNATURE_HEADERS = ("X-Hub-Signature-256", "X-Signature-256")


def _first(request: Request, *names: str) -> Optional[str]:
    for name in names:
        value = request.query_params.get(name)
        if value is not None:
            return value
    return None


# ---------- WhatsApp (provider → us) ----------

@router.get("/whatsapp", response_class=PlainTextResponse)
async def verify_whatsapp_webhook(request: Request, container: Container = Depends(get_container)):
    challenge = container.inbound.verify_subscription(
        mode=_first(request, "hub.mode", "mode"),
        verify_token=_first(request, "hub.verify_token", "verify_token"),
        challenge=_first(request, "hub.challenge", "challenge"),
    )
    return PlainTextResponse(challenge)


@router.post("/whatsapp")
async def receive_whatsapp_webhook(request: Request, container: Container = Depends(get_container)):
    # signature covers the exact bytes received; read them before any parsing
    raw_body = await request.body()
    signature = next((request.headers[h] for h in SIGNATURE_HEADERS if h in request.headers), None)
    container.inbound.accept(raw_body, signature)
    return {"status": "ok"}


# ---------- Partner subscriptions (us → partners) ----------

@router.post("/partners", status_code=status.HTTP_201_CREATED, responses={201: {"model": PartnerWebhookView}})
async def register_partner_webhook(
    body: PartnerWebhookCreate,
    tenant_id: str = Depends(get_tenant_id),
    idempotency_key: Optional[str] = Depends(get_idempotency_key),
    container: Container = Depends(get_container),
) -> Response:
    decision = await enforce_rate_limit(container, tenant_id, "create", container.settings.create_rate_limit_max)

    async def handler() -> Response:
        subscription = await container.partners.register(tenant_id, body.url, body.events, body.secret)
        return JSONResponse(status_code=status.HTTP_201_CREATED, content=subscription.to_dict())

    response = await run_idempotent(container, tenant_id, idempotency_key, handler)
    response.headers.update(decision.headers())
    return response


@router.get("/partners", response_model=PartnerWebhookList, dependencies=[Depends(RateLimit("api"))])
async def list_partner_webhooks(
    tenant_id: str = Depends(get_tenant_id),
    container: Container = Depends(get_container),
) -> PartnerWebhookList:
    subscriptions = await container.partners.list(tenant_id)
    return PartnerWebhookList(items=[PartnerWebhookView(**s.to_dict()) for s in subscriptions])


@router.delete("/partners/{subscription_id}", status_code=status.HTTP_204_NO_CONTENT)
async def deactivate_partner_webhook(
    subscription_id: UUID,
    decision: AdmissionDecision = Depends(RateLimit("api")),
    tenant_id: str = Depends(get_tenant_id),
    container: Container = Depends(get_container),
) -> Response:
    await container.partners.deactivate(tenant_id, subscription_id)
    return Response(status_code=status.HTTP_204_NO_CONTENT, headers=decision.headers())
