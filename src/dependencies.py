# src/dependencies.py
"""
Application container.

Every service is built once from Settings and handed to routes through FastAPI
Depends; nothing reaches for module-level singletons. In-memory adapters stand
in for PostgreSQL and Redis when DATABASE_URL / REDIS_URL are unset.
"""
from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any, Dict, Optional

import httpx
from fastapi import Request
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from src.messaging.application.services.dispatch_queue import DispatchQueue
from src.messaging.application.services.inbound_webhook_processor import InboundWebhookProcessor
from src.messaging.application.services.partner_webhook_dispatcher import PartnerWebhookDispatcher
from src.messaging.domain.protocols import ChannelProvider, MessageStore, SubscriptionStore, TenantResolver
from src.messaging.infrastructure.adapters.whatsapp_adapter import WhatsAppCloudProvider
from src.messaging.infrastructure.persistence.repositories.memory_stores import (
    InMemoryMessageStore,
    InMemorySubscriptionStore,
)
from src.messaging.infrastructure.persistence.repositories.message_repository_impl import SqlMessageStore
from src.messaging.infrastructure.persistence.repositories.webhook_subscription_repository_impl import (
    SqlSubscriptionStore,
)
from src.messaging.infrastructure.tenant_resolver import StaticTenantResolver
from src.platform.application.services.idempotency_cache import IdempotencyCache
from src.platform.application.services.request_governor import RequestGovernor
from src.platform.domain.entities.tenant import TenantPlan
from src.platform.domain.protocols import TenantLimitsProvider
from src.platform.infrastructure.tenant_limits import SqlTenantLimitsProvider, StaticTenantLimitsProvider
from src.shared.cache.memory_store import InMemoryCounterStore
from src.shared.config import Settings
from src.shared.database.engine import close_database_engine, create_database_engine
from src.shared.exceptions import StoreUnavailableError
from src.shared.infrastructure.background import TaskRunner
from src.shared.infrastructure.cache.cache_protocol import CounterStore
from src.shared.logging import get_logger
from src.shared.redis import RedisCounterStore

logger = get_logger(__name__)


@dataclass
class Container:
    settings: Settings
    store: CounterStore
    limits: TenantLimitsProvider
    governor: RequestGovernor
    idempotency: IdempotencyCache
    runner: TaskRunner
    messages: MessageStore
    subscriptions: SubscriptionStore
    provider: ChannelProvider
    tenants: TenantResolver
    partners: PartnerWebhookDispatcher
    dispatch: DispatchQueue
    inbound: InboundWebhookProcessor
    session_factory: Optional[async_sessionmaker[AsyncSession]] = None
    _closers: list = field(default_factory=list, repr=False)

    async def start(self) -> None:
        if isinstance(self.store, RedisCounterStore):
            try:
                await self.store.connect()
            except StoreUnavailableError as e:
                # reconnects lazily on first use; admission fails closed meanwhile
                logger.error("Redis unavailable at startup", error=str(e))
        await self.dispatch.start()
        logger.info("Container started", settings=self.settings.safe_dict())

    async def stop(self) -> None:
        await self.dispatch.stop()
        await self.runner.shutdown()
        for close in self._closers:
            await close()
        logger.info("Container stopped")

    async def health(self) -> Dict[str, Any]:
        checks: Dict[str, Any] = {}
        try:
            checks["store"] = "ok" if await self.store.ping() else "degraded"
        except Exception as e:
            checks["store"] = f"unavailable: {e.__class__.__name__}"
        checks["database"] = "configured" if self.session_factory else "in-memory"
        checks["dispatch_workers"] = "running" if self.dispatch.running else "stopped"
        checks["background_tasks"] = self.runner.pending
        return checks


def build_container(
    settings: Settings,
    *,
    store: Optional[CounterStore] = None,
    limits: Optional[TenantLimitsProvider] = None,
    messages: Optional[MessageStore] = None,
    subscriptions: Optional[SubscriptionStore] = None,
    provider: Optional[ChannelProvider] = None,
    tenants: Optional[TenantResolver] = None,
    partner_client: Optional[httpx.AsyncClient] = None,
    session_factory: Optional[async_sessionmaker[AsyncSession]] = None,
    sleep=None,
) -> Container:
    """Wire the object graph; explicit arguments override the settings-derived adapters."""
    closers: list = []
    default_plan = TenantPlan(settings.default_plan)

    if store is None:
        if settings.redis_url:
            store = RedisCounterStore(settings.redis_url, namespace=settings.redis_key_namespace)
            closers.append(store.close)
        else:
            store = InMemoryCounterStore()

    if session_factory is not None:
        limits = limits or SqlTenantLimitsProvider(session_factory, default_plan=default_plan)
        messages = messages or SqlMessageStore(session_factory)
        subscriptions = subscriptions or SqlSubscriptionStore(session_factory)
    limits = limits or StaticTenantLimitsProvider(default_plan=default_plan)
    messages = messages or InMemoryMessageStore()
    subscriptions = subscriptions or InMemorySubscriptionStore()

    if provider is None:
        wa = WhatsAppCloudProvider(
            base_url=settings.wa_api_base_url,
            phone_number_id=settings.wa_phone_number_id,
            access_token=settings.wa_access_token,
            timeout_seconds=settings.provider_timeout_seconds,
        )
        closers.append(wa.close)
        provider = wa

    tenants = tenants or StaticTenantResolver(settings.wa_phone_number_tenants)
    runner = TaskRunner()

    partners = PartnerWebhookDispatcher(
        subscriptions,
        runner,
        client=partner_client,
        timeout_seconds=settings.partner_webhook_timeout_seconds,
    )
    closers.append(partners.close)

    dispatch_kwargs: Dict[str, Any] = {}
    if sleep is not None:
        dispatch_kwargs["sleep"] = sleep
    dispatch = DispatchQueue(
        messages,
        provider,
        partners,
        max_attempts=settings.dispatch_max_attempts,
        backoff_base_seconds=settings.dispatch_backoff_base_seconds,
        workers=settings.dispatch_workers,
        provider_timeout_seconds=settings.provider_timeout_seconds,
        **dispatch_kwargs,
    )

    inbound = InboundWebhookProcessor(
        messages,
        tenants,
        partners,
        runner,
        app_secret=settings.wa_app_secret,
        verify_token=settings.wa_verify_token,
    )

    return Container(
        settings=settings,
        store=store,
        limits=limits,
        governor=RequestGovernor(store, limits),
        idempotency=IdempotencyCache(
            store,
            ttl_seconds=settings.idempotency_ttl_seconds,
            claim_ttl_seconds=settings.idempotency_claim_ttl_seconds,
        ),
        runner=runner,
        messages=messages,
        subscriptions=subscriptions,
        provider=provider,
        tenants=tenants,
        partners=partners,
        dispatch=dispatch,
        inbound=inbound,
        session_factory=session_factory,
        _closers=closers,
    )


async def build_container_from_settings(settings: Settings) -> Container:
    """Production wiring: opens the database engine when DATABASE_URL is set."""
    session_factory = None
    if settings.database_url:
        session_factory = await create_database_engine(settings)
    container = build_container(settings, session_factory=session_factory)
    if session_factory is not None:
        container._closers.append(close_database_engine)
    return container


def get_container(request: Request) -> Container:
    return request.app.state.container
