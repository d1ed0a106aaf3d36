"""SQLAlchemy implementation of the SubscriptionStore."""
from __future__ import annotations

from typing import List, Optional
from uuid import UUID

from sqlalchemy import select, update
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from src.messaging.domain.entities.webhook_subscription import WebhookSubscription
from src.messaging.infrastructure.persistence.models.webhook_subscription_model import WebhookSubscriptionModel


def _to_domain(row: WebhookSubscriptionModel) -> WebhookSubscription:
    return WebhookSubscription(
        id=row.id,
        tenant_id=row.tenant_id,
        url=row.url,
        events=frozenset(row.events or []),
        secret=row.secret,
        active=row.active,
        created_at=row.created_at,
    )


class SqlSubscriptionStore:

    def __init__(self, session_factory: async_sessionmaker[AsyncSession]) -> None:
        self._session_factory = session_factory

    async def add(self, subscription: WebhookSubscription) -> WebhookSubscription:
        async with self._session_factory() as session:
            row = WebhookSubscriptionModel(
                id=subscription.id,
                tenant_id=subscription.tenant_id,
                url=subscription.url,
                events=sorted(subscription.events),
                secret=subscription.secret,
                active=subscription.active,
            )
            session.add(row)
            await session.commit()
            await session.refresh(row)
            return _to_domain(row)

    async def list(self, tenant_id: str) -> List[WebhookSubscription]:
        stmt = (
            select(WebhookSubscriptionModel)
            .where(WebhookSubscriptionModel.tenant_id == tenant_id)
            .order_by(WebhookSubscriptionModel.created_at)
        )
        async with self._session_factory() as session:
            return [_to_domain(r) for r in (await session.execute(stmt)).scalars().all()]

    async def list_for_event(self, tenant_id: str, event: str) -> List[WebhookSubscription]:
        # event filtering in Python keeps the JSON column portable
        stmt = select(WebhookSubscriptionModel).where(
            WebhookSubscriptionModel.tenant_id == tenant_id,
            WebhookSubscriptionModel.active.is_(True),
        )
        async with self._session_factory() as session:
            rows = (await session.execute(stmt)).scalars().all()
        return [s for s in map(_to_domain, rows) if s.wants(event)]

    async def get(self, tenant_id: str, subscription_id: UUID) -> Optional[WebhookSubscription]:
        stmt = select(WebhookSubscriptionModel).where(
            WebhookSubscriptionModel.id == subscription_id,
            WebhookSubscriptionModel.tenant_id == tenant_id,
        )
        async with self._session_factory() as session:
            row = (await session.execute(stmt)).scalars().first()
            return _to_domain(row) if row else None

    async def deactivate(self, tenant_id: str, subscription_id: UUID) -> bool:
        stmt = (
            update(WebhookSubscriptionModel)
            .where(
                WebhookSubscriptionModel.id == subscription_id,
                WebhookSubscriptionModel.tenant_id == tenant_id,
                WebhookSubscriptionModel.active.is_(True),
            )
            .values(active=False)
            .returning(WebhookSubscriptionModel.id)
        )
        async with self._session_factory() as session:
            changed = (await session.execute(stmt)).first()
            await session.commit()
            return changed is not None
