"""
Subscription Store Protocol
Partner webhook subscriptions, always scoped by tenant.
"""
from typing import List, Optional, Protocol
from uuid import UUID

from src.messaging.domain.entities.webhook_subscription import WebhookSubscription


class SubscriptionStore(Protocol):

    async def add(self, subscription: WebhookSubscription) -> WebhookSubscription:
        ...

    async def list(self, tenant_id: str) -> List[WebhookSubscription]:
        ...

    async def list_for_event(self, tenant_id: str, event: str) -> List[WebhookSubscription]:
        """Active subscriptions of the tenant that include `event`."""
        ...

    async def get(self, tenant_id: str, subscription_id: UUID) -> Optional[WebhookSubscription]:
        ...

    async def deactivate(self, tenant_id: str, subscription_id: UUID) -> bool:
        ...
