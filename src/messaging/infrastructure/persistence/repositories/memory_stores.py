"""
In-process MessageStore and SubscriptionStore.

Used when DATABASE_URL is unset and in tests. Methods never await between a
check and its write, so each call is atomic on the event loop, mirroring the
single guarded UPDATE of the SQL store.
"""
from __future__ import annotations

import copy
from datetime import datetime, timezone
from typing import Dict, List, Optional
from uuid import UUID

from src.messaging.domain.entities.message import Message
from src.messaging.domain.entities.webhook_subscription import WebhookSubscription
from src.messaging.domain.value_objects.message_status import MessageDirection, MessageState, can_transition


class InMemoryMessageStore:

    def __init__(self) -> None:
        self._rows: Dict[UUID, Message] = {}
        self._by_provider_id: Dict[str, UUID] = {}

    def __len__(self) -> int:
        return len(self._rows)

    async def insert(self, message: Message) -> Message:
        stored = copy.deepcopy(message)
        self._rows[stored.id] = stored
        if stored.provider_id:
            self._by_provider_id[stored.provider_id] = stored.id
        return copy.deepcopy(stored)

    async def get(self, message_id: UUID, *, tenant_id: Optional[str] = None) -> Optional[Message]:
        row = self._rows.get(message_id)
        if row is None or (tenant_id is not None and row.tenant_id != tenant_id):
            return None
        return copy.deepcopy(row)

    async def get_by_provider_id(self, provider_id: str) -> Optional[Message]:
        message_id = self._by_provider_id.get(provider_id)
        return copy.deepcopy(self._rows[message_id]) if message_id else None

    async def upsert_by_provider_id(self, message: Message) -> bool:
        if message.provider_id in self._by_provider_id:
            return False
        await self.insert(message)
        return True

    def _apply(
        self,
        row: Message,
        target: MessageState,
        *,
        provider_id: Optional[str] = None,
        error: Optional[str] = None,
        attempts: Optional[int] = None,
    ) -> bool:
        if not can_transition(row.state, target):
            return False
        row.state = target
        row.updated_at = datetime.now(timezone.utc)
        if provider_id is not None:
            row.provider_id = provider_id
            self._by_provider_id[provider_id] = row.id
        if error is not None:
            row.error = error
        if attempts is not None:
            row.attempts = attempts
        return True

    async def transition(
        self,
        message_id: UUID,
        target: MessageState,
        *,
        provider_id: Optional[str] = None,
        error: Optional[str] = None,
        attempts: Optional[int] = None,
    ) -> bool:
        row = self._rows.get(message_id)
        if row is None:
            return False
        return self._apply(row, target, provider_id=provider_id, error=error, attempts=attempts)

    async def transition_by_provider_id(
        self,
        provider_id: str,
        target: MessageState,
        *,
        tenant_id: Optional[str] = None,
        error: Optional[str] = None,
    ) -> Optional[Message]:
        message_id = self._by_provider_id.get(provider_id)
        row = self._rows.get(message_id) if message_id else None
        if row is None or (tenant_id is not None and row.tenant_id != tenant_id):
            return None
        if not self._apply(row, target, error=error):
            return None
        return copy.deepcopy(row)

    async def record_attempt(self, message_id: UUID, attempts: int, error: Optional[str]) -> None:
        row = self._rows.get(message_id)
        if row is not None and row.state == MessageState.PENDING:
            row.attempts = attempts
            row.error = error

    async def list_pending(self, limit: int = 500) -> List[Message]:
        pending = [
            m for m in self._rows.values()
            if m.direction == MessageDirection.OUTBOUND and m.state == MessageState.PENDING
        ]
        pending.sort(key=lambda m: m.created_at)
        return [copy.deepcopy(m) for m in pending[:limit]]


class InMemorySubscriptionStore:

    def __init__(self) -> None:
        self._rows: Dict[UUID, WebhookSubscription] = {}

    async def add(self, subscription: WebhookSubscription) -> WebhookSubscription:
        self._rows[subscription.id] = copy.deepcopy(subscription)
        return subscription

    async def list(self, tenant_id: str) -> List[WebhookSubscription]:
        rows = [s for s in self._rows.values() if s.tenant_id == tenant_id]
        return [copy.deepcopy(s) for s in sorted(rows, key=lambda s: s.created_at)]

    async def list_for_event(self, tenant_id: str, event: str) -> List[WebhookSubscription]:
        return [s for s in await self.list(tenant_id) if s.wants(event)]

    async def get(self, tenant_id: str, subscription_id: UUID) -> Optional[WebhookSubscription]:
        row = self._rows.get(subscription_id)
        if row is None or row.tenant_id != tenant_id:
            return None
        return copy.deepcopy(row)

    async def deactivate(self, tenant_id: str, subscription_id: UUID) -> bool:
        row = self._rows.get(subscription_id)
        if row is None or row.tenant_id != tenant_id or not row.active:
            return False
        row.active = False
        return True
