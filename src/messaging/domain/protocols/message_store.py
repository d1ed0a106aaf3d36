"""
Message Store Protocol
Persistence for messages. Doubles as the dispatch outbox: rows in `pending`
are the durable queue.
"""
from typing import List, Optional, Protocol
from uuid import UUID

from src.messaging.domain.entities.message import Message
from src.messaging.domain.value_objects.message_status import MessageState


class MessageStore(Protocol):

    async def insert(self, message: Message) -> Message:
        """Persist a new message."""
        ...

    async def get(self, message_id: UUID, *, tenant_id: Optional[str] = None) -> Optional[Message]:
        """Fetch by id; when tenant_id is given, other tenants' rows are invisible."""
        ...

    async def get_by_provider_id(self, provider_id: str) -> Optional[Message]:
        ...

    async def upsert_by_provider_id(self, message: Message) -> bool:
        """
        Insert unless a row with the same provider_id exists.

        Returns:
            True if inserted, False for a re-delivered provider id
        """
        ...

    async def transition(
        self,
        message_id: UUID,
        target: MessageState,
        *,
        provider_id: Optional[str] = None,
        error: Optional[str] = None,
        attempts: Optional[int] = None,
    ) -> bool:
        """
        Conditionally move a message to `target`.

        Applied only when the current state is an allowed predecessor of
        `target` (a single guarded UPDATE). Returns True if a row changed.
        """
        ...

    async def transition_by_provider_id(
        self,
        provider_id: str,
        target: MessageState,
        *,
        tenant_id: Optional[str] = None,
        error: Optional[str] = None,
    ) -> Optional[Message]:
        """Same guard as transition(), keyed by provider id (and tenant); returns the updated row or None."""
        ...

    async def record_attempt(self, message_id: UUID, attempts: int, error: Optional[str]) -> None:
        """Store the attempt count and last error of a still-pending message."""
        ...

    async def list_pending(self, limit: int = 500) -> List[Message]:
        """Outbound messages still waiting for dispatch, oldest first."""
        ...
