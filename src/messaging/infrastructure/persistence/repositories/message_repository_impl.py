"""
SQLAlchemy implementation of the MessageStore.

State changes are single guarded UPDATEs (WHERE state IN allowed predecessors),
so out-of-order provider statuses never move a message backwards and no row
locks are needed.
"""
from __future__ import annotations

from typing import Any, Dict, List, Optional
from uuid import UUID

from sqlalchemy import select, update
from sqlalchemy.dialects.postgresql import insert as pg_insert
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from src.messaging.domain.entities.message import Message
from src.messaging.domain.value_objects.message_status import (
    MessageDirection,
    MessageState,
    MessageType,
    allowed_predecessors,
)
from src.messaging.infrastructure.persistence.models.message_model import MessageModel
from src.shared.logging import get_logger

logger = get_logger(__name__)


def _to_domain(row: MessageModel) -> Message:
    return Message(
        id=row.id,
        tenant_id=row.tenant_id,
        direction=MessageDirection(row.direction),
        channel=row.channel,
        message_type=MessageType(row.message_type) if row.message_type else None,
        state=MessageState(row.state),
        to=row.to_phone,
        provider_id=row.provider_id,
        payload=dict(row.payload or {}),
        metadata=dict(row.meta or {}),
        error=row.error,
        attempts=row.attempts,
        created_at=row.created_at,
        updated_at=row.updated_at,
    )


def _to_values(message: Message) -> Dict[str, Any]:
    return {
        "id": message.id,
        "tenant_id": message.tenant_id,
        "direction": message.direction.value,
        "channel": message.channel,
        "message_type": message.message_type.value if message.message_type else None,
        "state": message.state.value,
        "to_phone": message.to,
        "provider_id": message.provider_id,
        "payload": message.payload,
        "meta": message.metadata,
        "error": message.error,
        "attempts": message.attempts,
    }


class SqlMessageStore:

    def __init__(self, session_factory: async_sessionmaker[AsyncSession]) -> None:
        self._session_factory = session_factory

    async def insert(self, message: Message) -> Message:
        async with self._session_factory() as session:
            row = MessageModel(**_to_values(message))
            session.add(row)
            await session.commit()
            await session.refresh(row)
            return _to_domain(row)

    async def get(self, message_id: UUID, *, tenant_id: Optional[str] = None) -> Optional[Message]:
        stmt = select(MessageModel).where(MessageModel.id == message_id)
        if tenant_id is not None:
            stmt = stmt.where(MessageModel.tenant_id == tenant_id)
        async with self._session_factory() as session:
            row = (await session.execute(stmt)).scalars().first()
            return _to_domain(row) if row else None

    async def get_by_provider_id(self, provider_id: str) -> Optional[Message]:
        async with self._session_factory() as session:
            row = (
                await session.execute(select(MessageModel).where(MessageModel.provider_id == provider_id))
            ).scalars().first()
            return _to_domain(row) if row else None

    async def upsert_by_provider_id(self, message: Message) -> bool:
        stmt = (
            pg_insert(MessageModel)
            .values(**_to_values(message))
            .on_conflict_do_nothing(index_elements=["provider_id"])
            .returning(MessageModel.id)
        )
        async with self._session_factory() as session:
            inserted = (await session.execute(stmt)).first()
            await session.commit()
            return inserted is not None

    async def transition(
        self,
        message_id: UUID,
        target: MessageState,
        *,
        provider_id: Optional[str] = None,
        error: Optional[str] = None,
        attempts: Optional[int] = None,
    ) -> bool:
        values: Dict[str, Any] = {"state": target.value}
        if provider_id is not None:
            values["provider_id"] = provider_id
        if error is not None:
            values["error"] = error
        if attempts is not None:
            values["attempts"] = attempts
        stmt = (
            update(MessageModel)
            .where(
                MessageModel.id == message_id,
                MessageModel.state.in_([s.value for s in allowed_predecessors(target)]),
            )
            .values(**values)
            .returning(MessageModel.id)
        )
        async with self._session_factory() as session:
            changed = (await session.execute(stmt)).first()
            await session.commit()
            return changed is not None

    async def transition_by_provider_id(
        self,
        provider_id: str,
        target: MessageState,
        *,
        tenant_id: Optional[str] = None,
        error: Optional[str] = None,
    ) -> Optional[Message]:
        values: Dict[str, Any] = {"state": target.value}
        if error is not None:
            values["error"] = error
        stmt = update(MessageModel).where(
            MessageModel.provider_id == provider_id,
            MessageModel.state.in_([s.value for s in allowed_predecessors(target)]),
        )
        if tenant_id is not None:
            stmt = stmt.where(MessageModel.tenant_id == tenant_id)
        stmt = stmt.values(**values).returning(MessageModel)
        async with self._session_factory() as session:
            row = (await session.execute(stmt)).scalars().first()
            message = _to_domain(row) if row else None
            await session.commit()
            return message

    async def record_attempt(self, message_id: UUID, attempts: int, error: Optional[str]) -> None:
        stmt = (
            update(MessageModel)
            .where(MessageModel.id == message_id, MessageModel.state == MessageState.PENDING.value)
            .values(attempts=attempts, error=error)
        )
        async with self._session_factory() as session:
            await session.execute(stmt)
            await session.commit()

    async def list_pending(self, limit: int = 500) -> List[Message]:
        stmt = (
            select(MessageModel)
            .where(
                MessageModel.direction == MessageDirection.OUTBOUND.value,
                MessageModel.state == MessageState.PENDING.value,
            )
            .order_by(MessageModel.created_at)
            .limit(limit)
        )
        async with self._session_factory() as session:
            rows = (await session.execute(stmt)).scalars().all()
            return [_to_domain(r) for r in rows]
