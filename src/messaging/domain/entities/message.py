"""Message entity shared by inbound and outbound traffic."""
from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Any, Dict, Optional
from uuid import UUID, uuid4

from src.messaging.domain.value_objects.message_status import (
    MessageDirection,
    MessageState,
    MessageType,
    can_transition,
)

CHANNEL_WHATSAPP = "whatsapp"


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


@dataclass
class Message:
    """
    A single WhatsApp message.

    Outbound messages start in PENDING and climb the delivery ladder; inbound
    ones are stored as RECEIVED and never change state. `payload` keeps the
    provider-shaped body (outbound request or inbound webhook item).
    """
    tenant_id: str
    direction: MessageDirection
    to: Optional[str] = None
    message_type: Optional[MessageType] = None
    payload: Dict[str, Any] = field(default_factory=dict)
    metadata: Dict[str, Any] = field(default_factory=dict)
    state: MessageState = MessageState.PENDING
    provider_id: Optional[str] = None
    error: Optional[str] = None
    attempts: int = 0
    channel: str = CHANNEL_WHATSAPP
    id: UUID = field(default_factory=uuid4)
    created_at: datetime = field(default_factory=_utcnow)
    updated_at: datetime = field(default_factory=_utcnow)

    @classmethod
    def outbound(
        cls,
        tenant_id: str,
        to: str,
        message_type: MessageType,
        payload: Dict[str, Any],
        metadata: Optional[Dict[str, Any]] = None,
    ) -> "Message":
        return cls(
            tenant_id=tenant_id,
            direction=MessageDirection.OUTBOUND,
            to=to,
            message_type=message_type,
            payload=payload,
            metadata=dict(metadata or {}),
        )

    @classmethod
    def inbound(cls, tenant_id: str, provider_id: str, payload: Dict[str, Any]) -> "Message":
        return cls(
            tenant_id=tenant_id,
            direction=MessageDirection.INBOUND,
            payload=payload,
            metadata={"from": payload.get("from"), "timestamp": payload.get("timestamp")},
            state=MessageState.RECEIVED,
            provider_id=provider_id,
        )

    def transition(self, target: MessageState) -> bool:
        """Apply a forward move; returns False (and changes nothing) otherwise."""
        if not can_transition(self.state, target):
            return False
        self.state = target
        self.updated_at = _utcnow()
        return True

    def to_dict(self) -> Dict[str, Any]:
        return {
            "id": str(self.id),
            "tenant_id": self.tenant_id,
            "direction": self.direction.value,
            "channel": self.channel,
            "type": self.message_type.value if self.message_type else None,
            "state": self.state.value,
            "provider_id": self.provider_id,
            "error": self.error,
            "attempts": self.attempts,
            "metadata": self.metadata,
            "created_at": self.created_at.isoformat(),
            "updated_at": self.updated_at.isoformat(),
        }
