"""
Message State, Direction and Type Enums
"""
from __future__ import annotations

from enum import Enum
from typing import FrozenSet, Optional


class MessageDirection(str, Enum):
    """Message flow direction."""
    INBOUND = "inbound"    # Received from customer
    OUTBOUND = "outbound"  # Sent to customer


class MessageType(str, Enum):
    """Outbound WhatsApp message types."""
    TEXT = "text"
    TEMPLATE = "template"
    INTERACTIVE = "interactive"  # reply buttons
    LIST = "list"


class MessageState(str, Enum):
    """
    Outbound delivery ladder.

    Flow: pending → sent → delivered → read
    pending | sent → failed
    Inbound messages only ever carry RECEIVED.
    """
    PENDING = "pending"
    SENT = "sent"
    DELIVERED = "delivered"
    READ = "read"
    FAILED = "failed"
    RECEIVED = "received"

    @property
    def is_terminal(self) -> bool:
        return self in (MessageState.READ, MessageState.FAILED, MessageState.RECEIVED)


_TRANSITIONS = {
    MessageState.PENDING: frozenset({MessageState.SENT, MessageState.FAILED}),
    MessageState.SENT: frozenset({MessageState.DELIVERED, MessageState.FAILED}),
    MessageState.DELIVERED: frozenset({MessageState.READ}),
}


def can_transition(current: MessageState, target: MessageState) -> bool:
    """
    True if `current → target` is one step up the ladder.

    Rungs are never skipped; failed is only reachable from pending or sent.
    """
    return target in _TRANSITIONS.get(current, frozenset())


def allowed_predecessors(target: MessageState) -> FrozenSet[MessageState]:
    """States from which `target` may be applied; used as an UPDATE guard."""
    return frozenset(s for s in MessageState if can_transition(s, target))


def state_from_provider(status: Optional[str]) -> Optional[MessageState]:
    """Map a provider status string to a ladder state; None if unknown."""
    try:
        state = MessageState((status or "").lower())
    except ValueError:
        return None
    return state if state in (MessageState.SENT, MessageState.DELIVERED, MessageState.READ, MessageState.FAILED) else None
