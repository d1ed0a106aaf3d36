"""
Messaging Domain Value Objects
"""
from .message_status import MessageDirection, MessageState, MessageType, can_transition

__all__ = ["MessageDirection", "MessageState", "MessageType", "can_transition"]
