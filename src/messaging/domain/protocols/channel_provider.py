"""
Channel Provider Protocol
Outbound transport to the messaging provider (WhatsApp Cloud API).
"""
from typing import Protocol

from src.messaging.domain.entities.message import Message


class ChannelProvider(Protocol):

    async def send(self, message: Message) -> str:
        """
        Deliver one outbound message.

        Returns:
            Provider message id

        Raises:
            ProviderError: transient failure, the caller may retry
            PermanentProviderError: the provider rejected the message
        """
        ...
