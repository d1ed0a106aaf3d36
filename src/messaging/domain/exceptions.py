"""
Messaging Domain Exceptions
"""
from __future__ import annotations

from typing import Optional


class MessagingDomainError(Exception):
    """Base exception for messaging domain errors."""


class ProviderError(MessagingDomainError):
    """
    A provider call failed in a way that may recover on retry
    (timeouts, 5xx, 429).
    """

    def __init__(self, message: str, *, status_code: Optional[int] = None, error_code: Optional[str] = None):
        super().__init__(message)
        self.status_code = status_code
        self.error_code = error_code


class PermanentProviderError(ProviderError):
    """The provider rejected the message (4xx other than 429); retrying cannot help."""


class InvalidMessageContentError(MessagingDomainError):
    """Raised when an outbound payload cannot be built from the given content."""
