"""
Shared Domain Layer
"""
from src.shared.domain.domain_event import DomainEvent

__all__ = ["DomainEvent"]
