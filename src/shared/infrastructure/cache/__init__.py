"""
Shared Cache Infrastructure
Counter store contract used by admission control and idempotency
"""
from src.shared.infrastructure.cache.cache_protocol import CounterStore

__all__ = ["CounterStore"]
