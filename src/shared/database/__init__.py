"""
Async engine and session factory
"""
from .engine import close_database_engine, create_database_engine, get_engine, get_session_factory

__all__ = [
    "create_database_engine",
    "close_database_engine",
    "get_engine",
    "get_session_factory",
]
