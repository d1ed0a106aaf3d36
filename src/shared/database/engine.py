from __future__ import annotations

from typing import Optional

import sqlalchemy as sa
import structlog
from sqlalchemy.ext.asyncio import (
    AsyncEngine,
    AsyncSession,
    async_sessionmaker,
    create_async_engine,
)
from sqlalchemy.pool import NullPool

from src.shared.config import Settings

logger = structlog.get_logger(__name__)

_engine: Optional[AsyncEngine] = None
_session_factory: Optional[async_sessionmaker[AsyncSession]] = None


def _async_url(url: str) -> str:
    if url.startswith("postgresql://"):
        return "postgresql+asyncpg://" + url[len("postgresql://"):]
    return url


async def create_database_engine(settings: Settings) -> async_sessionmaker[AsyncSession]:
    """
    Initialize the async engine & session factory with sane pooling defaults.
    """
    global _engine, _session_factory
    if not settings.database_url:
        raise RuntimeError("DATABASE_URL is not configured")

    pool_kwargs: dict = {}
    if settings.is_testing:
        pool_kwargs["poolclass"] = NullPool
    else:
        pool_kwargs["pool_size"] = settings.database_pool_size
        pool_kwargs["max_overflow"] = settings.database_max_overflow
        pool_kwargs["pool_timeout"] = 30
        pool_kwargs["pool_recycle"] = 3600

    _engine = create_async_engine(
        _async_url(settings.database_url),
        echo=settings.debug and not settings.is_prod,
        pool_pre_ping=True,
        connect_args={
            "server_settings": {
                "application_name": f"wma-api-{settings.environment}",
                "statement_timeout": "30000",  # 30s
            }
        },
        **pool_kwargs,
    )

    _session_factory = async_sessionmaker(
        bind=_engine,
        class_=AsyncSession,
        expire_on_commit=False,
    )

    # Smoke test
    async with _engine.begin() as conn:
        await conn.execute(sa.text("SELECT 1"))

    logger.info("Database connection established")
    return _session_factory


async def close_database_engine() -> None:
    global _engine, _session_factory
    if _engine:
        await _engine.dispose()
        logger.info("Database engine disposed")
    _engine = None
    _session_factory = None


def get_engine() -> AsyncEngine:
    if _engine is None:
        raise RuntimeError("Engine not initialized. Call create_database_engine first.")
    return _engine


def get_session_factory() -> async_sessionmaker[AsyncSession]:
    if _session_factory is None:
        raise RuntimeError("Session factory not initialized. Call create_database_engine first.")
    return _session_factory
