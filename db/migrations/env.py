"""Alembic environment; reads DATABASE_URL through the application settings."""
from __future__ import annotations

import asyncio

from alembic import context
from sqlalchemy import pool
from sqlalchemy.engine import Connection
from sqlalchemy.ext.asyncio import async_engine_from_config

from src.messaging.infrastructure.persistence.models.message_model import MessageModel  # noqa: F401
from src.messaging.infrastructure.persistence.models.webhook_subscription_model import (  # noqa: F401
    WebhookSubscriptionModel,
)
from src.platform.infrastructure.models.tenant_model import TenantModel  # noqa: F401
from src.shared.config import load_settings
from src.shared.infrastructure.database.base_model import Base

config = context.config
target_metadata = Base.metadata


def _async_url() -> str:
    url = load_settings().database_url or config.get_main_option("sqlalchemy.url")
    if not url:
        raise RuntimeError("DATABASE_URL is not set")
    if url.startswith("postgresql://"):
        url = url.replace("postgresql://", "postgresql+asyncpg://", 1)
    return url


def run_migrations_offline() -> None:
    context.configure(url=_async_url(), target_metadata=target_metadata, literal_binds=True)
    with context.begin_transaction():
        context.run_migrations()


def _run(connection: Connection) -> None:
    context.configure(connection=connection, target_metadata=target_metadata)
    with context.begin_transaction():
        context.run_migrations()


async def run_migrations_online() -> None:
    section = config.get_section(config.config_ini_section) or {}
    section["sqlalchemy.url"] = _async_url()
    connectable = async_engine_from_config(section, prefix="sqlalchemy.", poolclass=pool.NullPool)
    async with connectable.connect() as connection:
        await connection.run_sync(_run)
    await connectable.dispose()


if context.is_offline_mode():
    run_migrations_offline()
else:
    asyncio.run(run_migrations_online())
