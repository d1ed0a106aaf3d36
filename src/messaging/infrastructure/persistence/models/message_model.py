"""Message ORM Model"""
from __future__ import annotations

from typing import Any, Dict, Optional

from sqlalchemy import JSON, CheckConstraint, Index, Integer, String, Text
from sqlalchemy.orm import Mapped, mapped_column

from src.shared.infrastructure.database.base_model import Base


class MessageModel(Base):
    """
    Inbound and outbound WhatsApp messages.

    provider_id is unique so re-delivered inbound webhooks insert at most once.
    Pending outbound rows double as the dispatch outbox.
    """

    __tablename__ = "messages"
    __table_args__ = (
        Index("uq_messages_provider_id", "provider_id", unique=True),
        Index("idx_messages_tenant_time", "tenant_id", "created_at"),
        Index("idx_messages_state", "state"),
        CheckConstraint("direction IN ('inbound','outbound')", name="ck_messages_direction"),
        CheckConstraint(
            "state IN ('pending','sent','delivered','read','failed','received')",
            name="ck_messages_state",
        ),
    )

    # id, created_at, updated_at inherited from Base

    tenant_id: Mapped[str] = mapped_column(String(64), nullable=False)
    direction: Mapped[str] = mapped_column(String(10), nullable=False)
    channel: Mapped[str] = mapped_column(String(20), nullable=False, default="whatsapp")
    message_type: Mapped[Optional[str]] = mapped_column(String(20), nullable=True)
    state: Mapped[str] = mapped_column(String(20), nullable=False)
    to_phone: Mapped[Optional[str]] = mapped_column(String(32), nullable=True)
    provider_id: Mapped[Optional[str]] = mapped_column(String(128), nullable=True)
    payload: Mapped[Dict[str, Any]] = mapped_column(JSON, nullable=False, default=dict)
    # "metadata" is reserved on declarative classes
    meta: Mapped[Dict[str, Any]] = mapped_column("metadata", JSON, nullable=False, default=dict)
    error: Mapped[Optional[str]] = mapped_column(Text, nullable=True)
    attempts: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
