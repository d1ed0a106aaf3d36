"""Messaging tables: tenants, messages, webhook_subscriptions.

- tenants: plan + per-resource limit overrides (quota lookups)
- messages: inbound/outbound messages; pending rows are the dispatch backlog
- webhook_subscriptions: partner endpoints, tenant scoped
"""

from __future__ import annotations
from alembic import op
import sqlalchemy as sa
from sqlalchemy.dialects import postgresql

revision = "001_messaging_tables"
down_revision = None
branch_labels = None
depends_on = None


def _timestamps():
    return [
        sa.Column("created_at", sa.DateTime(timezone=True), nullable=False, server_default=sa.text("now()")),
        sa.Column("updated_at", sa.DateTime(timezone=True), nullable=False, server_default=sa.text("now()")),
    ]


def upgrade():
    op.create_table(
        "tenants",
        sa.Column("id", postgresql.UUID(as_uuid=True), primary_key=True),
        sa.Column("name", sa.String(200), nullable=False),
        sa.Column("plan", sa.String(20), nullable=False, server_default="start"),
        sa.Column("status", sa.String(20), nullable=False, server_default="active"),
        sa.Column("limits", postgresql.JSONB(astext_type=sa.Text()), nullable=False, server_default=sa.text("'{}'::jsonb")),
        *_timestamps(),
        sa.CheckConstraint("plan IN ('start','pro','max','enterprise')", name="ck_tenants_plan"),
        sa.CheckConstraint("status IN ('active','suspended','cancelled')", name="ck_tenants_status"),
    )

    op.create_table(
        "messages",
        sa.Column("id", postgresql.UUID(as_uuid=True), primary_key=True),
        sa.Column("tenant_id", sa.String(64), nullable=False),
        sa.Column("direction", sa.String(10), nullable=False),
        sa.Column("channel", sa.String(20), nullable=False, server_default="whatsapp"),
        sa.Column("message_type", sa.String(20), nullable=True),
        sa.Column("state", sa.String(20), nullable=False),
        sa.Column("to_phone", sa.String(32), nullable=True),
        sa.Column("provider_id", sa.String(128), nullable=True),
        sa.Column("payload", postgresql.JSONB(astext_type=sa.Text()), nullable=False, server_default=sa.text("'{}'::jsonb")),
        sa.Column("metadata", postgresql.JSONB(astext_type=sa.Text()), nullable=False, server_default=sa.text("'{}'::jsonb")),
        sa.Column("error", sa.Text(), nullable=True),
        sa.Column("attempts", sa.Integer(), nullable=False, server_default="0"),
        *_timestamps(),
        sa.CheckConstraint("direction IN ('inbound','outbound')", name="ck_messages_direction"),
        sa.CheckConstraint(
            "state IN ('pending','sent','delivered','read','failed','received')",
            name="ck_messages_state",
        ),
    )
    op.create_index("uq_messages_provider_id", "messages", ["provider_id"], unique=True)
    op.create_index("idx_messages_tenant_time", "messages", ["tenant_id", "created_at"])
    op.create_index("idx_messages_state", "messages", ["state"])

    op.create_table(
        "webhook_subscriptions",
        sa.Column("id", postgresql.UUID(as_uuid=True), primary_key=True),
        sa.Column("tenant_id", sa.String(64), nullable=False),
        sa.Column("url", sa.String(2048), nullable=False),
        sa.Column("events", postgresql.JSONB(astext_type=sa.Text()), nullable=False, server_default=sa.text("'[]'::jsonb")),
        sa.Column("secret", sa.String(256), nullable=False),
        sa.Column("active", sa.Boolean(), nullable=False, server_default=sa.true()),
        *_timestamps(),
    )
    op.create_index(
        "idx_webhook_subscriptions_tenant_active", "webhook_subscriptions", ["tenant_id", "active"]
    )

    # generic touch trigger for updated_at
    op.execute("""
    CREATE OR REPLACE FUNCTION set_updated_at() RETURNS trigger
    LANGUAGE plpgsql AS $$
    BEGIN
      NEW.updated_at := NOW();
      RETURN NEW;
    END $$;
    """)
    for table in ("tenants", "messages", "webhook_subscriptions"):
        op.execute(f"""
        CREATE TRIGGER trg_{table}_updated_at
        BEFORE UPDATE ON {table}
        FOR EACH ROW EXECUTE FUNCTION set_updated_at();
        """)


def downgrade():
    for table in ("webhook_subscriptions", "messages", "tenants"):
        op.execute(f"DROP TRIGGER IF EXISTS trg_{table}_updated_at ON {table};")
    op.execute("DROP FUNCTION IF EXISTS set_updated_at();")
    op.drop_index("idx_webhook_subscriptions_tenant_active", table_name="webhook_subscriptions")
    op.drop_table("webhook_subscriptions")
    op.drop_index("idx_messages_state", table_name="messages")
    op.drop_index("idx_messages_tenant_time", table_name="messages")
    op.drop_index("uq_messages_provider_id", table_name="messages")
    op.drop_table("messages")
    op.drop_table("tenants")
