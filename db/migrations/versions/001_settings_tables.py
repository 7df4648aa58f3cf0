"""Settings aggregates and history ledger.

- settings_aggregates: one live row per (tenant_key, module), enforced by a partial unique index
- settings_history: append-only transition log, newest-first reads per tenant
"""

from __future__ import annotations
from alembic import op
import sqlalchemy as sa

revision = "001_settings_tables"
down_revision = None
branch_labels = None
depends_on = None


def upgrade():
    op.create_table(
        "settings_aggregates",
        sa.Column("id", sa.Uuid(as_uuid=True), primary_key=True),
        sa.Column("tenant_id", sa.String(64), nullable=True),
        sa.Column("tenant_key", sa.String(64), nullable=False),
        sa.Column("module", sa.String(32), nullable=False),
        sa.Column("data", sa.JSON(), nullable=False),
        sa.Column("version", sa.Integer(), nullable=False, server_default="1"),
        sa.Column("is_deleted", sa.Boolean(), nullable=False, server_default=sa.false()),
        sa.Column("deleted_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column("created_at", sa.DateTime(timezone=True), nullable=False, server_default=sa.func.now()),
        sa.Column("updated_at", sa.DateTime(timezone=True), nullable=False, server_default=sa.func.now()),
    )
    op.create_index(
        "uq_settings_live_tenant_module",
        "settings_aggregates",
        ["tenant_key", "module"],
        unique=True,
        postgresql_where=sa.text("is_deleted = false"),
        sqlite_where=sa.text("is_deleted = 0"),
    )
    op.create_index(
        "ix_settings_tenant_module_deleted", "settings_aggregates", ["tenant_key", "module", "is_deleted"]
    )

    op.create_table(
        "settings_history",
        sa.Column("id", sa.Uuid(as_uuid=True), primary_key=True),
        sa.Column("tenant_id", sa.String(64), nullable=True),
        sa.Column("tenant_key", sa.String(64), nullable=False),
        sa.Column("module", sa.String(32), nullable=False),
        sa.Column("action", sa.String(32), nullable=False),
        sa.Column("previous_value", sa.JSON(), nullable=False),
        sa.Column("new_value", sa.JSON(), nullable=False),
        sa.Column("changed_by", sa.String(64), nullable=False),
        sa.Column("ip_address", sa.String(64), nullable=True),
        sa.Column("created_at", sa.DateTime(timezone=True), nullable=False, server_default=sa.func.now()),
        sa.Column("updated_at", sa.DateTime(timezone=True), nullable=False, server_default=sa.func.now()),
    )
    op.create_index("ix_settings_history__tenant_created", "settings_history", ["tenant_key", "created_at"])
    op.create_index("ix_settings_history__tenant_module", "settings_history", ["tenant_key", "module"])


def downgrade():
    op.drop_index("ix_settings_history__tenant_module", table_name="settings_history")
    op.drop_index("ix_settings_history__tenant_created", table_name="settings_history")
    op.drop_table("settings_history")
    op.drop_index("ix_settings_tenant_module_deleted", table_name="settings_aggregates")
    op.drop_index("uq_settings_live_tenant_module", table_name="settings_aggregates")
    op.drop_table("settings_aggregates")
