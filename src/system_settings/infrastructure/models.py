from __future__ import annotations

from datetime import datetime
from typing import Optional

from sqlalchemy import JSON, Boolean, DateTime, Index, Integer, String, text
from sqlalchemy.orm import Mapped, mapped_column

from src.shared.database import Base


class SettingsAggregateORM(Base):
    """
    settings_aggregates: current state per (tenant, module).

    - tenant_id NULL for tenant-less system roles; tenant_key is "global" then
    - data JSON with the module fields (collections keep data.entries)
    - version bumps on every write and guards conditional updates
    - partial UNIQUE(tenant_key, module) over live rows only
    """
    __tablename__ = "settings_aggregates"

    tenant_id: Mapped[Optional[str]] = mapped_column(String(64), nullable=True)
    tenant_key: Mapped[str] = mapped_column(String(64), nullable=False)
    module: Mapped[str] = mapped_column(String(32), nullable=False)
    data: Mapped[dict] = mapped_column(JSON, nullable=False, default=dict)
    version: Mapped[int] = mapped_column(Integer, nullable=False, default=1)
    is_deleted: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False)
    deleted_at: Mapped[Optional[datetime]] = mapped_column(DateTime(timezone=True), nullable=True)

    __table_args__ = (
        Index(
            "uq_settings_live_tenant_module",
            "tenant_key",
            "module",
            unique=True,
            postgresql_where=text("is_deleted = false"),
            sqlite_where=text("is_deleted = 0"),
        ),
        Index("ix_settings_tenant_module_deleted", "tenant_key", "module", "is_deleted"),
    )


class SettingsHistoryORM(Base):
    """
    settings_history: append-only; rows are never updated, only bulk-deleted by audit purge.
    """
    __tablename__ = "settings_history"

    tenant_id: Mapped[Optional[str]] = mapped_column(String(64), nullable=True)
    tenant_key: Mapped[str] = mapped_column(String(64), nullable=False)
    module: Mapped[str] = mapped_column(String(32), nullable=False)
    action: Mapped[str] = mapped_column(String(32), nullable=False)
    previous_value: Mapped[dict] = mapped_column(JSON, nullable=False, default=dict)
    new_value: Mapped[dict] = mapped_column(JSON, nullable=False, default=dict)
    changed_by: Mapped[str] = mapped_column(String(64), nullable=False)
    ip_address: Mapped[Optional[str]] = mapped_column(String(64), nullable=True)

    __table_args__ = (
        Index("ix_settings_history__tenant_created", "tenant_key", "created_at"),
        Index("ix_settings_history__tenant_module", "tenant_key", "module"),
    )
