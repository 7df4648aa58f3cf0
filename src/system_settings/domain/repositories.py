from __future__ import annotations

from abc import ABC, abstractmethod
from dataclasses import dataclass
from datetime import datetime
from typing import Any, Dict, List, Optional, Tuple
from uuid import UUID

from .entities import ConfigAggregate, HistoryEntry, NewHistoryEntry
from .modules import SettingsModule


@dataclass(frozen=True, slots=True)
class HistoryFilter:
    module: Optional[str] = None
    action: Optional[str] = None
    changed_by: Optional[str] = None
    start_date: Optional[datetime] = None
    end_date: Optional[datetime] = None

    def cache_qualifiers(self) -> Tuple[str, ...]:
        """Every filter dimension, in a fixed order, for composite cache keys."""
        return (
            self.module or "-",
            self.action or "-",
            self.changed_by or "-",
            self.start_date.isoformat() if self.start_date else "-",
            self.end_date.isoformat() if self.end_date else "-",
        )


class ConfigStore(ABC):
    """
    Durable current state, one live aggregate per (tenant, module).
    Implementations MUST enforce liveness uniqueness in storage and MUST fail
    conditional writes whose expected version has moved.
    """

    @abstractmethod
    async def get_live(self, module: SettingsModule, tenant_id: Optional[str]) -> Optional[ConfigAggregate]:
        """Return the non-deleted aggregate or None."""

    @abstractmethod
    async def list_live(self, module: SettingsModule) -> List[ConfigAggregate]:
        """Every non-deleted aggregate of `module`, across tenants."""

    @abstractmethod
    async def get(self, module: SettingsModule, tenant_id: Optional[str]) -> ConfigAggregate:
        """Return the non-deleted aggregate; NotFoundError otherwise."""

    @abstractmethod
    async def create(self, module: SettingsModule, tenant_id: Optional[str], data: Dict[str, Any]) -> ConfigAggregate:
        """Insert a live aggregate; AlreadyExistsError if one is live."""

    @abstractmethod
    async def update(self, module: SettingsModule, tenant_id: Optional[str], patch: Dict[str, Any]) -> ConfigAggregate:
        """Shallow-merge top-level keys onto the live aggregate."""

    @abstractmethod
    async def replace(self, aggregate: ConfigAggregate, data: Dict[str, Any]) -> ConfigAggregate:
        """Swap the full data of `aggregate` if its version is unchanged."""

    @abstractmethod
    async def soft_delete(self, module: SettingsModule, tenant_id: Optional[str]) -> ConfigAggregate:
        """Mark the live aggregate deleted and return it; NotFoundError if none."""

    @abstractmethod
    async def find_latest_deleted(self, module: SettingsModule, tenant_id: Optional[str]) -> Optional[ConfigAggregate]:
        """Most recently deleted aggregate, used to undo a delete."""

    @abstractmethod
    async def restore(self, aggregate: ConfigAggregate, data: Dict[str, Any]) -> ConfigAggregate:
        """Bring a deleted aggregate back to life with `data`."""


class HistoryLedger(ABC):
    """Append-only transition log. Storage failures propagate; history is never best-effort."""

    @abstractmethod
    async def record(self, entry: NewHistoryEntry) -> HistoryEntry:
        ...

    @abstractmethod
    async def query(
        self, tenant_id: Optional[str], flt: HistoryFilter, page: int, limit: int
    ) -> Tuple[List[HistoryEntry], int]:
        """Newest first; returns (items, total)."""

    @abstractmethod
    async def aggregate(
        self, tenant_id: Optional[str], start_date: Optional[datetime], end_date: Optional[datetime]
    ) -> List[Dict[str, Any]]:
        """[{module, action, count, distinct_actor_count}]"""

    @abstractmethod
    async def delete_many(self, tenant_id: Optional[str], flt: HistoryFilter) -> int:
        """NotFoundError when nothing matched."""

    @abstractmethod
    async def find_one(self, entry_id: UUID, tenant_id: Optional[str]) -> HistoryEntry:
        """NotFoundError when absent or owned by another tenant."""
