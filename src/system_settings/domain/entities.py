from __future__ import annotations

import copy
from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Any, Dict, List, Optional
from uuid import UUID

from src.shared.exceptions import EntryAlreadyExistsError, EntryNotFoundError
from .modules import SettingsModule, tenant_key


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


def _iso(value: Optional[datetime]) -> Optional[str]:
    return value.isoformat() if value is not None else None


def _parse_dt(value: Any) -> Optional[datetime]:
    if value is None or isinstance(value, datetime):
        return value
    return datetime.fromisoformat(value)


@dataclass(frozen=True, slots=True)
class ConfigAggregate:
    """
    Current configuration of one module for one tenant.

    Notes:
    - `data` holds the module fields only; it is what history snapshots record.
    - `version` increases on every mutation and guards conditional updates.
    - A deleted aggregate stays in storage for audit and rollback.
    """
    id: UUID
    tenant_id: Optional[str]
    module: SettingsModule
    data: Dict[str, Any]
    version: int
    is_deleted: bool
    created_at: datetime
    updated_at: datetime
    deleted_at: Optional[datetime] = None

    @property
    def tenant_key(self) -> str:
        return tenant_key(self.tenant_id)

    def snapshot(self) -> Dict[str, Any]:
        return copy.deepcopy(self.data)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "id": str(self.id),
            "tenant_id": self.tenant_id,
            "module": self.module.value,
            "data": copy.deepcopy(self.data),
            "version": self.version,
            "is_deleted": self.is_deleted,
            "created_at": _iso(self.created_at),
            "updated_at": _iso(self.updated_at),
            "deleted_at": _iso(self.deleted_at),
        }

    @classmethod
    def from_dict(cls, payload: Dict[str, Any]) -> "ConfigAggregate":
        return cls(
            id=UUID(payload["id"]),
            tenant_id=payload.get("tenant_id"),
            module=SettingsModule(payload["module"]),
            data=payload["data"],
            version=int(payload["version"]),
            is_deleted=bool(payload["is_deleted"]),
            created_at=_parse_dt(payload["created_at"]),
            updated_at=_parse_dt(payload["updated_at"]),
            deleted_at=_parse_dt(payload.get("deleted_at")),
        )


@dataclass(frozen=True, slots=True)
class HistoryEntry:
    """Immutable record of one state transition. `module` may also be the audit-log pseudo module."""
    id: UUID
    tenant_id: Optional[str]
    module: str
    action: str
    previous_value: Dict[str, Any]
    new_value: Dict[str, Any]
    changed_by: str
    ip_address: Optional[str]
    created_at: datetime

    def to_dict(self) -> Dict[str, Any]:
        return {
            "id": str(self.id),
            "tenant_id": self.tenant_id,
            "module": self.module,
            "action": self.action,
            "previous_value": self.previous_value,
            "new_value": self.new_value,
            "changed_by": self.changed_by,
            "ip_address": self.ip_address,
            "created_at": _iso(self.created_at),
        }


@dataclass(frozen=True, slots=True)
class NewHistoryEntry:
    tenant_id: Optional[str]
    module: str
    action: str
    previous_value: Dict[str, Any] = field(default_factory=dict)
    new_value: Dict[str, Any] = field(default_factory=dict)
    changed_by: str = "system"
    ip_address: Optional[str] = None


# ───────────────────────── collection-valued aggregates ─────────────────────────
# Flags and roles keep an ordered list of named entries under data["entries"].
# Soft-deleted entries stay in the list; names are unique among live entries only.


def entries_of(data: Dict[str, Any]) -> List[Dict[str, Any]]:
    return list(data.get("entries", []))


def live_entries(data: Dict[str, Any]) -> List[Dict[str, Any]]:
    return [e for e in entries_of(data) if not e.get("is_deleted")]


def find_live_entry(data: Dict[str, Any], name: str) -> Optional[Dict[str, Any]]:
    for entry in entries_of(data):
        if entry.get("name") == name and not entry.get("is_deleted"):
            return entry
    return None


def new_entry(fields: Dict[str, Any], now: datetime) -> Dict[str, Any]:
    entry = {"enabled": True, **copy.deepcopy(fields)}
    entry.update(created_at=now.isoformat(), updated_at=now.isoformat(), is_deleted=False)
    return entry


def append_entry(data: Dict[str, Any], fields: Dict[str, Any], now: datetime) -> Dict[str, Any]:
    name = fields["name"]
    if find_live_entry(data, name) is not None:
        raise EntryAlreadyExistsError(f"Entry '{name}' already exists", details={"name": name})
    return {**data, "entries": [*copy.deepcopy(entries_of(data)), new_entry(fields, now)]}


def _replace_live(data: Dict[str, Any], name: str, change) -> Dict[str, Any]:
    entries = copy.deepcopy(entries_of(data))
    for idx, entry in enumerate(entries):
        if entry.get("name") == name and not entry.get("is_deleted"):
            entries[idx] = change(entry)
            return {**data, "entries": entries}
    raise EntryNotFoundError(f"Entry '{name}' not found", details={"name": name})


def update_entry(data: Dict[str, Any], name: str, patch: Dict[str, Any], now: datetime) -> Dict[str, Any]:
    new_name = patch.get("name")
    if new_name and new_name != name and find_live_entry(data, new_name) is not None:
        raise EntryAlreadyExistsError(f"Entry '{new_name}' already exists", details={"name": new_name})
    return _replace_live(data, name, lambda e: {**e, **copy.deepcopy(patch), "updated_at": now.isoformat()})


def toggle_entry(data: Dict[str, Any], name: str, now: datetime) -> Dict[str, Any]:
    return _replace_live(
        data, name, lambda e: {**e, "enabled": not e.get("enabled", False), "updated_at": now.isoformat()}
    )


def soft_delete_entry(data: Dict[str, Any], name: str, now: datetime) -> Dict[str, Any]:
    return _replace_live(data, name, lambda e: {**e, "is_deleted": True, "updated_at": now.isoformat()})
