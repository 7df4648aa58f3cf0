from __future__ import annotations

from typing import Any, Dict, List, Optional, Sequence

from src.shared.exceptions import BadRequestError, EntryNotFoundError, NotFoundError
from src.shared.logging import get_logger
from src.system_settings.application.context import ActorContext, validate_payload
from src.system_settings.application.services.settings_service import SettingsService
from src.system_settings.domain import entities as E
from src.system_settings.domain.entities import ConfigAggregate, NewHistoryEntry, utcnow
from src.system_settings.domain.modules import AUDIT_LOG_MODULE, HistoryAction, SettingsModule
from src.system_settings.infrastructure.cache import SettingsCache
from src.system_settings.infrastructure.unit_of_work import SettingsUnitOfWork

logger = get_logger(__name__)


class CollectionSettingsService(SettingsService):
    """
    Flags and roles: one aggregate per tenant holding an ordered list of named
    entries. Every entry operation rewrites the aggregate and records the whole
    aggregate as its snapshot, so any of them can be rolled back.
    """

    entry_label = "Entry"
    plural_label = "entries"

    def _not_found(self, name: str) -> EntryNotFoundError:
        return EntryNotFoundError(f"{self.entry_label} not found", details={"name": name})

    def validate_create(self, payload: Any) -> Dict[str, Any]:
        raw = validate_payload(self.schemas.create, payload)
        data: Dict[str, Any] = {"entries": []}
        now = utcnow()
        for item in raw.entries:
            data = E.append_entry(data, validate_payload(self.schemas.entry_create, item).model_dump(mode="json"), now)
        return data

    async def _append(
        self, tenant_id: Optional[str], items: List[Dict[str, Any]], action: HistoryAction, actor: ActorContext
    ) -> ConfigAggregate:
        async def step(uow: SettingsUnitOfWork):
            now = utcnow()
            current = await uow.store.get_live(self.module, tenant_id)
            data = current.snapshot() if current else {"entries": []}
            for fields in items:
                data = E.append_entry(data, fields, now)
            if current is None:
                aggregate = await uow.store.create(self.module, tenant_id, data)
                return {}, aggregate.snapshot(), aggregate
            aggregate = await uow.store.replace(current, data)
            return current.snapshot(), aggregate.snapshot(), aggregate

        aggregate, _ = await self._mutate(tenant_id, action, actor, step)
        return aggregate

    # ---------- writes ----------

    async def create_entry(self, tenant_id: Optional[str], payload: Any, actor: ActorContext) -> Dict[str, Any]:
        self._require_tenant(tenant_id)
        fields = validate_payload(self.schemas.entry_create, payload).model_dump(mode="json")
        aggregate = await self._append(tenant_id, [fields], HistoryAction.CREATE, actor)
        return E.find_live_entry(aggregate.data, fields["name"])

    async def bulk_create(self, tenant_id: Optional[str], payloads: Sequence[Any], actor: ActorContext) -> Dict[str, Any]:
        """
        Insert every new name once. Within the batch the first occurrence of a
        name wins; names already live are skipped. Fails only when nothing is left.
        """
        self._require_tenant(tenant_id)
        if not payloads:
            raise BadRequestError(f"At least one {self.entry_label.lower()} is required")
        validated = [validate_payload(self.schemas.entry_create, p).model_dump(mode="json") for p in payloads]

        batch: Dict[str, Dict[str, Any]] = {}
        for fields in validated:
            batch.setdefault(fields["name"], fields)

        existing = {e["name"] for e in await self.live_entries_or_empty(tenant_id)}
        fresh = [f for name, f in batch.items() if name not in existing]
        skipped = [f["name"] for f in validated if f["name"] in existing or batch[f["name"]] is not f]
        if not fresh:
            raise BadRequestError(f"All provided {self.plural_label} already exist", details={"skipped": skipped})

        aggregate = await self._append(tenant_id, fresh, HistoryAction.BULK_CREATE, actor)
        created = [E.find_live_entry(aggregate.data, f["name"]) for f in fresh]
        return {"created": created, "skipped": skipped}

    async def update_entry(self, tenant_id: Optional[str], name: str, payload: Any, actor: ActorContext) -> Dict[str, Any]:
        self._require_tenant(tenant_id)
        patch = validate_payload(self.schemas.entry_update, payload).model_dump(mode="json", exclude_unset=True)
        if not patch:
            raise BadRequestError("Update payload is empty")
        aggregate = await self._entry_change(
            tenant_id, name, actor, HistoryAction.UPDATE, lambda data, now: E.update_entry(data, name, patch, now)
        )
        return E.find_live_entry(aggregate.data, patch.get("name") or name)

    async def toggle(self, tenant_id: Optional[str], name: str, actor: ActorContext) -> Dict[str, Any]:
        self._require_tenant(tenant_id)
        aggregate = await self._entry_change(
            tenant_id, name, actor, HistoryAction.TOGGLE, lambda data, now: E.toggle_entry(data, name, now)
        )
        return E.find_live_entry(aggregate.data, name)

    async def delete_entry(self, tenant_id: Optional[str], name: str, actor: ActorContext) -> None:
        self._require_tenant(tenant_id)
        await self._entry_change(
            tenant_id, name, actor, HistoryAction.DELETE, lambda data, now: E.soft_delete_entry(data, name, now)
        )

    async def _entry_change(self, tenant_id, name, actor, action, change) -> ConfigAggregate:
        def build(current: ConfigAggregate) -> Dict[str, Any]:
            if E.find_live_entry(current.data, name) is None:
                raise self._not_found(name)
            return change(current.snapshot(), utcnow())

        return await self.replace_with(tenant_id, actor, action, build)

    async def purge_cache(self, tenant_id: Optional[str], actor: ActorContext) -> None:
        """Drop every cached read for this tenant; recorded for traceability only."""
        self._require_tenant(tenant_id)
        await self._cache.invalidate(self.module, tenant_id)
        async with self._uow() as uow:
            await uow.ledger.record(
                NewHistoryEntry(
                    tenant_id=tenant_id,
                    module=self.module.value,
                    action=HistoryAction.PURGE_CACHE.value,
                    changed_by=actor.actor_id,
                    ip_address=actor.ip_address,
                )
            )
            await uow.commit()
        await self._cache.invalidate(AUDIT_LOG_MODULE, tenant_id)
        logger.info("settings_cache_purged", module=self.module.value, tenant_id=tenant_id, actor_id=actor.actor_id)

    # ---------- reads ----------

    async def live_entries_or_empty(self, tenant_id: Optional[str]) -> List[Dict[str, Any]]:
        async with self._uow() as uow:
            current = await uow.store.get_live(self.module, tenant_id)
        return E.live_entries(current.data) if current else []

    async def list_entries(self, tenant_id: Optional[str], *, page: int = 1, limit: int = 20) -> Dict[str, Any]:
        self._require_tenant(tenant_id)
        if page < 1 or not 1 <= limit <= 100:
            raise BadRequestError("page must be >= 1 and limit between 1 and 100")

        async def load() -> Dict[str, Any]:
            aggregate = await self.get(tenant_id)
            entries = E.live_entries(aggregate.data)
            start = (page - 1) * limit
            return {"items": entries[start:start + limit], "total": len(entries), "page": page, "limit": limit}

        return await self._cached(tenant_id, SettingsCache.key(self.module, tenant_id, "list", page, limit), load)

    async def get_entry(self, tenant_id: Optional[str], name: str) -> Dict[str, Any]:
        aggregate = await self.get(tenant_id)
        entry = E.find_live_entry(aggregate.data, name)
        if entry is None:
            raise self._not_found(name)
        return entry


class FeatureFlagService(CollectionSettingsService):
    entry_label = "Feature flag"
    plural_label = "flags"

    def __init__(self, **kwargs: Any) -> None:
        super().__init__(SettingsModule.FEATURE_FLAGS, **kwargs)

    async def is_enabled(self, tenant_id: Optional[str], name: str) -> bool:
        try:
            return bool((await self.get_entry(tenant_id, name)).get("enabled"))
        except NotFoundError:
            return False


class RoleService(CollectionSettingsService):
    entry_label = "Role"
    plural_label = "roles"

    def __init__(self, **kwargs: Any) -> None:
        super().__init__(SettingsModule.ROLE, **kwargs)

    async def get_permissions(self, tenant_id: Optional[str], name: str) -> List[str]:
        return list((await self.get_entry(tenant_id, name)).get("permissions", []))
