"""
SettingsService
Create/get/update/delete for one module, sequenced as
store write -> history record -> commit -> cache invalidate -> publish.
"""
from __future__ import annotations

from typing import Any, Awaitable, Callable, Dict, Optional, Tuple

from src.shared.exceptions import BadRequestError, NotFoundError, ValidationError
from src.shared.logging import get_logger
from src.system_settings.application.context import ActorContext, validate_payload
from src.system_settings.application.schemas import MODULE_SCHEMAS, top_level_patch
from src.system_settings.domain.entities import ConfigAggregate, HistoryEntry, NewHistoryEntry
from src.system_settings.domain.events import SettingsChanged
from src.system_settings.domain.modules import AUDIT_LOG_MODULE, HistoryAction, SettingsModule
from src.system_settings.infrastructure.cache import SettingsCache
from src.system_settings.infrastructure.notifier import ChangeNotifier
from src.system_settings.infrastructure.unit_of_work import SettingsUnitOfWork

logger = get_logger(__name__)

UowFactory = Callable[[], SettingsUnitOfWork]
# A mutation step returns (previous snapshot, new snapshot, resulting aggregate or None).
Mutation = Callable[[SettingsUnitOfWork], Awaitable[Tuple[Dict[str, Any], Dict[str, Any], Optional[ConfigAggregate]]]]


class SettingsService:
    """
    One instance per module. Pre-mutation snapshots are read explicitly inside
    the unit of work; history and store writes commit together. Cache and
    pub/sub run only after the commit and never fail the call.
    """

    def __init__(
        self,
        module: SettingsModule,
        *,
        uow_factory: UowFactory,
        cache: SettingsCache,
        notifier: ChangeNotifier,
        cache_ttl: int = 300,
    ) -> None:
        self.module = module
        self.schemas = MODULE_SCHEMAS[module]
        self._uow = uow_factory
        self._cache = cache
        self._notifier = notifier
        self._ttl = cache_ttl

    # ---------- helpers ----------

    def _require_tenant(self, tenant_id: Optional[str]) -> None:
        if not tenant_id and not self.module.allows_global:
            raise ValidationError("tenant_id is required", details={"module": self.module.value})

    def validate_create(self, payload: Any) -> Dict[str, Any]:
        return validate_payload(self.schemas.create, payload).model_dump(mode="json")

    def validate_patch(self, payload: Any) -> Dict[str, Any]:
        if self.schemas.update is None:
            raise BadRequestError(f"{self.module.value} is updated through its entries")
        patch = top_level_patch(validate_payload(self.schemas.update, payload))
        if not patch:
            raise ValidationError("Update payload is empty")
        return patch

    async def _mutate(
        self,
        tenant_id: Optional[str],
        action: HistoryAction,
        actor: ActorContext,
        step: Mutation,
        *,
        module: Optional[str] = None,
    ) -> Tuple[Optional[ConfigAggregate], HistoryEntry]:
        async with self._uow() as uow:
            previous, new, aggregate = await step(uow)
            entry = await uow.ledger.record(
                NewHistoryEntry(
                    tenant_id=tenant_id,
                    module=module or self.module.value,
                    action=action.value,
                    previous_value=previous,
                    new_value=new,
                    changed_by=actor.actor_id,
                    ip_address=actor.ip_address,
                )
            )
            await uow.commit()
        logger.info(
            "settings_mutated",
            module=self.module.value,
            tenant_id=tenant_id,
            action=action.value,
            actor_id=actor.actor_id,
            history_id=str(entry.id),
        )
        await self.after_commit(tenant_id, action)
        return aggregate, entry

    async def after_commit(self, tenant_id: Optional[str], action: HistoryAction) -> None:
        await self._cache.invalidate(self.module, tenant_id)
        await self._cache.invalidate(AUDIT_LOG_MODULE, tenant_id)
        await self._notifier.publish(SettingsChanged(module=self.module.value, tenant_id=tenant_id, action=action.value))

    async def _cached(self, tenant_id: Optional[str], key: str, load: Callable[[], Awaitable[Any]], ttl: Optional[int] = None) -> Any:
        return await self._cache.read_through(self.module, tenant_id, key, load, ttl or self._ttl)

    # ---------- reads ----------

    async def get(self, tenant_id: Optional[str]) -> ConfigAggregate:
        self._require_tenant(tenant_id)

        async def load() -> Dict[str, Any]:
            async with self._uow() as uow:
                return (await uow.store.get(self.module, tenant_id)).to_dict()

        return ConfigAggregate.from_dict(await self._cached(tenant_id, SettingsCache.key(self.module, tenant_id), load))

    # ---------- writes ----------

    async def create(self, tenant_id: Optional[str], payload: Any, actor: ActorContext) -> ConfigAggregate:
        self._require_tenant(tenant_id)
        data = self.validate_create(payload)

        async def step(uow: SettingsUnitOfWork):
            aggregate = await uow.store.create(self.module, tenant_id, data)
            return {}, aggregate.snapshot(), aggregate

        aggregate, _ = await self._mutate(tenant_id, HistoryAction.CREATE, actor, step)
        return aggregate

    def merge_patch(self, current: ConfigAggregate, patch: Dict[str, Any]) -> Dict[str, Any]:
        """Shallow merge; the merged document must still be a valid aggregate."""
        return self.validate_create({**current.data, **patch})

    async def update(self, tenant_id: Optional[str], patch: Any, actor: ActorContext) -> ConfigAggregate:
        self._require_tenant(tenant_id)
        changes = self.validate_patch(patch)
        return await self.replace_with(tenant_id, actor, HistoryAction.UPDATE, lambda current: self.merge_patch(current, changes))

    async def replace_with(
        self,
        tenant_id: Optional[str],
        actor: ActorContext,
        action: HistoryAction,
        build: Callable[[ConfigAggregate], Dict[str, Any]],
    ) -> ConfigAggregate:
        """Read-modify-write of the live aggregate under one unit of work."""

        async def step(uow: SettingsUnitOfWork):
            current = await uow.store.get(self.module, tenant_id)
            before = current.snapshot()
            aggregate = await uow.store.replace(current, build(current))
            return before, aggregate.snapshot(), aggregate

        aggregate, _ = await self._mutate(tenant_id, action, actor, step)
        return aggregate

    async def delete(self, tenant_id: Optional[str], actor: ActorContext) -> None:
        self._require_tenant(tenant_id)

        async def step(uow: SettingsUnitOfWork):
            deleted = await uow.store.soft_delete(self.module, tenant_id)
            return deleted.snapshot(), {}, None

        await self._mutate(tenant_id, HistoryAction.DELETE, actor, step)

    # ---------- rollback ----------

    async def apply_history(
        self, uow: SettingsUnitOfWork, tenant_id: Optional[str], entry: HistoryEntry
    ) -> Tuple[Dict[str, Any], Dict[str, Any]]:
        """
        Put the aggregate back into `entry.previous_value` inside the caller's
        unit of work. Returns the (before, after) snapshots for the rollback record.
        """
        if entry.action == HistoryAction.PURGE_CACHE.value:
            raise BadRequestError("Cache purges have nothing to roll back")

        target = entry.previous_value
        if entry.action == HistoryAction.DELETE.value and not entry.new_value:
            deleted = await uow.store.find_latest_deleted(self.module, tenant_id)
            if deleted is None:
                raise NotFoundError("Settings not found", code="settings_not_found")
            restored = await uow.store.restore(deleted, target)
            return {}, restored.snapshot()

        current = await uow.store.get(self.module, tenant_id)
        before = current.snapshot()
        if not target:
            # undoing a create: the aggregate did not exist before
            await uow.store.soft_delete(self.module, tenant_id)
            return before, {}
        aggregate = await uow.store.replace(current, target)
        return before, aggregate.snapshot()
