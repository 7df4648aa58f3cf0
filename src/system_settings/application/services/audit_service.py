"""
AuditQueryService
Reads, aggregates, deletes and replays the settings history ledger.
"""
from __future__ import annotations

from datetime import datetime
from typing import Any, Dict, Mapping, Optional
from uuid import UUID

from src.shared.exceptions import BadRequestError, ValidationError
from src.shared.logging import get_logger
from src.system_settings.application.context import ActorContext
from src.system_settings.application.services.settings_service import SettingsService, UowFactory
from src.system_settings.domain.entities import NewHistoryEntry
from src.system_settings.domain.modules import AUDIT_LOG_MODULE, HistoryAction, SettingsModule
from src.system_settings.domain.repositories import HistoryFilter
from src.system_settings.infrastructure.cache import SettingsCache
from src.system_settings.infrastructure.rate_limiter import RateLimiter

logger = get_logger(__name__)

MAX_PAGE_SIZE = 100


class AuditQueryService:
    def __init__(
        self,
        *,
        uow_factory: UowFactory,
        cache: SettingsCache,
        rate_limiter: RateLimiter,
        services: Mapping[SettingsModule, SettingsService],
        query_limit: int = 100,
        stats_limit: int = 50,
        cache_ttl: int = 300,
    ) -> None:
        self._uow = uow_factory
        self._cache = cache
        self._limiter = rate_limiter
        self._services = dict(services)
        self._query_limit = query_limit
        self._stats_limit = stats_limit
        self._ttl = cache_ttl

    async def _cached(self, tenant_id: Optional[str], key: str, load) -> Any:
        return await self._cache.read_through(AUDIT_LOG_MODULE, tenant_id, key, load, self._ttl)

    async def get_audit_log(
        self, tenant_id: Optional[str], flt: Optional[HistoryFilter] = None, *, page: int = 1, limit: int = 20
    ) -> Dict[str, Any]:
        if page < 1 or not 1 <= limit <= MAX_PAGE_SIZE:
            raise ValidationError(f"page must be >= 1 and limit between 1 and {MAX_PAGE_SIZE}")
        flt = flt or HistoryFilter()
        await self._limiter.hit("audit", tenant_id, limit=self._query_limit)
        key = SettingsCache.key(AUDIT_LOG_MODULE, tenant_id, "list", *flt.cache_qualifiers(), page, limit)

        async def load() -> Dict[str, Any]:
            async with self._uow() as uow:
                items, total = await uow.ledger.query(tenant_id, flt, page, limit)
            return {"items": [e.to_dict() for e in items], "total": total, "page": page, "limit": limit}

        return await self._cached(tenant_id, key, load)

    async def get_audit_log_stats(
        self, tenant_id: Optional[str], start_date: Optional[datetime] = None, end_date: Optional[datetime] = None
    ) -> Dict[str, Any]:
        await self._limiter.hit("audit_stats", tenant_id, limit=self._stats_limit)
        async with self._uow() as uow:
            groups = await uow.ledger.aggregate(tenant_id, start_date, end_date)
        return {
            "groups": groups,
            "total": sum(g["count"] for g in groups),
            "start_date": start_date.isoformat() if start_date else None,
            "end_date": end_date.isoformat() if end_date else None,
        }

    async def delete_audit_logs(self, tenant_id: Optional[str], flt: HistoryFilter, actor: ActorContext) -> Dict[str, int]:
        """Permanent; the deletion itself is recorded under the audit-log pseudo module."""
        async with self._uow() as uow:
            deleted = await uow.ledger.delete_many(tenant_id, flt)
            await uow.ledger.record(
                NewHistoryEntry(
                    tenant_id=tenant_id,
                    module=AUDIT_LOG_MODULE,
                    action=HistoryAction.DELETE.value,
                    previous_value={"deleted_count": deleted, "filter": list(flt.cache_qualifiers())},
                    changed_by=actor.actor_id,
                    ip_address=actor.ip_address,
                )
            )
            await uow.commit()
        await self._cache.invalidate(AUDIT_LOG_MODULE, tenant_id)
        logger.info("audit_logs_deleted", tenant_id=tenant_id, actor_id=actor.actor_id, count=deleted)
        return {"deleted_count": deleted}

    async def rollback_settings(self, tenant_id: Optional[str], history_id: UUID, actor: ActorContext) -> Dict[str, Any]:
        """
        Replay the entry's previous value as a new change of kind `rollback`.
        The ledger read, store write and rollback record share one transaction.
        """
        async with self._uow() as uow:
            entry = await uow.ledger.find_one(history_id, tenant_id)
            module = SettingsModule.parse(entry.module)
            service = self._services.get(module) if module else None
            if service is None:
                raise BadRequestError("Invalid module for rollback", details={"module": entry.module})
            before, after = await service.apply_history(uow, tenant_id, entry)
            record = await uow.ledger.record(
                NewHistoryEntry(
                    tenant_id=tenant_id,
                    module=entry.module,
                    action=HistoryAction.ROLLBACK.value,
                    previous_value=before,
                    new_value=after,
                    changed_by=actor.actor_id,
                    ip_address=actor.ip_address,
                )
            )
            await uow.commit()
        logger.info(
            "settings_rolled_back",
            module=entry.module,
            tenant_id=tenant_id,
            actor_id=actor.actor_id,
            target_id=str(history_id),
            history_id=str(record.id),
        )
        await service.after_commit(tenant_id, HistoryAction.ROLLBACK)
        return {"module": entry.module, "history_id": str(record.id), "restored": after}

    async def purge_cache(self, tenant_id: Optional[str], actor: ActorContext) -> None:
        await self._cache.invalidate(AUDIT_LOG_MODULE, tenant_id)
        async with self._uow() as uow:
            await uow.ledger.record(
                NewHistoryEntry(
                    tenant_id=tenant_id,
                    module=AUDIT_LOG_MODULE,
                    action=HistoryAction.PURGE_CACHE.value,
                    changed_by=actor.actor_id,
                    ip_address=actor.ip_address,
                )
            )
            await uow.commit()
        await self._cache.invalidate(AUDIT_LOG_MODULE, tenant_id)
