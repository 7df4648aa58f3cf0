from __future__ import annotations

from datetime import datetime
from typing import Any, Dict, List, Optional, Tuple
from uuid import UUID, uuid4

from sqlalchemy import delete, distinct, func, select
from sqlalchemy.ext.asyncio import AsyncSession

from src.shared.exceptions import NotFoundError
from src.system_settings.domain.entities import HistoryEntry, NewHistoryEntry, utcnow
from src.system_settings.domain.modules import tenant_key
from src.system_settings.domain.repositories import HistoryFilter, HistoryLedger
from src.system_settings.infrastructure.config_store import _aware
from src.system_settings.infrastructure.models import SettingsHistoryORM


def _to_domain(row: SettingsHistoryORM) -> HistoryEntry:
    return HistoryEntry(
        id=row.id,
        tenant_id=row.tenant_id,
        module=row.module,
        action=row.action,
        previous_value=dict(row.previous_value or {}),
        new_value=dict(row.new_value or {}),
        changed_by=row.changed_by,
        ip_address=row.ip_address,
        created_at=_aware(row.created_at),
    )


def _conditions(tenant_id: Optional[str], flt: HistoryFilter) -> List[Any]:
    conds: List[Any] = [SettingsHistoryORM.tenant_key == tenant_key(tenant_id)]
    if flt.module:
        conds.append(SettingsHistoryORM.module == flt.module)
    if flt.action:
        conds.append(SettingsHistoryORM.action == flt.action)
    if flt.changed_by:
        conds.append(SettingsHistoryORM.changed_by == flt.changed_by)
    if flt.start_date:
        conds.append(SettingsHistoryORM.created_at >= flt.start_date)
    if flt.end_date:
        conds.append(SettingsHistoryORM.created_at <= flt.end_date)
    return conds


class SqlHistoryLedger(HistoryLedger):
    """Append-only ledger sharing the config store's session, so both commit together."""

    def __init__(self, session: AsyncSession) -> None:
        self._session = session

    async def record(self, entry: NewHistoryEntry) -> HistoryEntry:
        row = SettingsHistoryORM(
            id=uuid4(),
            tenant_id=entry.tenant_id,
            tenant_key=tenant_key(entry.tenant_id),
            module=entry.module,
            action=entry.action,
            previous_value=entry.previous_value,
            new_value=entry.new_value,
            changed_by=entry.changed_by,
            ip_address=entry.ip_address,
            created_at=utcnow(),
            updated_at=utcnow(),
        )
        self._session.add(row)
        await self._session.flush()
        return _to_domain(row)

    async def query(
        self, tenant_id: Optional[str], flt: HistoryFilter, page: int, limit: int
    ) -> Tuple[List[HistoryEntry], int]:
        conds = _conditions(tenant_id, flt)
        total = (await self._session.execute(select(func.count(SettingsHistoryORM.id)).where(*conds))).scalar_one()
        stmt = (
            select(SettingsHistoryORM)
            .where(*conds)
            .order_by(SettingsHistoryORM.created_at.desc())
            .offset((page - 1) * limit)
            .limit(limit)
        )
        rows = (await self._session.execute(stmt)).scalars().all()
        return [_to_domain(r) for r in rows], int(total)

    async def aggregate(
        self, tenant_id: Optional[str], start_date: Optional[datetime], end_date: Optional[datetime]
    ) -> List[Dict[str, Any]]:
        conds = _conditions(tenant_id, HistoryFilter(start_date=start_date, end_date=end_date))
        stmt = (
            select(
                SettingsHistoryORM.module,
                SettingsHistoryORM.action,
                func.count(SettingsHistoryORM.id),
                func.count(distinct(SettingsHistoryORM.changed_by)),
            )
            .where(*conds)
            .group_by(SettingsHistoryORM.module, SettingsHistoryORM.action)
            .order_by(SettingsHistoryORM.module, SettingsHistoryORM.action)
        )
        return [
            {"module": module, "action": action, "count": int(count), "distinct_actor_count": int(actors)}
            for module, action, count, actors in (await self._session.execute(stmt)).all()
        ]

    async def delete_many(self, tenant_id: Optional[str], flt: HistoryFilter) -> int:
        stmt = delete(SettingsHistoryORM).where(*_conditions(tenant_id, flt)).execution_options(synchronize_session=False)
        deleted = (await self._session.execute(stmt)).rowcount or 0
        if deleted == 0:
            raise NotFoundError("No audit logs matched the filter", code="history_not_found")
        return int(deleted)

    async def find_one(self, entry_id: UUID, tenant_id: Optional[str]) -> HistoryEntry:
        row = await self._session.get(SettingsHistoryORM, entry_id)
        if row is None or row.tenant_key != tenant_key(tenant_id):
            raise NotFoundError("Audit log entry not found", code="history_not_found")
        return _to_domain(row)
