from __future__ import annotations

from datetime import datetime, timezone
from typing import Any, Dict, List, Optional
from uuid import uuid4

from sqlalchemy import and_, select, update
from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession

from src.shared.exceptions import AlreadyExistsError, ConcurrentModificationError, NotFoundError
from src.system_settings.domain.entities import ConfigAggregate, utcnow
from src.system_settings.domain.modules import SettingsModule, tenant_key
from src.system_settings.domain.repositories import ConfigStore
from src.system_settings.infrastructure.models import SettingsAggregateORM


def _aware(value: Optional[datetime]) -> Optional[datetime]:
    # SQLite hands back naive datetimes; everything is stored as UTC.
    if value is not None and value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value


def _to_domain(row: SettingsAggregateORM) -> ConfigAggregate:
    return ConfigAggregate(
        id=row.id,
        tenant_id=row.tenant_id,
        module=SettingsModule(row.module),
        data=dict(row.data or {}),
        version=row.version,
        is_deleted=row.is_deleted,
        created_at=_aware(row.created_at),
        updated_at=_aware(row.updated_at),
        deleted_at=_aware(row.deleted_at),
    )


def settings_not_found() -> NotFoundError:
    return NotFoundError("Settings not found", code="settings_not_found")


class SqlConfigStore(ConfigStore):
    """
    SQLAlchemy 2.x async implementation.
    Writes are conditional on `version`; the surrounding unit of work owns the transaction.
    """

    def __init__(self, session: AsyncSession) -> None:
        self._session = session

    def _scope(self, module: SettingsModule, tenant_id: Optional[str]):
        return and_(
            SettingsAggregateORM.tenant_key == tenant_key(tenant_id),
            SettingsAggregateORM.module == module.value,
        )

    async def get_live(self, module: SettingsModule, tenant_id: Optional[str]) -> Optional[ConfigAggregate]:
        stmt = (
            select(SettingsAggregateORM)
            .where(self._scope(module, tenant_id), SettingsAggregateORM.is_deleted.is_(False))
            .limit(1)
        )
        row = (await self._session.execute(stmt)).scalars().first()
        return _to_domain(row) if row else None

    async def list_live(self, module: SettingsModule) -> List[ConfigAggregate]:
        stmt = (
            select(SettingsAggregateORM)
            .where(SettingsAggregateORM.module == module.value, SettingsAggregateORM.is_deleted.is_(False))
            .order_by(SettingsAggregateORM.tenant_key)
        )
        return [_to_domain(row) for row in (await self._session.execute(stmt)).scalars()]

    async def get(self, module: SettingsModule, tenant_id: Optional[str]) -> ConfigAggregate:
        aggregate = await self.get_live(module, tenant_id)
        if aggregate is None:
            raise settings_not_found()
        return aggregate

    async def create(self, module: SettingsModule, tenant_id: Optional[str], data: Dict[str, Any]) -> ConfigAggregate:
        if await self.get_live(module, tenant_id) is not None:
            raise AlreadyExistsError("Settings already exist", details={"module": module.value})
        now = utcnow()
        row = SettingsAggregateORM(
            id=uuid4(),
            tenant_id=tenant_id,
            tenant_key=tenant_key(tenant_id),
            module=module.value,
            data=data,
            version=1,
            is_deleted=False,
            created_at=now,
            updated_at=now,
        )
        self._session.add(row)
        try:
            await self._session.flush()
        except IntegrityError as e:
            # a concurrent create won the partial unique index
            raise AlreadyExistsError("Settings already exist", details={"module": module.value}) from e
        return _to_domain(row)

    async def _conditional_update(self, aggregate: ConfigAggregate, *, deleted: bool, **values: Any) -> ConfigAggregate:
        now = utcnow()
        stmt = (
            update(SettingsAggregateORM)
            .where(
                SettingsAggregateORM.id == aggregate.id,
                SettingsAggregateORM.version == aggregate.version,
                SettingsAggregateORM.is_deleted.is_(deleted),
            )
            .values(version=aggregate.version + 1, updated_at=now, **values)
            .execution_options(synchronize_session=False)
        )
        result = await self._session.execute(stmt)
        if result.rowcount != 1:
            raise ConcurrentModificationError(
                details={"module": aggregate.module.value, "expected_version": aggregate.version}
            )
        row = await self._session.get(SettingsAggregateORM, aggregate.id, populate_existing=True)
        return _to_domain(row)

    async def replace(self, aggregate: ConfigAggregate, data: Dict[str, Any]) -> ConfigAggregate:
        return await self._conditional_update(aggregate, deleted=False, data=data)

    async def update(self, module: SettingsModule, tenant_id: Optional[str], patch: Dict[str, Any]) -> ConfigAggregate:
        current = await self.get(module, tenant_id)
        return await self.replace(current, {**current.data, **patch})

    async def soft_delete(self, module: SettingsModule, tenant_id: Optional[str]) -> ConfigAggregate:
        current = await self.get(module, tenant_id)
        return await self._conditional_update(current, deleted=False, is_deleted=True, deleted_at=utcnow())

    async def find_latest_deleted(self, module: SettingsModule, tenant_id: Optional[str]) -> Optional[ConfigAggregate]:
        stmt = (
            select(SettingsAggregateORM)
            .where(self._scope(module, tenant_id), SettingsAggregateORM.is_deleted.is_(True))
            .order_by(SettingsAggregateORM.deleted_at.desc())
            .limit(1)
        )
        row = (await self._session.execute(stmt)).scalars().first()
        return _to_domain(row) if row else None

    async def restore(self, aggregate: ConfigAggregate, data: Dict[str, Any]) -> ConfigAggregate:
        if await self.get_live(aggregate.module, aggregate.tenant_id) is not None:
            raise AlreadyExistsError("Settings already exist", details={"module": aggregate.module.value})
        try:
            return await self._conditional_update(aggregate, deleted=True, is_deleted=False, deleted_at=None, data=data)
        except IntegrityError as e:
            raise AlreadyExistsError("Settings already exist", details={"module": aggregate.module.value}) from e
