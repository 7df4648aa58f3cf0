from __future__ import annotations

from datetime import datetime
from typing import Optional
from uuid import UUID

from fastapi import APIRouter, Depends, Query

from src.system_settings.api.dependencies import get_container, require_permission, respond
from src.system_settings.application.context import ActorContext
from src.system_settings.container import SettingsContainer
from src.system_settings.domain.repositories import HistoryFilter

router = APIRouter(prefix="/api/v1/audit-logs", tags=["audit"])


def _history_filter(
    module: Optional[str] = Query(default=None),
    action: Optional[str] = Query(default=None),
    changed_by: Optional[str] = Query(default=None),
    start_date: Optional[datetime] = Query(default=None),
    end_date: Optional[datetime] = Query(default=None),
) -> HistoryFilter:
    return HistoryFilter(module=module, action=action, changed_by=changed_by, start_date=start_date, end_date=end_date)


@router.get("")
async def get_audit_log(
    flt: HistoryFilter = Depends(_history_filter),
    page: int = Query(default=1, ge=1),
    limit: int = Query(default=20, ge=1, le=100),
    actor: ActorContext = Depends(require_permission("audit:read")),
    container: SettingsContainer = Depends(get_container),
):
    return respond(await container.audit.get_audit_log(actor.tenant_id, flt, page=page, limit=limit), "Audit logs retrieved")


@router.get("/stats")
async def get_audit_log_stats(
    start_date: Optional[datetime] = Query(default=None),
    end_date: Optional[datetime] = Query(default=None),
    actor: ActorContext = Depends(require_permission("audit:read")),
    container: SettingsContainer = Depends(get_container),
):
    return respond(await container.audit.get_audit_log_stats(actor.tenant_id, start_date, end_date), "Audit log stats retrieved")


@router.delete("")
async def delete_audit_logs(
    flt: HistoryFilter = Depends(_history_filter),
    actor: ActorContext = Depends(require_permission("audit:write")),
    container: SettingsContainer = Depends(get_container),
):
    return respond(await container.audit.delete_audit_logs(actor.tenant_id, flt, actor), "Audit logs deleted")


@router.post("/cache/purge")
async def purge_audit_cache(
    actor: ActorContext = Depends(require_permission("audit:write")),
    container: SettingsContainer = Depends(get_container),
):
    await container.audit.purge_cache(actor.tenant_id, actor)
    return respond(None, "Audit cache purged")


@router.post("/{history_id}/rollback")
async def rollback_settings(
    history_id: UUID,
    actor: ActorContext = Depends(require_permission("audit:rollback")),
    container: SettingsContainer = Depends(get_container),
):
    return respond(await container.audit.rollback_settings(actor.tenant_id, history_id, actor), "Settings rolled back")
