from __future__ import annotations

from typing import Any, Dict

from fastapi import APIRouter, Body, Depends

from src.system_settings.api.dependencies import get_container, require_permission, respond
from src.system_settings.api.routes.common import add_aggregate_routes
from src.system_settings.application.context import ActorContext
from src.system_settings.container import SettingsContainer

router = APIRouter(prefix="/api/v1/settings/enterprise-infra", tags=["settings:infra"])

add_aggregate_routes(router, lambda c: c.enterprise_infra, label="Enterprise infrastructure")


@router.post("/validate")
async def validate_infrastructure(
    payload: Dict[str, Any] = Body(...),
    actor: ActorContext = Depends(require_permission("settings:read")),
    container: SettingsContainer = Depends(get_container),
):
    return respond(container.enterprise_infra.validate_infrastructure(payload), "Infrastructure validated")


@router.get("/status")
async def get_infrastructure_status(
    actor: ActorContext = Depends(require_permission("settings:read")),
    container: SettingsContainer = Depends(get_container),
):
    return respond(await container.enterprise_infra.get_infrastructure_status(actor.tenant_id), "Infrastructure status retrieved")
