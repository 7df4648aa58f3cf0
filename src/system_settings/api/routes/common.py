from __future__ import annotations

from typing import Any, Callable, Dict

from fastapi import APIRouter, Body, Depends, status

from src.system_settings.api.dependencies import get_container, require_permission, respond
from src.system_settings.application.context import ActorContext
from src.system_settings.application.services.settings_service import SettingsService
from src.system_settings.container import SettingsContainer

ServicePicker = Callable[[SettingsContainer], SettingsService]


def add_aggregate_routes(
    router: APIRouter,
    pick: ServicePicker,
    *,
    label: str,
    read_permission: str = "settings:read",
    write_permission: str = "settings:write",
) -> None:
    """Register GET/POST/PATCH/DELETE on the router root for one settings module."""

    @router.get("")
    async def get_settings(
        actor: ActorContext = Depends(require_permission(read_permission)),
        container: SettingsContainer = Depends(get_container),
    ):
        aggregate = await pick(container).get(actor.tenant_id)
        return respond(aggregate.to_dict(), f"{label} retrieved")

    @router.post("")
    async def create_settings(
        payload: Dict[str, Any] = Body(...),
        actor: ActorContext = Depends(require_permission(write_permission)),
        container: SettingsContainer = Depends(get_container),
    ):
        aggregate = await pick(container).create(actor.tenant_id, payload, actor)
        return respond(aggregate.to_dict(), f"{label} created", status.HTTP_201_CREATED)

    @router.patch("")
    async def update_settings(
        payload: Dict[str, Any] = Body(...),
        actor: ActorContext = Depends(require_permission(write_permission)),
        container: SettingsContainer = Depends(get_container),
    ):
        aggregate = await pick(container).update(actor.tenant_id, payload, actor)
        return respond(aggregate.to_dict(), f"{label} updated")

    @router.delete("")
    async def delete_settings(
        actor: ActorContext = Depends(require_permission(write_permission)),
        container: SettingsContainer = Depends(get_container),
    ):
        await pick(container).delete(actor.tenant_id, actor)
        return respond(None, f"{label} deleted")
