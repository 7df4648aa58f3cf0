from __future__ import annotations

from typing import Any, Callable, Dict, List

from fastapi import APIRouter, Body, Depends, Query, status

from src.system_settings.api.dependencies import get_container, require_permission, respond
from src.system_settings.application.context import ActorContext
from src.system_settings.application.services.collection_service import CollectionSettingsService
from src.system_settings.container import SettingsContainer

CollectionPicker = Callable[[SettingsContainer], CollectionSettingsService]


def build_collection_router(
    prefix: str,
    *,
    tag: str,
    pick: CollectionPicker,
    label: str,
    read_permission: str,
    write_permission: str,
) -> APIRouter:
    """Entry-level CRUD for a named-entry module (feature flags, roles)."""
    router = APIRouter(prefix=prefix, tags=[tag])
    _read = require_permission(read_permission)
    _write = require_permission(write_permission)

    @router.get("")
    async def list_entries(
        page: int = Query(default=1, ge=1),
        limit: int = Query(default=20, ge=1, le=100),
        actor: ActorContext = Depends(_read),
        container: SettingsContainer = Depends(get_container),
    ):
        return respond(await pick(container).list_entries(actor.tenant_id, page=page, limit=limit), f"{label}s retrieved")

    @router.post("")
    async def create_entry(
        payload: Dict[str, Any] = Body(...),
        actor: ActorContext = Depends(_write),
        container: SettingsContainer = Depends(get_container),
    ):
        entry = await pick(container).create_entry(actor.tenant_id, payload, actor)
        return respond(entry, f"{label} created", status.HTTP_201_CREATED)

    @router.post("/bulk")
    async def bulk_create(
        entries: List[Dict[str, Any]] = Body(..., embed=True),
        actor: ActorContext = Depends(_write),
        container: SettingsContainer = Depends(get_container),
    ):
        result = await pick(container).bulk_create(actor.tenant_id, entries, actor)
        return respond(result, f"{len(result['created'])} {label.lower()}(s) created", status.HTTP_201_CREATED)

    @router.post("/cache/purge")
    async def purge_cache(
        actor: ActorContext = Depends(_write),
        container: SettingsContainer = Depends(get_container),
    ):
        await pick(container).purge_cache(actor.tenant_id, actor)
        return respond(None, "Cache purged")

    @router.delete("")
    async def delete_all(
        actor: ActorContext = Depends(_write),
        container: SettingsContainer = Depends(get_container),
    ):
        await pick(container).delete(actor.tenant_id, actor)
        return respond(None, f"All {label.lower()}s deleted")

    @router.get("/{name}")
    async def get_entry(
        name: str,
        actor: ActorContext = Depends(_read),
        container: SettingsContainer = Depends(get_container),
    ):
        return respond(await pick(container).get_entry(actor.tenant_id, name), f"{label} retrieved")

    @router.patch("/{name}")
    async def update_entry(
        name: str,
        payload: Dict[str, Any] = Body(...),
        actor: ActorContext = Depends(_write),
        container: SettingsContainer = Depends(get_container),
    ):
        return respond(await pick(container).update_entry(actor.tenant_id, name, payload, actor), f"{label} updated")

    @router.post("/{name}/toggle")
    async def toggle_entry(
        name: str,
        actor: ActorContext = Depends(_write),
        container: SettingsContainer = Depends(get_container),
    ):
        return respond(await pick(container).toggle(actor.tenant_id, name, actor), f"{label} toggled")

    @router.delete("/{name}")
    async def delete_entry(
        name: str,
        actor: ActorContext = Depends(_write),
        container: SettingsContainer = Depends(get_container),
    ):
        await pick(container).delete_entry(actor.tenant_id, name, actor)
        return respond(None, f"{label} deleted")

    return router


feature_flags_router = build_collection_router(
    "/api/v1/settings/feature-flags",
    tag="settings:flags",
    pick=lambda c: c.feature_flags,
    label="Feature flag",
    read_permission="flags:read",
    write_permission="flags:write",
)

roles_router = build_collection_router(
    "/api/v1/settings/roles",
    tag="settings:roles",
    pick=lambda c: c.roles,
    label="Role",
    read_permission="roles:read",
    write_permission="roles:write",
)


@roles_router.get("/{name}/permissions")
async def get_role_permissions(
    name: str,
    actor: ActorContext = Depends(require_permission("roles:read")),
    container: SettingsContainer = Depends(get_container),
):
    return respond(await container.roles.get_permissions(actor.tenant_id, name), "Role permissions retrieved")
