from __future__ import annotations

from typing import Optional

from fastapi import APIRouter, Depends, Query, Request

from src.system_settings.api.dependencies import client_ip, get_container, require_permission, respond
from src.system_settings.api.routes.common import add_aggregate_routes
from src.system_settings.application.context import ActorContext
from src.system_settings.application.schemas import DateTimePreviewRequest, TranslateRequest
from src.system_settings.container import SettingsContainer

router = APIRouter(prefix="/api/v1/settings/core-system-config", tags=["settings:core"])

add_aggregate_routes(router, lambda c: c.core_config, label="Core system config")

_read = require_permission("settings:read")
_write = require_permission("settings:write")


@router.post("/ntp-sync")
async def sync_with_ntp(
    actor: ActorContext = Depends(_write),
    container: SettingsContainer = Depends(get_container),
):
    return respond(await container.core_config.sync_with_ntp(actor.tenant_id), "Time synchronized")


@router.post("/date-time-format/preview")
async def preview_date_time_format(
    payload: DateTimePreviewRequest,
    actor: ActorContext = Depends(_read),
    container: SettingsContainer = Depends(get_container),
):
    return respond(container.core_config.preview_date_time_format(payload.format, payload.time_zone), "Format preview")


@router.get("/language-pack/{language}")
async def get_language_pack(
    language: str,
    actor: ActorContext = Depends(_read),
    container: SettingsContainer = Depends(get_container),
):
    return respond(await container.core_config.get_language_pack(actor.tenant_id, language), "Language pack retrieved")


@router.post("/translate")
async def translate_text(
    payload: TranslateRequest,
    actor: ActorContext = Depends(_read),
    container: SettingsContainer = Depends(get_container),
):
    result = await container.core_config.translate_text(actor.tenant_id, payload.text, payload.target_language)
    return respond(result, "Text translated")


@router.get("/regional-defaults")
async def get_regional_defaults(
    request: Request,
    ip: Optional[str] = Query(default=None),
    actor: ActorContext = Depends(_read),
    container: SettingsContainer = Depends(get_container),
):
    result = await container.core_config.get_regional_defaults(actor.tenant_id, ip or client_ip(request) or "")
    return respond(result, "Regional defaults resolved")
