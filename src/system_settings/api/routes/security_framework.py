from __future__ import annotations

from fastapi import APIRouter, Depends, Query

from src.system_settings.api.dependencies import get_actor, get_container, require_permission, respond
from src.system_settings.api.routes.common import add_aggregate_routes
from src.system_settings.application.context import ActorContext
from src.system_settings.application.schemas import (
    DecryptRequest,
    EmailOtpRequest,
    EncryptRequest,
    MaskRequest,
    SmsOtpRequest,
    VerifyOtpRequest,
)
from src.system_settings.container import SettingsContainer

router = APIRouter(prefix="/api/v1/settings/security-framework", tags=["settings:security"])

add_aggregate_routes(router, lambda c: c.security, label="Security framework")

_read = require_permission("settings:read")
_write = require_permission("settings:write")


# OTP endpoints act on the caller's own identity, so any authenticated actor may use them.

@router.post("/otp/email")
async def send_email_otp(
    payload: EmailOtpRequest,
    actor: ActorContext = Depends(get_actor),
    container: SettingsContainer = Depends(get_container),
):
    result = await container.security.send_email_otp(actor.tenant_id, actor, payload.email)
    return respond(result, "OTP sent to email")


@router.post("/otp/sms")
async def send_sms_otp(
    payload: SmsOtpRequest,
    actor: ActorContext = Depends(get_actor),
    container: SettingsContainer = Depends(get_container),
):
    result = await container.security.send_sms_otp(actor.tenant_id, actor, payload.phone)
    return respond(result, "OTP sent via SMS")


@router.post("/otp/verify")
async def verify_otp(
    payload: VerifyOtpRequest,
    actor: ActorContext = Depends(get_actor),
    container: SettingsContainer = Depends(get_container),
):
    result = await container.security.verify_otp(actor.tenant_id, actor, payload.otp)
    return respond(result, "OTP verified")


@router.post("/encrypt")
async def encrypt_data(
    payload: EncryptRequest,
    actor: ActorContext = Depends(_write),
    container: SettingsContainer = Depends(get_container),
):
    return respond(await container.security.encrypt_data(actor.tenant_id, payload.data), "Data encrypted")


@router.post("/decrypt")
async def decrypt_data(
    payload: DecryptRequest,
    actor: ActorContext = Depends(_write),
    container: SettingsContainer = Depends(get_container),
):
    return respond(await container.security.decrypt_data(actor.tenant_id, payload), "Data decrypted")


@router.post("/rotate-key")
async def rotate_encryption_key(
    actor: ActorContext = Depends(_write),
    container: SettingsContainer = Depends(get_container),
):
    return respond(await container.security.rotate_encryption_key(actor.tenant_id, actor), "Encryption key rotated")


@router.get("/geofencing/check")
async def check_ip_geofencing(
    ip: str = Query(..., min_length=1),
    actor: ActorContext = Depends(_read),
    container: SettingsContainer = Depends(get_container),
):
    return respond(await container.security.check_ip_geofencing(actor.tenant_id, ip), "Geofencing evaluated")


@router.get("/compliance-report")
async def generate_compliance_report(
    actor: ActorContext = Depends(_read),
    container: SettingsContainer = Depends(get_container),
):
    return respond(await container.security.generate_compliance_report(actor.tenant_id), "Compliance report generated")


@router.post("/mask")
async def mask_data(
    payload: MaskRequest,
    actor: ActorContext = Depends(_read),
    container: SettingsContainer = Depends(get_container),
):
    return respond(await container.security.mask_data(actor.tenant_id, payload.field, payload.value), "Data masked")


@router.get("/status")
async def get_security_status(
    actor: ActorContext = Depends(_read),
    container: SettingsContainer = Depends(get_container),
):
    return respond(await container.security.get_security_status(actor.tenant_id), "Security status retrieved")
