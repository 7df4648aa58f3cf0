"""
SecurityFrameworkService
Aggregate CRUD plus the side operations that read the tenant's security
settings: OTP delivery and verification, payload encryption, IP geofencing,
compliance reporting, field masking and key rotation.
"""
from __future__ import annotations

import hmac
import ipaddress
import secrets
import string
from typing import Any, Dict, Optional
from uuid import uuid4

from src.shared.exceptions import BadRequestError, InternalServerError, ValidationError
from src.shared.logging import get_logger, log_security_event
from src.shared.redis import RedisClient
from src.system_settings.application.context import ActorContext, validate_payload
from src.system_settings.application.schemas import (
    DecryptRequest,
    EmailOtpRequest,
    EncryptRequest,
    SmsOtpRequest,
    VerifyOtpRequest,
)
from src.system_settings.application.services.collection_service import FeatureFlagService
from src.system_settings.application.services.settings_service import SettingsService
from src.system_settings.domain.entities import ConfigAggregate, utcnow
from src.system_settings.domain.masking import mask_value
from src.system_settings.domain.modules import HistoryAction, SettingsModule
from src.system_settings.infrastructure.crypto import AesGcmCipher
from src.system_settings.infrastructure.providers.email import SmtpEmailSender
from src.system_settings.infrastructure.providers.geoip import HttpGeoIpLookup
from src.system_settings.infrastructure.providers.sms import TwilioSmsSender
from src.system_settings.infrastructure.rate_limiter import RateLimiter

logger = get_logger(__name__)


class SecurityFrameworkService(SettingsService):
    def __init__(
        self,
        *,
        flags: FeatureFlagService,
        rate_limiter: RateLimiter,
        otp_store: RedisClient,
        email_sender: SmtpEmailSender,
        sms_sender: TwilioSmsSender,
        geoip: HttpGeoIpLookup,
        cipher: Optional[AesGcmCipher] = None,
        otp_length: int = 6,
        otp_ttl_seconds: int = 300,
        otp_max_per_window: int = 3,
        **kwargs: Any,
    ) -> None:
        super().__init__(SettingsModule.SECURITY_FRAMEWORK, **kwargs)
        self._flags = flags
        self._limiter = rate_limiter
        self._otp_store = otp_store
        self._email = email_sender
        self._sms = sms_sender
        self._geoip = geoip
        self._cipher = cipher or AesGcmCipher()
        self._otp_length = otp_length
        self._otp_ttl = otp_ttl_seconds
        self._otp_limit = otp_max_per_window

    def merge_patch(self, current: ConfigAggregate, patch: Dict[str, Any]) -> Dict[str, Any]:
        # a replaced encryption section keeps the active key unless it names one
        encryption = patch.get("encryption")
        if encryption is not None and encryption.get("current_key_id") is None:
            patch = {**patch, "encryption": {**encryption, "current_key_id": current.data["encryption"]["current_key_id"]}}
        return super().merge_patch(current, patch)

    # ---------- OTP ----------

    @staticmethod
    def otp_key(tenant_id: str, actor_id: str) -> str:
        return f"otp:{tenant_id}:{actor_id}"

    def _generate_otp(self) -> str:
        return "".join(secrets.choice(string.digits) for _ in range(self._otp_length))

    async def _otp_gate(self, tenant_id: str, channel: str) -> Dict[str, Any]:
        if not await self._flags.is_enabled(tenant_id, "multi_factor_auth"):
            raise BadRequestError("Multi-factor authentication is disabled", code="feature_disabled")
        stack = (await self.get(tenant_id)).data["authentication_stack"]
        if not stack[channel]["enabled"]:
            raise BadRequestError(f"{channel.upper()} OTP is disabled", details={"channel": channel})
        return stack[channel]

    async def _issue_otp(self, tenant_id: str, actor: ActorContext) -> str:
        await self._limiter.hit("otp", tenant_id, limit=self._otp_limit, actor_id=actor.actor_id)
        otp = self._generate_otp()
        if not await self._otp_store.set(self.otp_key(tenant_id, actor.actor_id), otp, ttl_seconds=self._otp_ttl):
            raise InternalServerError("OTP storage is unavailable")
        return otp

    async def send_email_otp(self, tenant_id: str, actor: ActorContext, email: str) -> Dict[str, Any]:
        self._require_tenant(tenant_id)
        to = validate_payload(EmailOtpRequest, {"email": email}).email
        channel = await self._otp_gate(tenant_id, "email")
        otp = await self._issue_otp(tenant_id, actor)
        await self._email.send(
            to=to,
            subject="Your verification code",
            body=f"Your OTP is {otp}. It expires in {self._otp_ttl // 60} minutes.",
            host=channel["smtp_server"],
            port=channel["smtp_port"],
        )
        log_security_event("otp_sent", user_id=actor.actor_id, tenant_id=tenant_id, details={"channel": "email"})
        return {"sent": True, "channel": "email", "expires_in": self._otp_ttl}

    async def send_sms_otp(self, tenant_id: str, actor: ActorContext, phone: str) -> Dict[str, Any]:
        self._require_tenant(tenant_id)
        to = validate_payload(SmsOtpRequest, {"phone": phone}).phone
        await self._otp_gate(tenant_id, "sms")
        otp = await self._issue_otp(tenant_id, actor)
        await self._sms.send(to=to, body=f"Your OTP is {otp}")
        log_security_event("otp_sent", user_id=actor.actor_id, tenant_id=tenant_id, details={"channel": "sms"})
        return {"sent": True, "channel": "sms", "expires_in": self._otp_ttl}

    async def verify_otp(self, tenant_id: str, actor: ActorContext, otp: str) -> Dict[str, Any]:
        self._require_tenant(tenant_id)
        otp = validate_payload(VerifyOtpRequest, {"otp": otp}).otp
        key = self.otp_key(tenant_id, actor.actor_id)
        stored = await self._otp_store.get(key)
        if stored is None or not hmac.compare_digest(stored.encode(), otp.encode()):
            log_security_event("otp_rejected", user_id=actor.actor_id, tenant_id=tenant_id)
            raise BadRequestError("Invalid OTP provided", code="invalid_otp")
        await self._otp_store.delete(key)
        return {"verified": True}

    # ---------- encryption ----------

    async def _encryption_policy(self, tenant_id: str) -> Dict[str, Any]:
        policy = (await self.get(tenant_id)).data["encryption"]
        if policy["standard"] != "AES-256":
            raise BadRequestError(
                f"{policy['standard']} is not supported for data encryption",
                details={"standard": policy["standard"]},
            )
        return policy

    async def encrypt_data(self, tenant_id: str, plaintext: str) -> Dict[str, Any]:
        self._require_tenant(tenant_id)
        data = validate_payload(EncryptRequest, {"data": plaintext}).data
        policy = await self._encryption_policy(tenant_id)
        return self._cipher.encrypt(data, key_id=policy.get("current_key_id")).to_json()

    async def decrypt_data(self, tenant_id: str, payload: Any) -> Dict[str, Any]:
        self._require_tenant(tenant_id)
        req = validate_payload(DecryptRequest, payload)
        await self._encryption_policy(tenant_id)
        return {"decrypted_data": self._cipher.decrypt(req.encrypted_data, req.iv, req.key)}

    async def rotate_encryption_key(self, tenant_id: str, actor: ActorContext) -> Dict[str, Any]:
        self._require_tenant(tenant_id)
        new_key_id = str(uuid4())

        def build(current: ConfigAggregate) -> Dict[str, Any]:
            data = current.snapshot()
            data["encryption"]["current_key_id"] = new_key_id
            return data

        aggregate = await self.replace_with(tenant_id, actor, HistoryAction.KEY_ROTATION, build)
        log_security_event("encryption_key_rotated", user_id=actor.actor_id, tenant_id=tenant_id,
                           details={"key_id": new_key_id})
        return {"current_key_id": new_key_id, "rotated_at": aggregate.updated_at.isoformat()}

    # ---------- geofencing ----------

    async def check_ip_geofencing(self, tenant_id: str, ip: str) -> Dict[str, Any]:
        self._require_tenant(tenant_id)
        try:
            address = ipaddress.ip_address(ip)
        except ValueError as e:
            raise ValidationError("Invalid IP address", details={"ip": ip}) from e

        policy = (await self.get(tenant_id)).data["ip_geofencing"]
        if not policy["enabled"]:
            return {"allowed": True, "reason": "Geofencing disabled"}
        if any(address == ipaddress.ip_address(x) for x in policy["whitelist"]):
            return {"allowed": True, "reason": "IP whitelisted"}
        if any(address == ipaddress.ip_address(x) for x in policy["blacklist"]):
            log_security_event("geofence_denied", tenant_id=tenant_id, details={"ip": ip, "reason": "blacklisted"})
            return {"allowed": False, "reason": "IP blacklisted"}

        location = await self._geoip.lookup(str(address), policy["geo_ip_database"])
        if location is None:
            log_security_event("geofence_denied", tenant_id=tenant_id, details={"ip": ip, "reason": "geoip"})
            return {"allowed": False, "reason": "Invalid IP or geo-IP database"}
        return {"allowed": True, "country": location.country, "reason": "Geo-IP check passed"}

    # ---------- compliance / masking / status ----------

    async def generate_compliance_report(self, tenant_id: str) -> Dict[str, Any]:
        self._require_tenant(tenant_id)
        if not await self._flags.is_enabled(tenant_id, "compliance_reports"):
            raise BadRequestError("Compliance reports are disabled", code="feature_disabled")
        data = (await self.get(tenant_id)).data
        suite = data["compliance_suite"]
        if not suite["report_generation"]["enabled"]:
            raise BadRequestError("Report generation is disabled")
        audit = suite["audit_logs"]
        return {
            "tenant_id": tenant_id,
            "standards": suite["standards"],
            "audit_logs": f"Retained for {audit['retention_period']} days" if audit["enabled"] else "Disabled",
            "encryption": data["encryption"]["standard"],
            "format": suite["report_generation"]["format"],
            "generated_at": utcnow().isoformat(),
        }

    async def mask_data(self, tenant_id: str, field: str, value: str) -> Dict[str, Any]:
        self._require_tenant(tenant_id)
        if not await self._flags.is_enabled(tenant_id, "data_masking"):
            raise BadRequestError("Data masking is disabled", code="feature_disabled")
        policy = (await self.get(tenant_id)).data["data_masking"]
        masked = mask_value(
            value or "", field, enabled=policy["enabled"], fields=policy["fields"], policy=policy["policy"]
        )
        return {"field": field, "masked_value": masked}

    async def get_security_status(self, tenant_id: str) -> Dict[str, Any]:
        aggregate = await self.get(tenant_id)
        data = aggregate.data
        return {
            "authentication": "Configured" if data["authentication_stack"]["methods"] else "Not Configured",
            "encryption": data["encryption"]["standard"],
            "ip_geofencing": "Enabled" if data["ip_geofencing"]["enabled"] else "Disabled",
            "compliance": "Compliant" if data["compliance_suite"]["standards"] else "Non-Compliant",
            "data_masking": "Enabled" if data["data_masking"]["enabled"] else "Disabled",
            "last_updated": aggregate.updated_at.isoformat(),
        }
