from __future__ import annotations

import hashlib
from datetime import datetime, timezone
from typing import Any, Dict, List, Optional, Tuple
from zoneinfo import ZoneInfo, ZoneInfoNotFoundError

from src.shared.exceptions import InternalServerError, ValidationError
from src.shared.logging import get_logger
from src.system_settings.application.context import validate_payload
from src.system_settings.application.schemas import DateTimePreviewRequest, TranslateRequest
from src.system_settings.application.services.settings_service import SettingsService
from src.system_settings.domain.datetime_format import to_strftime
from src.system_settings.domain.modules import DEFAULT_DATE_TIME_FORMAT, SettingsModule
from src.system_settings.infrastructure.cache import SettingsCache
from src.system_settings.infrastructure.providers.geoip import HttpGeoIpLookup
from src.system_settings.infrastructure.providers.ntp import NtpTimeSource, NtpUnavailable
from src.system_settings.infrastructure.providers.translation import StaticTranslationProvider

logger = get_logger(__name__)

DEFAULT_LOCALE = "en-US"


def _zone(name: Optional[str]) -> ZoneInfo:
    try:
        return ZoneInfo(name or "UTC")
    except (ZoneInfoNotFoundError, ValueError):
        return ZoneInfo("UTC")


def format_instant(instant: datetime, fmt: str, time_zone: Optional[str]) -> str:
    try:
        pattern = to_strftime(fmt)
    except ValueError as e:
        raise ValidationError(str(e), details={"format": fmt}) from e
    return instant.astimezone(_zone(time_zone)).strftime(pattern)


class CoreSystemConfigService(SettingsService):
    """Core config CRUD plus time sync, display formats and localisation helpers."""

    def __init__(
        self,
        *,
        ntp: NtpTimeSource,
        translator: StaticTranslationProvider,
        geoip: HttpGeoIpLookup,
        language_cache_ttl: int = 3600,
        **kwargs: Any,
    ) -> None:
        super().__init__(SettingsModule.CORE_SYSTEM_CONFIG, **kwargs)
        self._ntp = ntp
        self._translator = translator
        self._geoip = geoip
        self._language_ttl = language_cache_ttl

    # ---------- time ----------

    async def sync_schedule(self) -> List[Tuple[str, int]]:
        """(tenant_id, sync_interval minutes) for every tenant with a live core config."""
        async with self._uow() as uow:
            aggregates = await uow.store.list_live(self.module)
        return [(a.tenant_id, int(a.data.get("sync_interval") or 1)) for a in aggregates if a.tenant_id]

    async def sync_with_ntp(self, tenant_id: str) -> Dict[str, Any]:
        """
        Ask the primary server, then each fallback in order; the first answer wins.
        """
        data = (await self.get(tenant_id)).data
        servers: List[str] = [data["ntp_server"], *data.get("fallback_ntp_servers", [])]
        failures: List[str] = []
        for server in servers:
            try:
                reading = await self._ntp.query(server)
            except NtpUnavailable as e:
                failures.append(str(e))
                logger.warning("ntp_server_failed", tenant_id=tenant_id, server=server, error=str(e))
                continue
            instant = datetime.fromtimestamp(reading.timestamp, tz=timezone.utc)
            return {
                "server": reading.server,
                "timestamp": instant.isoformat(),
                "formatted_time": format_instant(instant, data["date_time_format"], data["time_zone"]),
                "offset": reading.offset,
            }
        raise InternalServerError("NTP synchronization failed with all servers", details={"errors": failures})

    def preview_date_time_format(self, fmt: str, time_zone: Optional[str] = None, *, at: Optional[datetime] = None) -> Dict[str, Any]:
        req = validate_payload(DateTimePreviewRequest, {"format": fmt, "time_zone": time_zone})
        formatted = format_instant(at or datetime.now(timezone.utc), req.format, req.time_zone)
        return {
            "format": req.format,
            "strftime": to_strftime(req.format),
            "formatted": formatted,
            "time_zone": req.time_zone or "UTC",
        }

    # ---------- localisation ----------

    async def get_language_pack(self, tenant_id: str, language: str) -> Dict[str, str]:
        self._require_tenant(tenant_id)
        key = SettingsCache.key(self.module, tenant_id, "language", language)

        async def load() -> Dict[str, str]:
            return await self._translator.language_pack(language)

        return await self._cached(tenant_id, key, load, self._language_ttl)

    async def translate_text(self, tenant_id: str, text: str, target_language: str) -> Dict[str, str]:
        self._require_tenant(tenant_id)
        req = validate_payload(TranslateRequest, {"text": text, "target_language": target_language})
        digest = hashlib.sha256(req.text.encode("utf-8")).hexdigest()
        key = SettingsCache.key(self.module, tenant_id, "translate", req.target_language, digest)

        async def load() -> Dict[str, str]:
            translated = await self._translator.translate(req.text, req.target_language)
            return {"translated_text": translated, "target_language": req.target_language}

        return await self._cached(tenant_id, key, load, self._language_ttl)

    async def get_regional_defaults(self, tenant_id: str, ip: str) -> Dict[str, Any]:
        self._require_tenant(tenant_id)
        location = await self._geoip.lookup(ip)
        time_zone = _zone(location.time_zone if location else None).key
        locale = (location.locale if location and location.locale else None) or DEFAULT_LOCALE
        return {
            "country": location.country if location else None,
            "time_zone": time_zone,
            "locale": locale,
            "language": locale.split("-")[0],
            "date_time_format": DEFAULT_DATE_TIME_FORMAT,
        }
