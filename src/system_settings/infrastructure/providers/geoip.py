from __future__ import annotations

from dataclasses import dataclass
from typing import Optional

import httpx

from src.shared.config import get_settings
from src.shared.logging import get_logger

logger = get_logger(__name__)


@dataclass(frozen=True, slots=True)
class GeoLocation:
    country: Optional[str]
    time_zone: Optional[str] = None
    locale: Optional[str] = None


class HttpGeoIpLookup:
    """
    Geo-IP over an HTTP JSON endpoint: GET {base_url}/{ip}?db={database}
    answering {"country": ..., "timezone": ..., "locale": ...}.
    Returns None when unconfigured, unreachable or the IP is unknown.
    """

    def __init__(
        self,
        base_url: Optional[str] = None,
        *,
        timeout: Optional[float] = None,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ) -> None:
        settings = get_settings()
        self._base_url = (base_url if base_url is not None else settings.GEOIP_URL or "").rstrip("/")
        self._timeout = timeout or settings.HTTP_TIMEOUT_SECONDS
        self._transport = transport

    async def lookup(self, ip: str, database: Optional[str] = None) -> Optional[GeoLocation]:
        if not self._base_url:
            return None
        try:
            async with httpx.AsyncClient(timeout=self._timeout, transport=self._transport) as client:
                resp = await client.get(f"{self._base_url}/{ip}", params={"db": database} if database else None)
                if resp.status_code == 404:
                    return None
                resp.raise_for_status()
                body = resp.json()
        except (httpx.HTTPError, ValueError) as e:
            logger.warning("geoip_lookup_failed", error=str(e))
            return None
        if not body.get("country"):
            return None
        return GeoLocation(country=body["country"], time_zone=body.get("timezone"), locale=body.get("locale"))
