from __future__ import annotations

from typing import Optional

import httpx

from src.shared.config import get_settings
from src.shared.exceptions import InternalServerError
from src.shared.logging import get_logger

logger = get_logger(__name__)


class TwilioSmsSender:
    """Send a text message through the Twilio Messages REST endpoint."""

    def __init__(
        self,
        *,
        account_sid: Optional[str] = None,
        auth_token: Optional[str] = None,
        from_number: Optional[str] = None,
        base_url: Optional[str] = None,
        timeout: Optional[float] = None,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ) -> None:
        settings = get_settings()
        self._sid = account_sid or settings.TWILIO_ACCOUNT_SID
        self._token = auth_token or settings.TWILIO_AUTH_TOKEN
        self._from = from_number or settings.TWILIO_FROM_NUMBER
        self._base_url = (base_url or settings.TWILIO_BASE_URL).rstrip("/")
        self._timeout = timeout or settings.HTTP_TIMEOUT_SECONDS
        self._transport = transport

    async def send(self, *, to: str, body: str) -> None:
        if not (self._sid and self._token and self._from):
            raise InternalServerError("SMS provider is not configured")
        url = f"{self._base_url}/Accounts/{self._sid}/Messages.json"
        try:
            async with httpx.AsyncClient(timeout=self._timeout, transport=self._transport) as client:
                resp = await client.post(url, data={"From": self._from, "To": to, "Body": body}, auth=(self._sid, self._token))
                resp.raise_for_status()
        except httpx.HTTPError as e:
            logger.error("sms_delivery_failed", error=str(e))
            raise InternalServerError("Failed to send OTP SMS") from e
        logger.info("sms_sent", provider="Twilio")
