"""
OTP email delivery over SMTP (aiosmtplib).
The SMTP host and port come from the tenant's authentication stack settings.
"""
from __future__ import annotations

from email.mime.text import MIMEText
from typing import Optional

import aiosmtplib

from src.shared.config import get_settings
from src.shared.exceptions import InternalServerError
from src.shared.logging import get_logger

logger = get_logger(__name__)


class SmtpEmailSender:
    def __init__(
        self,
        *,
        sender: Optional[str] = None,
        username: Optional[str] = None,
        password: Optional[str] = None,
        use_tls: Optional[bool] = None,
        timeout: Optional[float] = None,
    ) -> None:
        settings = get_settings()
        self._sender = sender or settings.SMTP_SENDER
        self._username = username if username is not None else settings.SMTP_USERNAME
        self._password = password if password is not None else settings.SMTP_PASSWORD
        self._use_tls = settings.SMTP_USE_TLS if use_tls is None else use_tls
        self._timeout = timeout or settings.SMTP_TIMEOUT_SECONDS

    async def send(self, *, to: str, subject: str, body: str, host: str, port: int) -> None:
        message = MIMEText(body, "plain", "utf-8")
        message["From"] = self._sender
        message["To"] = to
        message["Subject"] = subject
        try:
            await aiosmtplib.send(
                message,
                hostname=host,
                port=port,
                username=self._username,
                password=self._password,
                start_tls=self._use_tls,
                timeout=self._timeout,
            )
        except (aiosmtplib.SMTPException, OSError) as e:
            logger.error("email_delivery_failed", host=host, port=port, error=str(e))
            raise InternalServerError("Failed to send OTP email") from e
        logger.info("email_sent", host=host, subject=subject)
