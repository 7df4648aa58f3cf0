"""
structlog wiring for the settings service.

Events go through the stdlib root handler (python-json-logger in JSON mode),
carry the bound request context, and outside dev have secrets and contact
details scrubbed before rendering.
"""

from __future__ import annotations

import datetime
import logging
import logging.config
import re
import sys
import uuid
from typing import Any, Dict, List, Optional

import structlog
from pythonjsonlogger import jsonlogger

from src.shared.config import get_settings

REDACTED = "[redacted]"

# Keys whose values never reach a log line, whatever their content.
SECRET_KEYS = frozenset(
    {"otp", "password", "smtp_password", "api_key", "secret", "key_b64", "iv", "token", "authorization"}
)

_CONTEXT_FIELDS = ("request_id", "path", "method", "user_id", "tenant_id", "client_ip")


class SensitiveDataRedactor:
    """Scrub an event dict before it is rendered.

    Values under a key in ``SECRET_KEYS`` are replaced outright. Free text is
    searched for e-mail addresses (domain kept), 12-digit national ids and
    phone numbers (country prefix and last four kept).
    """

    _email = re.compile(r"\b[A-Za-z0-9._%+-]+@([A-Za-z0-9.-]+\.[A-Za-z]{2,})\b")
    _national_id = re.compile(r"\b\d{4}[ -]?\d{4}[ -]?\d{4}\b")
    _phone = re.compile(r"\+?[1-9]\d{7,14}")

    def __init__(self, secret_keys: frozenset = SECRET_KEYS) -> None:
        self.secret_keys = secret_keys

    def __call__(self, logger, method_name, event_dict):
        return {k: self._scrub(k, v) for k, v in event_dict.items()}

    def _scrub(self, key: Any, value: Any) -> Any:
        if isinstance(key, str) and key.lower() in self.secret_keys and value is not None:
            return REDACTED
        if isinstance(value, dict):
            return {k: self._scrub(k, v) for k, v in value.items()}
        if isinstance(value, (list, tuple)):
            return [self._scrub(None, v) for v in value]
        if isinstance(value, str):
            return self.scrub_text(value)
        return value

    def scrub_text(self, text: str) -> str:
        text = self._email.sub(lambda m: f"***@{m.group(1)}", text)
        text = self._national_id.sub(REDACTED, text)
        return self._phone.sub(lambda m: m.group(0)[:3] + "****" + m.group(0)[-4:], text)


def utc_timestamp(logger, method_name, event_dict):
    event_dict.setdefault("timestamp", datetime.datetime.now(datetime.timezone.utc).isoformat(timespec="seconds"))
    return event_dict


# ---------------------------------------------------------------------
# Request context
# ---------------------------------------------------------------------


def set_correlation_id(correlation_id: Optional[str] = None) -> str:
    """Bind the inbound request id (or a fresh uuid4) as ``correlation_id``."""
    cid = correlation_id or str(uuid.uuid4())
    structlog.contextvars.bind_contextvars(correlation_id=cid)
    return cid


def bind_request_context(**fields: Any) -> None:
    """Bind the known request fields that are set; unknown names are ignored."""
    present = {name: fields[name] for name in _CONTEXT_FIELDS if fields.get(name) is not None}
    if present:
        structlog.contextvars.bind_contextvars(**present)


def clear_request_context() -> None:
    structlog.contextvars.clear_contextvars()


# ---------------------------------------------------------------------
# Setup
# ---------------------------------------------------------------------


def _stdlib_config(level: str, fmt: str) -> Dict[str, Any]:
    handler = {"class": "logging.StreamHandler", "formatter": fmt, "stream": sys.stdout}
    quiet = {"handlers": ["stdout"], "propagate": False}
    return {
        "version": 1,
        "disable_existing_loggers": False,
        "formatters": {
            "json": {"()": jsonlogger.JsonFormatter, "format": "%(asctime)s %(name)s %(levelname)s %(message)s"},
            "console": {"format": "%(asctime)s %(levelname)-8s %(name)s %(message)s"},
        },
        "handlers": {"stdout": handler},
        "root": {"level": getattr(logging, level.upper(), logging.INFO), "handlers": ["stdout"]},
        "loggers": {
            "uvicorn.access": {"level": "WARNING", **quiet},
            "sqlalchemy.engine": {"level": "WARNING", **quiet},
            "aiosmtplib": {"level": "WARNING", **quiet},
        },
    }


def _processor_chain(fmt: str, redact: bool) -> List[Any]:
    chain: List[Any] = [
        structlog.contextvars.merge_contextvars,
        utc_timestamp,
        structlog.stdlib.add_logger_name,
        structlog.stdlib.add_log_level,
    ]
    if redact:
        chain.append(SensitiveDataRedactor())
    chain += [
        structlog.stdlib.PositionalArgumentsFormatter(),
        structlog.processors.StackInfoRenderer(),
        structlog.processors.format_exc_info,
        structlog.processors.JSONRenderer() if fmt == "json" else structlog.dev.ConsoleRenderer(),
    ]
    return chain


def setup_logging() -> None:
    """Configure stdlib and structlog from settings. Safe to call more than once."""
    settings = get_settings()
    fmt = settings.log_format if settings.log_format in ("json", "console") else ("console" if settings.is_dev else "json")

    logging.config.dictConfig(_stdlib_config(settings.log_level, fmt))
    structlog.configure(
        processors=_processor_chain(fmt, redact=not settings.is_dev),
        wrapper_class=structlog.stdlib.BoundLogger,
        logger_factory=structlog.stdlib.LoggerFactory(),
        context_class=dict,
        cache_logger_on_first_use=True,
    )
    structlog.contextvars.clear_contextvars()


def get_logger(name: str) -> structlog.stdlib.BoundLogger:
    return structlog.get_logger(name)


def log_security_event(
    event_type: str,
    *,
    user_id: Optional[str] = None,
    tenant_id: Optional[str] = None,
    details: Optional[Dict[str, Any]] = None,
) -> None:
    """Emit on the ``security`` logger: OTP sends/rejections, key rotation, geofence denials."""
    structlog.get_logger("security").info(
        event_type, user_id=user_id, tenant_id=tenant_id, details=details or {}
    )
