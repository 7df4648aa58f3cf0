from __future__ import annotations

import asyncio
from dataclasses import dataclass
from typing import Optional

import ntplib

from src.shared.config import get_settings


class NtpUnavailable(Exception):
    """One server did not answer in time or answered garbage."""


@dataclass(frozen=True, slots=True)
class NtpReading:
    server: str
    timestamp: float  # seconds since epoch, server transmit time
    offset: float


class NtpTimeSource:
    """Query a single NTP server; ntplib blocks, so it runs in a worker thread."""

    def __init__(self, *, timeout: Optional[float] = None) -> None:
        self._timeout = timeout or get_settings().NTP_TIMEOUT_SECONDS
        self._client = ntplib.NTPClient()

    async def query(self, server: str) -> NtpReading:
        try:
            resp = await asyncio.wait_for(
                asyncio.to_thread(self._client.request, server, version=3, timeout=self._timeout),
                timeout=self._timeout + 1,
            )
        except (ntplib.NTPException, OSError, asyncio.TimeoutError) as e:
            raise NtpUnavailable(f"{server}: {e or e.__class__.__name__}") from e
        return NtpReading(server=server, timestamp=resp.tx_time, offset=resp.offset)
