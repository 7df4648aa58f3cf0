"""Periodic NTP sync, honouring each tenant's configured sync_interval."""

from __future__ import annotations

from datetime import datetime, timedelta
from typing import Callable, Dict, List, Optional

from apscheduler.schedulers.asyncio import AsyncIOScheduler  # type: ignore
from apscheduler.triggers.interval import IntervalTrigger  # type: ignore

from src.shared.exceptions import DomainError
from src.shared.logging import get_logger
from src.system_settings.application.services.core_config_service import CoreSystemConfigService
from src.system_settings.domain.entities import utcnow

logger = get_logger(__name__)


class NtpSyncScheduler:
    """Ticks every `tick_seconds`; a tenant is synced once its interval has elapsed."""

    def __init__(
        self,
        core_config: CoreSystemConfigService,
        *,
        tick_seconds: int = 60,
        clock: Callable[[], datetime] = utcnow,
    ) -> None:
        self.core_config = core_config
        self.tick_seconds = tick_seconds
        self._clock = clock
        self._last_sync: Dict[str, datetime] = {}
        self.scheduler = AsyncIOScheduler()

    def start(self) -> None:
        self.scheduler.add_job(
            self.run_due,
            IntervalTrigger(seconds=self.tick_seconds),
            id="ntp_sync",
            name="Sync tenant clocks with NTP",
            replace_existing=True,
            max_instances=1,
            coalesce=True,
        )
        self.scheduler.start()
        logger.info("ntp_sync_scheduler_started", tick_seconds=self.tick_seconds)

    def stop(self) -> None:
        if self.scheduler.running:
            self.scheduler.shutdown(wait=False)
        logger.info("ntp_sync_scheduler_stopped")

    def is_due(self, tenant_id: str, interval_minutes: int, now: datetime) -> bool:
        last = self._last_sync.get(tenant_id)
        return last is None or now - last >= timedelta(minutes=interval_minutes)

    async def run_due(self, now: Optional[datetime] = None) -> List[str]:
        """Sync every tenant whose interval has elapsed; returns the tenants synced."""
        now = now or self._clock()
        synced: List[str] = []
        for tenant_id, interval in await self.core_config.sync_schedule():
            if not self.is_due(tenant_id, interval, now):
                continue
            try:
                result = await self.core_config.sync_with_ntp(tenant_id)
            except DomainError as e:
                # retried on the next tick
                logger.error("ntp_sync_failed", tenant_id=tenant_id, error=e.message)
                continue
            self._last_sync[tenant_id] = now
            synced.append(tenant_id)
            logger.info("ntp_sync_completed", tenant_id=tenant_id, server=result["server"])
        return synced
