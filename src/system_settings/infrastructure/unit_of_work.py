"""
Unit of Work over one AsyncSession
Config store writes and history records commit or roll back together
"""
from __future__ import annotations

from typing import Any, Optional

from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from src.shared.logging import get_logger
from src.system_settings.infrastructure.config_store import SqlConfigStore
from src.system_settings.infrastructure.history_ledger import SqlHistoryLedger

logger = get_logger(__name__)


class SettingsUnitOfWork:
    """
    Async context manager owning a session and its transaction.

    Exposes `store` and `ledger` bound to the same session. Nothing is
    persisted unless `commit()` is called; leaving the block without a commit,
    or with an exception, rolls back.
    """

    def __init__(self, session_factory: async_sessionmaker[AsyncSession]) -> None:
        self._session_factory = session_factory
        self.session: Optional[AsyncSession] = None
        self._committed = False

    async def __aenter__(self) -> "SettingsUnitOfWork":
        self.session = self._session_factory()
        self._committed = False
        await self.session.begin()
        self.store = SqlConfigStore(self.session)
        self.ledger = SqlHistoryLedger(self.session)
        return self

    async def __aexit__(self, exc_type: Any, exc_val: Any, exc_tb: Any) -> None:
        assert self.session is not None
        try:
            if exc_type is not None:
                await self.rollback()
                logger.debug("uow_rolled_back", error_type=exc_type.__name__)
            elif not self._committed:
                await self.rollback()
        finally:
            await self.session.close()
            self.session = None

    async def commit(self) -> None:
        assert self.session is not None
        await self.session.commit()
        self._committed = True

    async def rollback(self) -> None:
        assert self.session is not None
        await self.session.rollback()
