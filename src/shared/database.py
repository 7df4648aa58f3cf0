"""
Database engine, session factory and declarative base.
Async SQLAlchemy 2.x; asyncpg in production, aiosqlite for local runs and tests.
"""
from __future__ import annotations

from datetime import datetime
from typing import Any, AsyncGenerator, Dict, Optional
from uuid import UUID, uuid4

from sqlalchemy import DateTime, Uuid, func
from sqlalchemy.engine import make_url
from sqlalchemy.ext.asyncio import AsyncEngine, AsyncSession, async_sessionmaker, create_async_engine
from sqlalchemy.orm import DeclarativeBase, Mapped, mapped_column

from src.shared.config import get_settings
from src.shared.logging import get_logger

logger = get_logger(__name__)


class Base(DeclarativeBase):
    """
    Base class for all ORM models.

    Provides common columns:
    - id (UUID, primary key)
    - created_at / updated_at (timezone-aware)
    """

    type_annotation_map = {
        UUID: Uuid(as_uuid=True),
        datetime: DateTime(timezone=True),
    }

    id: Mapped[UUID] = mapped_column(Uuid(as_uuid=True), primary_key=True, default=uuid4, nullable=False)
    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), server_default=func.now(), nullable=False)
    updated_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), server_default=func.now(), nullable=False)

    def __repr__(self) -> str:
        return f"<{self.__class__.__name__}(id={self.id})>"


def _connect_args(database_url: str, timeout: float) -> Dict[str, Any]:
    driver = make_url(database_url).drivername
    if driver.endswith("asyncpg"):
        return {"timeout": timeout, "command_timeout": timeout}
    if driver.startswith("sqlite"):
        return {"timeout": timeout}
    return {}


class DatabaseSessionFactory:
    """
    Owns the async engine and session maker.

    Every statement is bounded by the driver timeout; a timeout surfaces as a
    SQLAlchemy error and is never swallowed.
    """

    def __init__(
        self,
        database_url: str,
        *,
        echo: bool = False,
        timeout: float = 10.0,
        engine: Optional[AsyncEngine] = None,
    ) -> None:
        self.database_url = database_url
        if engine is None:
            kwargs: Dict[str, Any] = {"echo": echo, "pool_pre_ping": True}
            if not make_url(database_url).drivername.startswith("sqlite"):
                kwargs.update(pool_size=20, max_overflow=10, pool_timeout=timeout, pool_recycle=3600)
            engine = create_async_engine(database_url, connect_args=_connect_args(database_url, timeout), **kwargs)
        self.engine: AsyncEngine = engine
        self.session_factory: async_sessionmaker[AsyncSession] = async_sessionmaker(
            self.engine,
            class_=AsyncSession,
            expire_on_commit=False,
            autoflush=False,
        )

    async def create_all(self) -> None:
        async with self.engine.begin() as conn:
            await conn.run_sync(Base.metadata.create_all)

    async def get_session(self) -> AsyncGenerator[AsyncSession, None]:
        async with self.session_factory() as session:
            try:
                yield session
            except Exception:
                await session.rollback()
                raise

    async def dispose(self) -> None:
        await self.engine.dispose()
        logger.info("database_engine_disposed")


_factory: Optional[DatabaseSessionFactory] = None


def get_session_factory() -> DatabaseSessionFactory:
    global _factory
    if _factory is None:
        settings = get_settings()
        _factory = DatabaseSessionFactory(
            settings.DATABASE_URL,
            echo=settings.DATABASE_ECHO,
            timeout=settings.DATABASE_TIMEOUT_SECONDS,
        )
        logger.info("database_session_factory_initialized", url=make_url(settings.DATABASE_URL).render_as_string())
    return _factory
