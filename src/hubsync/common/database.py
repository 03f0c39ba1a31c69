"""Async database manager for hubsync.

One engine serves both the hub tables and the shared mirror. Importing this
module registers every model on ``Base.metadata``; Alembic's env relies on
that too.
"""

from contextlib import asynccontextmanager
from typing import Any, AsyncGenerator

from sqlalchemy.engine import make_url
from sqlalchemy.ext.asyncio import (
    AsyncEngine,
    AsyncSession,
    async_sessionmaker,
    create_async_engine,
)

from hubsync.common.config import HubSyncSettings, get_settings
from hubsync.common.models import Base

import hubsync.hubs.models  # noqa: F401
import hubsync.mirror.models  # noqa: F401
import hubsync.sync.models  # noqa: F401
import hubsync.webhooks.models  # noqa: F401

# Async driver -> sync driver, for Alembic and other blocking tools.
SYNC_DRIVERS = {
    "sqlite+aiosqlite": "sqlite",
    "postgresql+asyncpg": "postgresql+psycopg",
}


def sync_url(url: str) -> str:
    parsed = make_url(url)
    driver = SYNC_DRIVERS.get(parsed.drivername)
    if driver is None:
        return url
    return parsed.set(drivername=driver).render_as_string(hide_password=False)


def engine_options(url: str) -> dict[str, Any]:
    """SQLite gets a lock timeout (webhooks and sync write concurrently);
    server databases get connection health checks."""
    if make_url(url).get_backend_name() == "sqlite":
        return {"connect_args": {"timeout": 30}}
    return {"pool_pre_ping": True}


class DatabaseManager:
    """Owns the async engine and hands out transactional sessions."""

    def __init__(self, settings: HubSyncSettings | None = None):
        self._settings = settings or get_settings()
        self.engine: AsyncEngine | None = None
        self._session_factory: async_sessionmaker[AsyncSession] | None = None

    async def init(self) -> None:
        url = self._settings.db_url
        self.engine = create_async_engine(url, echo=False, **engine_options(url))
        self._session_factory = async_sessionmaker(
            self.engine, expire_on_commit=False
        )

    @asynccontextmanager
    async def get_session(self) -> AsyncGenerator[AsyncSession, None]:
        """Commit on clean exit, roll back and re-raise otherwise."""
        if self._session_factory is None:
            raise RuntimeError("DatabaseManager not initialized; call init() first")
        async with self._session_factory() as session:
            try:
                yield session
                await session.commit()
            except Exception:
                await session.rollback()
                raise

    async def create_all(self) -> None:
        if self.engine is None:
            raise RuntimeError("DatabaseManager not initialized; call init() first")
        async with self.engine.begin() as conn:
            await conn.run_sync(Base.metadata.create_all)

    async def close(self) -> None:
        if self.engine:
            await self.engine.dispose()
            self.engine = None
            self._session_factory = None
