"""
Database Configuration
Async SQLAlchemy setup for the swap ledger
"""

from typing import Optional

from sqlalchemy.ext.asyncio import AsyncEngine, AsyncSession, async_sessionmaker, create_async_engine
from sqlalchemy.orm import DeclarativeBase
from sqlalchemy.pool import StaticPool


class Base(DeclarativeBase):
    """Base class for all database models"""
    pass


def _is_memory_sqlite(url: str) -> bool:
    return url.startswith("sqlite") and (":memory:" in url or url.rstrip("/").endswith("sqlite+aiosqlite:"))


class Database:
    """Owns the engine and session factory for one database URL."""

    def __init__(self, url: str, *, echo: bool = False):
        self.url = url
        kwargs = {"echo": echo}
        if _is_memory_sqlite(url):
            # One shared connection, or every session sees an empty database
            kwargs.update(poolclass=StaticPool, connect_args={"check_same_thread": False})
        elif not url.startswith("sqlite"):
            kwargs.update(pool_pre_ping=True, pool_size=10, max_overflow=20, pool_recycle=3600)

        self.engine: AsyncEngine = create_async_engine(url, **kwargs)
        self.session_factory = async_sessionmaker(
            self.engine,
            class_=AsyncSession,
            expire_on_commit=False,
        )

    async def create_all(self) -> None:
        """Create tables for every registered model."""
        async with self.engine.begin() as conn:
            from . import models  # noqa: F401  (registers tables on Base.metadata)

            await conn.run_sync(Base.metadata.create_all)

    async def dispose(self) -> None:
        await self.engine.dispose()


_database: Optional[Database] = None


def get_database(url: Optional[str] = None) -> Database:
    """Get the process-wide database, created from settings on first use."""
    global _database
    if _database is None:
        from ..config import settings

        _database = Database(url or settings.database_url)
    return _database
