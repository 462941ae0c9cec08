"""
Async SQLAlchemy engine / session factory.

Engines are created on demand so importing this module never needs a
database driver.  Celery workers create a fresh engine per task run
(asyncio.run() gives every task its own event loop).
"""

from __future__ import annotations

from sqlalchemy.ext.asyncio import AsyncEngine, AsyncSession, async_sessionmaker, create_async_engine

from smartproof.core.config import settings
from smartproof.db.models import Base


def make_engine(url: str | None = None, **kwargs) -> AsyncEngine:
    """Create an async engine (defaults to settings.DATABASE_URL)."""
    url = url or settings.DATABASE_URL
    if url.startswith("postgresql"):
        kwargs.setdefault("pool_size", 20)
        kwargs.setdefault("max_overflow", 10)
        kwargs.setdefault("pool_pre_ping", True)
    return create_async_engine(url, echo=False, **kwargs)


def make_session_factory(engine: AsyncEngine) -> async_sessionmaker[AsyncSession]:
    return async_sessionmaker(engine, class_=AsyncSession, expire_on_commit=False)


async def create_all(engine: AsyncEngine) -> None:
    """Create any missing tables (bootstrap / tests)."""
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)
