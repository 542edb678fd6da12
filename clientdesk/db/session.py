"""Engine/session helpers for the SQL document backend."""
from __future__ import annotations

from functools import lru_cache

from sqlalchemy.ext.asyncio import AsyncEngine, AsyncSession, async_sessionmaker, create_async_engine
from sqlalchemy.orm import declarative_base

from clientdesk.core.config import get_settings

Base = declarative_base()


@lru_cache
def get_engine() -> AsyncEngine:
    settings = get_settings()
    url = (settings.database_url or "").strip()
    if not url:
        raise RuntimeError("DATABASE_URL must be configured to use the SQL backend.")
    return create_async_engine(url, future=True, pool_pre_ping=True)


def make_sessionmaker(engine: AsyncEngine | None = None) -> async_sessionmaker[AsyncSession]:
    return async_sessionmaker(bind=engine or get_engine(), autoflush=False, expire_on_commit=False)


async def create_tables(engine: AsyncEngine | None = None) -> None:
    """Create the documents table if it does not exist yet."""
    from . import models  # noqa: F401  (registers the mapped tables on Base)

    target = engine or get_engine()
    async with target.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)
