"""Async database engine and session factory.

The build service owns no request scope, so instead of a per-request
dependency it hands an `async_sessionmaker` to the cache repository,
which opens one short session per operation.
"""

from typing import Optional

from sqlalchemy.ext.asyncio import (
    AsyncEngine,
    AsyncSession,
    async_sessionmaker,
    create_async_engine,
)

from exeforge.core.config import Settings, get_settings
from exeforge.db.models import Base


def create_engine_and_sessions(
    settings: Optional[Settings] = None,
) -> tuple[AsyncEngine, async_sessionmaker[AsyncSession]]:
    settings = settings or get_settings()

    engine_kwargs: dict = {"echo": False, "pool_pre_ping": True}
    if not settings.database_url.startswith("sqlite"):
        engine_kwargs.update(pool_size=5, max_overflow=5, pool_timeout=15)

    engine = create_async_engine(settings.database_url, **engine_kwargs)
    session_factory = async_sessionmaker(
        engine,
        class_=AsyncSession,
        expire_on_commit=False,
    )
    return engine, session_factory


async def init_models(engine: AsyncEngine) -> None:
    """Create missing tables. Existing tables are left untouched."""
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)
