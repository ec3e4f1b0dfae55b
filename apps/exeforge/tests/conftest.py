"""Shared test fixtures for the exeforge test suite.

Uses a per-test SQLite file through aiosqlite so every cache operation
opens real sessions against a fresh schema. Toolchain commands are never
spawned here: builders and resolvers get a `FakeRunner` that records the
argv it was handed and answers with scripted results.
"""

from collections.abc import AsyncGenerator

import pytest
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker, create_async_engine

from exeforge.cache.repository import ArtifactCache
from exeforge.core.config import Settings
from exeforge.db.models import Base
from exeforge.sandbox.workspace import WorkspaceManager
from exeforge.storage.artifacts import ArtifactStore
from fakes import FakeRunner


@pytest.fixture
def fake_runner() -> FakeRunner:
    return FakeRunner()


@pytest.fixture
def settings(tmp_path) -> Settings:
    return Settings(
        database_url=f"sqlite+aiosqlite:///{tmp_path / 'exeforge.db'}",
        artifacts_dir=tmp_path / "executables",
        workspace_dir=tmp_path / "temp",
        _env_file=None,
    )


@pytest.fixture
async def async_engine(tmp_path):
    """Create a fresh async SQLite engine for each test."""
    engine = create_async_engine(
        f"sqlite+aiosqlite:///{tmp_path / 'cache.db'}",
        echo=False,
    )
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)

    yield engine

    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.drop_all)
    await engine.dispose()


@pytest.fixture
def session_factory(async_engine) -> async_sessionmaker[AsyncSession]:
    return async_sessionmaker(async_engine, class_=AsyncSession, expire_on_commit=False)


@pytest.fixture
async def db_session(session_factory) -> AsyncGenerator[AsyncSession, None]:
    """Provide a raw DB session for seeding and inspection."""
    async with session_factory() as session:
        yield session


@pytest.fixture
def cache(session_factory) -> ArtifactCache:
    return ArtifactCache(session_factory)


@pytest.fixture
def store(tmp_path) -> ArtifactStore:
    return ArtifactStore(tmp_path / "executables")


@pytest.fixture
def workspaces(tmp_path) -> WorkspaceManager:
    return WorkspaceManager(tmp_path / "temp")
