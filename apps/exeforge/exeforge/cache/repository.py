"""Durable cache of built executables.

Thin repository over the `executables` table. Each operation opens its own
short-lived session from the injected factory and commits before returning,
so the orchestrator never holds a transaction open across a build.

All database failures surface as `PersistenceError`.
"""

import logging
import uuid
from contextlib import asynccontextmanager
from typing import Any, AsyncIterator, Optional

from sqlalchemy import func, select, update
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from exeforge.cache.schemas import ExecutablePage, ExecutableRecord
from exeforge.db.models import Executable
from exeforge.resolver.types import LATEST, Ecosystem

logger = logging.getLogger(__name__)

MAX_PAGE_SIZE = 100

# Columns the build pipeline is allowed to write.
WRITABLE_FIELDS = frozenset(
    {"name", "description", "tags", "downloads", "version", "ecosystem", "file_name", "file_size"}
)


class PersistenceError(Exception):
    """Raised when the cache store cannot be read or written."""


class ArtifactCache:
    """Record store keyed by (name, ecosystem[, version])."""

    def __init__(self, session_factory: async_sessionmaker[AsyncSession]) -> None:
        self._session_factory = session_factory

    @asynccontextmanager
    async def _session(self, action: str) -> AsyncIterator[AsyncSession]:
        async with self._session_factory() as session:
            try:
                yield session
            except SQLAlchemyError as exc:
                await session.rollback()
                logger.error("Cache %s failed: %s", action, exc)
                raise PersistenceError(f"Failed to {action}: {exc}") from exc

    async def find(
        self,
        name: str,
        ecosystem: Ecosystem | str,
        version: Optional[str] = None,
    ) -> Optional[ExecutableRecord]:
        """Return the record for a key, or None.

        Names match case-insensitively. A version of None or "latest" matches
        any version; the most recently updated record wins.
        """
        stmt = select(Executable).where(
            func.lower(Executable.name) == name.lower(),
            Executable.ecosystem == Ecosystem(ecosystem).value,
        )
        if version and version != LATEST:
            stmt = stmt.where(Executable.version == version)
        stmt = stmt.order_by(Executable.updated_at.desc(), Executable.created_at.desc()).limit(1)

        async with self._session("look up executable") as session:
            row = (await session.execute(stmt)).scalar_one_or_none()
            return ExecutableRecord.model_validate(row) if row else None

    async def get(self, record_id: uuid.UUID) -> Optional[ExecutableRecord]:
        async with self._session("load executable") as session:
            row = await session.get(Executable, record_id)
            return ExecutableRecord.model_validate(row) if row else None

    async def increment_downloads(self, record_id: uuid.UUID) -> ExecutableRecord:
        """Atomically add one to a record's download counter."""
        async with self._session("increment downloads") as session:
            result = await session.execute(
                update(Executable)
                .where(Executable.id == record_id)
                .values(downloads=Executable.downloads + 1)
            )
            if result.rowcount == 0:
                await session.rollback()
                raise PersistenceError(f"Executable {record_id} no longer exists")
            await session.commit()
            row = await session.get(Executable, record_id, populate_existing=True)
            return ExecutableRecord.model_validate(row)

    async def insert(self, fields: dict[str, Any]) -> ExecutableRecord:
        row = Executable(**_writable(fields))
        async with self._session("create executable") as session:
            session.add(row)
            await session.commit()
            await session.refresh(row)
            logger.info("Cached new executable %s (%s)", row.file_name, row.id)
            return ExecutableRecord.model_validate(row)

    async def update(self, record_id: uuid.UUID, fields: dict[str, Any]) -> ExecutableRecord:
        """Overwrite a record in place, keeping its id and created_at."""
        async with self._session("update executable") as session:
            row = await session.get(Executable, record_id)
            if row is None:
                raise PersistenceError(f"Executable {record_id} no longer exists")
            for key, value in _writable(fields).items():
                setattr(row, key, value)
            await session.commit()
            await session.refresh(row)
            logger.info("Updated executable %s (%s)", row.file_name, row.id)
            return ExecutableRecord.model_validate(row)

    async def list_page(self, page: int = 1, limit: int = 10) -> ExecutablePage:
        """Return records sorted by downloads (desc) then recency (desc)."""
        if page < 1:
            raise ValueError("page must be >= 1")
        if not 1 <= limit <= MAX_PAGE_SIZE:
            raise ValueError(f"limit must be between 1 and {MAX_PAGE_SIZE}")

        async with self._session("list executables") as session:
            total = (
                await session.execute(select(func.count()).select_from(Executable))
            ).scalar_one()
            rows = (
                await session.execute(
                    select(Executable)
                    .order_by(Executable.downloads.desc(), Executable.created_at.desc())
                    .offset((page - 1) * limit)
                    .limit(limit)
                )
            ).scalars().all()

        return ExecutablePage(
            items=[ExecutableRecord.model_validate(r) for r in rows],
            total=total,
            page=page,
            limit=limit,
        )


def _writable(fields: dict[str, Any]) -> dict[str, Any]:
    unknown = set(fields) - WRITABLE_FIELDS
    if unknown:
        raise ValueError(f"Unknown executable fields: {sorted(unknown)}")
    data = dict(fields)
    if "tags" in data:
        data["tags"] = list(data["tags"])
    if "ecosystem" in data:
        data["ecosystem"] = Ecosystem(data["ecosystem"]).value
    return data
