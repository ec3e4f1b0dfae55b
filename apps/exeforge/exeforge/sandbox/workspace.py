"""Ephemeral build workspaces.

Each build (and each throwaway pip environment used for metadata lookup)
gets its own directory under the scratch root. Directory names carry the
build key plus a nanosecond timestamp and random suffix, so two concurrent
builds of the same key never share a directory.

`acquire()` is the only entry point callers should use: it releases the
workspace exactly once on every exit path, including exceptions and task
cancellation. Release is best-effort; a failed delete is logged and never
replaces the build's own result or exception.
"""

import asyncio
import logging
import re
import secrets
import shutil
import time
from contextlib import asynccontextmanager
from dataclasses import dataclass
from pathlib import Path
from typing import AsyncIterator

logger = logging.getLogger(__name__)

_UNSAFE_CHARS = re.compile(r"[^A-Za-z0-9._-]+")
_MAX_KEY_LENGTH = 80


class WorkspaceError(Exception):
    """Raised when a workspace directory cannot be created."""


@dataclass(frozen=True)
class Workspace:
    """A directory exclusively owned by one build for its whole lifetime."""

    key: str
    path: Path


def _safe_key(build_key: str) -> str:
    cleaned = _UNSAFE_CHARS.sub("_", build_key.lstrip("@")).strip("._")
    return (cleaned or "build")[:_MAX_KEY_LENGTH]


class WorkspaceManager:
    """Creates and removes workspaces under a scratch root."""

    def __init__(self, root: Path) -> None:
        self._root = Path(root)

    @property
    def root(self) -> Path:
        return self._root

    async def create(self, build_key: str) -> Workspace:
        """Create a fresh, uniquely named workspace directory.

        Raises:
            WorkspaceError: If the directory cannot be created.
        """
        name = f"{_safe_key(build_key)}_{time.time_ns()}_{secrets.token_hex(4)}"
        path = self._root / name
        try:
            await asyncio.to_thread(_make_dir, path)
        except OSError as exc:
            raise WorkspaceError(f"Failed to create workspace {path}: {exc}") from exc

        logger.debug("Created workspace %s", path)
        return Workspace(key=build_key, path=path)

    async def release(self, workspace: Workspace) -> None:
        """Recursively delete a workspace. Never raises."""
        try:
            await asyncio.to_thread(shutil.rmtree, workspace.path)
            logger.debug("Removed workspace %s", workspace.path)
        except FileNotFoundError:
            pass
        except OSError as exc:
            logger.warning("Failed to clean up workspace %s: %s", workspace.path, exc)

    @asynccontextmanager
    async def acquire(self, build_key: str) -> AsyncIterator[Workspace]:
        """Scoped workspace: created on entry, released on every exit path."""
        workspace = await self.create(build_key)
        try:
            yield workspace
        finally:
            # Shielded so a cancelled build still gets its directory removed.
            await asyncio.shield(self.release(workspace))


def _make_dir(path: Path) -> None:
    path.parent.mkdir(parents=True, exist_ok=True)
    path.mkdir()
