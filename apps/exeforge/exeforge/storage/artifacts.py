"""Finished-artifact store.

Executables are published into one flat directory, addressed by a generated
unique file name. The static-serving layer maps that name to a download.

Publishing is atomic: the file is copied under a hidden temporary name in
the same directory, flushed, then renamed into place with ``os.replace``,
so a reader never observes a partially written executable.

Security:
  - `validate_file_name()` rejects empty names, path separators, ``..`` and
    null bytes before any name is turned into a path.
"""

from __future__ import annotations

import asyncio
import logging
import os
import secrets
import shutil
import string
import time
from dataclasses import dataclass
from pathlib import Path

logger = logging.getLogger(__name__)

_SUFFIX_ALPHABET = string.ascii_lowercase + string.digits


@dataclass(frozen=True)
class PublishedArtifact:
    file_name: str
    path: Path
    file_size: int


def validate_file_name(file_name: str) -> None:
    """Reject names that could escape the artifacts directory.

    Raises:
        ValueError: If the name is empty or contains invalid components.
    """
    if not file_name:
        raise ValueError("Artifact file name must not be empty")
    if "\x00" in file_name:
        raise ValueError(f"Invalid artifact file name — null byte detected: {file_name!r}")
    if ".." in file_name or "/" in file_name or "\\" in file_name:
        raise ValueError(
            f"Invalid artifact file name — path traversal detected: {file_name!r}"
        )


def generate_unique_file_name(base_name: str, extension: str = "") -> str:
    """``{base}_{epoch millis}_{6 random chars}{ext}``."""
    random_part = "".join(secrets.choice(_SUFFIX_ALPHABET) for _ in range(6))
    return f"{base_name}_{time.time_ns() // 1_000_000}_{random_part}{extension}"


class ArtifactStore:
    """Key-addressed directory of published executables."""

    def __init__(self, root: Path) -> None:
        self._root = Path(root)

    @property
    def root(self) -> Path:
        return self._root

    def path_for(self, file_name: str) -> Path:
        validate_file_name(file_name)
        return self._root / file_name

    async def exists(self, file_name: str) -> bool:
        try:
            path = self.path_for(file_name)
        except ValueError:
            return False
        return await asyncio.to_thread(path.is_file)

    async def publish(
        self,
        source: Path,
        base_name: str,
        extension: str = "",
    ) -> PublishedArtifact:
        """Copy `source` into the store under a fresh unique name."""
        file_name = generate_unique_file_name(base_name, extension)
        destination = self.path_for(file_name)
        file_size = await asyncio.to_thread(_atomic_copy, Path(source), destination)
        logger.info("Published artifact %s (%d bytes)", file_name, file_size)
        return PublishedArtifact(file_name=file_name, path=destination, file_size=file_size)

    async def discard(self, file_name: str) -> None:
        """Remove a published artifact. Missing files are ignored."""
        path = self.path_for(file_name)
        try:
            await asyncio.to_thread(path.unlink)
            logger.info("Discarded artifact %s", file_name)
        except FileNotFoundError:
            pass


def _atomic_copy(source: Path, destination: Path) -> int:
    destination.parent.mkdir(parents=True, exist_ok=True)
    tmp_path = destination.with_name(f".{destination.name}.{secrets.token_hex(4)}.tmp")
    try:
        with source.open("rb") as src, tmp_path.open("wb") as dst:
            shutil.copyfileobj(src, dst)
            dst.flush()
            os.fsync(dst.fileno())
        shutil.copymode(source, tmp_path)
        os.replace(tmp_path, destination)
    except BaseException:
        try:
            tmp_path.unlink()
        except FileNotFoundError:
            pass
        raise
    return destination.stat().st_size
