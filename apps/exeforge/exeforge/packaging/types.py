"""Types for the packaging module."""

from dataclasses import dataclass
from enum import Enum
from pathlib import Path
from typing import Protocol, runtime_checkable

from exeforge.resolver.types import PackageMetadata
from exeforge.sandbox.workspace import Workspace


class BuildTarget(str, Enum):
    """Operating system the executable is built for."""

    WINDOWS = "windows"
    MACOS = "macos"
    LINUX = "linux"


@dataclass(frozen=True)
class BuiltArtifact:
    """A finished executable still inside its build workspace.

    file_size is the exact byte size of the file at path.
    """

    path: Path
    file_size: int


class BuildFailure(str, Enum):
    INSTALL_FAILED = "install_failed"
    ENTRY_POINT_MISSING = "entry_point_missing"
    BUNDLE_FAILED = "bundle_failed"
    COMPILE_FAILED = "compile_failed"


class BuildError(Exception):
    """Raised when any build step fails.

    The whole build is aborted; nothing is promoted out of the workspace.
    """

    def __init__(self, reason: BuildFailure, message: str):
        self.reason = reason
        super().__init__(message)


@runtime_checkable
class ArtifactBuilder(Protocol):
    """Protocol for ecosystem-specific executable builders."""

    async def build(
        self,
        metadata: PackageMetadata,
        target: BuildTarget,
        workspace: Workspace,
    ) -> BuiltArtifact:
        """Produce one native executable for `target` inside `workspace`.

        Raises:
            BuildError: On any failed step.
        """
        ...  # noqa: PLR6301
