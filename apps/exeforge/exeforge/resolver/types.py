"""Types for package metadata resolution."""

import re
from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Optional, Protocol, runtime_checkable

LATEST = "latest"

DEFAULT_DESCRIPTION = "No description available"


class Ecosystem(str, Enum):
    """Source package registry and its packaging convention."""

    NPM = "npm"
    PIP = "pip"


@dataclass(frozen=True)
class PackageSpec:
    """A package reference as requested by a caller.

    version is either an exact version string or "latest".
    """

    name: str
    ecosystem: Ecosystem
    version: str = LATEST

    def __post_init__(self) -> None:
        if not self.name or not self.name.strip():
            raise ValueError("Package name must not be empty")
        object.__setattr__(self, "ecosystem", Ecosystem(self.ecosystem))
        object.__setattr__(self, "version", (self.version or LATEST).strip() or LATEST)

    @property
    def is_latest(self) -> bool:
        return self.version == LATEST


@dataclass(frozen=True)
class PackageMetadata:
    """Canonical metadata for one concrete package version."""

    name: str
    version: str
    description: str = DEFAULT_DESCRIPTION
    keywords: tuple[str, ...] = field(default_factory=tuple)


class ResolutionFailure(str, Enum):
    NOT_FOUND = "not_found"
    REGISTRY_UNREACHABLE = "registry_unreachable"


class ResolutionError(Exception):
    """Raised by resolvers when metadata cannot be produced.

    Carries the package name and a failure reason for the orchestrator to
    report back to the caller.
    """

    def __init__(
        self,
        reason: ResolutionFailure,
        package: str,
        message: str,
        cause: Optional[Exception] = None,
    ):
        self.reason = reason
        self.package = package
        self.cause = cause
        super().__init__(message)


@runtime_checkable
class PackageResolver(Protocol):
    """Protocol for ecosystem-specific metadata resolvers."""

    async def resolve(self, spec: PackageSpec) -> PackageMetadata:
        """Return canonical metadata for `spec`.

        Raises:
            ResolutionError: NOT_FOUND or REGISTRY_UNREACHABLE.
        """
        ...  # noqa: PLR6301


def normalize_description(value: Any) -> str:
    if isinstance(value, str) and value.strip():
        return value.strip()
    return DEFAULT_DESCRIPTION


def normalize_keywords(value: Any) -> tuple[str, ...]:
    """Coerce registry keyword fields into an ordered tuple of strings.

    Registries hand back lists, comma-separated strings, or space-separated
    strings depending on how the package author filled them in. Order is
    kept; blanks and repeats are dropped.
    """
    if value is None:
        return ()
    if isinstance(value, str):
        separator = "," if "," in value else None
        items = value.split(separator)
    elif isinstance(value, (list, tuple)):
        items = [str(v) for v in value if v is not None]
    else:
        return ()
    return tuple(dict.fromkeys(item.strip() for item in items if item and item.strip()))


_NAME_NORMALIZE = re.compile(r"[-_.]+")


def canonicalize_pip_name(name: str) -> str:
    """PEP 503 normalised project name."""
    return _NAME_NORMALIZE.sub("-", name).lower()
