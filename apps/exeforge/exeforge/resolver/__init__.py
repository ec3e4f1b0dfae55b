"""Package metadata resolution.

Public API:
    NpmResolver, PipResolver — ecosystem strategies implementing PackageResolver
    PackageSpec, PackageMetadata, Ecosystem
    ResolutionError, ResolutionFailure
"""

from exeforge.resolver.npm import NpmResolver
from exeforge.resolver.pip import PipResolver
from exeforge.resolver.types import (
    LATEST,
    Ecosystem,
    PackageMetadata,
    PackageResolver,
    PackageSpec,
    ResolutionError,
    ResolutionFailure,
)

__all__ = [
    "LATEST",
    "Ecosystem",
    "NpmResolver",
    "PackageMetadata",
    "PackageResolver",
    "PackageSpec",
    "PipResolver",
    "ResolutionError",
    "ResolutionFailure",
]
