"""Packaging module: turns resolved packages into native executables.

Public API:
    NpmBuilder, PipBuilder — ecosystem strategies implementing ArtifactBuilder
    BuildTarget, BuiltArtifact
    BuildError, BuildFailure
"""

from exeforge.packaging.npm_builder import NpmBuilder
from exeforge.packaging.pip_builder import PipBuilder
from exeforge.packaging.types import (
    ArtifactBuilder,
    BuildError,
    BuildFailure,
    BuildTarget,
    BuiltArtifact,
)

__all__ = [
    "ArtifactBuilder",
    "BuildError",
    "BuildFailure",
    "BuildTarget",
    "BuiltArtifact",
    "NpmBuilder",
    "PipBuilder",
]
