"""Executable cache: durable records of previously built artifacts.

Public API:
    ArtifactCache    — repository over the executables table
    ExecutableRecord — detached read-model returned to callers
    PersistenceError
"""

from exeforge.cache.repository import ArtifactCache, PersistenceError
from exeforge.cache.schemas import ExecutablePage, ExecutableRecord

__all__ = ["ArtifactCache", "ExecutablePage", "ExecutableRecord", "PersistenceError"]
