"""Request and outcome types for the build orchestrator."""

from dataclasses import dataclass
from enum import Enum
from typing import Optional

from exeforge.cache.schemas import ExecutableRecord
from exeforge.packaging.types import BuildTarget
from exeforge.resolver.types import Ecosystem, PackageSpec


@dataclass(frozen=True)
class BuildRequest:
    """One caller request: a package reference plus the OS to build for."""

    spec: PackageSpec
    target: BuildTarget

    def __post_init__(self) -> None:
        object.__setattr__(self, "target", BuildTarget(self.target))

    @classmethod
    def of(
        cls,
        name: str,
        ecosystem: Ecosystem | str,
        target: BuildTarget | str,
        version: Optional[str] = None,
    ) -> "BuildRequest":
        return cls(
            spec=PackageSpec(name=name, ecosystem=Ecosystem(ecosystem), version=version or "latest"),
            target=BuildTarget(target),
        )

    @property
    def cache_key(self) -> tuple[str, str, str]:
        """(name, ecosystem, version-or-"latest").

        The target OS is not part of the key: a request for one OS is served
        whatever artifact is cached for the package, even if it was built
        for another OS (a windows request may get a linux binary with no
        .exe suffix). Callers needing a specific platform must check the
        record's file_name.
        """
        return (self.spec.name.lower(), self.spec.ecosystem.value, self.spec.version)

    @property
    def label(self) -> str:
        return f"{self.spec.ecosystem.value}:{self.spec.name}@{self.spec.version}"


class OutcomeStatus(str, Enum):
    READY = "ready"
    BUILT = "built"
    FAILED = "failed"


@dataclass(frozen=True)
class BuildOutcome:
    """Result of one orchestrator request.

    READY  — an existing artifact was served from the cache.
    BUILT  — a new artifact was built and cached.
    FAILED — nothing was cached; `error` explains why and `failure` carries
             the machine-readable reason (e.g. "not_found", "install_failed").
    """

    status: OutcomeStatus
    record: Optional[ExecutableRecord] = None
    error: Optional[str] = None
    failure: Optional[str] = None

    @property
    def success(self) -> bool:
        return self.status is not OutcomeStatus.FAILED

    @property
    def message(self) -> str:
        if self.status is OutcomeStatus.READY:
            return "Executable ready for download"
        if self.status is OutcomeStatus.BUILT:
            return "Executable built and ready for download"
        return self.error or "Failed to build executable"

    @classmethod
    def ready(cls, record: ExecutableRecord) -> "BuildOutcome":
        return cls(status=OutcomeStatus.READY, record=record)

    @classmethod
    def built(cls, record: ExecutableRecord) -> "BuildOutcome":
        return cls(status=OutcomeStatus.BUILT, record=record)

    @classmethod
    def failed(cls, error: str, failure: str) -> "BuildOutcome":
        return cls(status=OutcomeStatus.FAILED, error=error, failure=failure)

    def to_dict(self) -> dict:
        return {
            "success": self.success,
            "status": self.status.value,
            "message": self.message,
            "failure": self.failure,
            "executable": self.record.model_dump(mode="json") if self.record else None,
        }
