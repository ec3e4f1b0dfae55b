"""Build orchestrator with state machine enforcement.

Per cache key (name, ecosystem, version-or-"latest"):

    ABSENT ──> BUILDING ──> READY
                  │           │ (artifact file removed externally)
                  v           v
            ABSENT|STALE <── STALE ──> BUILDING

Request flow:
  1. Look up a cached record for the key.
  2. Record found and its file exists → count the download, return it.
  3. Record found but the file is gone (STALE) → rebuild, carrying the
     download count forward (+1).
  4. No record (ABSENT) → resolve metadata; a resolution failure returns
     a failed outcome with no workspace and no cache mutation.
  5. Build inside a workspace that is always released afterwards, then
     publish the executable atomically into the artifact store.
  6. Build failure → failed outcome, cache untouched.
  7. Success → insert (ABSENT) or update in place (STALE), return it.

Concurrent requests for the same key are coalesced: the first request
starts a task, later ones await that same task, so one key never has two
builds in flight. Each attached caller still counts as one download.

Keys that differ only before resolution ("latest" vs. the exact version it
resolves to) meet again on the resolved (name, ecosystem, version): builds
for one resolved version are serialized, and the cache is checked again
under that lock so the second request reuses the first one's record.
"""

import asyncio
import functools
from contextlib import asynccontextmanager
from enum import Enum
from typing import AsyncIterator, Mapping, Optional

import structlog

from exeforge.cache.repository import ArtifactCache, PersistenceError
from exeforge.cache.schemas import ExecutableRecord
from exeforge.core.logging import bound_build_key
from exeforge.executables.strategies import EcosystemStrategy, select_strategy
from exeforge.executables.types import BuildOutcome, BuildRequest
from exeforge.packaging.targets import artifact_base_name, executable_extension
from exeforge.packaging.types import ArtifactBuilder, BuildError, BuildTarget
from exeforge.resolver.types import Ecosystem, PackageMetadata, ResolutionError
from exeforge.sandbox.workspace import WorkspaceError, WorkspaceManager
from exeforge.storage.artifacts import ArtifactStore, PublishedArtifact

logger = structlog.get_logger(__name__)


class ArtifactState(str, Enum):
    ABSENT = "absent"
    BUILDING = "building"
    READY = "ready"
    STALE = "stale"


VALID_TRANSITIONS: dict[ArtifactState, set[ArtifactState]] = {
    ArtifactState.ABSENT: {ArtifactState.BUILDING},
    ArtifactState.STALE: {ArtifactState.BUILDING},
    ArtifactState.BUILDING: {ArtifactState.READY, ArtifactState.ABSENT, ArtifactState.STALE},
    ArtifactState.READY: {ArtifactState.STALE},
}


def validate_transition(current: ArtifactState, target: ArtifactState) -> None:
    """Enforce the artifact state machine.

    Raises ValueError if the transition is not allowed.
    """
    allowed = VALID_TRANSITIONS.get(current, set())
    if target not in allowed:
        raise ValueError(
            f"Invalid artifact state transition: {current.value} -> {target.value}. "
            f"Allowed transitions from '{current.value}': "
            f"{sorted(s.value for s in allowed) or 'none'}"
        )


class BuildOrchestrator:
    """Coordinates cache lookups, resolution, builds and cache writes."""

    def __init__(
        self,
        cache: ArtifactCache,
        store: ArtifactStore,
        workspaces: WorkspaceManager,
        strategies: Mapping[Ecosystem, EcosystemStrategy],
    ) -> None:
        self._cache = cache
        self._store = store
        self._workspaces = workspaces
        self._strategies = strategies
        self._inflight: dict[tuple[str, str, str], asyncio.Task[BuildOutcome]] = {}
        self._build_locks: dict[tuple[str, str, str], tuple[asyncio.Lock, int]] = {}

    @property
    def cache(self) -> ArtifactCache:
        return self._cache

    def in_flight(self, request: BuildRequest) -> bool:
        return request.cache_key in self._inflight

    async def build(
        self,
        name: str,
        ecosystem: Ecosystem | str,
        target: BuildTarget | str,
        version: Optional[str] = None,
    ) -> BuildOutcome:
        """Convenience wrapper around `execute()`."""
        return await self.execute(BuildRequest.of(name, ecosystem, target, version))

    async def execute(self, request: BuildRequest) -> BuildOutcome:
        """Serve one request, sharing any in-flight work for the same key.

        Raises:
            PersistenceError: If the cache store fails. No retry is attempted.
            ValueError: If no strategy exists for the request's ecosystem.
        """
        key = request.cache_key
        shared = self._inflight.get(key)
        if shared is not None:
            logger.info("attaching_to_inflight_build", build_key=request.label)
            outcome = await asyncio.shield(shared)
            if not outcome.success or outcome.record is None:
                return outcome
            record = await self._cache.increment_downloads(outcome.record.id)
            return BuildOutcome.ready(record)

        task = asyncio.create_task(self._serve(request), name=f"build:{request.label}")
        self._inflight[key] = task
        task.add_done_callback(functools.partial(self._forget, key))
        # Shielded: a caller going away does not cancel a build others may share.
        return await asyncio.shield(task)

    def _forget(self, key: tuple[str, str, str], task: asyncio.Task) -> None:
        if self._inflight.get(key) is task:
            del self._inflight[key]
        if not task.cancelled() and task.exception() is not None:
            logger.error("build_task_failed", error=str(task.exception()))

    async def _serve(self, request: BuildRequest) -> BuildOutcome:
        with bound_build_key(request.label):
            strategy = select_strategy(self._strategies, request.spec.ecosystem)
            spec = request.spec

            existing = await self._cache.find(spec.name, spec.ecosystem, spec.version)
            state = ArtifactState.ABSENT
            if existing is not None:
                if await self._store.exists(existing.file_name):
                    record = await self._cache.increment_downloads(existing.id)
                    logger.info(
                        "cache_hit", file_name=record.file_name, downloads=record.downloads
                    )
                    return BuildOutcome.ready(record)
                validate_transition(ArtifactState.READY, ArtifactState.STALE)
                state = ArtifactState.STALE
                logger.warning(
                    "artifact_missing_rebuilding",
                    record_id=str(existing.id),
                    file_name=existing.file_name,
                )

            try:
                metadata = await strategy.resolver.resolve(spec)
            except ResolutionError as exc:
                logger.warning("resolution_failed", reason=exc.reason.value, error=str(exc))
                return BuildOutcome.failed(str(exc), exc.reason.value)

            resolved_key = (metadata.name.lower(), spec.ecosystem.value, metadata.version)
            async with self._exclusive(resolved_key):
                current = await self._cache.find(metadata.name, spec.ecosystem, metadata.version)
                if current is not None:
                    if await self._store.exists(current.file_name):
                        record = await self._cache.increment_downloads(current.id)
                        logger.info(
                            "cache_hit_after_resolve",
                            version=metadata.version,
                            file_name=record.file_name,
                            downloads=record.downloads,
                        )
                        return BuildOutcome.ready(record)
                    existing, state = current, ArtifactState.STALE
                return await self._build_resolved(
                    request, strategy, metadata, existing, state
                )

    @asynccontextmanager
    async def _exclusive(self, key: tuple[str, str, str]) -> AsyncIterator[None]:
        """Hold the build lock for one resolved version; drop it when unused."""
        lock, holders = self._build_locks.get(key, (asyncio.Lock(), 0))
        self._build_locks[key] = (lock, holders + 1)
        try:
            async with lock:
                yield
        finally:
            lock, holders = self._build_locks[key]
            if holders == 1:
                del self._build_locks[key]
            else:
                self._build_locks[key] = (lock, holders - 1)

    async def _build_resolved(
        self,
        request: BuildRequest,
        strategy: EcosystemStrategy,
        metadata: PackageMetadata,
        existing: Optional[ExecutableRecord],
        state: ArtifactState,
    ) -> BuildOutcome:
        validate_transition(state, ArtifactState.BUILDING)
        logger.info(
            "build_started",
            package=metadata.name,
            version=metadata.version,
            target=request.target.value,
            previous_state=state.value,
        )

        try:
            published = await self._build_and_publish(
                strategy.builder, metadata, request.target, request.label
            )
        except BuildError as exc:
            validate_transition(ArtifactState.BUILDING, state)
            logger.error("build_failed", reason=exc.reason.value, error=str(exc))
            return BuildOutcome.failed(
                f"Failed to build executable: {exc}", exc.reason.value
            )
        except WorkspaceError as exc:
            validate_transition(ArtifactState.BUILDING, state)
            logger.error("workspace_failed", error=str(exc))
            return BuildOutcome.failed(
                f"Failed to build executable: {exc}", "workspace_error"
            )
        except OSError as exc:
            validate_transition(ArtifactState.BUILDING, state)
            logger.error("publish_failed", error=str(exc))
            return BuildOutcome.failed(
                f"Failed to store executable: {exc}", "publish_failed"
            )

        record = await self._commit(existing, metadata, request.spec.ecosystem, published)
        validate_transition(ArtifactState.BUILDING, ArtifactState.READY)
        logger.info(
            "build_cached",
            file_name=record.file_name,
            file_size=record.file_size,
            downloads=record.downloads,
        )
        return BuildOutcome.built(record)

    async def _build_and_publish(
        self,
        builder: ArtifactBuilder,
        metadata: PackageMetadata,
        target: BuildTarget,
        label: str,
    ) -> PublishedArtifact:
        async with self._workspaces.acquire(label) as workspace:
            artifact = await builder.build(metadata, target, workspace)
            return await self._store.publish(
                artifact.path,
                artifact_base_name(metadata.name, metadata.version, target),
                executable_extension(target),
            )

    async def _commit(
        self,
        existing: Optional[ExecutableRecord],
        metadata: PackageMetadata,
        ecosystem: Ecosystem,
        published: PublishedArtifact,
    ) -> ExecutableRecord:
        fields = {
            "name": metadata.name,
            "description": metadata.description,
            "tags": list(metadata.keywords),
            "version": metadata.version,
            "ecosystem": ecosystem.value,
            "file_name": published.file_name,
            "file_size": published.file_size,
            "downloads": existing.downloads + 1 if existing else 1,
        }
        try:
            if existing is not None:
                return await self._cache.update(existing.id, fields)
            return await self._cache.insert(fields)
        except PersistenceError:
            # Nothing references the new file; drop it rather than orphan it.
            logger.error("cache_write_failed_discarding", file_name=published.file_name)
            await self._store.discard(published.file_name)
            raise
