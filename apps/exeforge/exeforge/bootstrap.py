"""Wires the production object graph from settings."""

from dataclasses import dataclass
from typing import Optional

from sqlalchemy.ext.asyncio import AsyncEngine

from exeforge.cache.repository import ArtifactCache
from exeforge.core.config import Settings, get_settings
from exeforge.db.session import create_engine_and_sessions, init_models
from exeforge.executables.orchestrator import BuildOrchestrator
from exeforge.executables.strategies import build_strategies
from exeforge.sandbox.workspace import WorkspaceManager
from exeforge.storage.artifacts import ArtifactStore
from exeforge.toolchain.executor import SubprocessRunner
from exeforge.toolchain.limits import make_resource_limiter


@dataclass
class Service:
    engine: AsyncEngine
    orchestrator: BuildOrchestrator

    @property
    def cache(self) -> ArtifactCache:
        return self.orchestrator.cache

    async def aclose(self) -> None:
        await self.engine.dispose()


async def create_service(settings: Optional[Settings] = None) -> Service:
    """Build the orchestrator and its collaborators, creating tables if needed."""
    settings = settings or get_settings()

    engine, session_factory = create_engine_and_sessions(settings)
    await init_models(engine)

    runner = SubprocessRunner(
        preexec_fn=make_resource_limiter(
            memory_bytes=settings.toolchain_memory_limit_bytes,
            cpu_seconds=settings.toolchain_cpu_limit_seconds,
        )
    )
    workspaces = WorkspaceManager(settings.workspace_dir)
    orchestrator = BuildOrchestrator(
        cache=ArtifactCache(session_factory),
        store=ArtifactStore(settings.artifacts_dir),
        workspaces=workspaces,
        strategies=build_strategies(settings, runner, workspaces),
    )
    return Service(engine=engine, orchestrator=orchestrator)
