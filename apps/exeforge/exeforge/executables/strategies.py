"""Ecosystem strategy table.

Each ecosystem maps to one {resolver, builder} pair. The orchestrator picks
the pair once per request and never branches on the ecosystem again.
"""

import logging
from dataclasses import dataclass
from typing import Mapping

from exeforge.core.config import Settings
from exeforge.packaging.npm_builder import NpmBuilder
from exeforge.packaging.pip_builder import PipBuilder
from exeforge.packaging.types import ArtifactBuilder
from exeforge.resolver.npm import NpmResolver
from exeforge.resolver.pip import PipResolver
from exeforge.resolver.types import Ecosystem, PackageResolver
from exeforge.sandbox.workspace import WorkspaceManager
from exeforge.toolchain.executor import CommandRunner

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class EcosystemStrategy:
    resolver: PackageResolver
    builder: ArtifactBuilder


def build_strategies(
    settings: Settings,
    runner: CommandRunner,
    workspaces: WorkspaceManager,
) -> dict[Ecosystem, EcosystemStrategy]:
    """Construct the production strategy table from settings."""
    return {
        Ecosystem.NPM: EcosystemStrategy(
            resolver=NpmResolver(
                registry_url=settings.npm_registry_url,
                timeout=settings.registry_timeout_seconds,
            ),
            builder=NpmBuilder(
                runner,
                npm_command=settings.npm_command,
                npx_command=settings.npx_command,
                node_target=settings.node_target,
                esbuild_package=settings.esbuild_package,
                pkg_package=settings.pkg_package,
                install_timeout=settings.install_timeout_seconds,
                bundle_timeout=settings.bundle_timeout_seconds,
                compile_timeout=settings.compile_timeout_seconds,
            ),
        ),
        Ecosystem.PIP: EcosystemStrategy(
            resolver=PipResolver(
                runner,
                workspaces,
                python_executable=settings.python_executable,
                venv_timeout=settings.venv_timeout_seconds,
                install_timeout=settings.install_timeout_seconds,
            ),
            builder=PipBuilder(
                runner,
                python_executable=settings.python_executable,
                pyinstaller_command=settings.pyinstaller_command,
                install_timeout=settings.install_timeout_seconds,
                compile_timeout=settings.compile_timeout_seconds,
                toolchain_install_timeout=settings.toolchain_install_timeout_seconds,
            ),
        ),
    }


def select_strategy(
    strategies: Mapping[Ecosystem, EcosystemStrategy],
    ecosystem: Ecosystem | str,
) -> EcosystemStrategy:
    """Return the strategy pair for `ecosystem`.

    Raises:
        ValueError: If the ecosystem is unknown or has no strategy registered.
    """
    try:
        key = Ecosystem(ecosystem)
    except ValueError:
        valid = ", ".join(e.value for e in Ecosystem)
        raise ValueError(f"Unknown ecosystem '{ecosystem}'. Valid options: {valid}") from None

    strategy = strategies.get(key)
    if strategy is None:
        raise ValueError(f"No build strategy registered for ecosystem '{key.value}'")
    return strategy
