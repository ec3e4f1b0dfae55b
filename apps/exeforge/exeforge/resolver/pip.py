"""PyPI metadata resolver.

Resolution order:
  1. Local introspection — if the distribution is already installed in the
     service's own interpreter (and matches the requested version), read
     its metadata with importlib.metadata. No network, no subprocess.
  2. Disposable environment — create a virtualenv inside a scratch
     workspace, ``pip install --no-deps`` the exact requested version (or
     the newest one for "latest"), read the metadata with that
     environment's interpreter, then remove the whole workspace.

Both paths normalise Summary → description and Keywords → ordered tuple.
"""

import asyncio
import json
import logging
import sys
from importlib import metadata as importlib_metadata
from pathlib import Path
from typing import Optional

from exeforge.resolver.types import (
    Ecosystem,
    PackageMetadata,
    PackageSpec,
    ResolutionError,
    ResolutionFailure,
    canonicalize_pip_name,
    normalize_description,
    normalize_keywords,
)
from exeforge.sandbox.workspace import WorkspaceError, WorkspaceManager
from exeforge.toolchain.executor import CommandRunner

logger = logging.getLogger(__name__)

# pip phrases meaning the index answered but has no such project/version.
_NOT_FOUND_MARKERS = (
    "No matching distribution found",
    "Could not find a version that satisfies",
)

# Exit code the introspection script uses for "not installed".
_MISSING_EXIT_CODE = 3

_INTROSPECT_SCRIPT = """\
import json, sys
from importlib.metadata import PackageNotFoundError, metadata
try:
    md = metadata(sys.argv[1])
except PackageNotFoundError:
    sys.exit(3)
print(json.dumps({
    "name": md.get("Name"),
    "version": md.get("Version"),
    "summary": md.get("Summary"),
    "keywords": md.get("Keywords"),
}))
"""


def _metadata_from_fields(fields: dict, fallback_name: str) -> PackageMetadata:
    return PackageMetadata(
        name=fields.get("name") or fallback_name,
        version=fields.get("version") or "",
        description=normalize_description(fields.get("summary")),
        keywords=normalize_keywords(fields.get("keywords")),
    )


def _venv_python(venv_dir: Path) -> Path:
    if sys.platform == "win32":
        return venv_dir / "Scripts" / "python.exe"
    return venv_dir / "bin" / "python"


class PipResolver:
    """Resolves PyPI package metadata via local introspection or a throwaway venv."""

    ecosystem = Ecosystem.PIP

    def __init__(
        self,
        runner: CommandRunner,
        workspaces: WorkspaceManager,
        python_executable: str = sys.executable,
        venv_timeout: int = 60,
        install_timeout: int = 120,
    ) -> None:
        self._runner = runner
        self._workspaces = workspaces
        self._python = python_executable
        self._venv_timeout = venv_timeout
        self._install_timeout = install_timeout

    async def resolve(self, spec: PackageSpec) -> PackageMetadata:
        local = await asyncio.to_thread(self._introspect_local, spec)
        if local is not None:
            logger.info("Resolved %s from local installation (%s)", spec.name, local.version)
            return local

        logger.info(
            "Package %s not installed locally, resolving from the index", spec.name
        )
        try:
            async with self._workspaces.acquire(f"pip-resolve-{spec.name}") as workspace:
                return await self._resolve_in_venv(spec, workspace.path)
        except WorkspaceError as exc:
            raise ResolutionError(
                ResolutionFailure.REGISTRY_UNREACHABLE,
                spec.name,
                f"Could not provision an environment to resolve '{spec.name}': {exc}",
                cause=exc,
            ) from exc

    def _introspect_local(self, spec: PackageSpec) -> Optional[PackageMetadata]:
        try:
            md = importlib_metadata.metadata(spec.name)
        except importlib_metadata.PackageNotFoundError:
            return None

        resolved = _metadata_from_fields(
            {
                "name": md.get("Name"),
                "version": md.get("Version"),
                "summary": md.get("Summary"),
                "keywords": md.get("Keywords"),
            },
            spec.name,
        )
        if not spec.is_latest and resolved.version != spec.version:
            return None
        return resolved

    async def _resolve_in_venv(self, spec: PackageSpec, root: Path) -> PackageMetadata:
        venv_dir = root / "venv"
        created = await self._runner.run(
            [self._python, "-m", "venv", str(venv_dir)],
            cwd=root,
            timeout=self._venv_timeout,
        )
        if not created.is_success:
            raise ResolutionError(
                ResolutionFailure.REGISTRY_UNREACHABLE,
                spec.name,
                f"Failed to create virtual environment: {created.output_tail}",
            )

        python = str(_venv_python(venv_dir))
        requirement = spec.name if spec.is_latest else f"{spec.name}=={spec.version}"
        installed = await self._runner.run(
            [
                python, "-m", "pip", "install",
                "--no-deps",
                "--disable-pip-version-check",
                "--no-input",
                requirement,
            ],
            cwd=root,
            timeout=self._install_timeout,
        )
        if not installed.is_success:
            output = f"{installed.stderr}\n{installed.stdout}"
            if any(marker in output for marker in _NOT_FOUND_MARKERS):
                raise ResolutionError(
                    ResolutionFailure.NOT_FOUND,
                    spec.name,
                    f"Package '{requirement}' not found in pip registry",
                )
            raise ResolutionError(
                ResolutionFailure.REGISTRY_UNREACHABLE,
                spec.name,
                f"pip install of '{requirement}' failed: {installed.output_tail}",
            )

        shown = await self._runner.run(
            [python, "-c", _INTROSPECT_SCRIPT, spec.name],
            cwd=root,
            timeout=self._venv_timeout,
        )
        if shown.exit_code == _MISSING_EXIT_CODE:
            raise ResolutionError(
                ResolutionFailure.NOT_FOUND,
                spec.name,
                f"Installed '{requirement}' but no distribution named "
                f"'{canonicalize_pip_name(spec.name)}' was found",
            )
        if not shown.is_success:
            raise ResolutionError(
                ResolutionFailure.REGISTRY_UNREACHABLE,
                spec.name,
                f"Failed to read metadata for '{spec.name}': {shown.output_tail}",
            )

        try:
            fields = json.loads(shown.stdout.strip().splitlines()[-1])
        except (IndexError, json.JSONDecodeError) as exc:
            raise ResolutionError(
                ResolutionFailure.REGISTRY_UNREACHABLE,
                spec.name,
                f"Unreadable metadata output for '{spec.name}'",
                cause=exc,
            ) from exc

        resolved = _metadata_from_fields(fields, spec.name)
        logger.info("Resolved %s to version %s", resolved.name, resolved.version)
        return resolved
