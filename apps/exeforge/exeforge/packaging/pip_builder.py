"""PyPI executable builder.

Pipeline (every step runs inside the build workspace):
  1. compiler — make sure PyInstaller is available; install it with pip the
                first time it is missing.
  2. install  — ``pip install --target <workspace>/site name==version``.
  3. module   — find the importable top-level module of the distribution
                (top_level.txt, then RECORD, then the name itself).
  4. wrapper  — a small script importing the module and calling its
                ``main()`` when present.
  5. compile  — ``pyinstaller --onefile`` into ``dist/<name><ext>``.

PyInstaller builds for the host OS only; asking for another target fails
with COMPILE_FAILED before anything is installed.
"""

import asyncio
import csv
import logging
import os
import shutil
import stat
import sys
from pathlib import Path
from typing import Optional

from exeforge.packaging.targets import (
    executable_extension,
    host_target,
    is_unix_like,
    safe_package_name,
)
from exeforge.packaging.types import BuildError, BuildFailure, BuildTarget, BuiltArtifact
from exeforge.resolver.types import PackageMetadata, canonicalize_pip_name
from exeforge.sandbox.workspace import Workspace
from exeforge.toolchain.executor import CommandRunner

logger = logging.getLogger(__name__)

WRAPPER_FILENAME = "wrapper.py"

_WRAPPER_TEMPLATE = '''\
import sys

try:
    import {module} as _target
except ImportError as exc:
    print("Error importing {name}: %s" % exc, file=sys.stderr)
    sys.exit(1)

if callable(getattr(_target, "main", None)):
    sys.exit(_target.main())

print("{name} {version} imported successfully")
'''


def render_wrapper(metadata: PackageMetadata, module: str) -> str:
    return _WRAPPER_TEMPLATE.format(
        module=module,
        name=metadata.name.replace('"', ""),
        version=metadata.version.replace('"', ""),
    )


def fallback_module_name(name: str) -> str:
    return name.replace("-", "_").replace(".", "_").lower()


class PipBuilder:
    """Builds a native executable from a PyPI distribution with PyInstaller."""

    def __init__(
        self,
        runner: CommandRunner,
        python_executable: str = sys.executable,
        pyinstaller_command: str = "pyinstaller",
        install_timeout: int = 120,
        compile_timeout: int = 300,
        toolchain_install_timeout: int = 120,
    ) -> None:
        self._runner = runner
        self._python = python_executable
        self._pyinstaller = pyinstaller_command
        self._install_timeout = install_timeout
        self._compile_timeout = compile_timeout
        self._toolchain_install_timeout = toolchain_install_timeout
        self._compiler: Optional[list[str]] = None
        self._compiler_lock = asyncio.Lock()

    async def build(
        self,
        metadata: PackageMetadata,
        target: BuildTarget,
        workspace: Workspace,
    ) -> BuiltArtifact:
        root = workspace.path
        logger.info(
            "Building pip executable for %s==%s (%s)",
            metadata.name, metadata.version, target.value,
        )

        host = host_target()
        if BuildTarget(target) is not host:
            raise BuildError(
                BuildFailure.COMPILE_FAILED,
                f"PyInstaller cannot cross-compile {metadata.name}: "
                f"host {host.value}, target {BuildTarget(target).value}",
            )

        compiler = await self.ensure_compiler()
        site = await self._install(metadata, root)
        module = await asyncio.to_thread(discover_module, site, metadata.name)
        wrapper = root / WRAPPER_FILENAME
        await asyncio.to_thread(
            wrapper.write_text, render_wrapper(metadata, module), "utf-8"
        )
        output = await self._compile(compiler, metadata, target, wrapper, site, module, root)

        file_size = (await asyncio.to_thread(output.stat)).st_size
        logger.info("Built %s (%d bytes)", output.name, file_size)
        return BuiltArtifact(path=output, file_size=file_size)

    async def ensure_compiler(self) -> list[str]:
        """Return the argv prefix that invokes PyInstaller, installing it if needed."""
        async with self._compiler_lock:
            if self._compiler is not None:
                return self._compiler

            found = shutil.which(self._pyinstaller)
            if found:
                self._compiler = [found]
                return self._compiler

            logger.info("PyInstaller not found, installing it for executable creation")
            result = await self._runner.run(
                [
                    self._python, "-m", "pip", "install",
                    "--disable-pip-version-check", "--no-input",
                    "pyinstaller",
                ],
                timeout=self._toolchain_install_timeout,
            )
            if not result.is_success:
                raise BuildError(
                    BuildFailure.COMPILE_FAILED,
                    f"Could not install PyInstaller: {result.output_tail}",
                )
            self._compiler = [self._python, "-m", "PyInstaller"]
            return self._compiler

    async def _install(self, metadata: PackageMetadata, root: Path) -> Path:
        site = root / "site"
        requirement = f"{metadata.name}=={metadata.version}"
        result = await self._runner.run(
            [
                self._python, "-m", "pip", "install",
                "--disable-pip-version-check", "--no-input",
                "--target", str(site),
                requirement,
            ],
            cwd=root,
            timeout=self._install_timeout,
        )
        if not result.is_success:
            raise BuildError(
                BuildFailure.INSTALL_FAILED,
                f"pip install of {requirement} failed: {result.output_tail}",
            )
        return site

    async def _compile(
        self,
        compiler: list[str],
        metadata: PackageMetadata,
        target: BuildTarget,
        wrapper: Path,
        site: Path,
        module: str,
        root: Path,
    ) -> Path:
        name = safe_package_name(metadata.name)
        dist = root / "dist"
        env = dict(os.environ)
        env["PYTHONPATH"] = str(site)

        result = await self._runner.run(
            [
                *compiler,
                "--onefile",
                "--noconfirm",
                "--name", name,
                "--distpath", str(dist),
                "--workpath", str(root / "build"),
                "--specpath", str(root),
                "--paths", str(site),
                "--hidden-import", module,
                str(wrapper),
            ],
            cwd=root,
            timeout=self._compile_timeout,
            env=env,
        )
        if not result.is_success:
            raise BuildError(
                BuildFailure.COMPILE_FAILED,
                f"PyInstaller failed for {metadata.name}: {result.output_tail}",
            )

        output = dist / f"{name}{executable_extension(target)}"
        if not await asyncio.to_thread(output.is_file):
            raise BuildError(
                BuildFailure.COMPILE_FAILED,
                f"Executable was not created by PyInstaller at {output.name}",
            )
        if is_unix_like(target):
            await asyncio.to_thread(_make_executable, output)
        return output


def discover_module(site: Path, distribution: str) -> str:
    """Find the importable top-level module for `distribution` under `site`."""
    dist_info = _find_dist_info(site, distribution)
    if dist_info is not None:
        top_level = dist_info / "top_level.txt"
        if top_level.is_file():
            names = [
                line.strip()
                for line in top_level.read_text(encoding="utf-8").splitlines()
                if line.strip()
            ]
            chosen = _prefer(names, distribution)
            if chosen:
                return chosen

        record = dist_info / "RECORD"
        if record.is_file():
            chosen = _prefer(_modules_from_record(record), distribution)
            if chosen:
                return chosen

    return fallback_module_name(distribution)


def _find_dist_info(site: Path, distribution: str) -> Optional[Path]:
    wanted = canonicalize_pip_name(distribution)
    for candidate in sorted(site.glob("*.dist-info")):
        metadata_file = candidate / "METADATA"
        if not metadata_file.is_file():
            continue
        for line in metadata_file.read_text(encoding="utf-8", errors="replace").splitlines():
            if line.startswith("Name:"):
                if canonicalize_pip_name(line.split(":", 1)[1].strip()) == wanted:
                    return candidate
                break
    return None


def _modules_from_record(record: Path) -> list[str]:
    names: list[str] = []
    with record.open(encoding="utf-8", newline="") as handle:
        for row in csv.reader(handle):
            if not row:
                continue
            first = row[0].replace("\\", "/").split("/", 1)[0]
            if first.endswith((".dist-info", ".data")) or first in ("..", "bin"):
                continue
            if "/" not in row[0] and not first.endswith(".py"):
                continue
            module = first[:-3] if first.endswith(".py") else first
            if module not in names:
                names.append(module)
    return names


def _prefer(names: list[str], distribution: str) -> Optional[str]:
    usable = [n for n in names if n.isidentifier() and not n.startswith("_")]
    if not usable:
        return None
    fallback = fallback_module_name(distribution)
    for name in usable:
        if name.lower() == fallback:
            return name
    return usable[0]


def _make_executable(path: Path) -> None:
    mode = path.stat().st_mode
    path.chmod(mode | stat.S_IXUSR | stat.S_IXGRP | stat.S_IXOTH)
