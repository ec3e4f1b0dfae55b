"""npm executable builder.

Pipeline (every step runs inside the build workspace):
  1. install  — isolated package.json, then ``npm install name@version``
                with an exact pin and no lockfile written.
  2. entry    — read the installed package's ``bin`` field. A string is the
                entry point; for a mapping the first declared command wins.
  3. bundle   — esbuild merges the entry point and its whole dependency
                closure into one CommonJS script for the node runtime.
  4. marker   — ensure a ``#!/usr/bin/env node`` line and mode 0755.
  5. compile  — pkg turns the bundle into a standalone binary for the
                requested OS.

Any failed step raises BuildError with the matching reason.
"""

import asyncio
import json
import logging
import os
import stat
from pathlib import Path
from typing import Optional

from exeforge.packaging.targets import (
    executable_extension,
    is_unix_like,
    pkg_target,
    safe_package_name,
)
from exeforge.packaging.types import BuildError, BuildFailure, BuildTarget, BuiltArtifact
from exeforge.resolver.types import PackageMetadata
from exeforge.sandbox.workspace import Workspace
from exeforge.toolchain.executor import CommandRunner

logger = logging.getLogger(__name__)

NODE_INTERPRETER_MARKER = "#!/usr/bin/env node\n"

BUNDLE_FILENAME = "bundle.js"

_ISOLATED_PACKAGE_JSON = {
    "name": "exeforge-build",
    "version": "1.0.0",
    "private": True,
    "description": "Isolated install root for one executable build",
}


def _install_env() -> dict[str, str]:
    """Return env for npm invocations.

    Silences update/funding notices and keeps npm from walking up to a
    parent project's configuration.
    """
    env = dict(os.environ)
    env["NPM_CONFIG_UPDATE_NOTIFIER"] = "false"
    env["NPM_CONFIG_FUND"] = "false"
    env["NPM_CONFIG_AUDIT"] = "false"
    return env


def select_entry_point(package_json: dict) -> Optional[str]:
    """Return the relative path of the declared executable, if any."""
    bin_field = package_json.get("bin")
    if isinstance(bin_field, str) and bin_field.strip():
        return bin_field.strip()
    if isinstance(bin_field, dict):
        for value in bin_field.values():
            if isinstance(value, str) and value.strip():
                return value.strip()
    return None


class NpmBuilder:
    """Builds a native executable from an npm package's bin entry."""

    def __init__(
        self,
        runner: CommandRunner,
        npm_command: str = "npm",
        npx_command: str = "npx",
        node_target: str = "node18",
        esbuild_package: str = "esbuild",
        pkg_package: str = "pkg",
        install_timeout: int = 120,
        bundle_timeout: int = 120,
        compile_timeout: int = 300,
    ) -> None:
        self._runner = runner
        self._npm = npm_command
        self._npx = npx_command
        self._node_target = node_target
        self._esbuild_package = esbuild_package
        self._pkg_package = pkg_package
        self._install_timeout = install_timeout
        self._bundle_timeout = bundle_timeout
        self._compile_timeout = compile_timeout

    async def build(
        self,
        metadata: PackageMetadata,
        target: BuildTarget,
        workspace: Workspace,
    ) -> BuiltArtifact:
        root = workspace.path
        logger.info(
            "Building npm executable for %s@%s (%s)",
            metadata.name, metadata.version, target.value,
        )

        await self._install(metadata, root)
        entry = await asyncio.to_thread(_locate_entry_point, root, metadata.name)
        bundle = await self._bundle(entry, root)
        output = await self._compile(metadata, target, bundle, root)

        file_size = (await asyncio.to_thread(output.stat)).st_size
        logger.info("Built %s (%d bytes)", output.name, file_size)
        return BuiltArtifact(path=output, file_size=file_size)

    async def _install(self, metadata: PackageMetadata, root: Path) -> None:
        await asyncio.to_thread(
            (root / "package.json").write_text,
            json.dumps(_ISOLATED_PACKAGE_JSON, indent=2),
            "utf-8",
        )
        result = await self._runner.run(
            [
                self._npm, "install",
                f"{metadata.name}@{metadata.version}",
                "--save-exact",
                "--no-package-lock",
                "--omit=dev",
                "--no-audit",
                "--no-fund",
            ],
            cwd=root,
            timeout=self._install_timeout,
            env=_install_env(),
        )
        if not result.is_success:
            raise BuildError(
                BuildFailure.INSTALL_FAILED,
                f"npm install of {metadata.name}@{metadata.version} failed: "
                f"{result.output_tail}",
            )

    async def _bundle(self, entry: Path, root: Path) -> Path:
        bundle = root / BUNDLE_FILENAME
        result = await self._runner.run(
            [
                self._npx, "--yes", f"--package={self._esbuild_package}", "esbuild",
                str(entry),
                "--bundle",
                "--platform=node",
                f"--target={self._node_target}",
                "--format=cjs",
                "--log-level=warning",
                f"--outfile={bundle}",
            ],
            cwd=root,
            timeout=self._bundle_timeout,
            env=_install_env(),
        )
        if not result.is_success:
            raise BuildError(
                BuildFailure.BUNDLE_FAILED,
                f"Bundling {entry.name} failed: {result.output_tail}",
            )
        if not await asyncio.to_thread(bundle.is_file):
            raise BuildError(BuildFailure.BUNDLE_FAILED, "Bundler produced no output file")

        await asyncio.to_thread(_add_interpreter_marker, bundle)
        return bundle

    async def _compile(
        self,
        metadata: PackageMetadata,
        target: BuildTarget,
        bundle: Path,
        root: Path,
    ) -> Path:
        output = root / f"{safe_package_name(metadata.name)}{executable_extension(target)}"
        result = await self._runner.run(
            [
                self._npx, "--yes", f"--package={self._pkg_package}", "pkg",
                str(bundle),
                "--targets", pkg_target(target, self._node_target),
                "--output", str(output),
            ],
            cwd=root,
            timeout=self._compile_timeout,
            env=_install_env(),
        )
        if not result.is_success:
            raise BuildError(
                BuildFailure.COMPILE_FAILED,
                f"pkg compile for {target.value} failed: {result.output_tail}",
            )
        if not await asyncio.to_thread(output.is_file):
            raise BuildError(BuildFailure.COMPILE_FAILED, "Executable was not created")

        if is_unix_like(target):
            await asyncio.to_thread(_make_executable, output)
        return output


def _locate_entry_point(root: Path, package_name: str) -> Path:
    package_dir = root / "node_modules" / package_name
    manifest = package_dir / "package.json"
    if not manifest.is_file():
        raise BuildError(
            BuildFailure.INSTALL_FAILED,
            f"Installed package manifest not found at {manifest}",
        )

    try:
        package_json = json.loads(manifest.read_text(encoding="utf-8"))
    except (UnicodeDecodeError, json.JSONDecodeError) as exc:
        raise BuildError(
            BuildFailure.INSTALL_FAILED,
            f"Unreadable package.json for {package_name}: {exc}",
        ) from exc

    relative = select_entry_point(package_json)
    if relative is None:
        raise BuildError(
            BuildFailure.ENTRY_POINT_MISSING,
            f"Package '{package_name}' declares no executable (no \"bin\" field)",
        )

    entry = (package_dir / relative).resolve()
    if not entry.is_relative_to(package_dir.resolve()) or not entry.is_file():
        raise BuildError(
            BuildFailure.ENTRY_POINT_MISSING,
            f"Declared entry point '{relative}' of '{package_name}' does not exist",
        )
    logger.info("Entry point for %s: %s", package_name, relative)
    return entry


def _add_interpreter_marker(bundle: Path) -> None:
    content = bundle.read_bytes()
    if not content.startswith(b"#!"):
        bundle.write_bytes(NODE_INTERPRETER_MARKER.encode() + content)
    bundle.chmod(0o755)


def _make_executable(path: Path) -> None:
    mode = path.stat().st_mode
    path.chmod(mode | stat.S_IXUSR | stat.S_IXGRP | stat.S_IXOTH | stat.S_IRUSR)
