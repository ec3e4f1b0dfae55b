"""Tests for the PyPI resolver.

Local introspection is patched at the importlib.metadata seam; the
throwaway-venv path runs against a FakeRunner, so no environment is ever
created and no index is contacted.
"""

import json
from importlib import metadata as importlib_metadata
from unittest.mock import patch

import pytest

from exeforge.resolver.pip import PipResolver
from exeforge.resolver.types import (
    DEFAULT_DESCRIPTION,
    PackageResolver,
    PackageSpec,
    ResolutionError,
    ResolutionFailure,
)
from fakes import FakeRunner, failed, ok

_PATCH_TARGET = "exeforge.resolver.pip.importlib_metadata.metadata"


def _not_installed(name):
    raise importlib_metadata.PackageNotFoundError(name)


def _installed(**fields):
    def lookup(name):
        return {
            "Name": fields.get("Name", name),
            "Version": fields.get("Version", "1.0.0"),
            "Summary": fields.get("Summary"),
            "Keywords": fields.get("Keywords"),
        }

    return lookup


def _venv_handler(show_output: str, install=None, show=None):
    def handler(args, cwd, env):
        if args[1:3] == ["-m", "venv"]:
            return ok()
        if "install" in args:
            return install or ok()
        if args[1] == "-c":
            return show or ok(stdout=show_output)
        raise AssertionError(f"unexpected command {args}")

    return handler


class TestLocalIntrospection:
    async def test_installed_package_resolves_without_subprocess(self, fake_runner, workspaces):
        resolver = PipResolver(fake_runner, workspaces, python_executable="python3")

        with patch(
            _PATCH_TARGET,
            side_effect=_installed(
                Name="requests", Version="2.31.0", Summary="HTTP for Humans.", Keywords=None
            ),
        ):
            metadata = await resolver.resolve(PackageSpec("requests", "pip"))

        assert metadata.name == "requests"
        assert metadata.version == "2.31.0"
        assert metadata.description == "HTTP for Humans."
        assert metadata.keywords == ()
        assert fake_runner.calls == []
        assert not workspaces.root.exists() or list(workspaces.root.iterdir()) == []

    async def test_matching_exact_version_uses_local(self, fake_runner, workspaces):
        resolver = PipResolver(fake_runner, workspaces, python_executable="python3")

        with patch(_PATCH_TARGET, side_effect=_installed(Version="2.31.0")):
            metadata = await resolver.resolve(PackageSpec("requests", "pip", "2.31.0"))

        assert metadata.version == "2.31.0"
        assert fake_runner.calls == []

    async def test_version_mismatch_falls_through_to_venv(self, workspaces):
        output = json.dumps({"name": "requests", "version": "2.0.0", "summary": None, "keywords": None})
        runner = FakeRunner(_venv_handler(output))
        resolver = PipResolver(runner, workspaces, python_executable="python3")

        with patch(_PATCH_TARGET, side_effect=_installed(Version="2.31.0")):
            metadata = await resolver.resolve(PackageSpec("requests", "pip", "2.0.0"))

        assert metadata.version == "2.0.0"
        assert len(runner.calls) == 3


class TestVenvResolution:
    async def test_latest_resolves_through_venv(self, workspaces):
        output = json.dumps(
            {
                "name": "black",
                "version": "24.1.0",
                "summary": "The uncompromising code formatter.",
                "keywords": "automation,formatter,yapf,autopep8",
            }
        )
        runner = FakeRunner(_venv_handler("noise\n" + output + "\n"))
        resolver = PipResolver(runner, workspaces, python_executable="python3")

        with patch(_PATCH_TARGET, side_effect=_not_installed):
            metadata = await resolver.resolve(PackageSpec("black", "pip"))

        assert metadata.name == "black"
        assert metadata.version == "24.1.0"
        assert metadata.description == "The uncompromising code formatter."
        assert metadata.keywords == ("automation", "formatter", "yapf", "autopep8")

        venv, install, show = runner.commands()
        assert venv[:3] == ["python3", "-m", "venv"]
        assert "--no-deps" in install
        assert install[-1] == "black"
        assert show[-1] == "black"

    async def test_exact_version_is_pinned(self, workspaces):
        output = json.dumps({"name": "black", "version": "23.1.0"})
        runner = FakeRunner(_venv_handler(output))
        resolver = PipResolver(runner, workspaces, python_executable="python3")

        with patch(_PATCH_TARGET, side_effect=_not_installed):
            await resolver.resolve(PackageSpec("black", "pip", "23.1.0"))

        assert runner.commands()[1][-1] == "black==23.1.0"

    async def test_missing_summary_gets_placeholder(self, workspaces):
        runner = FakeRunner(_venv_handler(json.dumps({"name": "tiny", "version": "0.1"})))
        resolver = PipResolver(runner, workspaces, python_executable="python3")

        with patch(_PATCH_TARGET, side_effect=_not_installed):
            metadata = await resolver.resolve(PackageSpec("tiny", "pip"))

        assert metadata.description == DEFAULT_DESCRIPTION

    async def test_workspace_released_afterwards(self, workspaces):
        runner = FakeRunner(_venv_handler(json.dumps({"name": "tiny", "version": "0.1"})))
        resolver = PipResolver(runner, workspaces, python_executable="python3")

        with patch(_PATCH_TARGET, side_effect=_not_installed):
            await resolver.resolve(PackageSpec("tiny", "pip"))

        assert list(workspaces.root.iterdir()) == []

    async def test_no_matching_distribution_is_not_found(self, workspaces):
        install = failed(
            stderr="ERROR: Could not find a version that satisfies the requirement nope-xyz\n"
            "ERROR: No matching distribution found for nope-xyz"
        )
        runner = FakeRunner(_venv_handler("", install=install))
        resolver = PipResolver(runner, workspaces, python_executable="python3")

        with patch(_PATCH_TARGET, side_effect=_not_installed):
            with pytest.raises(ResolutionError) as exc_info:
                await resolver.resolve(PackageSpec("nope-xyz", "pip"))

        assert exc_info.value.reason is ResolutionFailure.NOT_FOUND
        assert list(workspaces.root.iterdir()) == []

    async def test_network_failure_is_unreachable(self, workspaces):
        install = failed(stderr="ERROR: Could not install packages due to an OSError: Connection refused")
        runner = FakeRunner(_venv_handler("", install=install))
        resolver = PipResolver(runner, workspaces, python_executable="python3")

        with patch(_PATCH_TARGET, side_effect=_not_installed):
            with pytest.raises(ResolutionError) as exc_info:
                await resolver.resolve(PackageSpec("black", "pip"))

        assert exc_info.value.reason is ResolutionFailure.REGISTRY_UNREACHABLE

    async def test_venv_creation_failure_is_unreachable(self, workspaces):
        def handler(args, cwd, env):
            return failed(stderr="ensurepip is not available")

        runner = FakeRunner(handler)
        resolver = PipResolver(runner, workspaces, python_executable="python3")

        with patch(_PATCH_TARGET, side_effect=_not_installed):
            with pytest.raises(ResolutionError) as exc_info:
                await resolver.resolve(PackageSpec("black", "pip"))

        assert exc_info.value.reason is ResolutionFailure.REGISTRY_UNREACHABLE
        assert len(runner.calls) == 1

    async def test_distribution_missing_after_install_is_not_found(self, workspaces):
        runner = FakeRunner(_venv_handler("", show=failed(stderr="", exit_code=3)))
        resolver = PipResolver(runner, workspaces, python_executable="python3")

        with patch(_PATCH_TARGET, side_effect=_not_installed):
            with pytest.raises(ResolutionError) as exc_info:
                await resolver.resolve(PackageSpec("Weird_Name", "pip"))

        assert exc_info.value.reason is ResolutionFailure.NOT_FOUND
        assert "weird-name" in str(exc_info.value)

    async def test_unreadable_metadata_output(self, workspaces):
        runner = FakeRunner(_venv_handler("not json"))
        resolver = PipResolver(runner, workspaces, python_executable="python3")

        with patch(_PATCH_TARGET, side_effect=_not_installed):
            with pytest.raises(ResolutionError) as exc_info:
                await resolver.resolve(PackageSpec("black", "pip"))

        assert exc_info.value.reason is ResolutionFailure.REGISTRY_UNREACHABLE

    async def test_workspace_failure_is_unreachable(self, tmp_path, fake_runner):
        from exeforge.sandbox.workspace import WorkspaceManager

        blocker = tmp_path / "file"
        blocker.write_text("x")
        resolver = PipResolver(fake_runner, WorkspaceManager(blocker), python_executable="python3")

        with patch(_PATCH_TARGET, side_effect=_not_installed):
            with pytest.raises(ResolutionError) as exc_info:
                await resolver.resolve(PackageSpec("black", "pip"))

        assert exc_info.value.reason is ResolutionFailure.REGISTRY_UNREACHABLE
        assert fake_runner.calls == []


def test_satisfies_protocol(fake_runner, workspaces):
    assert isinstance(PipResolver(fake_runner, workspaces), PackageResolver)
