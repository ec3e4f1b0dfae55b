"""Per-target naming and toolchain conventions."""

import re
import sys
from typing import Optional

from exeforge.packaging.types import BuildTarget

EXECUTABLE_EXTENSIONS: dict[BuildTarget, str] = {
    BuildTarget.WINDOWS: ".exe",
    BuildTarget.MACOS: "",
    BuildTarget.LINUX: "",
}

# Platform token used in pkg target triples, e.g. node18-linux-x64.
PKG_PLATFORMS: dict[BuildTarget, str] = {
    BuildTarget.WINDOWS: "win",
    BuildTarget.MACOS: "macos",
    BuildTarget.LINUX: "linux",
}

PKG_ARCH = "x64"

_SCOPE_CHARS = re.compile(r"[@/\\]")


def executable_extension(target: BuildTarget) -> str:
    return EXECUTABLE_EXTENSIONS[BuildTarget(target)]


def pkg_target(target: BuildTarget, node_target: str = "node18") -> str:
    return f"{node_target}-{PKG_PLATFORMS[BuildTarget(target)]}-{PKG_ARCH}"


def is_unix_like(target: BuildTarget) -> bool:
    return BuildTarget(target) is not BuildTarget.WINDOWS


def safe_package_name(name: str) -> str:
    """Filesystem-safe form of a package name.

    "@scope/pkg" → "_scope_pkg", "left-pad" → "left-pad".
    """
    return _SCOPE_CHARS.sub("_", name)


def artifact_base_name(name: str, version: str, target: BuildTarget) -> str:
    """Stem for a published artifact: ``{name}_{version}_{os}``."""
    return f"{safe_package_name(name)}_{version}_{BuildTarget(target).value}"


def host_target(platform: Optional[str] = None) -> BuildTarget:
    """BuildTarget matching the OS this process runs on."""
    platform = platform or sys.platform
    if platform == "win32":
        return BuildTarget.WINDOWS
    if platform == "darwin":
        return BuildTarget.MACOS
    return BuildTarget.LINUX
