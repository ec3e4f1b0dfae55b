"""Toolchain command execution.

Every external program the build pipeline touches (npm, esbuild, pkg, pip,
pyinstaller) is spawned through a `CommandRunner`. The runner never raises
for a failing command: it always returns a `CommandResult` with the exit
code, captured output and duration, so callers decide which `BuildError`
or `ResolutionError` a failure maps to.

Exit code conventions for failures that never reached the program:
  -1  the step exceeded its timeout and was killed
  -2  the process could not be spawned (missing binary, permissions)

Tests substitute a fake runner implementing the same protocol instead of
patching subprocess internals.
"""

import asyncio
import logging
import time
from dataclasses import dataclass
from pathlib import Path
from typing import Callable, Optional, Protocol, Sequence, runtime_checkable

from exeforge.toolchain.limits import make_resource_limiter

logger = logging.getLogger(__name__)

DEFAULT_TIMEOUT = 300


@dataclass
class CommandResult:
    """Result of a single toolchain invocation.

    A command is successful if exit_code == 0.
    """

    command: str
    exit_code: int
    duration_seconds: float
    stdout: str = ""
    stderr: str = ""

    @property
    def is_success(self) -> bool:
        return self.exit_code == 0

    @property
    def output_tail(self) -> str:
        """Short tail of stderr (or stdout when stderr is empty) for error messages."""
        return truncate_output(self.stderr or self.stdout, max_lines=20, max_chars=1500)


@runtime_checkable
class CommandRunner(Protocol):
    """Protocol for spawning toolchain processes."""

    async def run(
        self,
        args: Sequence[str],
        cwd: Optional[Path] = None,
        timeout: float = DEFAULT_TIMEOUT,
        env: Optional[dict[str, str]] = None,
    ) -> CommandResult:
        """Run `args` to completion and return its captured result."""
        ...  # noqa: PLR6301


class SubprocessRunner:
    """CommandRunner backed by asyncio subprocesses.

    Arguments are passed as an argv list, never through a shell, so package
    names and versions cannot inject shell syntax.
    """

    def __init__(self, preexec_fn: Optional[Callable[[], None]] = None) -> None:
        self._preexec_fn = preexec_fn or make_resource_limiter()

    async def run(
        self,
        args: Sequence[str],
        cwd: Optional[Path] = None,
        timeout: float = DEFAULT_TIMEOUT,
        env: Optional[dict[str, str]] = None,
    ) -> CommandResult:
        command = " ".join(str(a) for a in args)
        logger.info("Running: %s (cwd=%s)", command, cwd)
        start = time.monotonic()

        try:
            proc = await asyncio.create_subprocess_exec(
                *[str(a) for a in args],
                cwd=str(cwd) if cwd else None,
                env=env,
                stdout=asyncio.subprocess.PIPE,
                stderr=asyncio.subprocess.PIPE,
                preexec_fn=self._preexec_fn,
            )
        except OSError as exc:
            result = CommandResult(
                command=command,
                exit_code=-2,
                duration_seconds=time.monotonic() - start,
                stderr=str(exc),
            )
            _log_result(result)
            return result

        try:
            stdout, stderr = await asyncio.wait_for(proc.communicate(), timeout=timeout)
        except asyncio.TimeoutError:
            proc.kill()
            await proc.wait()
            result = CommandResult(
                command=command,
                exit_code=-1,
                duration_seconds=time.monotonic() - start,
                stderr=f"Timed out after {timeout} seconds",
            )
            _log_result(result)
            return result

        result = CommandResult(
            command=command,
            exit_code=proc.returncode if proc.returncode is not None else -2,
            duration_seconds=time.monotonic() - start,
            stdout=stdout.decode("utf-8", errors="replace"),
            stderr=stderr.decode("utf-8", errors="replace"),
        )
        _log_result(result)
        return result


def _log_result(result: CommandResult) -> None:
    status = "OK" if result.is_success else "FAILED"
    logger.info(
        "Command %s (exit=%d, %.1fs): %s",
        status, result.exit_code, result.duration_seconds, result.command,
    )
    if not result.is_success and result.stderr:
        logger.warning("stderr (tail):\n%s", truncate_output(result.stderr))


def truncate_output(text: str, max_lines: int = 60, max_chars: int = 4000) -> str:
    """Return a concise tail of command output for logs."""
    if not text:
        return ""
    lines = text.splitlines()
    tail = lines[-max_lines:]
    joined = "\n".join(tail)
    if len(joined) > max_chars:
        joined = joined[-max_chars:]
    return joined
