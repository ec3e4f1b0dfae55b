"""Test doubles shared across the suite."""

from collections.abc import Callable
from pathlib import Path
from typing import Optional, Sequence

from exeforge.toolchain.executor import CommandResult


def ok(stdout: str = "", stderr: str = "") -> CommandResult:
    return CommandResult(command="", exit_code=0, duration_seconds=0.0, stdout=stdout, stderr=stderr)


def failed(stderr: str = "boom", exit_code: int = 1, stdout: str = "") -> CommandResult:
    return CommandResult(
        command="", exit_code=exit_code, duration_seconds=0.0, stdout=stdout, stderr=stderr
    )


Handler = Callable[[list[str], Optional[Path], Optional[dict]], CommandResult]


class FakeRunner:
    """CommandRunner double.

    `handler(args, cwd, env)` decides the result of each call and may create
    files to mimic a tool's side effects. Without a handler every call
    succeeds with empty output.
    """

    def __init__(self, handler: Optional[Handler] = None) -> None:
        self.handler = handler
        self.calls: list[dict] = []

    async def run(
        self,
        args: Sequence[str],
        cwd: Optional[Path] = None,
        timeout: float = 300,
        env: Optional[dict[str, str]] = None,
    ) -> CommandResult:
        argv = [str(a) for a in args]
        self.calls.append({"args": argv, "cwd": cwd, "timeout": timeout, "env": env})
        if self.handler is None:
            return ok()
        return self.handler(argv, cwd, env)

    def commands(self) -> list[list[str]]:
        return [c["args"] for c in self.calls]
