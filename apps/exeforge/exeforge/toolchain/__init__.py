"""Toolchain process execution.

Public API:
    CommandRunner      — protocol every process launcher implements
    SubprocessRunner   — asyncio subprocess implementation
    CommandResult      — captured exit code / output / duration
"""

from exeforge.toolchain.executor import CommandResult, CommandRunner, SubprocessRunner

__all__ = ["CommandResult", "CommandRunner", "SubprocessRunner"]
