"""Subprocess resource limits for toolchain invocations.

`make_resource_limiter()` returns a `preexec_fn`-compatible callable that
sets hard resource limits on a child process after `fork()` and before
`exec()`. The per-step wall-clock timeout in the command runner is the
primary guard; rlimits cap address space and CPU time on top of it.

Platform notes:
  - Linux / macOS: the `resource` module is available and limits apply.
  - Windows: `resource` is unavailable, the limiter is a no-op.

A limit of 0 or less disables that particular cap. npm, esbuild and pkg
run on V8, which reserves far more virtual address space than it touches,
so the address-space cap must stay well above physical need.
"""

import logging
import sys
from typing import Callable, Optional

logger = logging.getLogger(__name__)

_DEFAULT_MEM_LIMIT_BYTES = 12 * 1024 * 1024 * 1024  # 12 GB
_DEFAULT_CPU_LIMIT_SECONDS = 600


def make_resource_limiter(
    memory_bytes: Optional[int] = _DEFAULT_MEM_LIMIT_BYTES,
    cpu_seconds: Optional[int] = _DEFAULT_CPU_LIMIT_SECONDS,
) -> Callable[[], None]:
    """Build a preexec function applying the given caps.

    Usage:
        limiter = make_resource_limiter(memory_bytes=8 * 1024**3)
        await asyncio.create_subprocess_exec(*cmd, preexec_fn=limiter)
    """

    def apply_resource_limits() -> None:
        if sys.platform == "win32":
            return

        try:
            import resource

            if memory_bytes and memory_bytes > 0:
                resource.setrlimit(
                    resource.RLIMIT_AS, (memory_bytes, resource.RLIM_INFINITY)
                )
            if cpu_seconds and cpu_seconds > 0:
                resource.setrlimit(
                    resource.RLIMIT_CPU, (cpu_seconds, resource.RLIM_INFINITY)
                )
        except (ImportError, ValueError, OSError) as exc:
            logger.warning("Failed to apply resource limits: %s", exc)

    return apply_resource_limits
