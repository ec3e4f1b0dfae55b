"""Structured logging via structlog.

Configures structlog once at process startup. Library modules keep using
``logging.getLogger(__name__)``; the stdlib bridge routes their output to
the same stream.

Renderer selection:
  debug=True  — `ConsoleRenderer` with colours for local development.
  debug=False — `JSONRenderer` for machine-parseable logs in production.

ContextVar injection:
  The orchestrator binds the cache key of the request it is serving to
  `_build_key_var`. Every structlog event emitted while that request runs
  carries a `build_key` field, so interleaved builds stay distinguishable.
"""

from __future__ import annotations

import logging
import sys
from contextlib import contextmanager
from contextvars import ContextVar
from typing import IO, Iterator, Optional

import structlog

_build_key_var: ContextVar[str] = ContextVar("build_key", default="")


def get_build_key() -> str:
    """Return the build key bound to the current task, or empty string."""
    return _build_key_var.get()


@contextmanager
def bound_build_key(build_key: str) -> Iterator[None]:
    """Bind `build_key` for the duration of the block."""
    token = _build_key_var.set(build_key)
    try:
        yield
    finally:
        _build_key_var.reset(token)


def _inject_context_vars(
    logger: logging.Logger,
    method: str,
    event_dict: dict,
) -> dict:
    """Structlog processor: inject build_key from the ContextVar."""
    build_key = get_build_key()
    if build_key:
        event_dict["build_key"] = build_key
    return event_dict


def configure_structlog(debug: bool = True, stream: Optional[IO[str]] = None) -> None:
    """Configure structlog for the process lifetime.

    Safe to call more than once; the last call wins. Output goes to
    `stream`, stdout by default.
    """
    stream = stream or sys.stdout
    shared_processors: list = [
        structlog.stdlib.add_log_level,
        structlog.processors.TimeStamper(fmt="iso"),
        _inject_context_vars,
        structlog.processors.StackInfoRenderer(),
        structlog.processors.format_exc_info,
    ]

    if debug:
        renderer = structlog.dev.ConsoleRenderer()
    else:
        renderer = structlog.processors.JSONRenderer()

    structlog.configure(
        processors=shared_processors + [renderer],
        wrapper_class=structlog.make_filtering_bound_logger(logging.DEBUG),
        context_class=dict,
        logger_factory=structlog.WriteLoggerFactory(file=stream),
        cache_logger_on_first_use=True,
    )

    # Bridge stdlib logging so SQLAlchemy, httpx and our own module
    # loggers land in the same stream.
    logging.basicConfig(
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
        stream=stream,
        level=logging.DEBUG if debug else logging.INFO,
    )
