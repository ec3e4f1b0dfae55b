"""Command-line entry point.

    python -m exeforge build NAME --ecosystem npm --os linux [--version X]
    python -m exeforge list [--page N] [--limit N]

Both commands print JSON to stdout; logs go to stderr. `build` exits 1
when the outcome is a failure. Invalid paging and persistence failures
exit 2.
"""

import argparse
import asyncio
import json
import logging
import sys
from typing import Optional, Sequence

from exeforge.bootstrap import create_service
from exeforge.cache.repository import MAX_PAGE_SIZE, PersistenceError
from exeforge.core.config import get_settings
from exeforge.core.logging import configure_structlog
from exeforge.packaging.types import BuildTarget
from exeforge.resolver.types import Ecosystem

logger = logging.getLogger(__name__)


def _parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="exeforge",
        description="Build standalone executables from npm and PyPI packages.",
    )
    sub = parser.add_subparsers(dest="command", required=True)

    build = sub.add_parser("build", help="Build (or fetch from cache) an executable")
    build.add_argument("name", help="Package name, e.g. cowsay or @scope/tool")
    build.add_argument(
        "--ecosystem", required=True, choices=[e.value for e in Ecosystem]
    )
    build.add_argument(
        "--os", dest="target", required=True, choices=[t.value for t in BuildTarget]
    )
    build.add_argument("--version", dest="package_version", default=None)

    listing = sub.add_parser("list", help="List cached executables by popularity")
    listing.add_argument("--page", type=int, default=1)
    listing.add_argument("--limit", type=int, default=10)
    return parser


async def _build(args: argparse.Namespace) -> int:
    service = await create_service()
    try:
        outcome = await service.orchestrator.build(
            args.name, args.ecosystem, args.target, args.package_version
        )
    finally:
        await service.aclose()
    print(json.dumps(outcome.to_dict(), indent=2))
    return 0 if outcome.success else 1


async def _list(args: argparse.Namespace) -> int:
    if args.page < 1 or not 1 <= args.limit <= MAX_PAGE_SIZE:
        print(f"--page must be >= 1 and --limit between 1 and {MAX_PAGE_SIZE}", file=sys.stderr)
        return 2
    service = await create_service()
    try:
        page = await service.cache.list_page(args.page, args.limit)
    finally:
        await service.aclose()
    print(json.dumps(page.model_dump(mode="json"), indent=2))
    return 0


def main(argv: Optional[Sequence[str]] = None) -> int:
    args = _parser().parse_args(argv)
    settings = get_settings()
    configure_structlog(debug=settings.debug, stream=sys.stderr)

    handler = _build if args.command == "build" else _list
    try:
        return asyncio.run(handler(args))
    except PersistenceError as exc:
        logger.error("Cache store unavailable: %s", exc)
        return 2


if __name__ == "__main__":
    sys.exit(main())
