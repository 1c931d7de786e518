"""Foreground entrypoint invoked by the launcher on every keystroke.

Responsibilities (and nothing more):
- Configure structlog
- Resolve the query from argv, the launcher environment, or stdin
- Load the integration and build CoordinatorState
- Print exactly one Script Filter JSON document on stdout and exit 0

stdout is reserved for the render contract; logs go to stderr.
"""

from __future__ import annotations

import argparse
import asyncio
import logging
import os
import sys
from typing import TYPE_CHECKING, TextIO

import structlog
from pydantic import ValidationError

from typeahead import __version__, coordinator, render
from typeahead.config import Settings
from typeahead.errors import TypeaheadError
from typeahead.integration import load_integration
from typeahead.state import build_state
from typeahead.storage import utcnow

if TYPE_CHECKING:
    from collections.abc import Sequence

    from typeahead.protocols import LauncherProtocol
    from typeahead.storage import Clock

log = structlog.get_logger()

_QUERY_ENV_VARS = ("alfred_workflow_query", "ALFRED_WORKFLOW_QUERY")


# ---------------------------------------------------------------------------
# Logging setup
# ---------------------------------------------------------------------------


def setup_logging(settings: Settings, *, file: TextIO | None = None) -> None:
    """Configure structlog. Called once per process before any log statements."""
    log_level = logging.getLevelNamesMapping()[settings.logging.level]

    shared_processors: list[structlog.types.Processor] = [
        structlog.contextvars.merge_contextvars,
        structlog.processors.add_log_level,
        structlog.processors.StackInfoRenderer(),
        structlog.processors.format_exc_info,
        structlog.processors.TimeStamper(fmt="iso"),
    ]

    if settings.logging.format == "json":
        processors = [*shared_processors, structlog.processors.JSONRenderer()]
    else:
        processors = [*shared_processors, structlog.dev.ConsoleRenderer()]

    structlog.configure(
        processors=processors,
        wrapper_class=structlog.make_filtering_bound_logger(log_level),
        context_class=dict,
        # stdout is reserved for the Script Filter JSON
        logger_factory=structlog.PrintLoggerFactory(file=file or sys.stderr),
        cache_logger_on_first_use=True,
    )


# ---------------------------------------------------------------------------
# Query input
# ---------------------------------------------------------------------------


def resolve_query_input(words: Sequence[str], stdin: TextIO | None = None) -> str:
    """Query from argv, else the launcher's environment, else piped stdin."""
    query = " ".join(words)
    if query == "(null)":
        # Some launchers pass a literal "(null)" for an empty query.
        query = ""
    if query:
        return query

    for name in _QUERY_ENV_VARS:
        value = os.environ.get(name, "")
        if value:
            return value

    stream = stdin if stdin is not None else sys.stdin
    if stream is not None and not stream.isatty():
        return stream.read()
    return ""


# ---------------------------------------------------------------------------
# Commands
# ---------------------------------------------------------------------------


async def run_search(
    spec: str,
    raw_query: str,
    settings: Settings,
    *,
    clock: Clock = utcnow,
    launcher: LauncherProtocol | None = None,
) -> render.Render:
    """Load ``spec`` and run one coordinator pass. Never raises."""
    try:
        integration = load_integration(spec, settings)
    except TypeaheadError as exc:
        log.warning("integration_error", code=exc.code, message=exc.message)
        return render.failure("Workflow configuration error", exc.message)

    try:
        state = build_state(settings, integration, clock=clock, launcher=launcher)
        return await coordinator.handle(raw_query, state)
    except TypeaheadError as exc:
        log.warning("search_error", code=exc.code, message=exc.message)
        return render.failure("Workflow configuration error", f"{exc.message} {exc.suggestion}")
    except Exception:
        log.error("search_unexpected_error", integration=integration.name, exc_info=True)
        return render.failure("Search failed", "An unexpected error occurred. See the workflow log.")
    finally:
        await integration.fetcher.aclose()


async def run_clear(spec: str, settings: Settings) -> render.Render:
    """Remove one namespace's cache, locks and session. Never raises."""
    try:
        integration = load_integration(spec, settings)
    except TypeaheadError as exc:
        log.warning("integration_error", code=exc.code, message=exc.message)
        return render.failure("Workflow configuration error", exc.message)

    try:
        state = build_state(settings, integration)
        removed = state.cache.clear()
        state.locks.clear()
        state.sessions.clear()
    except TypeaheadError as exc:
        return render.failure("Workflow configuration error", f"{exc.message} {exc.suggestion}")
    finally:
        await integration.fetcher.aclose()

    log.info("cache_cleared", integration=integration.name, removed=removed)
    return render.info(
        "Cache cleared",
        f"Removed {removed} cached file(s) for {integration.copy.display_name}.",
    )


# ---------------------------------------------------------------------------
# Entrypoint
# ---------------------------------------------------------------------------


def _build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="typeahead",
        description="Debounced, cached search for process-per-keystroke launchers.",
    )
    parser.add_argument("--version", action="version", version=f"%(prog)s {__version__}")
    subparsers = parser.add_subparsers(dest="command", required=True)

    search = subparsers.add_parser("search", help="Render results for one keystroke.")
    search.add_argument(
        "--integration",
        "-i",
        required=True,
        help="Built-in name (e.g. 'wikipedia') or 'package.module:factory'.",
    )
    search.add_argument("query", nargs="*", help="Query text (defaults to env or stdin).")

    clear = subparsers.add_parser("clear", help="Delete cached results for an integration.")
    clear.add_argument("--integration", "-i", required=True)
    return parser


def main(argv: Sequence[str] | None = None) -> int:
    args = _build_parser().parse_args(argv)

    try:
        settings = Settings()
    except ValidationError as exc:
        result = render.failure(
            "Workflow configuration error",
            f"Invalid settings ({exc.error_count()} error(s)). Check TYPEAHEAD__ variables.",
        )
        sys.stdout.write(result.to_json() + "\n")
        return 0

    setup_logging(settings)

    if args.command == "clear":
        result = asyncio.run(run_clear(args.integration, settings))
    else:
        raw_query = resolve_query_input(args.query)
        result = asyncio.run(run_search(args.integration, raw_query, settings))

    sys.stdout.write(result.to_json() + "\n")
    sys.stdout.flush()
    return 0


if __name__ == "__main__":
    sys.exit(main())
