"""Detached refresh worker.

Spawned by the launcher as ``python -m typeahead.worker --job '<json>'``.
The job carries the lock token the foreground process acquired; the worker
adopts that lock, runs the fetch, commits, and releases. stderr is already
redirected to the namespace's ``worker.log`` by the launcher.
"""

from __future__ import annotations

import argparse
import asyncio
import sys
from typing import TYPE_CHECKING

import structlog
from pydantic import ValidationError

from typeahead.cli import setup_logging
from typeahead.config import Settings
from typeahead.errors import TypeaheadError
from typeahead.fetch import run_fetch
from typeahead.integration import load_integration
from typeahead.models.jobs import RefreshJob
from typeahead.query import Query
from typeahead.state import build_state

if TYPE_CHECKING:
    from collections.abc import Sequence

    from typeahead.fetch import FetchOutcome
    from typeahead.state import CoordinatorState

log = structlog.get_logger()


async def run_job(job: RefreshJob, state: CoordinatorState) -> FetchOutcome | None:
    """Fetch for a handed-off lock. Returns None if the lock is no longer ours."""
    job_log = log.bind(integration=state.integration.name, key=job.key)
    try:
        # Also refreshes the heartbeat covering the process start-up gap.
        if not state.locks.heartbeat(job.key, job.owner_token):
            job_log.info("job_superseded")
            return None
        query = Query(raw=job.raw_query, normalized=job.normalized, key=job.key)
        return await run_fetch(state, query, job.owner_token)
    finally:
        await state.integration.fetcher.aclose()


def main(argv: Sequence[str] | None = None) -> int:
    parser = argparse.ArgumentParser(prog="typeahead.worker")
    parser.add_argument("--job", required=True, help="RefreshJob as JSON.")
    args = parser.parse_args(argv)

    try:
        job = RefreshJob.model_validate_json(args.job)
        settings = Settings()
    except ValidationError as exc:
        sys.stderr.write(f"typeahead.worker: invalid job or settings: {exc}\n")
        return 2

    setup_logging(settings)

    try:
        integration = load_integration(job.integration, settings)
        state = build_state(settings, integration)
    except TypeaheadError as exc:
        # The lock goes stale after its liveness timeout and is reclaimed.
        log.error("job_failed", key=job.key, code=exc.code, message=exc.message)
        return 1

    outcome = asyncio.run(run_job(job, state))
    if outcome is not None and not outcome.ok:
        return 1
    return 0


if __name__ == "__main__":
    sys.exit(main())
