"""Run one backend fetch under a held lock: heartbeat, commit, release.

Shared by the foreground path (wrapped in a timeout by the coordinator) and
the detached worker. Cancellation (foreground timeout) deliberately leaves
the lock in place so ownership can be handed to a worker by token.

When the lock directory is unusable the coordinator passes no owner token:
the fetch then runs without heartbeats, ownership checks or release, and
still attempts the cache commit.
"""

from __future__ import annotations

import asyncio
from dataclasses import dataclass
from typing import TYPE_CHECKING

import structlog

from typeahead.errors import ErrorCode, FetchError
from typeahead.models.session import SessionState

if TYPE_CHECKING:
    from typeahead.models.items import Item
    from typeahead.query import Query
    from typeahead.state import CoordinatorState


@dataclass(frozen=True)
class FetchOutcome:
    items: list[Item] | None = None
    error: FetchError | None = None
    persisted: bool = False
    superseded: bool = False  # Lock was lost mid-fetch; nothing was committed

    @property
    def ok(self) -> bool:
        return self.error is None


async def run_fetch(
    state: CoordinatorState, query: Query, owner_token: str | None
) -> FetchOutcome:
    """Call the integration's fetcher and record the result for ``query.key``."""
    log = structlog.get_logger().bind(integration=state.integration.name, key=query.key)
    log.info("fetch_started", query=query.normalized, locked=owner_token is not None)

    items: list[Item] | None = None
    error: FetchError | None = None
    heartbeat = (
        asyncio.create_task(_heartbeat_loop(state, query.key, owner_token))
        if owner_token is not None
        else None
    )
    try:
        items = await state.integration.fetcher.fetch(query.normalized, state.search)
    except FetchError as exc:
        error = exc
    except Exception as exc:
        log.error("fetch_unexpected_error", exc_info=True)
        error = FetchError(
            code=ErrorCode.BACKEND_TRANSPORT,
            message=f"Unexpected fetch failure: {exc}",
            suggestion="Check the workflow log for details.",
        )
    finally:
        if heartbeat is not None:
            await _stop_heartbeat(heartbeat)

    if owner_token is not None and not state.locks.is_owner(query.key, owner_token):
        log.warning("fetch_superseded", reason="lock_lost")
        state.sessions.mark(query.key, SessionState.SUPERSEDED)
        return FetchOutcome(items=items, error=error, superseded=True)

    if error is None:
        items = list(items or [])
        persisted = state.cache.commit(
            query.key, query.normalized, items, state.search.fresh_ttl_seconds
        )
        state.sessions.mark(query.key, SessionState.COMMITTED)
        log.info("fetch_complete", items=len(items), persisted=persisted)
    else:
        persisted = state.cache.commit_error(
            query.key, query.normalized, error, state.search.error_ttl_seconds
        )
        state.sessions.mark(query.key, SessionState.FAILED)
        log.warning("fetch_failed", code=error.code, message=error.message, persisted=persisted)

    if owner_token is not None:
        state.locks.release(query.key, owner_token)
    return FetchOutcome(items=items, error=error, persisted=persisted)


async def _stop_heartbeat(heartbeat: asyncio.Task[None]) -> None:
    heartbeat.cancel()
    try:
        await heartbeat
    except asyncio.CancelledError:
        # Only the heartbeat's own cancellation is absorbed; a timeout or
        # shutdown cancelling this task keeps propagating.
        current = asyncio.current_task()
        if current is not None and current.cancelling():
            raise


async def _heartbeat_loop(state: CoordinatorState, key: str, owner_token: str) -> None:
    """Keep the lock live until cancelled, the lock is lost, or ``max_fetch_seconds`` passes.

    Stopping after ``max_fetch_seconds`` lets a hung fetch's lock go stale so a
    later invocation can reclaim it.
    """
    log = structlog.get_logger().bind(key=key)
    loop = asyncio.get_running_loop()
    deadline = loop.time() + state.search.max_fetch_seconds
    while True:
        await asyncio.sleep(state.search.heartbeat_interval_seconds)
        if loop.time() >= deadline:
            log.warning("heartbeat_stopped", reason="max_fetch_seconds")
            return
        if not state.locks.heartbeat(key, owner_token):
            log.warning("heartbeat_stopped", reason="lock_lost")
            return
