"""Decision orchestrator for one Script Filter invocation.

Receives a CoordinatorState, consults the gate, cache, settle tracker and
lock manager, and returns a Render. No CLI or process concerns here;
cli.py prints the result and worker.py runs detached refreshes.

    too short                  -> keep-typing guidance
    fresh hit                  -> cached items
    fresh error                -> one explanatory row (+ carried items)
    stale, not settled         -> stale items, re-poll
    stale, lock free           -> stale items, launch background refresh
    stale, lock held           -> stale items
    stale, lock unavailable    -> stale items, no refresh, no re-poll
    miss, not settled          -> pending placeholder, re-poll
    miss, lock free            -> foreground fetch with timeout
                                  (timeout: hand lock to worker, pending)
    miss, lock held            -> pending placeholder
    miss, lock unavailable     -> foreground fetch without a lock
                                  (timeout: one error row, no re-poll)
"""

from __future__ import annotations

import asyncio
from enum import StrEnum
from typing import TYPE_CHECKING

import structlog

from typeahead import render
from typeahead.errors import ErrorCode
from typeahead.fetch import FetchOutcome, run_fetch
from typeahead.models.cache import EntryState
from typeahead.models.jobs import RefreshJob
from typeahead.models.lock import AcquireOutcome
from typeahead.models.session import SessionState
from typeahead.query import gate, normalize_query
from typeahead.storage import new_token

if TYPE_CHECKING:
    from datetime import datetime

    from typeahead.models.cache import CacheEntry
    from typeahead.query import Query
    from typeahead.state import CoordinatorState


class CacheStatus(StrEnum):
    FRESH = "fresh"
    FRESH_ERROR = "fresh_error"
    STALE = "stale"
    MISS = "miss"


def classify(entry: CacheEntry | None, now: datetime) -> CacheStatus:
    """Where a cache read lands in the decision table.

    An expired entry only counts as stale when it still has items to show;
    an expired error or empty result is a miss.
    """
    if entry is None:
        return CacheStatus.MISS
    if not entry.is_expired(now):
        return CacheStatus.FRESH if entry.state is EntryState.FRESH else CacheStatus.FRESH_ERROR
    return CacheStatus.STALE if entry.has_items else CacheStatus.MISS


async def handle(raw_query: str, state: CoordinatorState) -> render.Render:
    """Handle one keystroke's invocation."""
    integration = state.integration
    search = state.search
    log = structlog.get_logger().bind(integration=integration.name)

    query = gate(raw_query, integration.name, search, integration.fingerprint)
    if query is None:
        normalized = normalize_query(raw_query, lowercase=search.lowercase)
        log.debug("query_too_short", length=len(normalized), minimum=search.min_query_length)
        return render.too_short(integration.copy, normalized, search.min_query_length)

    log = log.bind(key=query.key)
    now = state.clock()
    entry = state.cache.read(query.key)
    status = classify(entry, now)

    if entry is not None and status is CacheStatus.FRESH:
        # A fresh hit short-circuits settling.
        state.sessions.observe(
            query.normalized, query.key, search.settle_window_seconds, cache_hit=True
        )
        log.info("cache_hit", stale=False)
        return render.items(entry.items, integration.copy)

    if entry is not None and status is CacheStatus.FRESH_ERROR:
        state.sessions.observe(
            query.normalized, query.key, search.settle_window_seconds, cache_hit=True
        )
        log.info("cache_hit", stale=False, error_code=entry.error_code)
        return render.error(
            entry.error_code, entry.error_detail, integration.copy, carried=entry, now=now
        )

    settled = state.sessions.observe(query.normalized, query.key, search.settle_window_seconds)

    if entry is not None and status is CacheStatus.STALE:
        return _handle_stale(query, entry, settled, state, now)
    return await _handle_miss(query, settled, state)


def _handle_stale(
    query: Query,
    entry: CacheEntry,
    settled: bool,
    state: CoordinatorState,
    now: datetime,
) -> render.Render:
    """Render stale items immediately; refresh in a detached process when possible."""
    log = structlog.get_logger().bind(integration=state.integration.name, key=query.key)
    rerun = state.search.rerun_seconds

    if not settled:
        log.info("cache_hit", stale=True, settled=False)
        return render.stale(entry, now, refreshing=False, rerun=rerun)

    token = new_token()
    outcome = state.locks.try_acquire(query.key, token, state.search.lock_liveness_seconds)
    if outcome is AcquireOutcome.UNAVAILABLE:
        # No lock to hand a worker, so no background refresh either.
        log.warning("cache_hit", stale=True, lock=outcome)
        return render.stale(entry, now, refreshing=False, rerun=None)
    if not outcome.owned:
        log.info("cache_hit", stale=True, lock=outcome)
        return render.stale(entry, now, refreshing=True, rerun=rerun)

    log.info("cache_hit", stale=True, lock=outcome)
    launched = _launch_refresh(query, token, state)
    return render.stale(entry, now, refreshing=launched, rerun=rerun if launched else None)


async def _handle_miss(
    query: Query,
    settled: bool,
    state: CoordinatorState,
) -> render.Render:
    """No usable cache: fetch in the foreground under a bounded timeout."""
    log = structlog.get_logger().bind(integration=state.integration.name, key=query.key)
    copy = state.integration.copy
    rerun = state.search.rerun_seconds

    if not settled:
        log.info("cache_miss", settled=False)
        return render.pending(copy, rerun)

    token = new_token()
    outcome = state.locks.try_acquire(query.key, token, state.search.lock_liveness_seconds)
    unlocked = outcome is AcquireOutcome.UNAVAILABLE
    if not outcome.owned and not unlocked:
        log.info("cache_miss", lock=outcome)
        return render.pending(copy, rerun)

    log.info("cache_miss_fetching", lock=outcome)
    state.sessions.mark(query.key, SessionState.FETCH_TRIGGERED)
    result = await _fetch_in_foreground(query, None if unlocked else token, state)

    if result is None:
        if unlocked:
            return render.error(ErrorCode.BACKEND_TIMEOUT, None, copy)
        # The lock is still ours; the worker adopts it by token.
        _launch_refresh(query, token, state)
        return render.pending(copy, rerun)

    if result.error is not None:
        return render.error(result.error.code, result.error.message, copy)
    return render.items(result.items or [], copy)


async def _fetch_in_foreground(
    query: Query,
    owner_token: str | None,
    state: CoordinatorState,
) -> FetchOutcome | None:
    """Run the fetch with a hard wall-clock timeout. Returns None on timeout."""
    timeout = state.search.foreground_timeout_seconds
    try:
        return await asyncio.wait_for(run_fetch(state, query, owner_token), timeout=timeout)
    except TimeoutError:
        structlog.get_logger().warning(
            "fetch_timeout",
            integration=state.integration.name,
            key=query.key,
            timeout=timeout,
        )
        return None


def _launch_refresh(query: Query, owner_token: str, state: CoordinatorState) -> bool:
    """Hand a held lock to a detached worker. Releases the lock if that fails."""
    log = structlog.get_logger().bind(integration=state.integration.name, key=query.key)
    if not state.integration.import_path:
        log.warning("background_fetch_unavailable", reason="integration_not_importable")
        state.locks.release(query.key, owner_token)
        return False

    job = RefreshJob(
        integration=state.integration.import_path,
        raw_query=query.raw,
        normalized=query.normalized,
        key=query.key,
        owner_token=owner_token,
    )
    if state.launcher.launch(job):
        state.sessions.mark(query.key, SessionState.FETCH_TRIGGERED)
        return True

    state.locks.release(query.key, owner_token)
    return False
