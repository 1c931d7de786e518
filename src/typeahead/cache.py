"""File-backed result cache with stale-while-revalidate.

One JSON record per key under ``<namespace>/cache/<key>.entry``, replaced
atomically on every commit.

All cache operations catch ``OSError`` and validation errors internally and
degrade gracefully: read failures return ``None`` (treated as cache miss by
callers), write failures are logged and reported as ``False`` (fetched items
are still rendered). Infrastructure errors never cross the CacheStore class
boundary. They are still logged with ``exc_info=True`` so they remain
observable.
"""

from __future__ import annotations

from datetime import timedelta
from typing import TYPE_CHECKING

import structlog
from pydantic import ValidationError

from typeahead.models.cache import CacheEntry, EntryState
from typeahead.storage import atomic_write_bytes, remove_tree_files, utcnow

if TYPE_CHECKING:
    from datetime import datetime
    from pathlib import Path

    from typeahead.errors import FetchError
    from typeahead.models.items import Item
    from typeahead.storage import Clock

log = structlog.get_logger()


class CacheStore:
    """Per-namespace cache implementing CacheProtocol."""

    def __init__(self, root: Path, *, clock: Clock = utcnow) -> None:
        self._dir = root / "cache"
        self._clock = clock

    def path_for(self, key: str) -> Path:
        return self._dir / f"{key}.entry"

    def read(self, key: str) -> CacheEntry | None:
        """Read an entry. Returns ``None`` on cache miss, corruption or read failure."""
        path = self.path_for(key)
        try:
            raw = path.read_bytes()
        except FileNotFoundError:
            return None
        except OSError:
            log.warning("cache_read_error", key=key, exc_info=True)
            return None

        try:
            entry = CacheEntry.model_validate_json(raw)
        except ValidationError:
            log.warning("cache_entry_corrupt", key=key, path=str(path))
            return None

        if entry.key != key:
            log.warning("cache_entry_key_mismatch", key=key, stored_key=entry.key)
            return None
        return entry

    def is_fresh(self, entry: CacheEntry, now: datetime) -> bool:
        return entry.state is EntryState.FRESH and not entry.is_expired(now)

    def commit(self, key: str, query: str, items: list[Item], ttl_seconds: float) -> bool:
        """Persist a successful fetch. Non-fatal on failure."""
        previous = self.read(key)
        fetched_at = self._next_fetched_at(previous)
        entry = CacheEntry(
            key=key,
            query=query,
            items=items,
            fetched_at=fetched_at,
            expires_at=fetched_at + timedelta(seconds=ttl_seconds),
            state=EntryState.FRESH,
            items_fetched_at=fetched_at,
        )
        return self._write(entry)

    def commit_error(
        self,
        key: str,
        query: str,
        error: FetchError,
        ttl_seconds: float,
    ) -> bool:
        """Persist a failed fetch, carrying forward any previously good items."""
        previous = self.read(key)
        fetched_at = self._next_fetched_at(previous)
        entry = CacheEntry(
            key=key,
            query=query,
            items=previous.items if previous is not None else [],
            fetched_at=fetched_at,
            expires_at=fetched_at + timedelta(seconds=ttl_seconds),
            state=EntryState.ERROR,
            error_code=error.code,
            error_detail=error.message,
            items_fetched_at=previous.items_fetched_at if previous is not None else None,
        )
        return self._write(entry)

    def clear(self) -> int:
        """Delete every entry in this namespace. Returns the number of files removed."""
        try:
            return remove_tree_files(self._dir, "*.entry") + remove_tree_files(self._dir, ".*.tmp")
        except OSError:
            log.warning("cache_clear_error", path=str(self._dir), exc_info=True)
            return 0

    def _next_fetched_at(self, previous: CacheEntry | None) -> datetime:
        now = self._clock()
        if previous is not None and previous.fetched_at > now:
            # Clock skew between processes must not move a key's timestamp backwards.
            return previous.fetched_at
        return now

    def _write(self, entry: CacheEntry) -> bool:
        try:
            atomic_write_bytes(self.path_for(entry.key), entry.model_dump_json().encode("utf-8"))
        except OSError:
            log.warning("cache_write_error", key=entry.key, state=entry.state, exc_info=True)
            return False
        log.debug(
            "cache_committed",
            key=entry.key,
            state=entry.state,
            items=len(entry.items),
            fetched_at=entry.fetched_at.isoformat(),
        )
        return True
