from __future__ import annotations

from datetime import datetime
from enum import StrEnum

from pydantic import BaseModel

from typeahead.errors import ErrorCode
from typeahead.models.items import Item


class EntryState(StrEnum):
    FRESH = "fresh"
    ERROR = "error"


class CacheEntry(BaseModel):
    """One persisted cache record (``cache/<key>.entry``).

    Staleness is derived at read time from ``expires_at``; it is never stored.
    """

    key: str
    query: str  # Normalized query text that produced this entry
    items: list[Item] = []
    fetched_at: datetime  # Last commit time, non-decreasing per key
    expires_at: datetime
    state: EntryState = EntryState.FRESH
    error_code: ErrorCode | None = None
    error_detail: str | None = None
    items_fetched_at: datetime | None = None  # When ``items`` last came from a successful fetch

    def is_expired(self, now: datetime) -> bool:
        return now >= self.expires_at

    @property
    def has_items(self) -> bool:
        return bool(self.items)
