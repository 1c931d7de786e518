from __future__ import annotations

from typeahead.models.cache import CacheEntry, EntryState
from typeahead.models.items import Feedback, Item, notice
from typeahead.models.jobs import RefreshJob
from typeahead.models.lock import AcquireOutcome, LockRecord
from typeahead.models.session import SessionRecord, SessionState

__all__ = [
    # items
    "Item",
    "Feedback",
    "notice",
    # cache
    "CacheEntry",
    "EntryState",
    # lock
    "AcquireOutcome",
    "LockRecord",
    # session
    "SessionRecord",
    "SessionState",
    # jobs
    "RefreshJob",
]
