"""Protocol interfaces for swappable components.

The coordinator and CoordinatorState reference these protocols, not the
concrete implementations. This allows:
- Tests to use lightweight fakes (recording launchers, scripted fetchers)
- Each integration to plug in its own backend without the coordinator
  branching on which integration is calling it
"""

from __future__ import annotations

from typing import TYPE_CHECKING, Protocol

if TYPE_CHECKING:
    from datetime import datetime

    from typeahead.config import SearchSettings
    from typeahead.errors import FetchError
    from typeahead.models.cache import CacheEntry
    from typeahead.models.items import Item
    from typeahead.models.jobs import RefreshJob
    from typeahead.models.lock import AcquireOutcome
    from typeahead.models.session import SessionState


class FetcherProtocol(Protocol):
    """Backend capability supplied by each integration.

    ``fetch`` returns parsed items or raises ``FetchError``. It owns no cache
    or lock state; the coordinator wraps it with timeout and lock lifecycle.
    """

    async def fetch(self, query: str, settings: SearchSettings) -> list[Item]: ...

    async def aclose(self) -> None: ...


class CacheProtocol(Protocol):
    """Interface for the result cache backend."""

    def read(self, key: str) -> CacheEntry | None: ...

    def commit(self, key: str, query: str, items: list[Item], ttl_seconds: float) -> bool: ...

    def commit_error(
        self,
        key: str,
        query: str,
        error: FetchError,
        ttl_seconds: float,
    ) -> bool: ...

    def is_fresh(self, entry: CacheEntry, now: datetime) -> bool: ...

    def clear(self) -> int: ...


class LockProtocol(Protocol):
    """Interface for the per-key advisory lock manager."""

    def try_acquire(
        self, key: str, owner_token: str, liveness_timeout: float
    ) -> AcquireOutcome: ...

    def heartbeat(self, key: str, owner_token: str) -> bool: ...

    def release(self, key: str, owner_token: str) -> bool: ...

    def is_owner(self, key: str, owner_token: str) -> bool: ...

    def clear(self) -> int: ...


class SettleProtocol(Protocol):
    """Interface for the typing-session tracker."""

    def observe(
        self,
        text: str,
        key: str,
        settle_window: float,
        *,
        cache_hit: bool = False,
    ) -> bool: ...

    def mark(self, key: str, state: SessionState) -> bool: ...

    def clear(self) -> bool: ...


class LauncherProtocol(Protocol):
    """Interface for detaching a refresh into its own process."""

    def launch(self, job: RefreshJob) -> bool: ...
