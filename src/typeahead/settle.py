"""Settle (debounce) tracking across process-per-keystroke invocations.

Each keystroke changes the query key, so settling is tracked per typing
session rather than per key: one ``session.json`` per namespace records the
latest text and when it was first seen. A query is *settled* once the same
text is observed again at least ``settle_window`` seconds after it first
appeared, or immediately when a fresh cache hit exists for it.

    typing -> settled -> fetch_triggered -> committed | failed | superseded
                                         -> (new text arrived: logged as superseded)

``superseded`` is stored when the fetch for the current key lost its lock to
a reclaimer. New text arriving replaces the record outright, so that
transition is only logged.

Session writes are last-writer-wins; failures are logged and never raised.
"""

from __future__ import annotations

from typing import TYPE_CHECKING

import structlog
from pydantic import ValidationError

from typeahead.models.session import SessionRecord, SessionState
from typeahead.storage import atomic_write_bytes, utcnow

if TYPE_CHECKING:
    from pathlib import Path

    from typeahead.storage import Clock

log = structlog.get_logger()


class SettleTracker:
    """Per-namespace session tracker implementing SettleProtocol."""

    def __init__(self, root: Path, *, clock: Clock = utcnow) -> None:
        self._path = root / "session.json"
        self._clock = clock

    @property
    def path(self) -> Path:
        return self._path

    def read(self) -> SessionRecord | None:
        try:
            raw = self._path.read_bytes()
        except FileNotFoundError:
            return None
        except OSError:
            log.warning("session_read_error", path=str(self._path), exc_info=True)
            return None
        try:
            return SessionRecord.model_validate_json(raw)
        except ValidationError:
            log.warning("session_record_corrupt", path=str(self._path))
            return None

    def observe(
        self,
        text: str,
        key: str,
        settle_window: float,
        *,
        cache_hit: bool = False,
    ) -> bool:
        """Record this invocation's text and report whether the query has settled."""
        now = self._clock()
        current = self.read()

        if current is None or current.text != text or current.key != key:
            if current is not None and current.state is SessionState.FETCH_TRIGGERED:
                log.info("session_superseded", previous_key=current.key, key=key)
            state = (
                SessionState.SETTLED
                if cache_hit or settle_window <= 0
                else SessionState.TYPING
            )
            self._write(SessionRecord(text=text, key=key, first_seen_at=now, state=state))
            return state is SessionState.SETTLED

        if current.state is not SessionState.TYPING:
            return True

        # Negative ages (clock skew between processes) count as "just seen".
        age = max((now - current.first_seen_at).total_seconds(), 0.0)
        if cache_hit or age >= settle_window:
            self._write(current.model_copy(update={"state": SessionState.SETTLED}))
            log.debug("session_settled", key=key, age=round(age, 3))
            return True
        return False

    def mark(self, key: str, state: SessionState) -> bool:
        """Advance the session for ``key``. Ignored if the user has moved on."""
        current = self.read()
        if current is None or current.key != key:
            return False
        return self._write(current.model_copy(update={"state": state}))

    def clear(self) -> bool:
        try:
            self._path.unlink(missing_ok=True)
        except OSError:
            log.warning("session_clear_error", path=str(self._path), exc_info=True)
            return False
        return True

    def _write(self, record: SessionRecord) -> bool:
        try:
            atomic_write_bytes(self._path, record.model_dump_json().encode("utf-8"))
        except OSError:
            log.warning("session_write_error", path=str(self._path), exc_info=True)
            return False
        return True
