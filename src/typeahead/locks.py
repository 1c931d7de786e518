"""Per-key advisory lock files with owner tokens and heartbeats.

``lock/<key>.lock`` holds a JSON ``LockRecord``. There is no shared memory
between invocations, so mutual exclusion relies on two filesystem atomics:

- creation is exclusive: the record is written to a temporary file and
  hard-linked into place, which fails if a marker already exists;
- removal is verified: the marker is renamed to a unique tombstone, its token
  checked, and restored if it turned out to belong to someone else.

A marker whose heartbeat is older than the liveness timeout is abandoned and
any invocation may reclaim it. Two reclaimers racing is harmless: only one
link can win, and the loser's token never matches again, so its heartbeat and
release calls become no-ops.

Like the cache, the lock layer never raises: a lock directory that cannot be
written is logged and reported as ``unavailable``.
"""

from __future__ import annotations

import errno
import os
from contextlib import suppress
from datetime import UTC, datetime
from typing import TYPE_CHECKING

import structlog
from pydantic import ValidationError

from typeahead.models.lock import AcquireOutcome, LockRecord
from typeahead.storage import (
    atomic_write_bytes,
    new_token,
    remove_tree_files,
    temp_path_for,
    utcnow,
    write_bytes_fsync,
)

if TYPE_CHECKING:
    from pathlib import Path

    from typeahead.storage import Clock

log = structlog.get_logger()

_LINK_UNSUPPORTED = {errno.EPERM, errno.EOPNOTSUPP, errno.ENOTSUP, errno.EXDEV}


class LockManager:
    """Per-namespace lock manager implementing LockProtocol."""

    def __init__(self, root: Path, *, clock: Clock = utcnow) -> None:
        self._dir = root / "lock"
        self._clock = clock

    def path_for(self, key: str) -> Path:
        return self._dir / f"{key}.lock"

    def read(self, key: str) -> LockRecord | None:
        return self._load(self.path_for(key))[1]

    # ------------------------------------------------------------------
    # Acquire / reclaim
    # ------------------------------------------------------------------

    def try_acquire(self, key: str, owner_token: str, liveness_timeout: float) -> AcquireOutcome:
        """Take the lock for ``key`` without ever blocking."""
        now = self._clock()
        record = LockRecord(
            key=key,
            owner_token=owner_token,
            acquired_at=now,
            heartbeat_at=now,
            pid=os.getpid(),
        )
        path = self.path_for(key)

        try:
            if self._create(path, record):
                log.debug("lock_acquired", key=key)
                return AcquireOutcome.ACQUIRED

            exists, existing = self._load(path)
            if not exists:
                # Released between our create attempt and the read.
                if self._create(path, record):
                    log.debug("lock_acquired", key=key)
                    return AcquireOutcome.ACQUIRED
                return AcquireOutcome.HELD_BY_LIVE_OWNER

            heartbeat_at = existing.heartbeat_at if existing is not None else self._mtime(path)
            age = (now - heartbeat_at).total_seconds()
            if age < liveness_timeout:
                log.debug("lock_held", key=key, heartbeat_age=round(age, 3))
                return AcquireOutcome.HELD_BY_LIVE_OWNER

            observed_token = existing.owner_token if existing is not None else None
            if not self._take(path, observed_token):
                return AcquireOutcome.HELD_BY_LIVE_OWNER
            log.info(
                "lock_reclaimed",
                key=key,
                previous_owner=observed_token,
                heartbeat_age=round(age, 3),
            )
            if self._create(path, record):
                return AcquireOutcome.RECLAIMED
            return AcquireOutcome.HELD_BY_LIVE_OWNER
        except OSError:
            log.warning("lock_unavailable", key=key, exc_info=True)
            return AcquireOutcome.UNAVAILABLE

    # ------------------------------------------------------------------
    # Owner operations
    # ------------------------------------------------------------------

    def heartbeat(self, key: str, owner_token: str) -> bool:
        """Refresh ``heartbeat_at``. Ignored (returns False) if the token no longer matches."""
        path = self.path_for(key)
        _, existing = self._load(path)
        if existing is None or existing.owner_token != owner_token:
            log.debug("lock_heartbeat_ignored", key=key)
            return False
        updated = existing.model_copy(update={"heartbeat_at": self._clock()})
        try:
            atomic_write_bytes(path, updated.model_dump_json().encode("utf-8"))
        except OSError:
            log.warning("lock_heartbeat_error", key=key, exc_info=True)
            return False
        return True

    def release(self, key: str, owner_token: str) -> bool:
        """Remove the lock. Ignored (returns False) if the token no longer matches."""
        path = self.path_for(key)
        _, existing = self._load(path)
        if existing is None or existing.owner_token != owner_token:
            log.debug("lock_release_ignored", key=key)
            return False
        try:
            released = self._take(path, owner_token)
        except OSError:
            log.warning("lock_release_error", key=key, exc_info=True)
            return False
        if released:
            log.debug("lock_released", key=key)
        return released

    def is_owner(self, key: str, owner_token: str) -> bool:
        existing = self.read(key)
        return existing is not None and existing.owner_token == owner_token

    def clear(self) -> int:
        try:
            return (
                remove_tree_files(self._dir, "*.lock")
                + remove_tree_files(self._dir, "*.reclaim")
                + remove_tree_files(self._dir, ".*.tmp")
            )
        except OSError:
            log.warning("lock_clear_error", path=str(self._dir), exc_info=True)
            return 0

    # ------------------------------------------------------------------
    # Filesystem primitives
    # ------------------------------------------------------------------

    def _load(self, path: Path) -> tuple[bool, LockRecord | None]:
        """Return ``(exists, record)``; an unreadable marker is ``(True, None)``."""
        try:
            raw = path.read_bytes()
        except FileNotFoundError:
            return False, None
        except OSError:
            log.warning("lock_read_error", path=str(path), exc_info=True)
            return True, None
        try:
            return True, LockRecord.model_validate_json(raw)
        except ValidationError:
            log.warning("lock_record_corrupt", path=str(path))
            return True, None

    def _mtime(self, path: Path) -> datetime:
        try:
            return datetime.fromtimestamp(path.stat().st_mtime, UTC)
        except OSError:
            return datetime.min.replace(tzinfo=UTC)

    def _create(self, path: Path, record: LockRecord) -> bool:
        """Publish ``record`` at ``path`` only if no marker exists."""
        path.parent.mkdir(parents=True, exist_ok=True)
        data = record.model_dump_json().encode("utf-8")
        tmp_path = temp_path_for(path)
        try:
            write_bytes_fsync(tmp_path, data)
            try:
                os.link(tmp_path, path)
            except FileExistsError:
                return False
            except OSError as exc:
                if exc.errno not in _LINK_UNSUPPORTED:
                    raise
                return self._create_exclusive(path, data)
            return True
        finally:
            with suppress(OSError):
                tmp_path.unlink(missing_ok=True)

    def _create_exclusive(self, path: Path, data: bytes) -> bool:
        # Filesystems without hard links. Readers may briefly see an empty
        # marker; ``_mtime`` keeps it live until the write lands.
        try:
            fd = os.open(path, os.O_CREAT | os.O_EXCL | os.O_WRONLY, 0o644)
        except FileExistsError:
            return False
        with os.fdopen(fd, "wb") as file_obj:
            file_obj.write(data)
            file_obj.flush()
            os.fsync(file_obj.fileno())
        return True

    def _take(self, path: Path, expected_token: str | None) -> bool:
        """Remove the marker only if it still carries ``expected_token``.

        ``expected_token=None`` matches a marker that is still unreadable.
        """
        tombstone = path.with_name(f"{path.name}.{new_token()}.reclaim")
        try:
            os.rename(path, tombstone)
        except FileNotFoundError:
            return False

        _, taken = self._load(tombstone)
        taken_token = taken.owner_token if taken is not None else None
        if taken_token != expected_token:
            # Someone replaced the marker after we looked; put theirs back.
            with suppress(FileExistsError):
                os.link(tombstone, path)
            with suppress(OSError):
                tombstone.unlink()
            return False

        with suppress(OSError):
            tombstone.unlink()
        return True
