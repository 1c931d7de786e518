"""Atomic file primitives shared by the cache, lock and session layers.

Writers go through a uniquely named temporary file in the target directory,
fsync it, and ``os.replace`` it into place, so a concurrent reader sees either
the old record or the new one, never a torn write.
"""

from __future__ import annotations

import os
import re
import secrets
import sys
from collections.abc import Callable
from contextlib import suppress
from datetime import UTC, datetime
from pathlib import Path

Clock = Callable[[], datetime]


def utcnow() -> datetime:
    return datetime.now(UTC)


def new_token() -> str:
    """Random owner token for locks, unique across processes."""
    return secrets.token_hex(16)


def temp_path_for(path: Path) -> Path:
    return path.with_name(f".{path.name}.{os.getpid()}.{secrets.token_hex(4)}.tmp")


def write_bytes_fsync(path: Path, data: bytes) -> None:
    with path.open("wb") as file_obj:
        file_obj.write(data)
        file_obj.flush()
        os.fsync(file_obj.fileno())


def atomic_write_bytes(path: Path, data: bytes) -> None:
    """Replace ``path`` with ``data`` atomically. Raises ``OSError`` on failure."""
    path.parent.mkdir(parents=True, exist_ok=True)
    tmp_path = temp_path_for(path)
    try:
        write_bytes_fsync(tmp_path, data)
        os.replace(tmp_path, path)
        fsync_directory(path.parent)
    finally:
        with suppress(OSError):
            tmp_path.unlink(missing_ok=True)


def fsync_directory(path: Path) -> None:
    if sys.platform == "win32":
        return  # Windows does not support fsync on directory handles
    directory_fd = os.open(path, os.O_RDONLY)
    try:
        os.fsync(directory_fd)
    finally:
        os.close(directory_fd)


def remove_tree_files(root: Path, pattern: str) -> int:
    """Delete files matching ``pattern`` under ``root``. Returns the count removed."""
    removed = 0
    if not root.is_dir():
        return removed
    for path in root.glob(pattern):
        if path.is_file():
            with suppress(FileNotFoundError):
                path.unlink()
                removed += 1
    return removed


def namespace_dir(cache_dir: str | os.PathLike[str], namespace: str) -> Path:
    """Directory holding one integration's cache, lock and session files."""
    safe = re.sub(r"[^A-Za-z0-9._-]", "_", namespace).strip("_") or "workflow"
    return Path(cache_dir).expanduser() / safe
