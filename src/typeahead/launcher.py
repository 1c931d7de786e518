"""Detach a refresh into its own process so the foreground returns immediately.

The worker is ``python -m typeahead.worker --job <json>`` started in a new
session with stdin/stdout closed, so the launcher host never waits on it. Its
stderr is appended to the namespace's ``worker.log`` for crash diagnostics.
"""

from __future__ import annotations

import subprocess
import sys
from typing import TYPE_CHECKING

import structlog

if TYPE_CHECKING:
    from pathlib import Path

    from typeahead.models.jobs import RefreshJob

log = structlog.get_logger()


def worker_command(job: RefreshJob) -> list[str]:
    # Use sys.executable so the worker runs in the same environment.
    return [sys.executable, "-m", "typeahead.worker", "--job", job.model_dump_json()]


class BackgroundLauncher:
    """Spawns detached worker processes, implementing LauncherProtocol."""

    def __init__(self, root: Path) -> None:
        self._log_path = root / "worker.log"

    @property
    def log_path(self) -> Path:
        return self._log_path

    def launch(self, job: RefreshJob) -> bool:
        """Start a worker for ``job``. Returns False if the process could not be spawned."""
        log_fd = None
        try:
            try:
                self._log_path.parent.mkdir(parents=True, exist_ok=True)
                log_fd = self._log_path.open("a", encoding="utf-8")
            except OSError:
                log_fd = None

            kwargs: dict = {
                "stdin": subprocess.DEVNULL,
                "stdout": subprocess.DEVNULL,
                "stderr": log_fd if log_fd else subprocess.DEVNULL,
                "close_fds": True,
            }
            if sys.platform != "win32":
                # Unix: start new session to fully detach from the launcher
                kwargs["start_new_session"] = True
            else:
                kwargs["creationflags"] = (
                    subprocess.CREATE_NEW_PROCESS_GROUP | subprocess.DETACHED_PROCESS
                )

            process = subprocess.Popen(worker_command(job), **kwargs)
            log.info("background_fetch_launched", key=job.key, pid=process.pid)
            return True
        except OSError:
            log.warning("background_fetch_launch_failed", key=job.key, exc_info=True)
            return False
        finally:
            # Close parent's copy of the log fd (child inherited it)
            if log_fd:
                log_fd.close()
