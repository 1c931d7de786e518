"""Coordinator state container.

CoordinatorState is built once per invocation (foreground CLI or detached
worker) and passed to every coordinator call. Nothing in it outlives the
process; everything shared between invocations lives on disk under ``root``.
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import TYPE_CHECKING

from typeahead.cache import CacheStore
from typeahead.config import resolve_search_settings
from typeahead.launcher import BackgroundLauncher
from typeahead.locks import LockManager
from typeahead.settle import SettleTracker
from typeahead.storage import namespace_dir, utcnow

if TYPE_CHECKING:
    from pathlib import Path

    from typeahead.config import SearchSettings, Settings
    from typeahead.integration import Integration
    from typeahead.protocols import (
        CacheProtocol,
        LauncherProtocol,
        LockProtocol,
        SettleProtocol,
    )
    from typeahead.storage import Clock


@dataclass
class CoordinatorState:
    """Holds everything one invocation needs. Passed to every coordinator call."""

    settings: Settings
    search: SearchSettings
    integration: Integration
    root: Path
    cache: CacheProtocol
    locks: LockProtocol
    sessions: SettleProtocol
    launcher: LauncherProtocol
    clock: Clock = utcnow


def build_state(
    settings: Settings,
    integration: Integration,
    *,
    clock: Clock = utcnow,
    launcher: LauncherProtocol | None = None,
) -> CoordinatorState:
    """Wire the file-backed stores for ``integration``'s namespace."""
    search = resolve_search_settings(settings, integration.name, integration.defaults)
    root = namespace_dir(settings.storage.cache_dir, integration.name)
    return CoordinatorState(
        settings=settings,
        search=search,
        integration=integration,
        root=root,
        cache=CacheStore(root, clock=clock),
        locks=LockManager(root, clock=clock),
        sessions=SettleTracker(root, clock=clock),
        launcher=launcher if launcher is not None else BackgroundLauncher(root),
        clock=clock,
    )
