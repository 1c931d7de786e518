"""Shared test fixtures for the typeahead test suite."""

from __future__ import annotations

import asyncio
from datetime import UTC, datetime, timedelta
from typing import TYPE_CHECKING

import pytest
import structlog

from typeahead.config import SearchSettings, Settings, StorageSettings
from typeahead.integration import Integration, IntegrationCopy
from typeahead.models.items import Item
from typeahead.state import build_state

if TYPE_CHECKING:
    from collections.abc import Iterator
    from pathlib import Path

    from typeahead.errors import FetchError
    from typeahead.models.jobs import RefreshJob
    from typeahead.state import CoordinatorState


class FakeClock:
    """Mutable wall clock shared by every store in a test."""

    def __init__(self, start: datetime | None = None) -> None:
        self.now = start or datetime(2026, 1, 1, 12, 0, tzinfo=UTC)

    def __call__(self) -> datetime:
        return self.now

    def advance(self, seconds: float) -> None:
        self.now += timedelta(seconds=seconds)


class FakeFetcher:
    """Scripted backend: returns ``items`` or raises ``error`` after ``delay`` seconds."""

    def __init__(self, items: list[Item] | None = None) -> None:
        self.items = items if items is not None else []
        self.error: FetchError | None = None
        self.delay = 0.0
        self.calls: list[str] = []
        self.closed = False

    async def fetch(self, query: str, settings: SearchSettings) -> list[Item]:
        self.calls.append(query)
        if self.delay:
            await asyncio.sleep(self.delay)
        if self.error is not None:
            raise self.error
        return list(self.items)

    async def aclose(self) -> None:
        self.closed = True


class RecordingLauncher:
    """Records jobs instead of spawning processes."""

    def __init__(self, succeed: bool = True) -> None:
        self.succeed = succeed
        self.jobs: list[RefreshJob] = []

    def launch(self, job: RefreshJob) -> bool:
        self.jobs.append(job)
        return self.succeed


def make_items(*titles: str) -> list[Item]:
    return [
        Item(title=title, subtitle=f"About {title}", arg=f"https://example.test/{title}")
        for title in titles
    ]


@pytest.fixture(autouse=True)
def log_output() -> Iterator[list[dict]]:
    """Capture structlog events instead of printing them to stdout."""
    with structlog.testing.capture_logs() as logs:
        yield logs


@pytest.fixture()
def clock() -> FakeClock:
    return FakeClock()


@pytest.fixture()
def cache_dir(tmp_path: Path) -> Path:
    return tmp_path / "cache"


@pytest.fixture()
def settings(cache_dir: Path) -> Settings:
    return Settings(storage=StorageSettings(cache_dir=str(cache_dir)))


@pytest.fixture()
def fetcher() -> FakeFetcher:
    return FakeFetcher(make_items("Cat", "Catalan", "Catamaran"))


@pytest.fixture()
def launcher() -> RecordingLauncher:
    return RecordingLauncher()


@pytest.fixture()
def search_defaults() -> SearchSettings:
    """Integration defaults; settle disabled so a single call can fetch."""
    return SearchSettings(settle_window_seconds=0.0)


@pytest.fixture()
def integration(fetcher: FakeFetcher, search_defaults: SearchSettings) -> Integration:
    return Integration(
        name="example",
        fetcher=fetcher,
        copy=IntegrationCopy(display_name="Example"),
        defaults=search_defaults,
        fingerprint={"region": "test"},
        import_path="example_plugin:build_integration",
    )


@pytest.fixture()
def state(
    settings: Settings,
    integration: Integration,
    clock: FakeClock,
    launcher: RecordingLauncher,
) -> CoordinatorState:
    return build_state(settings, integration, clock=clock, launcher=launcher)
