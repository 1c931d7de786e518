"""Unit tests for typeahead.cache."""

from __future__ import annotations

from datetime import timedelta
from typing import TYPE_CHECKING

import pytest

from typeahead.cache import CacheStore
from typeahead.errors import ErrorCode, FetchError
from typeahead.models.cache import EntryState
from typeahead.models.items import Item

if TYPE_CHECKING:
    from pathlib import Path

    from conftest import FakeClock

ITEMS = [Item(title="Cat", arg="https://example.test/cat")]


@pytest.fixture()
def store(tmp_path: Path, clock: FakeClock) -> CacheStore:
    return CacheStore(tmp_path, clock=clock)


# ---------------------------------------------------------------------------
# Read / commit
# ---------------------------------------------------------------------------


class TestCommitAndRead:
    def test_read_missing_returns_none(self, store: CacheStore) -> None:
        assert store.read("missing") is None

    def test_commit_then_read(self, store: CacheStore, clock: FakeClock) -> None:
        assert store.commit("k1", "cat", ITEMS, ttl_seconds=300) is True
        entry = store.read("k1")
        assert entry is not None
        assert entry.query == "cat"
        assert entry.items == ITEMS
        assert entry.state is EntryState.FRESH
        assert entry.fetched_at == clock.now
        assert entry.expires_at == clock.now + timedelta(seconds=300)
        assert entry.items_fetched_at == clock.now

    def test_entry_file_layout(self, store: CacheStore, tmp_path: Path) -> None:
        store.commit("k1", "cat", ITEMS, ttl_seconds=300)
        assert (tmp_path / "cache" / "k1.entry").is_file()
        # No temporary files left behind
        assert [p.name for p in (tmp_path / "cache").iterdir()] == ["k1.entry"]

    def test_commit_overwrites(self, store: CacheStore) -> None:
        store.commit("k1", "cat", ITEMS, ttl_seconds=300)
        store.commit("k1", "cat", [], ttl_seconds=300)
        entry = store.read("k1")
        assert entry is not None
        assert entry.items == []

    def test_empty_result_is_a_valid_fresh_entry(self, store: CacheStore) -> None:
        store.commit("k1", "zzzz", [], ttl_seconds=300)
        entry = store.read("k1")
        assert entry is not None
        assert entry.state is EntryState.FRESH
        assert entry.has_items is False


class TestFreshness:
    def test_fresh_before_expiry(self, store: CacheStore, clock: FakeClock) -> None:
        store.commit("k1", "cat", ITEMS, ttl_seconds=300)
        entry = store.read("k1")
        assert entry is not None
        clock.advance(299)
        assert store.is_fresh(entry, clock.now) is True

    def test_expired_at_boundary(self, store: CacheStore, clock: FakeClock) -> None:
        store.commit("k1", "cat", ITEMS, ttl_seconds=300)
        entry = store.read("k1")
        assert entry is not None
        clock.advance(300)
        assert store.is_fresh(entry, clock.now) is False

    def test_zero_ttl_is_immediately_expired(self, store: CacheStore, clock: FakeClock) -> None:
        store.commit("k1", "cat", ITEMS, ttl_seconds=0)
        entry = store.read("k1")
        assert entry is not None
        assert entry.is_expired(clock.now) is True

    def test_error_entry_is_never_fresh(self, store: CacheStore, clock: FakeClock) -> None:
        store.commit_error("k1", "cat", FetchError(ErrorCode.BACKEND_TIMEOUT, "slow"), 30)
        entry = store.read("k1")
        assert entry is not None
        assert store.is_fresh(entry, clock.now) is False
        assert entry.is_expired(clock.now) is False


# ---------------------------------------------------------------------------
# Error entries
# ---------------------------------------------------------------------------


class TestCommitError:
    def test_records_error_with_short_ttl(self, store: CacheStore, clock: FakeClock) -> None:
        error = FetchError(ErrorCode.BACKEND_RATE_LIMITED, "HTTP 429")
        assert store.commit_error("k1", "cat", error, ttl_seconds=30) is True
        entry = store.read("k1")
        assert entry is not None
        assert entry.state is EntryState.ERROR
        assert entry.error_code is ErrorCode.BACKEND_RATE_LIMITED
        assert entry.error_detail == "HTTP 429"
        assert (entry.expires_at - entry.fetched_at).total_seconds() == 30
        assert entry.items == []
        assert entry.items_fetched_at is None

    def test_carries_previous_items_forward(self, store: CacheStore, clock: FakeClock) -> None:
        store.commit("k1", "cat", ITEMS, ttl_seconds=300)
        first_fetch = clock.now
        clock.advance(400)
        store.commit_error("k1", "cat", FetchError(ErrorCode.BACKEND_TRANSPORT, "down"), 30)
        entry = store.read("k1")
        assert entry is not None
        assert entry.state is EntryState.ERROR
        assert entry.items == ITEMS
        assert entry.items_fetched_at == first_fetch
        assert entry.fetched_at == clock.now


# ---------------------------------------------------------------------------
# Monotonic fetched_at
# ---------------------------------------------------------------------------


class TestMonotonicFetchedAt:
    def test_clock_going_backwards_does_not_rewind(
        self, store: CacheStore, clock: FakeClock
    ) -> None:
        store.commit("k1", "cat", ITEMS, ttl_seconds=300)
        first = store.read("k1")
        assert first is not None
        clock.advance(-60)
        store.commit("k1", "cat", ITEMS, ttl_seconds=300)
        second = store.read("k1")
        assert second is not None
        assert second.fetched_at >= first.fetched_at

    def test_sequence_of_commits_is_non_decreasing(
        self, store: CacheStore, clock: FakeClock
    ) -> None:
        seen = []
        for step in (10, -5, 3, -20, 1):
            clock.advance(step)
            store.commit("k1", "cat", ITEMS, ttl_seconds=300)
            entry = store.read("k1")
            assert entry is not None
            seen.append(entry.fetched_at)
        assert seen == sorted(seen)


# ---------------------------------------------------------------------------
# Degradation
# ---------------------------------------------------------------------------


class TestGracefulDegradation:
    def test_corrupt_entry_is_a_miss(self, store: CacheStore, tmp_path: Path) -> None:
        path = store.path_for("k1")
        path.parent.mkdir(parents=True)
        path.write_text("{not json", encoding="utf-8")
        assert store.read("k1") is None

    def test_key_mismatch_is_a_miss(self, store: CacheStore) -> None:
        store.commit("k1", "cat", ITEMS, ttl_seconds=300)
        store.path_for("k1").rename(store.path_for("k2"))
        assert store.read("k2") is None

    def test_write_failure_returns_false(
        self, store: CacheStore, monkeypatch: pytest.MonkeyPatch
    ) -> None:
        def _fail(path: Path, data: bytes) -> None:
            raise OSError("disk full")

        monkeypatch.setattr("typeahead.cache.atomic_write_bytes", _fail)
        assert store.commit("k1", "cat", ITEMS, ttl_seconds=300) is False
        assert store.read("k1") is None

    def test_write_failure_is_logged(
        self,
        store: CacheStore,
        monkeypatch: pytest.MonkeyPatch,
        log_output: list[dict],
    ) -> None:
        def _fail(path: Path, data: bytes) -> None:
            raise OSError("disk full")

        monkeypatch.setattr("typeahead.cache.atomic_write_bytes", _fail)
        store.commit("k1", "cat", ITEMS, ttl_seconds=300)
        assert any(event["event"] == "cache_write_error" for event in log_output)


class TestClear:
    def test_clear_removes_entries(self, store: CacheStore) -> None:
        store.commit("k1", "cat", ITEMS, ttl_seconds=300)
        store.commit("k2", "dog", ITEMS, ttl_seconds=300)
        assert store.clear() == 2
        assert store.read("k1") is None

    def test_clear_without_directory(self, store: CacheStore) -> None:
        assert store.clear() == 0
