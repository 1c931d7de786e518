"""Integration test fixtures.

The coordinator is exercised end to end against real file-backed stores in a
tmp cache directory; only the backend fetcher, the detached launcher and the
clock are faked (see tests/conftest.py).
"""

from __future__ import annotations

from typing import TYPE_CHECKING

import pytest

from typeahead import coordinator

if TYPE_CHECKING:
    from collections.abc import Awaitable, Callable

    from typeahead.render import Render
    from typeahead.state import CoordinatorState


@pytest.fixture()
def search(state: CoordinatorState) -> Callable[[str], Awaitable[Render]]:
    """One simulated keystroke invocation against the shared state."""

    async def _search(raw_query: str) -> Render:
        return await coordinator.handle(raw_query, state)

    return _search
