"""Map coordinator outcomes to the launcher's render contract.

Every terminal state ends up here: concrete items, stale items, pending
placeholder, too-short guidance, or error guidance. Failures always render as
exactly one non-actionable row, never as empty or malformed output.
"""

from __future__ import annotations

from dataclasses import dataclass
from enum import StrEnum
from typing import TYPE_CHECKING

from typeahead.errors import ErrorCode
from typeahead.models.items import Feedback, Item, notice

if TYPE_CHECKING:
    from datetime import datetime

    from typeahead.integration import IntegrationCopy
    from typeahead.models.cache import CacheEntry

_ERROR_COPY: dict[ErrorCode, tuple[str, str]] = {
    ErrorCode.BACKEND_RATE_LIMITED: (
        "{name} rate limit reached",
        "Too many requests right now. Retrying shortly.",
    ),
    ErrorCode.BACKEND_TRANSPORT: (
        "{name} unavailable",
        "Cannot reach {name} now. Check network and retry.",
    ),
    ErrorCode.BACKEND_MALFORMED_RESPONSE: (
        "Unexpected response from {name}",
        "The service returned data that could not be read.",
    ),
    ErrorCode.BACKEND_TIMEOUT: (
        "{name} timed out",
        "The request took too long. Retrying shortly.",
    ),
}


class RenderKind(StrEnum):
    ITEMS = "items"
    STALE = "stale"
    PENDING = "pending"
    TOO_SHORT = "too_short"
    ERROR = "error"


@dataclass(frozen=True)
class Render:
    kind: RenderKind
    feedback: Feedback

    @property
    def stale(self) -> bool:
        return self.kind is RenderKind.STALE

    @property
    def items(self) -> list[Item]:
        return self.feedback.items

    @property
    def actionable(self) -> list[Item]:
        return [item for item in self.feedback.items if item.valid]

    def to_json(self) -> str:
        return self.feedback.to_json()


def format_age(seconds: float) -> str:
    """Human-readable age: ``'2 minutes ago'``."""
    seconds = max(seconds, 0.0)
    if seconds < 60:
        return "less than a minute ago"
    unit, size = next(
        (unit, size)
        for unit, size in (("day", 86400), ("hour", 3600), ("minute", 60))
        if seconds >= size
    )
    count = int(seconds // size)
    return f"{count} {unit}{'s' if count != 1 else ''} ago"


def describe_error(
    code: ErrorCode | None, detail: str | None, copy: IntegrationCopy
) -> tuple[str, str]:
    if code is not None and code in _ERROR_COPY:
        title, subtitle = _ERROR_COPY[code]
        return copy.format(title), copy.format(subtitle)
    return copy.format("{name} error"), detail or "Search failed."


def too_short(copy: IntegrationCopy, normalized: str, min_length: int) -> Render:
    if not normalized:
        row = notice(copy.format(copy.empty_title), copy.format(copy.empty_subtitle))
    else:
        row = notice(
            copy.format(copy.too_short_title, min_length=min_length),
            copy.format(copy.too_short_subtitle, min_length=min_length),
        )
    return Render(RenderKind.TOO_SHORT, Feedback(items=[row]))


def items(found: list[Item], copy: IntegrationCopy) -> Render:
    if not found:
        row = notice(copy.format(copy.no_results_title), copy.format(copy.no_results_subtitle))
        return Render(RenderKind.ITEMS, Feedback(items=[row]))
    return Render(RenderKind.ITEMS, Feedback(items=list(found)))


def stale(
    entry: CacheEntry,
    now: datetime,
    *,
    refreshing: bool,
    rerun: float | None,
) -> Render:
    fetched_at = entry.items_fetched_at or entry.fetched_at
    header = notice(
        f"Showing results from {format_age((now - fetched_at).total_seconds())}",
        "Refreshing in the background..." if refreshing else "Results may be out of date.",
    )
    return Render(RenderKind.STALE, Feedback(items=[header, *entry.items], rerun=rerun))


def pending(copy: IntegrationCopy, rerun: float) -> Render:
    row = notice(copy.format(copy.pending_title), copy.format(copy.pending_subtitle))
    return Render(RenderKind.PENDING, Feedback(items=[row], rerun=rerun))


def error(
    code: ErrorCode | None,
    detail: str | None,
    copy: IntegrationCopy,
    *,
    carried: CacheEntry | None = None,
    now: datetime | None = None,
) -> Render:
    """One explanatory row, followed by previously good items when there are any."""
    title, subtitle = describe_error(code, detail, copy)
    if carried is not None and carried.has_items and now is not None:
        fetched_at = carried.items_fetched_at or carried.fetched_at
        header = notice(
            f"Showing results from {format_age((now - fetched_at).total_seconds())}; "
            "refresh failed",
            f"{title}. {subtitle}",
        )
        return Render(RenderKind.ERROR, Feedback(items=[header, *carried.items]))
    return Render(RenderKind.ERROR, Feedback(items=[notice(title, subtitle)]))


def failure(title: str, subtitle: str) -> Render:
    """Last-resort row for failures outside the coordinator (config, loading)."""
    return Render(RenderKind.ERROR, Feedback(items=[notice(title, subtitle)]))


def info(title: str, subtitle: str) -> Render:
    """Single informational row, e.g. confirming a maintenance command."""
    return Render(RenderKind.ITEMS, Feedback(items=[notice(title, subtitle)]))
