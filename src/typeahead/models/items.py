from __future__ import annotations

from pydantic import BaseModel, ConfigDict


class Item(BaseModel):
    """A single row in the launcher's result list."""

    model_config = ConfigDict(frozen=True)

    title: str
    subtitle: str | None = None
    arg: str | None = None  # Action payload handed to the launcher on selection
    valid: bool = True  # False renders a non-actionable row
    autocomplete: str | None = None


def notice(title: str, subtitle: str | None = None) -> Item:
    """Build a non-actionable informational row."""
    return Item(title=title, subtitle=subtitle, valid=False)


class Feedback(BaseModel):
    """Script Filter JSON emitted on stdout."""

    items: list[Item]
    rerun: float | None = None  # Seconds until the host should re-run the query

    def to_json(self) -> str:
        return self.model_dump_json(exclude_none=True)
