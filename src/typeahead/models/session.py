from __future__ import annotations

from datetime import datetime
from enum import StrEnum

from pydantic import BaseModel


class SessionState(StrEnum):
    TYPING = "typing"
    SETTLED = "settled"
    FETCH_TRIGGERED = "fetch_triggered"
    COMMITTED = "committed"
    FAILED = "failed"
    SUPERSEDED = "superseded"  # Lock lost mid-fetch; result discarded


class SessionRecord(BaseModel):
    """Per-namespace typing session (``session.json``)."""

    text: str
    key: str
    first_seen_at: datetime
    state: SessionState = SessionState.TYPING
