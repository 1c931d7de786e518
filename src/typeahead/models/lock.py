from __future__ import annotations

from datetime import datetime
from enum import StrEnum

from pydantic import BaseModel


class AcquireOutcome(StrEnum):
    ACQUIRED = "acquired"
    HELD_BY_LIVE_OWNER = "held_by_live_owner"
    RECLAIMED = "reclaimed"
    UNAVAILABLE = "unavailable"  # Lock directory cannot be used at all

    @property
    def owned(self) -> bool:
        return self in (AcquireOutcome.ACQUIRED, AcquireOutcome.RECLAIMED)


class LockRecord(BaseModel):
    """Contents of ``lock/<key>.lock``."""

    key: str
    owner_token: str
    acquired_at: datetime
    heartbeat_at: datetime
    pid: int
