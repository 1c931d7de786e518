from __future__ import annotations

from pydantic import BaseModel


class RefreshJob(BaseModel):
    """Everything a detached worker needs to run one fetch."""

    integration: str  # Import path "module:factory"
    raw_query: str
    normalized: str
    key: str
    owner_token: str
