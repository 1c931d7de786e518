"""Query normalization, minimum-length gate, and cache key derivation.

Everything here is pure: no filesystem access, so a too-short query never
touches the cache, lock or session files.
"""

from __future__ import annotations

import hashlib
import json
import re
from dataclasses import dataclass
from typing import TYPE_CHECKING

if TYPE_CHECKING:
    from collections.abc import Mapping

    from typeahead.config import SearchSettings

_WHITESPACE_RE = re.compile(r"\s+")


@dataclass(frozen=True)
class Query:
    raw: str
    normalized: str
    key: str


def normalize_query(raw: str, *, lowercase: bool = False) -> str:
    """Trim, collapse internal whitespace, and optionally lowercase."""
    normalized = _WHITESPACE_RE.sub(" ", raw).strip()
    return normalized.lower() if lowercase else normalized


def is_too_short(normalized: str, min_length: int) -> bool:
    return len(normalized) < min_length


def query_key(namespace: str, normalized: str, fingerprint: Mapping[str, object]) -> str:
    """Deterministic slot identifier for one (namespace, query, config) triple."""
    payload = json.dumps(
        [namespace, normalized, dict(fingerprint)],
        sort_keys=True,
        separators=(",", ":"),
        ensure_ascii=False,
        default=str,
    )
    return hashlib.sha256(payload.encode("utf-8")).hexdigest()


def gate(
    raw: str,
    namespace: str,
    settings: SearchSettings,
    fingerprint: Mapping[str, object],
) -> Query | None:
    """Return the keyed query, or ``None`` when it is below the minimum length."""
    normalized = normalize_query(raw, lowercase=settings.lowercase)
    if is_too_short(normalized, settings.min_query_length):
        return None
    return Query(raw=raw, normalized=normalized, key=query_key(namespace, normalized, fingerprint))
