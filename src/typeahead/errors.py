from __future__ import annotations

from enum import StrEnum


class ErrorCode(StrEnum):
    TOO_SHORT = "TOO_SHORT"
    CACHE_IO = "CACHE_IO"
    LOCK_CONTENTION = "LOCK_CONTENTION"
    BACKEND_TRANSPORT = "BACKEND_TRANSPORT"
    BACKEND_RATE_LIMITED = "BACKEND_RATE_LIMITED"
    BACKEND_MALFORMED_RESPONSE = "BACKEND_MALFORMED_RESPONSE"
    BACKEND_TIMEOUT = "BACKEND_TIMEOUT"
    INVALID_CONFIG = "INVALID_CONFIG"
    INTEGRATION_NOT_FOUND = "INTEGRATION_NOT_FOUND"


class TypeaheadError(Exception):
    """Raised for all expected failure conditions.

    Caught by the coordinator (backend failures) or the CLI (configuration
    failures) and rendered as a single non-actionable row. Storage failures
    never surface as this type; the cache, lock and session layers degrade
    on their own.
    """

    def __init__(self, code: ErrorCode, message: str, suggestion: str) -> None:
        super().__init__(message)
        self.code = code
        self.message = message
        self.suggestion = suggestion


class FetchError(TypeaheadError):
    """Typed failure raised by a backend fetcher."""

    def __init__(self, code: ErrorCode, message: str, suggestion: str = "") -> None:
        super().__init__(code, message, suggestion)
