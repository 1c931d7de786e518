"""Wikipedia article search via the MediaWiki ``list=search`` API.

Configured from the workflow environment:
  WIKI_LANGUAGE     subdomain to search (default "en"), 2-12 lowercase letters
  WIKI_MAX_RESULTS  results per query (default 10), clamped to 1..20
"""

from __future__ import annotations

import html
import re
from typing import TYPE_CHECKING, Any

import httpx
import structlog
from pydantic import BaseModel, Field, ValidationError, field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict

from typeahead.config import SearchSettings
from typeahead.errors import ErrorCode, FetchError, TypeaheadError
from typeahead.integration import Integration, IntegrationCopy
from typeahead.models.items import Item

if TYPE_CHECKING:
    from typeahead.config import Settings

log = structlog.get_logger()

USER_AGENT = "typeahead-wikipedia/1.0"
MIN_RESULTS = 1
MAX_RESULTS = 20
SUBTITLE_MAX_CHARS = 120

_TAG_RE = re.compile(r"<[^>]*>")
_LANGUAGE_RE = re.compile(r"^[a-z]{2,12}$")


class WikipediaSettings(BaseSettings):
    model_config = SettingsConfigDict(env_prefix="WIKI_")

    language: str = "en"
    max_results: int = 10

    @field_validator("language", mode="before")
    @classmethod
    def _normalize_language(cls, value: Any) -> Any:
        if isinstance(value, str):
            value = value.strip().lower() or "en"
            if not _LANGUAGE_RE.match(value):
                raise ValueError("expected lowercase letters, length 2..12")
        return value

    @field_validator("max_results", mode="before")
    @classmethod
    def _blank_max_results(cls, value: Any) -> Any:
        if isinstance(value, str) and not value.strip():
            return 10
        return value

    @field_validator("max_results", mode="after")
    @classmethod
    def _clamp_max_results(cls, value: int) -> int:
        return max(MIN_RESULTS, min(MAX_RESULTS, value))


# ---------------------------------------------------------------------------
# Response models
# ---------------------------------------------------------------------------


class SearchHit(BaseModel):
    title: str = ""
    snippet: str = ""
    pageid: int = 0


class SearchPayload(BaseModel):
    search: list[SearchHit] = Field(default_factory=list)


class SearchResponse(BaseModel):
    query: SearchPayload = Field(default_factory=SearchPayload)


# ---------------------------------------------------------------------------
# Helpers
# ---------------------------------------------------------------------------


def build_http_client() -> httpx.AsyncClient:
    """Create the client owned by one WikipediaFetcher."""
    return httpx.AsyncClient(
        follow_redirects=True,
        timeout=httpx.Timeout(10.0),
        headers={"User-Agent": USER_AGENT},
    )


def endpoint_for(language: str) -> str:
    return f"https://{language}.wikipedia.org/w/api.php"


def article_url(language: str, pageid: int) -> str:
    return f"https://{language}.wikipedia.org/?curid={pageid}"


def clean_snippet(snippet: str, max_chars: int = SUBTITLE_MAX_CHARS) -> str:
    """Strip search-match markup, decode entities, and fit the text on one line."""
    text = html.unescape(_TAG_RE.sub("", snippet))
    text = " ".join(text.split())
    if len(text) <= max_chars:
        return text
    return text[: max_chars - 3] + "..."


def extract_error_message(response: httpx.Response) -> str | None:
    """Pull a human-readable message out of a MediaWiki or gateway error body."""
    try:
        payload = response.json()
    except ValueError:
        return None
    if not isinstance(payload, dict):
        return None
    error = payload.get("error") if isinstance(payload.get("error"), dict) else {}
    for candidate in (
        error.get("info"),
        error.get("message"),
        payload.get("message"),
        payload.get("detail"),
    ):
        if isinstance(candidate, str) and candidate.strip():
            return candidate.strip()
    return None


# ---------------------------------------------------------------------------
# Fetcher
# ---------------------------------------------------------------------------


class WikipediaFetcher:
    def __init__(self, config: WikipediaSettings, client: httpx.AsyncClient | None = None) -> None:
        self.config = config
        self._client = client if client is not None else build_http_client()

    async def fetch(self, query: str, settings: SearchSettings) -> list[Item]:
        params = {
            "action": "query",
            "list": "search",
            "format": "json",
            "utf8": "1",
            "srsearch": query,
            "srlimit": str(self.config.max_results),
            "srprop": "snippet",
        }
        try:
            response = await self._client.get(endpoint_for(self.config.language), params=params)
        except httpx.TimeoutException as exc:
            raise FetchError(
                ErrorCode.BACKEND_TIMEOUT, f"Wikipedia request timed out: {exc}"
            ) from exc
        except httpx.HTTPError as exc:
            raise FetchError(
                ErrorCode.BACKEND_TRANSPORT, f"Wikipedia request failed: {exc}"
            ) from exc

        status = response.status_code
        if status == 429:
            raise FetchError(ErrorCode.BACKEND_RATE_LIMITED, "Wikipedia rate limit (HTTP 429)")
        if not response.is_success:
            message = extract_error_message(response) or f"HTTP {status}"
            log.warning("wikipedia_http_error", status=status, message=message)
            raise FetchError(
                ErrorCode.BACKEND_TRANSPORT,
                f"Wikipedia API error ({status}): {message}",
            )

        try:
            payload = SearchResponse.model_validate_json(response.content)
        except ValidationError as exc:
            raise FetchError(
                ErrorCode.BACKEND_MALFORMED_RESPONSE,
                f"Invalid Wikipedia API response: {exc.error_count()} error(s)",
            ) from exc

        hits = [hit for hit in payload.query.search if hit.title.strip() and hit.pageid]
        return [self._to_item(hit) for hit in hits]

    def _to_item(self, hit: SearchHit) -> Item:
        title = hit.title.strip()
        return Item(
            title=title,
            subtitle=clean_snippet(hit.snippet) or "No description available",
            arg=article_url(self.config.language, hit.pageid),
            autocomplete=title,
        )

    async def aclose(self) -> None:
        await self._client.aclose()


def build_integration(settings: Settings) -> Integration:
    """Factory referenced by ``typeahead search --integration wikipedia``."""
    try:
        config = WikipediaSettings()
    except ValidationError as exc:
        raise TypeaheadError(
            code=ErrorCode.INVALID_CONFIG,
            message=f"Invalid Wikipedia settings: {exc.error_count()} error(s)",
            suggestion="WIKI_LANGUAGE must be 2-12 letters and WIKI_MAX_RESULTS an integer.",
        ) from exc

    return Integration(
        name="wikipedia",
        fetcher=WikipediaFetcher(config),
        copy=IntegrationCopy(
            display_name="Wikipedia",
            no_results_title="No articles found",
            no_results_subtitle="Try broader keywords or switch WIKI_LANGUAGE.",
        ),
        # Long settle window: one search per pause, not per keystroke.
        defaults=SearchSettings(settle_window_seconds=2.0),
        fingerprint={"language": config.language, "max_results": config.max_results},
    )
