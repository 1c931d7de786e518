"""Unit tests for the built-in Wikipedia integration."""

from __future__ import annotations

import httpx
import pytest
import respx

from typeahead.config import SearchSettings, Settings
from typeahead.errors import ErrorCode, FetchError, TypeaheadError
from typeahead.integrations.wikipedia import (
    WikipediaFetcher,
    WikipediaSettings,
    article_url,
    build_integration,
    clean_snippet,
    endpoint_for,
)

ENDPOINT = "https://en.wikipedia.org/w/api.php"
SEARCH = SearchSettings()

RESULTS = {
    "query": {
        "search": [
            {
                "title": "Cat",
                "snippet": 'The <span class="searchmatch">cat</span> is a small &amp; furry mammal',
                "pageid": 6678,
            },
            {"title": "Catalan language", "snippet": "", "pageid": 5662},
            {"title": "   ", "snippet": "untitled", "pageid": 1},
            {"title": "No page", "snippet": "x", "pageid": 0},
        ]
    }
}


@pytest.fixture()
def wiki_env(monkeypatch: pytest.MonkeyPatch) -> pytest.MonkeyPatch:
    monkeypatch.delenv("WIKI_LANGUAGE", raising=False)
    monkeypatch.delenv("WIKI_MAX_RESULTS", raising=False)
    return monkeypatch


# ---------------------------------------------------------------------------
# Settings
# ---------------------------------------------------------------------------


class TestWikipediaSettings:
    def test_defaults(self, wiki_env: pytest.MonkeyPatch) -> None:
        config = WikipediaSettings()
        assert config.language == "en"
        assert config.max_results == 10

    def test_language_normalized(self, wiki_env: pytest.MonkeyPatch) -> None:
        wiki_env.setenv("WIKI_LANGUAGE", " DE ")
        assert WikipediaSettings().language == "de"

    def test_blank_language_uses_default(self, wiki_env: pytest.MonkeyPatch) -> None:
        wiki_env.setenv("WIKI_LANGUAGE", "  ")
        assert WikipediaSettings().language == "en"

    def test_invalid_language_rejected(self, wiki_env: pytest.MonkeyPatch) -> None:
        wiki_env.setenv("WIKI_LANGUAGE", "EN-US!")
        with pytest.raises(ValueError, match="language"):
            WikipediaSettings()

    @pytest.mark.parametrize(("raw", "expected"), [("-5", 1), ("999", 20), ("7", 7), ("", 10)])
    def test_max_results_clamped(
        self, wiki_env: pytest.MonkeyPatch, raw: str, expected: int
    ) -> None:
        wiki_env.setenv("WIKI_MAX_RESULTS", raw)
        assert WikipediaSettings().max_results == expected

    def test_non_numeric_max_results_rejected(self, wiki_env: pytest.MonkeyPatch) -> None:
        wiki_env.setenv("WIKI_MAX_RESULTS", "abc")
        with pytest.raises(ValueError, match="max_results"):
            WikipediaSettings()


# ---------------------------------------------------------------------------
# Helpers
# ---------------------------------------------------------------------------


class TestHelpers:
    def test_endpoint_uses_language_host(self) -> None:
        assert endpoint_for("zh") == "https://zh.wikipedia.org/w/api.php"

    def test_article_url(self) -> None:
        assert article_url("en", 36192) == "https://en.wikipedia.org/?curid=36192"

    def test_clean_snippet_strips_markup(self) -> None:
        raw = '<span class="searchmatch">Rust</span> &amp; systems\nprogramming &quot;language&quot;'
        assert clean_snippet(raw) == 'Rust & systems programming "language"'

    def test_clean_snippet_truncates(self) -> None:
        cleaned = clean_snippet("word " * 100)
        assert len(cleaned) == 120
        assert cleaned.endswith("...")


# ---------------------------------------------------------------------------
# Fetcher
# ---------------------------------------------------------------------------


class TestWikipediaFetcher:
    async def test_results_mapped_to_items(self) -> None:
        with respx.mock:
            route = respx.get(url__startswith=ENDPOINT).mock(
                return_value=httpx.Response(200, json=RESULTS)
            )
            async with httpx.AsyncClient() as client:
                fetcher = WikipediaFetcher(WikipediaSettings(language="en", max_results=7), client)
                items = await fetcher.fetch("cat", SEARCH)

        assert [item.title for item in items] == ["Cat", "Catalan language"]
        assert items[0].subtitle == "The cat is a small & furry mammal"
        assert items[0].arg == "https://en.wikipedia.org/?curid=6678"
        assert items[0].autocomplete == "Cat"
        assert items[1].subtitle == "No description available"

        params = route.calls.last.request.url.params
        assert params["action"] == "query"
        assert params["list"] == "search"
        assert params["format"] == "json"
        assert params["utf8"] == "1"
        assert params["srsearch"] == "cat"
        assert params["srlimit"] == "7"
        assert params["srprop"] == "snippet"

    async def test_empty_results(self) -> None:
        with respx.mock:
            respx.get(url__startswith=ENDPOINT).mock(
                return_value=httpx.Response(200, json={"batchcomplete": ""})
            )
            async with httpx.AsyncClient() as client:
                fetcher = WikipediaFetcher(WikipediaSettings(language="en"), client)
                assert await fetcher.fetch("zzzzqq", SEARCH) == []

    async def test_429_is_rate_limited(self) -> None:
        with respx.mock:
            respx.get(url__startswith=ENDPOINT).mock(return_value=httpx.Response(429))
            async with httpx.AsyncClient() as client:
                fetcher = WikipediaFetcher(WikipediaSettings(language="en"), client)
                with pytest.raises(FetchError) as exc_info:
                    await fetcher.fetch("cat", SEARCH)
        assert exc_info.value.code is ErrorCode.BACKEND_RATE_LIMITED

    async def test_http_error_message_extracted(self) -> None:
        body = {"error": {"code": "badvalue", "info": "Unrecognized value for parameter"}}
        with respx.mock:
            respx.get(url__startswith=ENDPOINT).mock(return_value=httpx.Response(400, json=body))
            async with httpx.AsyncClient() as client:
                fetcher = WikipediaFetcher(WikipediaSettings(language="en"), client)
                with pytest.raises(FetchError) as exc_info:
                    await fetcher.fetch("cat", SEARCH)
        assert exc_info.value.code is ErrorCode.BACKEND_TRANSPORT
        assert "Unrecognized value for parameter" in exc_info.value.message

    async def test_server_error_is_transport(self) -> None:
        with respx.mock:
            respx.get(url__startswith=ENDPOINT).mock(return_value=httpx.Response(503, text="down"))
            async with httpx.AsyncClient() as client:
                fetcher = WikipediaFetcher(WikipediaSettings(language="en"), client)
                with pytest.raises(FetchError) as exc_info:
                    await fetcher.fetch("cat", SEARCH)
        assert exc_info.value.code is ErrorCode.BACKEND_TRANSPORT
        assert "HTTP 503" in exc_info.value.message

    async def test_network_error_is_transport(self) -> None:
        with respx.mock:
            respx.get(url__startswith=ENDPOINT).mock(
                side_effect=httpx.ConnectError("Connection refused")
            )
            async with httpx.AsyncClient() as client:
                fetcher = WikipediaFetcher(WikipediaSettings(language="en"), client)
                with pytest.raises(FetchError) as exc_info:
                    await fetcher.fetch("cat", SEARCH)
        assert exc_info.value.code is ErrorCode.BACKEND_TRANSPORT

    async def test_timeout_is_backend_timeout(self) -> None:
        with respx.mock:
            respx.get(url__startswith=ENDPOINT).mock(side_effect=httpx.ReadTimeout("slow"))
            async with httpx.AsyncClient() as client:
                fetcher = WikipediaFetcher(WikipediaSettings(language="en"), client)
                with pytest.raises(FetchError) as exc_info:
                    await fetcher.fetch("cat", SEARCH)
        assert exc_info.value.code is ErrorCode.BACKEND_TIMEOUT

    async def test_invalid_json_is_malformed(self) -> None:
        with respx.mock:
            respx.get(url__startswith=ENDPOINT).mock(
                return_value=httpx.Response(200, text="<html>maintenance</html>")
            )
            async with httpx.AsyncClient() as client:
                fetcher = WikipediaFetcher(WikipediaSettings(language="en"), client)
                with pytest.raises(FetchError) as exc_info:
                    await fetcher.fetch("cat", SEARCH)
        assert exc_info.value.code is ErrorCode.BACKEND_MALFORMED_RESPONSE

    async def test_unexpected_shape_is_malformed(self) -> None:
        with respx.mock:
            respx.get(url__startswith=ENDPOINT).mock(
                return_value=httpx.Response(200, json={"query": {"search": "nope"}})
            )
            async with httpx.AsyncClient() as client:
                fetcher = WikipediaFetcher(WikipediaSettings(language="en"), client)
                with pytest.raises(FetchError) as exc_info:
                    await fetcher.fetch("cat", SEARCH)
        assert exc_info.value.code is ErrorCode.BACKEND_MALFORMED_RESPONSE

    async def test_aclose_closes_client(self) -> None:
        client = httpx.AsyncClient()
        fetcher = WikipediaFetcher(WikipediaSettings(language="en"), client)
        await fetcher.aclose()
        assert client.is_closed


# ---------------------------------------------------------------------------
# build_integration
# ---------------------------------------------------------------------------


class TestBuildIntegration:
    async def test_builds_wikipedia_integration(self, wiki_env: pytest.MonkeyPatch) -> None:
        wiki_env.setenv("WIKI_LANGUAGE", "de")
        integration = build_integration(Settings())
        try:
            assert integration.name == "wikipedia"
            assert integration.fingerprint == {"language": "de", "max_results": 10}
            assert integration.defaults.settle_window_seconds == 2.0
            assert integration.copy.format(integration.copy.pending_title) == (
                "Searching Wikipedia..."
            )
        finally:
            await integration.fetcher.aclose()

    def test_invalid_settings_raise_config_error(self, wiki_env: pytest.MonkeyPatch) -> None:
        wiki_env.setenv("WIKI_LANGUAGE", "not a language")
        with pytest.raises(TypeaheadError) as exc_info:
            build_integration(Settings())
        assert exc_info.value.code is ErrorCode.INVALID_CONFIG
