"""Integration bundle and loader.

An integration is everything the coordinator needs from one backend: a
namespace, a fetcher, the config fingerprint that changes its results,
per-integration timing defaults, and the user-facing copy. Integrations are
located by import path (``"package.module:factory"``) so the detached worker
can rebuild the same integration in a fresh process.
"""

from __future__ import annotations

import dataclasses
import importlib
from dataclasses import dataclass, field
from typing import TYPE_CHECKING

from typeahead.config import SearchSettings
from typeahead.errors import ErrorCode, TypeaheadError

if TYPE_CHECKING:
    from typeahead.config import Settings
    from typeahead.protocols import FetcherProtocol

BUILTIN_INTEGRATIONS: dict[str, str] = {
    "wikipedia": "typeahead.integrations.wikipedia:build_integration",
}


@dataclass(frozen=True)
class IntegrationCopy:
    """User-facing strings. ``{name}`` and ``{min}`` are substituted at render time."""

    display_name: str
    empty_title: str = "Enter a search query"
    empty_subtitle: str = "Type keywords to search {name}."
    too_short_title: str = "Keep typing ({min}+ chars)"
    too_short_subtitle: str = "Type at least {min} characters before searching {name}."
    pending_title: str = "Searching {name}..."
    pending_subtitle: str = "Waiting for the final query before calling {name}."
    no_results_title: str = "No results found"
    no_results_subtitle: str = "Try a different query."

    def format(self, template: str, *, min_length: int = 0) -> str:
        return template.format(name=self.display_name, min=min_length)


@dataclass(frozen=True)
class Integration:
    name: str  # Namespace for cache, lock and session files
    fetcher: FetcherProtocol
    copy: IntegrationCopy
    defaults: SearchSettings = field(default_factory=SearchSettings)
    fingerprint: dict[str, object] = field(default_factory=dict)
    import_path: str = ""


def resolve_import_path(spec: str) -> str:
    return BUILTIN_INTEGRATIONS.get(spec, spec)


def load_integration(spec: str, settings: Settings) -> Integration:
    """Import ``module:factory``, call ``factory(settings)``, and return the Integration."""
    import_path = resolve_import_path(spec)
    module_name, sep, attr = import_path.partition(":")
    if not sep or not module_name or not attr:
        raise TypeaheadError(
            code=ErrorCode.INTEGRATION_NOT_FOUND,
            message=f"Invalid integration path: {spec!r}",
            suggestion="Use 'package.module:factory' or a built-in name such as 'wikipedia'.",
        )

    try:
        module = importlib.import_module(module_name)
        factory = getattr(module, attr)
    except (ImportError, AttributeError) as exc:
        raise TypeaheadError(
            code=ErrorCode.INTEGRATION_NOT_FOUND,
            message=f"Cannot load integration {import_path!r}: {exc}",
            suggestion="Check that the integration package is installed.",
        ) from exc

    try:
        integration = factory(settings)
    except TypeaheadError:
        raise
    except Exception as exc:
        raise TypeaheadError(
            code=ErrorCode.INTEGRATION_NOT_FOUND,
            message=f"Integration factory {import_path!r} failed: {exc}",
            suggestion="Check the integration's own configuration.",
        ) from exc

    if not isinstance(integration, Integration):
        raise TypeaheadError(
            code=ErrorCode.INTEGRATION_NOT_FOUND,
            message=f"{import_path!r} did not return an Integration",
            suggestion="The factory must return typeahead.integration.Integration.",
        )
    return dataclasses.replace(integration, import_path=import_path)
