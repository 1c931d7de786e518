"""Configuration loading.

Settings are loaded in priority order (highest first):
  1. Environment variables  (TYPEAHEAD__SEARCH__FRESH_TTL_SECONDS=600)
  2. typeahead.yaml         (searched in cwd, then platform config dir)
  3. Per-integration defaults (Integration.defaults)
  4. Hardcoded defaults

The config file is optional; all fields have sensible defaults. Timing knobs
live in ``SearchSettings``, a frozen model resolved once per invocation and
passed explicitly into every coordinator call.
"""

from __future__ import annotations

import os
from pathlib import Path
from typing import Any, Literal

import platformdirs
from pydantic import BaseModel, ConfigDict, Field, ValidationError, model_validator
from pydantic_settings import (
    BaseSettings,
    PydanticBaseSettingsSource,
    SettingsConfigDict,
    YamlConfigSettingsSource,
)

from typeahead.errors import ErrorCode, TypeaheadError

# Launchers export these to every script they spawn; the first non-empty wins.
_LAUNCHER_CACHE_ENV_VARS = (
    "alfred_workflow_cache",
    "ALFRED_WORKFLOW_CACHE",
    "alfred_workflow_data",
    "ALFRED_WORKFLOW_DATA",
)


def _find_config_file() -> str | None:
    """Return the path of the first typeahead.yaml found, or None."""
    candidates = [
        Path("typeahead.yaml"),
        Path(platformdirs.user_config_dir("typeahead")) / "typeahead.yaml",
    ]
    for path in candidates:
        if path.exists():
            return str(path)
    return None


def _default_cache_dir() -> str:
    for name in _LAUNCHER_CACHE_ENV_VARS:
        value = os.environ.get(name, "").strip()
        if value:
            return value
    return platformdirs.user_cache_dir("typeahead")


class SearchSettings(BaseModel):
    """Timing and gating knobs for one integration."""

    model_config = ConfigDict(frozen=True, extra="forbid")

    min_query_length: int = Field(default=2, ge=0)
    lowercase: bool = False
    fresh_ttl_seconds: float = Field(default=300.0, ge=0)
    error_ttl_seconds: float = Field(default=30.0, ge=0)
    foreground_timeout_seconds: float = Field(default=2.0, gt=0)
    settle_window_seconds: float = Field(default=1.0, ge=0)
    lock_liveness_seconds: float = Field(default=60.0, gt=0)
    heartbeat_interval_seconds: float = Field(default=5.0, gt=0)
    max_fetch_seconds: float = Field(default=120.0, gt=0)
    # Alfred accepts rerun values between 0.1 and 5.0 seconds.
    rerun_seconds: float = Field(default=0.4, ge=0.1, le=5.0)

    @model_validator(mode="after")
    def _check_timing(self) -> SearchSettings:
        if self.heartbeat_interval_seconds >= self.lock_liveness_seconds:
            raise ValueError("heartbeat_interval_seconds must be below lock_liveness_seconds")
        if self.foreground_timeout_seconds > self.max_fetch_seconds:
            raise ValueError("foreground_timeout_seconds must not exceed max_fetch_seconds")
        return self


class StorageSettings(BaseModel):
    cache_dir: str = Field(default_factory=_default_cache_dir)


class LoggingSettings(BaseModel):
    level: Literal["DEBUG", "INFO", "WARNING", "ERROR"] = "WARNING"
    format: Literal["json", "text"] = "json"


class Settings(BaseSettings):
    model_config = SettingsConfigDict(
        # Double-underscore separates nesting: TYPEAHEAD__SEARCH__RERUN_SECONDS=1
        env_prefix="TYPEAHEAD__",
        env_nested_delimiter="__",
        yaml_file=_find_config_file(),
        yaml_file_encoding="utf-8",
    )

    search: SearchSettings = SearchSettings()
    # Per-namespace overrides: TYPEAHEAD__INTEGRATIONS__WIKIPEDIA__SETTLE_WINDOW_SECONDS=2
    integrations: dict[str, dict[str, Any]] = {}
    storage: StorageSettings = StorageSettings()
    logging: LoggingSettings = LoggingSettings()

    @classmethod
    def settings_customise_sources(
        cls,
        settings_cls: type[BaseSettings],
        init_settings: PydanticBaseSettingsSource,
        env_settings: PydanticBaseSettingsSource,
        dotenv_settings: PydanticBaseSettingsSource,
        file_secret_settings: PydanticBaseSettingsSource,
        **kwargs: Any,
    ) -> tuple[PydanticBaseSettingsSource, ...]:
        return (
            init_settings,  # Constructor args (highest priority)
            env_settings,  # Environment variables
            YamlConfigSettingsSource(settings_cls),  # YAML file
            # dotenv and file secrets intentionally excluded
        )


def resolve_search_settings(
    settings: Settings,
    namespace: str,
    defaults: SearchSettings | None = None,
) -> SearchSettings:
    """Layer explicit overrides on top of an integration's defaults.

    Only fields the user actually set on ``settings.search`` override the
    integration's defaults; ``settings.integrations[namespace]`` wins over both.
    """
    base = (defaults or SearchSettings()).model_dump()
    base.update(settings.search.model_dump(exclude_unset=True))
    base.update(settings.integrations.get(namespace, {}))
    try:
        return SearchSettings.model_validate(base)
    except ValidationError as exc:
        raise TypeaheadError(
            code=ErrorCode.INVALID_CONFIG,
            message=f"Invalid search settings for '{namespace}': {exc.error_count()} error(s)",
            suggestion="Check the TYPEAHEAD__ environment variables and typeahead.yaml.",
        ) from exc
