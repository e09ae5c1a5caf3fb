"""Configuration loading.

Settings are loaded in priority order (highest first):
  1. Environment variables  (ARTISYNC__LOGGING__LEVEL=DEBUG)
  2. artisync.yaml          ($ARTISYNC_CONFIG, then cwd, then the user config dir)
  3. Hardcoded defaults

The config file is optional. Without it no destinations are synced and only
the default server command is launched.
"""

from __future__ import annotations

import os
from pathlib import Path
from typing import Any, Literal

import platformdirs
from pydantic import BaseModel, ConfigDict, model_validator
from pydantic_settings import (
    BaseSettings,
    PydanticBaseSettingsSource,
    SettingsConfigDict,
    YamlConfigSettingsSource,
)

from artisync.models.sources import SourceSet

_DEFAULT_CACHE_ROOT = platformdirs.user_cache_dir("artisync")


def _find_config_file() -> str | None:
    """Return the path of the first artisync.yaml found, or None."""
    explicit = os.environ.get("ARTISYNC_CONFIG")
    if explicit:
        return explicit
    candidates = [
        Path("artisync.yaml"),
        Path(platformdirs.user_config_dir("artisync")) / "artisync.yaml",
    ]
    for path in candidates:
        if path.exists():
            return str(path)
    return None


class StatusSettings(BaseModel):
    model_config = ConfigDict(extra="forbid")

    webhook: str | None = None  # Discord-compatible webhook URL


class TokenSettings(BaseModel):
    model_config = ConfigDict(extra="forbid")

    github: str | None = None


class CacheSettings(BaseModel):
    model_config = ConfigDict(extra="forbid")

    root: str = _DEFAULT_CACHE_ROOT  # One subdirectory per destination


class HttpSettings(BaseModel):
    model_config = ConfigDict(extra="forbid")

    timeout_seconds: float = 30.0


class LoggingSettings(BaseModel):
    model_config = ConfigDict(extra="forbid")

    level: Literal["DEBUG", "INFO", "WARNING", "ERROR"] = "INFO"
    format: Literal["json", "text"] = "text"


class DestinationSettings(BaseModel):
    model_config = ConfigDict(extra="forbid")

    path: Path
    sources: dict[str, SourceSet] = {}

    @model_validator(mode="after")
    def validate_unique_keys(self) -> DestinationSettings:
        # Keys name blobs in one shared cache root.
        owners: dict[str, str] = {}
        for set_name, source_set in self.sources.items():
            for key in source_set.sources:
                if key in owners:
                    raise ValueError(
                        f"key {key!r} is declared in both {owners[key]!r} and {set_name!r}"
                    )
                owners[key] = set_name
        return self


class Settings(BaseSettings):
    model_config = SettingsConfigDict(
        # Double-underscore separates nesting: ARTISYNC__CACHE__ROOT=/srv/cache
        env_prefix="ARTISYNC__",
        env_nested_delimiter="__",
        yaml_file_encoding="utf-8",
    )

    run: list[str] = ["java -jar fabric-server-launch.jar"]
    min_restart_interval_seconds: int = 240
    status: StatusSettings = StatusSettings()
    tokens: TokenSettings = TokenSettings()
    cache: CacheSettings = CacheSettings()
    http: HttpSettings = HttpSettings()
    logging: LoggingSettings = LoggingSettings()
    destinations: dict[str, DestinationSettings] = {}

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
            # Looked up per instantiation so a reload picks up a moved file
            YamlConfigSettingsSource(settings_cls, yaml_file=_find_config_file()),
            # dotenv and file secrets intentionally excluded
        )
