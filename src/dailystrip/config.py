"""Configuration loading and persistence.

Settings are loaded in priority order (highest first):
  1. Constructor arguments
  2. Environment variables  (DAILYSTRIP__DOWNLOADS__ENABLED=true)
  3. dailystrip.yaml        (searched in cwd, then platform config dir)
  4. Hardcoded defaults

The config file is optional. save_settings() writes the user-facing fields
back to YAML so that a changed download schedule survives restarts.
"""

from __future__ import annotations

from pathlib import Path
from typing import Any, Literal

import platformdirs
import yaml
from pydantic import BaseModel, Field
from pydantic_settings import (
    BaseSettings,
    PydanticBaseSettingsSource,
    SettingsConfigDict,
    YamlConfigSettingsSource,
)

from dailystrip.timeutils import MINUTES_PER_DAY, default_local_download_time

_DEFAULT_DATA_DIR = platformdirs.user_data_dir("dailystrip")
_DEFAULT_OUTPUT_DIR = str(Path(_DEFAULT_DATA_DIR) / "strips")
_DEFAULT_CONFIG_PATH = Path(platformdirs.user_config_dir("dailystrip")) / "dailystrip.yaml"

MIN_MAX_ATTEMPTS = 1
MAX_MAX_ATTEMPTS = 10
DEFAULT_MAX_ATTEMPTS = 5

MIN_RETRY_INTERVAL_MINUTES = 1
MAX_RETRY_INTERVAL_MINUTES = 60
DEFAULT_RETRY_INTERVAL_MINUTES = 10

# Matched against each homepage line in full; group 1 is the image URL.
DEFAULT_IMAGE_URL_PATTERN = (
    r'^.*<img .*src="((?:https?:)?//assets\.amuniversal\.com/[0-9A-Za-z]{32})".*$'
)


def _find_config_file() -> str | None:
    """Return the path of the first dailystrip.yaml found, or None."""
    candidates = [Path("dailystrip.yaml"), _DEFAULT_CONFIG_PATH]
    for path in candidates:
        if path.exists():
            return str(path)
    return None


class FetchSettings(BaseModel):
    """Unattended download settings."""

    enabled: bool = False
    local_time_of_day_minutes: int = Field(
        default_factory=default_local_download_time,
        ge=0,
        lt=MINUTES_PER_DAY,
    )
    max_attempts: int = Field(
        default=DEFAULT_MAX_ATTEMPTS,
        ge=MIN_MAX_ATTEMPTS,
        le=MAX_MAX_ATTEMPTS,
    )
    retry_interval_minutes: int = Field(
        default=DEFAULT_RETRY_INTERVAL_MINUTES,
        ge=MIN_RETRY_INTERVAL_MINUTES,
        le=MAX_RETRY_INTERVAL_MINUTES,
    )

    def disabled(self) -> FetchSettings:
        return self.model_copy(update={"enabled": False})


class FetcherSettings(BaseModel):
    homepage_url: str = "https://dilbert.com/"
    image_url_pattern: str = DEFAULT_IMAGE_URL_PATTERN
    connect_timeout_seconds: float = 20.0
    read_timeout_seconds: float = 5.0
    user_agent: str = "dailystrip/1.0"


class OutputSettings(BaseModel):
    directory: str = _DEFAULT_OUTPUT_DIR
    keep_history: bool = False


class LoggingSettings(BaseModel):
    level: Literal["DEBUG", "INFO", "WARNING", "ERROR"] = "INFO"
    format: Literal["json", "text"] = "text"


class Settings(BaseSettings):
    model_config = SettingsConfigDict(
        # Double-underscore separates nesting: DAILYSTRIP__DOWNLOADS__MAX_ATTEMPTS=3
        env_prefix="DAILYSTRIP__",
        env_nested_delimiter="__",
    )

    disclaimer_acknowledged: bool = False
    fetch_on_startup: bool = True
    downloads: FetchSettings = Field(default_factory=FetchSettings)
    fetcher: FetcherSettings = FetcherSettings()
    output: OutputSettings = OutputSettings()
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
            # YAML file, looked up when the settings are loaded
            YamlConfigSettingsSource(
                settings_cls,
                yaml_file=_find_config_file(),
                yaml_file_encoding="utf-8",
            ),
            # dotenv and file secrets intentionally excluded
        )

    def effective_download_settings(self) -> FetchSettings:
        """Download settings with automatic fetching forced off until the
        disclaimer has been acknowledged."""
        if self.disclaimer_acknowledged:
            return self.downloads
        return self.downloads.disabled()


def save_settings(settings: Settings, path: Path | None = None) -> Path:
    """Persist the user-facing settings to YAML and return the path written.

    Without an explicit path the file Settings() would load from is
    overwritten, or the platform config file is created when there is none.
    """
    target = path or Path(_find_config_file() or _DEFAULT_CONFIG_PATH)
    target.parent.mkdir(parents=True, exist_ok=True)

    payload = settings.model_dump(
        mode="json",
        include={"disclaimer_acknowledged", "fetch_on_startup", "downloads", "output"},
    )
    target.write_text(yaml.safe_dump(payload, sort_keys=False), encoding="utf-8")
    return target


def load_settings(path: Path) -> Settings:
    """Load settings from an explicit YAML file.

    Values in the file take precedence over environment variables and over
    any dailystrip.yaml found on the search path. A missing file yields the
    defaults, so a new settings file can be created by save_settings().
    """
    if not path.exists():
        return Settings()
    data = yaml.safe_load(path.read_text(encoding="utf-8")) or {}
    return Settings(**data)
