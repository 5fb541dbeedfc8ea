"""
Settings for stackpilot.

Configuration is loaded from stackpilot.toml in the working directory, or
from the file given with --config. Missing files and sections fall back to
defaults.
"""

from __future__ import annotations

import tomllib
from pathlib import Path
from typing import Any

from pydantic import BaseModel, Field, PrivateAttr, ValidationError

from .engine.changesets import PollSettings
from .engine.errors import ConfigurationError
from .engine.naming import DEFAULT_CHANGE_SET_NAME_FORMAT
from .engine.retry import RetryPolicy

DEFAULT_CONFIG_FILE = "stackpilot.toml"


# =============================================================================
# Sub-configuration Models
# =============================================================================


class AWSSettings(BaseModel):
    """Overrides for the environment-derived AWS configuration."""

    region: str | None = None
    profile: str | None = None
    endpoint_url: str | None = None


class ChangeSetSettings(BaseModel):
    name_format: str = DEFAULT_CHANGE_SET_NAME_FORMAT
    timezone: str = "UTC"


class DeploySettings(BaseModel):
    """Polling, retry and fan-out tuning."""

    poll_timeout: float = Field(default=600.0, gt=0)
    poll_initial_delay: float = Field(default=2.0, ge=0)
    poll_max_delay: float = Field(default=30.0, ge=0)
    event_poll_interval: float = Field(default=3.0, ge=0)
    throttle_pause: float = Field(default=5.0, ge=0)
    fanout_concurrency: int = Field(default=8, ge=1, le=64)
    capabilities: list[str] = Field(default_factory=lambda: ["CAPABILITY_AUTO_EXPAND"])

    def poll_settings(self) -> PollSettings:
        return PollSettings(
            initial_delay=self.poll_initial_delay,
            max_delay=self.poll_max_delay,
            timeout=self.poll_timeout,
        )

    def retry_policy(self) -> RetryPolicy:
        return RetryPolicy(throttle_pause=self.throttle_pause)


class TemplateSettings(BaseModel):
    directory: str = "templates"
    extensions: list[str] = Field(default_factory=lambda: ["", ".yaml", ".yml", ".json", ".template"])
    prechecks: list[str] = Field(default_factory=list)
    stop_on_failed_prechecks: bool = False
    rootdir: str = "."


class ParameterSettings(BaseModel):
    directory: str = "parameters"
    extensions: list[str] = Field(default_factory=lambda: ["", ".json"])


class TagSettings(BaseModel):
    directory: str = "tags"
    extensions: list[str] = Field(default_factory=lambda: ["", ".json"])
    default: dict[str, str] = Field(default_factory=dict)


class LoggingSettings(BaseModel):
    file: str | None = None


# =============================================================================
# Main Configuration Model
# =============================================================================


class Settings(BaseModel):
    """Complete stackpilot configuration."""

    aws: AWSSettings = Field(default_factory=AWSSettings)
    changeset: ChangeSetSettings = Field(default_factory=ChangeSetSettings)
    deploy: DeploySettings = Field(default_factory=DeploySettings)
    templates: TemplateSettings = Field(default_factory=TemplateSettings)
    parameters: ParameterSettings = Field(default_factory=ParameterSettings)
    tags: TagSettings = Field(default_factory=TagSettings)
    logging: LoggingSettings = Field(default_factory=LoggingSettings)

    _source: Path | None = PrivateAttr(default=None)

    @property
    def source(self) -> Path | None:
        """The config file these settings were loaded from, if any."""
        return self._source

    @property
    def rootdir(self) -> Path:
        """Root directory for template, parameter and tag lookups.

        A relative rootdir is resolved against the directory of the config
        file it came from.
        """
        rootdir = Path(self.templates.rootdir)
        if self._source is None or rootdir.is_absolute():
            return rootdir
        return self._source.parent / rootdir


# =============================================================================
# Configuration Loading
# =============================================================================


def load_settings(toml_path: Path | None = None) -> Settings:
    """
    Load settings from a TOML file.

    Args:
        toml_path: Path to the config file; defaults to ./stackpilot.toml

    Returns:
        Settings with values from the file or defaults

    Raises:
        ConfigurationError: the file is not valid TOML or has invalid values
    """
    path = toml_path or Path(DEFAULT_CONFIG_FILE)
    if not path.exists():
        if toml_path is not None:
            raise ConfigurationError(f"config file '{toml_path}' does not exist")
        return Settings()

    try:
        with open(path, "rb") as f:
            data = tomllib.load(f)
    except tomllib.TOMLDecodeError as e:
        raise ConfigurationError(f"could not parse {path}: {e}") from e

    return _parse_settings(data, path)


def _parse_settings(data: dict[str, Any], path: Path) -> Settings:
    sections = set(Settings.model_fields)
    known = {key: value for key, value in data.items() if key in sections}
    try:
        settings = Settings.model_validate(known)
    except ValidationError as e:
        raise ConfigurationError(f"invalid settings in {path}: {e}") from e
    settings._source = path
    return settings
