"""
Settings loader: reads ``~/.wellwell/config.yml`` into a Settings model.

Lookup order: explicit path, then ``$WELLWELL_CONFIG``, then the
default location. A missing file means defaults; a present but invalid
file is an error.
"""

from __future__ import annotations

import logging
import os
from pathlib import Path

import yaml
from pydantic import BaseModel, ValidationError, field_validator

from wellwell.core.platform import Platform, normalize_platform

logger = logging.getLogger(__name__)

CONFIG_DIR = ".wellwell"
CONFIG_FILE = "config.yml"

ENV_CONFIG = "WELLWELL_CONFIG"
ENV_STATE_FILE = "WELLWELL_STATE_FILE"
ENV_PLATFORM = "WELLWELL_PLATFORM"


class ConfigError(Exception):
    """Raised when the settings file is unreadable or invalid."""


class Settings(BaseModel):
    """User settings for a wellwell run."""

    state_file: Path | None = None     # default: ~/.wellwell/state.json
    audit_file: Path | None = None     # no run ledger when unset
    log_level: str | None = None
    log_file: str | None = None
    platform: Platform | None = None   # override detection

    @field_validator("state_file", "audit_file", mode="before")
    @classmethod
    def _expand_user(cls, value: object) -> object:
        if isinstance(value, str):
            return Path(value).expanduser()
        return value

    @field_validator("platform", mode="before")
    @classmethod
    def _normalize_platform(cls, value: object) -> object:
        if isinstance(value, str):
            return normalize_platform(value)
        return value


def default_config_path(home_dir: Path | None = None) -> Path:
    return (home_dir or Path.home()) / CONFIG_DIR / CONFIG_FILE


def find_config_file(home_dir: Path | None = None) -> Path | None:
    """Locate the settings file via the environment or the default location.

    Returns:
        Path to the settings file, or None if there is none.
    """
    env_path = os.environ.get(ENV_CONFIG)
    if env_path:
        return Path(env_path).expanduser()

    candidate = default_config_path(home_dir)
    if candidate.is_file():
        return candidate
    return None


def load_settings(path: Path | None = None, home_dir: Path | None = None) -> Settings:
    """Load and validate settings.

    Args:
        path: Explicit settings file. If None, searches the usual places.
        home_dir: Home directory used for the default location.

    Returns:
        Validated Settings, with environment overrides applied.

    Raises:
        ConfigError: If an explicitly named file is missing or any file is invalid.
    """
    explicit = path is not None
    if path is None:
        path = find_config_file(home_dir)

    if path is None:
        logger.debug("No settings file found, using defaults")
        settings = Settings()
    else:
        settings = _read_settings(path, required=explicit or ENV_CONFIG in os.environ)

    return _apply_env_overrides(settings)


def _read_settings(path: Path, required: bool) -> Settings:
    if not path.is_file():
        if required:
            raise ConfigError(f"Config file not found: {path}")
        return Settings()

    logger.debug("Loading settings from %s", path)

    try:
        raw = path.read_text(encoding="utf-8")
    except OSError as e:
        raise ConfigError(f"Cannot read {path}: {e}") from e

    try:
        data = yaml.safe_load(raw)
    except yaml.YAMLError as e:
        raise ConfigError(f"Invalid YAML in {path}: {e}") from e

    if data is None:
        return Settings()

    if not isinstance(data, dict):
        raise ConfigError(f"Expected a YAML mapping in {path}, got {type(data).__name__}")

    try:
        return Settings.model_validate(data)
    except ValidationError as e:
        raise ConfigError(f"Invalid settings in {path}: {e}") from e


def _apply_env_overrides(settings: Settings) -> Settings:
    updates: dict[str, object] = {}

    state_file = os.environ.get(ENV_STATE_FILE)
    if state_file:
        updates["state_file"] = Path(state_file).expanduser()

    platform = os.environ.get(ENV_PLATFORM)
    if platform:
        try:
            updates["platform"] = normalize_platform(platform)
        except ValueError as e:
            raise ConfigError(f"Invalid {ENV_PLATFORM}: {e}") from e

    if updates:
        settings = settings.model_copy(update=updates)
    return settings
