# Copyright (c) Syntropy Systems
"""Configuration management for speedvitals."""
from __future__ import annotations

from dataclasses import dataclass, fields
from pathlib import Path
from typing import cast

import yaml

from speedvitals.errors import ConfigError

BASE_API_URL = "https://api.speedvitals.com/v1"

DEFAULT_DEVICE = "mobile"
DEFAULT_LOCATION = "us"

CONFIG_FILENAME = ".speedvitals.yaml"
API_KEY_ENVVAR = "SPEEDVITALS_API_KEY"


@dataclass
class SpeedVitalsConfig:
    """Configuration for speedvitals."""

    # Base URL of the SpeedVitals API
    api_url: str = BASE_API_URL

    # HTTP request timeout in seconds
    timeout: float = 30.0

    # Maximum number of tests in flight at once
    concurrency: int = 3

    # Seconds between status polls of a running test
    poll_interval: float = 5.0

    # Polls before a pending test is considered timed out
    max_poll_attempts: int = 60

    # Extra full submit-and-poll cycles after a failed attempt
    max_retries: int = 2

    @property
    def poll_timeout(self) -> float:
        """Wall-clock bound on polling one test."""
        return self.max_poll_attempts * self.poll_interval

    def validate(self) -> None:
        """Raise ConfigError if any setting is out of range."""
        if self.concurrency < 1:
            msg = f"concurrency must be at least 1, got {self.concurrency}"
            raise ConfigError(msg)
        if self.max_poll_attempts < 1:
            msg = f"max_poll_attempts must be at least 1, got {self.max_poll_attempts}"
            raise ConfigError(msg)
        if self.max_retries < 0:
            msg = f"max_retries must not be negative, got {self.max_retries}"
            raise ConfigError(msg)
        if self.poll_interval < 0:
            msg = f"poll_interval must not be negative, got {self.poll_interval}"
            raise ConfigError(msg)
        if self.timeout <= 0:
            msg = f"timeout must be positive, got {self.timeout}"
            raise ConfigError(msg)


def find_config_file(start_path: Path | None = None) -> Path | None:
    """Find the nearest .speedvitals.yaml by walking up from start_path.

    Returns None if no config file is found.
    """
    if start_path is None:
        start_path = Path.cwd()

    current = start_path.resolve()

    while current != current.parent:
        candidate = current / CONFIG_FILENAME
        if candidate.is_file():
            return candidate
        current = current.parent

    # Check root
    candidate = current / CONFIG_FILENAME
    if candidate.is_file():
        return candidate

    return None


def get_global_config_dir() -> Path:
    """Get the global speedvitals config directory (~/.speedvitals)."""
    return Path.home() / ".speedvitals"


def load_config(config_path: Path | None = None) -> SpeedVitalsConfig:
    """Load configuration from YAML or defaults.

    Looks for config in:
    1. Provided config_path
    2. Nearest .speedvitals.yaml walking up from the cwd
    3. ~/.speedvitals/config.yaml
    4. Defaults
    """
    config = SpeedVitalsConfig()

    if config_path is None:
        config_path = find_config_file()
        if config_path is None:
            global_config = get_global_config_dir() / "config.yaml"
            if global_config.exists():
                config_path = global_config
    elif not config_path.exists():
        msg = f"Config file not found: {config_path}"
        raise ConfigError(msg)

    if config_path is not None and config_path.exists():
        with config_path.open() as f:
            try:
                loaded = yaml.safe_load(f) or {}
            except yaml.YAMLError as e:
                msg = f"Invalid YAML in {config_path}: {e}"
                raise ConfigError(msg) from e

        if not isinstance(loaded, dict):
            msg = f"Expected a mapping in {config_path}"
            raise ConfigError(msg)
        _apply(config, cast("dict[str, object]", loaded), config_path)

    config.validate()
    return config


def _apply(config: SpeedVitalsConfig, data: dict[str, object], source: Path) -> None:
    """Copy known keys from data onto config, checking their types."""
    for field in fields(config):
        if field.name not in data:
            continue
        value = data[field.name]
        default = getattr(config, field.name)
        if isinstance(default, str):
            if not isinstance(value, str):
                msg = f"{field.name} in {source} must be a string"
                raise ConfigError(msg)
            setattr(config, field.name, value)
        elif isinstance(default, int):
            if isinstance(value, bool) or not isinstance(value, int):
                msg = f"{field.name} in {source} must be an integer"
                raise ConfigError(msg)
            setattr(config, field.name, value)
        else:
            if isinstance(value, bool) or not isinstance(value, (int, float)):
                msg = f"{field.name} in {source} must be a number"
                raise ConfigError(msg)
            setattr(config, field.name, float(value))
