"""Configuration loading from TOML files and environment variables."""

import logging
import os
import tomllib
from pathlib import Path
from typing import Any

from pydantic import SecretStr

from herald.config.models import ConfigError, HeraldConfig
from herald.config.paths import get_config_path

logger = logging.getLogger(__name__)


def _get_default_config_paths() -> list[Path]:
    """Get ordered list of default config file locations."""
    return [
        Path("config.toml"),  # Current directory
        get_config_path(),  # ~/.herald/config.toml (or HERALD_HOME)
        Path("/etc/herald/config.toml"),  # System-wide
    ]


def _resolve_env_overrides(config: dict[str, Any]) -> dict[str, Any]:
    """Fill values from environment variables where not set in config."""
    database = config.setdefault("database", {})
    if database.get("url") is None:
        if url := os.environ.get("HERALD_DATABASE_URL"):
            database["url"] = url

    delivery = config.setdefault("delivery", {})
    if delivery.get("webhook_token") is None:
        if token := os.environ.get("HERALD_WEBHOOK_TOKEN"):
            delivery["webhook_token"] = SecretStr(token)

    return config


def load_config(path: Path | None = None) -> HeraldConfig:
    """Load configuration from TOML file.

    Args:
        path: Explicit path to config file. If None, searches default
            locations and falls back to defaults when nothing is found.

    Returns:
        Validated HeraldConfig instance.

    Raises:
        FileNotFoundError: If an explicit path does not exist.
        ConfigError: If the file is not valid TOML.
        pydantic.ValidationError: If the values are invalid.
    """
    config_path: Path | None = None

    if path is not None:
        config_path = Path(path).expanduser()
        if not config_path.exists():
            raise FileNotFoundError(f"Config file not found: {config_path}")
    else:
        for default_path in _get_default_config_paths():
            expanded = default_path.expanduser()
            if expanded.exists():
                config_path = expanded
                break

    raw_config: dict[str, Any] = {}
    if config_path is None:
        logger.debug("No config file found, using defaults")
    else:
        try:
            with config_path.open("rb") as f:
                raw_config = tomllib.load(f)
        except tomllib.TOMLDecodeError as e:
            raise ConfigError(f"Invalid TOML in {config_path}: {e}") from e

    raw_config = _resolve_env_overrides(raw_config)

    return HeraldConfig.model_validate(raw_config)


def get_default_config() -> HeraldConfig:
    """Get a default configuration for development/testing."""
    return HeraldConfig()
