"""Configuration module."""

from herald.config.loader import get_default_config, load_config
from herald.config.models import (
    ConfigError,
    DatabaseConfig,
    DeliveryConfig,
    HeraldConfig,
    LoggingConfig,
    SchedulerConfig,
    ServerConfig,
)
from herald.config.paths import (
    get_config_path,
    get_database_path,
    get_herald_home,
    get_logs_path,
)

__all__ = [
    "ConfigError",
    "DatabaseConfig",
    "DeliveryConfig",
    "HeraldConfig",
    "LoggingConfig",
    "SchedulerConfig",
    "ServerConfig",
    "get_config_path",
    "get_database_path",
    "get_default_config",
    "get_herald_home",
    "get_logs_path",
    "load_config",
]
