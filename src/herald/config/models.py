"""Configuration models using Pydantic."""

import logging
from pathlib import Path
from typing import Literal
from zoneinfo import ZoneInfo, ZoneInfoNotFoundError

from pydantic import BaseModel, Field, SecretStr, field_validator, model_validator

from herald.config.paths import get_database_path

logger = logging.getLogger(__name__)

DelivererName = Literal["log", "webhook"]
RecipientTypeName = Literal["email", "sms", "push", "internal"]


class DatabaseConfig(BaseModel):
    """Configuration for the task record database.

    `url` takes precedence over `path` when both are set.
    """

    url: str | None = None
    path: Path = Field(default_factory=get_database_path)


class SchedulerConfig(BaseModel):
    """Configuration for the scheduler engine and startup recovery.

    `timezone` is the single reference zone used to interpret the HH:MM
    component of every task. The host's local zone is never consulted.
    """

    timezone: str = "UTC"
    # Upper bound on a single timer sleep, in seconds
    timer_resolution: float = Field(default=30.0, gt=0)
    # Pending tasks missed by more than this are not re-armed on startup.
    # None arms every pending task regardless of age.
    recovery_lookback_hours: float | None = Field(default=24.0, ge=0)
    recovery_attempts: int = Field(default=5, ge=1)
    recovery_base_delay: float = Field(default=1.0, ge=0)

    @field_validator("timezone")
    @classmethod
    def _validate_timezone(cls, value: str) -> str:
        try:
            ZoneInfo(value)
        except (ZoneInfoNotFoundError, ValueError) as e:
            raise ValueError(f"Unknown timezone: {value}") from e
        return value

    @property
    def zone(self) -> ZoneInfo:
        return ZoneInfo(self.timezone)


class DeliveryConfig(BaseModel):
    """Configuration for delivery actions.

    `routes` maps a recipient type to a deliverer name; recipient types
    without a route use `default`.
    """

    default: DelivererName = "log"
    webhook_url: str | None = None
    webhook_timeout: float = Field(default=10.0, gt=0)
    webhook_token: SecretStr | None = None
    routes: dict[RecipientTypeName, DelivererName] = Field(default_factory=dict)

    @model_validator(mode="after")
    def _require_webhook_url(self) -> "DeliveryConfig":
        uses_webhook = self.default == "webhook" or "webhook" in self.routes.values()
        if uses_webhook and not self.webhook_url:
            raise ValueError("webhook_url is required when a webhook route is used")
        return self


class ServerConfig(BaseModel):
    """Configuration for HTTP server."""

    host: str = "127.0.0.1"
    port: int = 8080


class LoggingConfig(BaseModel):
    """Configuration for logging."""

    level: Literal["DEBUG", "INFO", "WARNING", "ERROR"] | None = None
    to_file: bool = True


class ConfigError(Exception):
    """Configuration error."""

    pass


class HeraldConfig(BaseModel):
    """Root configuration model."""

    database: DatabaseConfig = Field(default_factory=DatabaseConfig)
    scheduler: SchedulerConfig = Field(default_factory=SchedulerConfig)
    delivery: DeliveryConfig = Field(default_factory=DeliveryConfig)
    server: ServerConfig = Field(default_factory=ServerConfig)
    logging: LoggingConfig = Field(default_factory=LoggingConfig)
