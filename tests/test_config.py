"""Tests for configuration loading."""

from pathlib import Path
from zoneinfo import ZoneInfo

import pytest
from pydantic import ValidationError

from herald.config import (
    ConfigError,
    DatabaseConfig,
    DeliveryConfig,
    HeraldConfig,
    SchedulerConfig,
    ServerConfig,
    get_database_path,
    get_default_config,
    load_config,
)


class TestConfigModels:
    """Tests for configuration models."""

    def test_defaults(self, herald_home: Path):
        config = HeraldConfig()
        assert config.database.url is None
        assert config.database.path == herald_home.resolve() / "data" / "herald.db"
        assert config.scheduler.timezone == "UTC"
        assert config.scheduler.timer_resolution == 30.0
        assert config.scheduler.recovery_lookback_hours == 24.0
        assert config.delivery.default == "log"
        assert config.server.port == 8080
        assert config.logging.level is None

    def test_scheduler_zone(self):
        config = SchedulerConfig(timezone="Europe/Berlin")
        assert config.zone == ZoneInfo("Europe/Berlin")

    def test_unknown_timezone(self):
        with pytest.raises(ValidationError, match="Unknown timezone"):
            SchedulerConfig(timezone="Mars/Olympus_Mons")

    @pytest.mark.parametrize(
        "kwargs",
        [
            {"timer_resolution": 0},
            {"recovery_attempts": 0},
            {"recovery_lookback_hours": -1},
        ],
    )
    def test_scheduler_bounds(self, kwargs: dict):
        with pytest.raises(ValidationError):
            SchedulerConfig(**kwargs)

    def test_webhook_route_requires_url(self):
        with pytest.raises(ValidationError, match="webhook_url"):
            DeliveryConfig(routes={"sms": "webhook"})

        config = DeliveryConfig(
            webhook_url="https://hooks.example.com", routes={"sms": "webhook"}
        )
        assert config.routes == {"sms": "webhook"}

    def test_unknown_deliverer(self):
        with pytest.raises(ValidationError):
            DeliveryConfig(default="carrier-pigeon")

    def test_webhook_token_is_secret(self):
        config = DeliveryConfig(webhook_token="hunter22")
        assert "hunter22" not in repr(config)
        assert config.webhook_token is not None
        assert config.webhook_token.get_secret_value() == "hunter22"

    def test_database_url(self):
        config = DatabaseConfig(url="postgresql+asyncpg://db/herald")
        assert config.url == "postgresql+asyncpg://db/herald"

    def test_server_config(self):
        assert ServerConfig(port=9000).host == "127.0.0.1"

    def test_get_default_config(self):
        assert isinstance(get_default_config(), HeraldConfig)


class TestLoadConfig:
    """Tests for load_config."""

    def test_load_from_file(self, config_file: Path, tmp_path: Path):
        config = load_config(config_file)
        assert config.database.path == tmp_path / "herald.db"
        assert config.scheduler.timezone == "America/New_York"
        assert config.scheduler.timer_resolution == 5
        assert config.server.port == 9090

    def test_missing_explicit_path(self, tmp_path: Path):
        with pytest.raises(FileNotFoundError):
            load_config(tmp_path / "nope.toml")

    def test_invalid_toml(self, tmp_path: Path):
        path = tmp_path / "bad.toml"
        path.write_text("[scheduler\ntimezone = ")
        with pytest.raises(ConfigError, match="Invalid TOML"):
            load_config(path)

    def test_invalid_values(self, tmp_path: Path):
        path = tmp_path / "bad.toml"
        path.write_text('[scheduler]\ntimezone = "Nowhere/Special"\n')
        with pytest.raises(ValidationError):
            load_config(path)

    def test_no_file_uses_defaults(
        self, tmp_path: Path, monkeypatch: pytest.MonkeyPatch
    ):
        monkeypatch.chdir(tmp_path)
        monkeypatch.setattr(
            "herald.config.loader._get_default_config_paths",
            lambda: [tmp_path / "absent.toml"],
        )
        config = load_config()
        assert config.database.path == get_database_path()

    def test_searches_herald_home(
        self, herald_home: Path, tmp_path: Path, monkeypatch: pytest.MonkeyPatch
    ):
        monkeypatch.chdir(tmp_path)
        herald_home.mkdir(parents=True)
        (herald_home / "config.toml").write_text("[server]\nport = 7070\n")
        config = load_config()
        assert config.server.port == 7070

    def test_env_overrides(self, config_file: Path, monkeypatch: pytest.MonkeyPatch):
        monkeypatch.setenv("HERALD_DATABASE_URL", "sqlite+aiosqlite:///env.db")
        monkeypatch.setenv("HERALD_WEBHOOK_TOKEN", "from-env-token")

        config = load_config(config_file)
        assert config.database.url == "sqlite+aiosqlite:///env.db"
        assert config.delivery.webhook_token is not None
        assert config.delivery.webhook_token.get_secret_value() == "from-env-token"

    def test_file_value_wins_over_env(
        self, tmp_path: Path, monkeypatch: pytest.MonkeyPatch
    ):
        path = tmp_path / "config.toml"
        path.write_text('[database]\nurl = "sqlite+aiosqlite:///file.db"\n')
        monkeypatch.setenv("HERALD_DATABASE_URL", "sqlite+aiosqlite:///env.db")

        assert load_config(path).database.url == "sqlite+aiosqlite:///file.db"
