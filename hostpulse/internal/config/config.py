# hostpulse/internal/config/config.py

import logging
import os
from pathlib import Path
from typing import Literal

import tomli
from pydantic import BaseModel, Field, ValidationError, field_validator, model_validator

from hostpulse.internal.analysis.thresholds import validate_thresholds
from hostpulse.internal.errors import ConfigurationError
from hostpulse.models.alerts import DEFAULT_THRESHOLDS, AlertThreshold

logger = logging.getLogger(__name__)

CONFIG_FILE_PATH = Path("config.toml")
CONFIG_ENV_VAR = "HOSTPULSE_CONFIG"


class DBSettings(BaseModel):
    backend: Literal["sqlite", "postgres"] = "sqlite"
    # sqlite
    path: str = "hostpulse.db"
    # postgres
    user: str = ""
    password: str = ""
    database: str = ""
    host: str = "localhost"
    min_pool_size: int = 2
    max_pool_size: int = 10

    @property
    def dsn(self) -> str:
        return f"postgres://{self.user}:{self.password}@{self.host}/{self.database}"


class CollectorSettings(BaseModel):
    interval_seconds: float = Field(default=2.0, gt=0)
    target_cache_ttl_seconds: float = Field(default=10.0, ge=0)
    max_stale_target_cache_seconds: float = Field(default=60.0, ge=0)
    alert_cooldown_seconds: float = Field(default=300.0, ge=0)


class AggregatorSettings(BaseModel):
    interval_seconds: float = Field(default=60.0, gt=0)
    safety_margin_minutes: int = Field(default=2, ge=0)
    window_minutes: int = Field(default=60, gt=0)
    raw_retention_hours: float = Field(default=1.0, gt=0)
    aggregated_retention_hours: float = Field(default=24.0, gt=0)
    alert_retention_hours: float = Field(default=24.0, gt=0)


class LoggingSettings(BaseModel):
    level: Literal["DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"] = "INFO"

    @field_validator("level", mode="before")
    @classmethod
    def _upper(cls, value):
        return value.upper() if isinstance(value, str) else value


class TargetSettings(BaseModel):
    id: str = Field(min_length=1)
    kind: Literal["local", "http"] = "local"
    url: str | None = None
    timeout_seconds: float = Field(default=5.0, gt=0)

    @model_validator(mode="after")
    def _http_needs_url(self):
        if self.kind == "http" and not self.url:
            raise ValueError(f"target '{self.id}' is kind 'http' but has no url")
        return self


class Settings(BaseModel):
    database: DBSettings = Field(default_factory=DBSettings)
    collector: CollectorSettings = Field(default_factory=CollectorSettings)
    aggregator: AggregatorSettings = Field(default_factory=AggregatorSettings)
    logging: LoggingSettings = Field(default_factory=LoggingSettings)
    thresholds: list[AlertThreshold] = Field(
        default_factory=lambda: list(DEFAULT_THRESHOLDS)
    )
    targets: list[TargetSettings] = Field(
        default_factory=lambda: [TargetSettings(id="localhost", kind="local")]
    )

    @model_validator(mode="after")
    def _unique_target_ids(self):
        seen = set()
        for target in self.targets:
            if target.id in seen:
                raise ValueError(f"duplicate target id '{target.id}'")
            seen.add(target.id)
        return self


def resolve_config_path(path: str | Path | None = None) -> Path:
    """--config wins, then $HOSTPULSE_CONFIG, then ./config.toml."""
    if path:
        return Path(path)
    env_path = os.environ.get(CONFIG_ENV_VAR)
    if env_path:
        return Path(env_path)
    return CONFIG_FILE_PATH


def load_config(path: str | Path | None = None) -> Settings:
    """
    Loads configuration from a TOML file.
    A missing file falls back to defaults; a broken one is an error.
    """
    config_path = resolve_config_path(path)
    if not config_path.exists():
        logger.warning(
            f"Configuration file not found at {config_path.resolve()}, using defaults. "
            "Copy 'config.example.toml' to 'config.toml' to customise."
        )
        return Settings()

    try:
        with open(config_path, "rb") as f:
            data = tomli.load(f)
    except (OSError, tomli.TOMLDecodeError) as e:
        raise ConfigurationError(f"Could not read {config_path}: {e}") from e

    try:
        settings = Settings.model_validate(data)
    except ValidationError as e:
        raise ConfigurationError(f"Invalid configuration in {config_path}: {e}") from e

    if settings.database.backend == "postgres" and not settings.database.database:
        raise ConfigurationError("database.database is required for the postgres backend")

    validate_thresholds(settings.thresholds)

    return settings
