"""Application configuration loaded from a YAML file and environment variables.

The YAML layout mirrors the keys documented for both processes:

    server.port, database.impl, database.psql.*, tzktapi.impl, tzktapi.api.url,
    tzktapi.polling_interval, pagination.limit, metrics.impl, logging.*

Environment variables override the file (``TZINDEX_`` prefix, ``__`` for nesting,
e.g. ``TZINDEX_DATABASE__PSQL__HOST``).
"""

import os
import re
from datetime import timedelta
from enum import Enum
from functools import lru_cache
from pathlib import Path
from typing import Any, Optional, Tuple, Type

import yaml
from pydantic import BaseModel, Field, SecretStr, ValidationError, field_validator, model_validator
from pydantic_settings import (
    BaseSettings,
    PydanticBaseSettingsSource,
    SettingsConfigDict,
    YamlConfigSettingsSource,
)
from sqlalchemy.engine import URL

from tezos_indexer.core.errors import ConfigError

DEFAULT_CONFIG_PATH = "config/config.yaml"
CONFIG_PATH_ENV = "TZINDEX_CONFIG"

_DURATION_PART = re.compile(r"(\d+(?:\.\d+)?)(ms|s|m|h)")
_DURATION_UNITS = {"ms": 0.001, "s": 1.0, "m": 60.0, "h": 3600.0}


def parse_duration(value: Any) -> timedelta:
    """Parse a duration such as ``"30s"``, ``"1m30s"``, ``"500ms"`` or a number of seconds."""
    if isinstance(value, timedelta):
        return value
    if isinstance(value, (int, float)):
        return timedelta(seconds=value)
    if isinstance(value, str):
        text = value.strip()
        try:
            return timedelta(seconds=float(text))
        except ValueError:
            pass

        parts = _DURATION_PART.findall(text)
        if parts and "".join(n + u for n, u in parts) == text:
            return timedelta(seconds=sum(float(n) * _DURATION_UNITS[u] for n, u in parts))

    raise ValueError(f"invalid duration: {value!r}")


class DatabaseImpl(str, Enum):
    PSQL = "psql"
    MEMORY = "memory"


class TzktImpl(str, Enum):
    API = "api"
    MOCK = "mock"


class MetricsImpl(str, Enum):
    PROMETHEUS = "prometheus"
    MEMORY = "memory"
    NOOP = "noop"


class ServerSettings(BaseModel):
    host: str = "0.0.0.0"
    port: int = Field(default=8080, ge=1, le=65535)


class PsqlSettings(BaseModel):
    """PostgreSQL connection parameters."""

    host: str = "localhost"
    port: int = 5432
    user: str = "postgres"
    password: SecretStr = SecretStr("")
    dbname: str = "tezos"
    sslmode: str = "disable"
    pool_size: int = 10
    max_overflow: int = 20


class DatabaseSettings(BaseModel):
    impl: DatabaseImpl = DatabaseImpl.PSQL
    url: Optional[str] = Field(
        default=None,
        description="Full SQLAlchemy URL; takes precedence over the psql block",
    )
    psql: PsqlSettings = Field(default_factory=PsqlSettings)

    @property
    def sqlalchemy_url(self) -> str:
        """Async SQLAlchemy URL for the configured database."""
        if self.url:
            return self.url
        return URL.create(
            "postgresql+asyncpg",
            username=self.psql.user,
            password=self.psql.password.get_secret_value() or None,
            host=self.psql.host,
            port=self.psql.port,
            database=self.psql.dbname,
        ).render_as_string(hide_password=False)


class TzktApiSettings(BaseModel):
    url: str = "https://api.tzkt.io"
    timeout: timedelta = timedelta(seconds=30)

    @field_validator("timeout", mode="before")
    @classmethod
    def _parse_timeout(cls, value: Any) -> timedelta:
        return parse_duration(value)


class TzktSettings(BaseModel):
    impl: TzktImpl = TzktImpl.API
    api: TzktApiSettings = Field(default_factory=TzktApiSettings)
    polling_interval: timedelta = timedelta(seconds=30)

    @field_validator("polling_interval", mode="before")
    @classmethod
    def _parse_interval(cls, value: Any) -> timedelta:
        return parse_duration(value)

    @model_validator(mode="after")
    def _check(self) -> "TzktSettings":
        if self.polling_interval.total_seconds() <= 0:
            raise ValueError("tzktapi.polling_interval must be positive")
        if self.impl == TzktImpl.API and not self.api.url:
            raise ValueError("tzktapi.api.url is required for the api implementation")
        return self


class PaginationSettings(BaseModel):
    limit: int = Field(default=50, ge=1, le=100)


class MetricsSettings(BaseModel):
    impl: MetricsImpl = MetricsImpl.PROMETHEUS


class GraylogSettings(BaseModel):
    enabled: bool = False
    host: str = ""
    port: int = 12201
    facility: str = "tezos-indexer"


class LoggingSettings(BaseModel):
    level: str = "info"
    format: str = "text"
    enable_file: bool = False
    file_path: str = ""
    graylog: GraylogSettings = Field(default_factory=GraylogSettings)


class Settings(BaseSettings):
    """Settings shared by the api, job and combined processes."""

    model_config = SettingsConfigDict(
        env_prefix="TZINDEX_",
        env_nested_delimiter="__",
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=False,
        extra="ignore",
    )

    server: ServerSettings = Field(default_factory=ServerSettings)
    database: DatabaseSettings = Field(default_factory=DatabaseSettings)
    tzktapi: TzktSettings = Field(default_factory=TzktSettings)
    pagination: PaginationSettings = Field(default_factory=PaginationSettings)
    metrics: MetricsSettings = Field(default_factory=MetricsSettings)
    logging: LoggingSettings = Field(default_factory=LoggingSettings)

    shutdown_timeout: timedelta = Field(
        default=timedelta(seconds=30),
        description="Upper bound on waiting for in-flight requests and cycles at shutdown",
    )

    @field_validator("shutdown_timeout", mode="before")
    @classmethod
    def _parse_shutdown_timeout(cls, value: Any) -> timedelta:
        return parse_duration(value)

    @classmethod
    def settings_customise_sources(
        cls,
        settings_cls: Type[BaseSettings],
        init_settings: PydanticBaseSettingsSource,
        env_settings: PydanticBaseSettingsSource,
        dotenv_settings: PydanticBaseSettingsSource,
        file_secret_settings: PydanticBaseSettingsSource,
    ) -> Tuple[PydanticBaseSettingsSource, ...]:
        return (
            init_settings,
            env_settings,
            dotenv_settings,
            YamlConfigSettingsSource(settings_cls),
            file_secret_settings,
        )


def load_settings(config_path: Optional[str] = None, **overrides: Any) -> Settings:
    """Load settings from a YAML file plus environment.

    An explicitly given path (argument or ``TZINDEX_CONFIG``) must exist; the
    default path is optional so the service can run from environment alone.
    """
    explicit = config_path or os.environ.get(CONFIG_PATH_ENV)
    path = Path(explicit or DEFAULT_CONFIG_PATH)
    if explicit and not path.is_file():
        raise ConfigError(f"config file not found: {path}")

    class FileSettings(Settings):
        model_config = SettingsConfigDict(yaml_file=path if path.is_file() else None)

    try:
        return FileSettings(**overrides)
    except (ValidationError, yaml.YAMLError) as e:
        raise ConfigError(f"invalid configuration in {path}: {e}") from e


@lru_cache()
def get_settings() -> Settings:
    """Get cached settings instance."""
    return load_settings()
