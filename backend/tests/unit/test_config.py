"""Tests for configuration loading."""

from datetime import timedelta

import pytest

from tezos_indexer.core.config import (
    CONFIG_PATH_ENV,
    DatabaseImpl,
    MetricsImpl,
    Settings,
    TzktImpl,
    load_settings,
    parse_duration,
)
from tezos_indexer.core.errors import ConfigError

CONFIG_YAML = """
server:
  port: 9090
database:
  impl: psql
  psql:
    host: db.internal
    port: 5433
    user: indexer
    password: s3cret
    dbname: tezos
tzktapi:
  impl: api
  api:
    url: https://api.tzkt.io
    timeout: 10s
  polling_interval: 1m30s
pagination:
  limit: 25
metrics:
  impl: memory
logging:
  level: debug
  format: json
"""


@pytest.fixture
def clean_env(monkeypatch):
    """Drop indexer variables set for the rest of the test session."""
    for key in ("TZINDEX_DATABASE__IMPL", "TZINDEX_TZKTAPI__IMPL", "TZINDEX_METRICS__IMPL", CONFIG_PATH_ENV):
        monkeypatch.delenv(key, raising=False)


class TestParseDuration:
    """Duration strings."""

    @pytest.mark.parametrize(
        "value, seconds",
        [
            ("30s", 30),
            ("1m", 60),
            ("1m30s", 90),
            ("2h", 7200),
            ("500ms", 0.5),
            ("1.5s", 1.5),
            ("45", 45),
            (12, 12),
            (timedelta(minutes=2), 120),
        ],
    )
    def test_valid(self, value, seconds):
        assert parse_duration(value).total_seconds() == pytest.approx(seconds)

    @pytest.mark.parametrize("value", ["", "abc", "10d", "1m30", "s", None])
    def test_invalid(self, value):
        with pytest.raises(ValueError):
            parse_duration(value)


class TestLoadSettings:
    """YAML file plus environment."""

    def test_yaml_file(self, tmp_path, clean_env):
        path = tmp_path / "config.yaml"
        path.write_text(CONFIG_YAML)

        settings = load_settings(str(path))

        assert settings.server.port == 9090
        assert settings.database.impl == DatabaseImpl.PSQL
        assert settings.database.psql.host == "db.internal"
        assert settings.database.psql.password.get_secret_value() == "s3cret"
        assert settings.tzktapi.impl == TzktImpl.API
        assert settings.tzktapi.polling_interval == timedelta(seconds=90)
        assert settings.tzktapi.api.timeout == timedelta(seconds=10)
        assert settings.pagination.limit == 25
        assert settings.metrics.impl == MetricsImpl.MEMORY
        assert settings.logging.format == "json"

    def test_env_overrides_file(self, tmp_path, clean_env, monkeypatch):
        path = tmp_path / "config.yaml"
        path.write_text(CONFIG_YAML)
        monkeypatch.setenv("TZINDEX_DATABASE__PSQL__HOST", "override.internal")
        monkeypatch.setenv("TZINDEX_PAGINATION__LIMIT", "10")

        settings = load_settings(str(path))

        assert settings.database.psql.host == "override.internal"
        assert settings.database.psql.port == 5433
        assert settings.pagination.limit == 10

    def test_path_from_environment(self, tmp_path, clean_env, monkeypatch):
        path = tmp_path / "custom.yaml"
        path.write_text("server:\n  port: 7000\n")
        monkeypatch.setenv(CONFIG_PATH_ENV, str(path))

        assert load_settings().server.port == 7000

    def test_missing_explicit_file(self, tmp_path, clean_env):
        with pytest.raises(ConfigError):
            load_settings(str(tmp_path / "nope.yaml"))

    def test_missing_default_file_uses_defaults(self, tmp_path, clean_env, monkeypatch):
        monkeypatch.chdir(tmp_path)

        settings = load_settings()

        assert settings.server.port == 8080
        assert settings.pagination.limit == 50
        assert settings.tzktapi.polling_interval == timedelta(seconds=30)

    @pytest.mark.parametrize(
        "body",
        [
            "pagination:\n  limit: 0\n",
            "pagination:\n  limit: 101\n",
            "tzktapi:\n  polling_interval: forever\n",
            "tzktapi:\n  polling_interval: 0s\n",
            "database:\n  impl: mongo\n",
            "metrics:\n  impl: statsd\n",
        ],
    )
    def test_invalid_values(self, tmp_path, clean_env, body):
        path = tmp_path / "config.yaml"
        path.write_text(body)

        with pytest.raises(ConfigError):
            load_settings(str(path))

    def test_malformed_yaml(self, tmp_path, clean_env):
        path = tmp_path / "config.yaml"
        path.write_text("server: [unclosed\n")

        with pytest.raises(ConfigError):
            load_settings(str(path))


class TestDatabaseSettings:
    """Connection URL building."""

    def test_url_from_psql_block(self, clean_env):
        settings = Settings(
            database={"psql": {"host": "db", "user": "u", "password": "p@ss", "dbname": "tz"}}
        )

        url = settings.database.sqlalchemy_url

        assert url.startswith("postgresql+asyncpg://u:")
        assert url.endswith("@db:5432/tz")

    def test_explicit_url_wins(self, clean_env):
        settings = Settings(database={"url": "sqlite+aiosqlite:///tmp/x.db"})

        assert settings.database.sqlalchemy_url == "sqlite+aiosqlite:///tmp/x.db"

    def test_password_hidden_in_repr(self, clean_env):
        settings = Settings(database={"psql": {"password": "topsecret"}})

        assert "topsecret" not in repr(settings)
