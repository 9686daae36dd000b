"""
Tests for application configuration.
"""

import pytest

from devclip.config import ConfigurationError, Settings, get_settings, settings


def test_settings_loaded_from_environment():
    assert settings.database_url.startswith("postgresql")
    assert get_settings() is settings


def test_read_url_falls_back_to_primary():
    config = Settings(database_url="postgresql+asyncpg://u:p@db/devclip")

    assert config.read_database_url == "postgresql+asyncpg://u:p@db/devclip"


def test_read_replica_used_when_set():
    config = Settings(
        database_url="postgresql+asyncpg://u:p@db/devclip",
        database_read_url="postgresql+asyncpg://u:p@replica/devclip",
    )

    assert config.read_database_url.endswith("replica/devclip")


def test_missing_database_url_fails_fast(monkeypatch):
    monkeypatch.delenv("DATABASE_URL", raising=False)

    with pytest.raises(ConfigurationError, match="DATABASE_URL is required"):
        Settings(database_url="", _env_file=None)


def test_non_postgres_url_rejected():
    with pytest.raises(ConfigurationError, match="PostgreSQL"):
        Settings(database_url="sqlite:///devclip.db")


def test_ai_timeout_must_be_positive():
    with pytest.raises(ConfigurationError, match="AI_REQUEST_TIMEOUT_SECONDS"):
        Settings(
            database_url="postgresql+asyncpg://u:p@db/devclip",
            ai_request_timeout_seconds=0,
        )
