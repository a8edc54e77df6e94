"""Tests for settings validation."""

import pytest
from pydantic import ValidationError

from yieldcycle.config.settings import Settings


def _settings(**overrides) -> Settings:
    values = {
        "database_url": "postgresql+asyncpg://u:p@localhost/db",
        "environment": "test",
    }
    values.update(overrides)
    return Settings(_env_file=None, **values)


class TestDatabaseUrl:
    """DATABASE_URL normalization."""

    def test_plain_postgres_gets_async_driver(self):
        settings = _settings(database_url="postgresql://u:p@localhost/db")
        assert settings.database_url == "postgresql+asyncpg://u:p@localhost/db"

    def test_sqlite_allowed_outside_production(self):
        settings = _settings(database_url="sqlite+aiosqlite:///./dev.db")
        assert settings.is_sqlite

    def test_unknown_driver_rejected(self):
        with pytest.raises(ValidationError):
            _settings(database_url="mysql://u:p@localhost/db")


class TestProduction:
    """Production safety checks."""

    def test_sqlite_rejected_in_production(self):
        with pytest.raises(ValidationError):
            _settings(
                environment="production",
                database_url="sqlite+aiosqlite:///./prod.db",
            )

    def test_debug_rejected_in_production(self):
        with pytest.raises(ValidationError):
            _settings(environment="production", debug=True)

    def test_production_defaults_valid(self):
        settings = _settings(environment="production")
        assert settings.commission_auto_process is True
        assert settings.emergency_stop_accrual is False


class TestLimits:
    """Fan-out and logging settings."""

    def test_log_level_normalized(self):
        assert _settings(log_level="debug").log_level == "DEBUG"

    def test_bad_log_level_rejected(self):
        with pytest.raises(ValidationError):
            _settings(log_level="verbose")

    @pytest.mark.parametrize("value", [0, 65])
    def test_concurrency_bounds(self, value):
        with pytest.raises(ValidationError):
            _settings(accrual_fanout_concurrency=value)
