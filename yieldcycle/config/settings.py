"""
Application settings.

Loads configuration from environment variables using pydantic-settings.
"""

from loguru import logger
from pydantic import Field, field_validator, model_validator
from pydantic_settings import BaseSettings, SettingsConfigDict

from yieldcycle.config.operational_constants import (
    ACCRUAL_LOCK_TIMEOUT_SECONDS,
    DEFAULT_FANOUT_CONCURRENCY,
    MAX_FANOUT_CONCURRENCY,
    SQLITE_BUSY_TIMEOUT_SECONDS,
)


class Settings(BaseSettings):
    """Application settings loaded from environment variables."""

    # Database
    database_url: str
    database_echo: bool = False
    sqlite_busy_timeout: float = Field(
        default=SQLITE_BUSY_TIMEOUT_SECONDS,
        gt=0,
        description="Seconds a SQLite writer waits for the database lock",
    )

    # Redis (for Dramatiq and the accrual lock)
    redis_host: str = "localhost"
    redis_port: int = 6379
    redis_password: str | None = None
    redis_db: int = 0

    # Application
    environment: str = "production"
    debug: bool = False
    log_level: str = "INFO"
    log_file: str | None = "logs/yieldcycle.log"

    # Fan-out limits
    commission_fanout_concurrency: int = Field(
        default=DEFAULT_FANOUT_CONCURRENCY,
        ge=1,
        le=MAX_FANOUT_CONCURRENCY,
        description="Maximum parallel ancestor writes per commission batch",
    )
    accrual_fanout_concurrency: int = Field(
        default=DEFAULT_FANOUT_CONCURRENCY,
        ge=1,
        le=MAX_FANOUT_CONCURRENCY,
        description="Maximum parallel per-user accrual units per period",
    )

    # Commission crediting happens on PENDING -> PROCESSED; when enabled,
    # distribution processes its own batch right after creating it.
    commission_auto_process: bool = Field(
        default=True,
        description="Process commission batches immediately after distribution",
    )

    # Emergency stop flags
    emergency_stop_accrual: bool = Field(
        default=False,
        description="Emergency stop for all periodic accrual runs"
    )
    emergency_stop_commissions: bool = Field(
        default=False,
        description="Emergency stop for commission distribution"
    )

    accrual_lock_timeout: int = Field(
        default=ACCRUAL_LOCK_TIMEOUT_SECONDS,
        gt=0,
        description="Redis lock timeout for one accrual period run (seconds)",
    )

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=False,
        extra="ignore",
    )

    @model_validator(mode='after')
    def validate_production(self) -> 'Settings':
        """Validate production-specific requirements."""
        if self.environment == 'production':
            # DEBUG must be False in production
            if self.debug:
                raise ValueError(
                    'DEBUG must be False in production environment. '
                    'Set DEBUG=false in your .env file.'
                )

            if self.database_url.startswith('sqlite'):
                raise ValueError(
                    'SQLite is only supported for development and tests. '
                    'Set DATABASE_URL to a postgresql+asyncpg:// URL.'
                )

        if self.database_echo and self.environment == 'production':
            logger.warning(
                'DATABASE_ECHO is enabled in production; '
                'SQL statements with amounts will be written to the log.'
            )

        return self

    @field_validator('database_url')
    @classmethod
    def validate_database_url(cls, v: str) -> str:
        """Validate database URL and normalize it to an async driver."""
        if v.startswith('postgresql://'):
            return 'postgresql+asyncpg://' + v[len('postgresql://'):]
        if not v.startswith(('postgresql+asyncpg://', 'sqlite+aiosqlite://')):
            raise ValueError(
                'DATABASE_URL must start with postgresql://, '
                'postgresql+asyncpg:// or sqlite+aiosqlite://'
            )
        return v

    @field_validator('log_level')
    @classmethod
    def validate_log_level(cls, v: str) -> str:
        """Validate loguru level name."""
        level = v.upper()
        allowed = {"TRACE", "DEBUG", "INFO", "SUCCESS", "WARNING", "ERROR", "CRITICAL"}
        if level not in allowed:
            raise ValueError(f'Invalid LOG_LEVEL: {v}')
        return level

    @property
    def is_sqlite(self) -> bool:
        """True when the configured database is SQLite."""
        return self.database_url.startswith('sqlite')


# Global settings instance
settings = Settings()
