"""
Database configuration.

Async SQLAlchemy engine and session factory shared by services and tasks.
"""

from sqlalchemy import event
from sqlalchemy.ext.asyncio import (
    AsyncEngine,
    AsyncSession,
    async_sessionmaker,
    create_async_engine,
)

from yieldcycle.config.settings import settings


def create_engine(
    database_url: str | None = None,
    echo: bool | None = None,
    **kwargs,
) -> AsyncEngine:
    """
    Create async engine for the configured database.

    SQLite connections (development and tests) are switched to
    ``BEGIN IMMEDIATE`` transactions with a busy timeout, so concurrent
    writers from the fan-out workers queue on the database lock instead of
    failing with "database is locked".

    Args:
        database_url: Override for settings.database_url
        echo: Override for settings.database_echo
        **kwargs: Extra create_async_engine arguments

    Returns:
        Configured AsyncEngine
    """
    url = database_url or settings.database_url
    echo = settings.database_echo if echo is None else echo

    if url.startswith("sqlite"):
        connect_args = kwargs.pop("connect_args", {})
        connect_args.setdefault("timeout", settings.sqlite_busy_timeout)
        engine = create_async_engine(
            url, echo=echo, connect_args=connect_args, **kwargs
        )
        _enable_sqlite_immediate_transactions(engine)
        return engine

    kwargs.setdefault("pool_pre_ping", True)
    return create_async_engine(url, echo=echo, **kwargs)


def _enable_sqlite_immediate_transactions(engine: AsyncEngine) -> None:
    """Let SQLAlchemy emit BEGIN itself and take the write lock up front."""

    @event.listens_for(engine.sync_engine, "connect")
    def _on_connect(dbapi_connection, connection_record) -> None:
        # Disable the driver's own transaction handling
        dbapi_connection.isolation_level = None

    @event.listens_for(engine.sync_engine, "begin")
    def _on_begin(conn) -> None:
        conn.exec_driver_sql("BEGIN IMMEDIATE")


def create_session_maker(
    engine: AsyncEngine,
) -> async_sessionmaker[AsyncSession]:
    """Create session factory bound to engine."""
    return async_sessionmaker(
        bind=engine,
        class_=AsyncSession,
        expire_on_commit=False,
        autoflush=False,
    )


async_engine = create_engine()
async_session_maker = create_session_maker(async_engine)
