"""Async SQLAlchemy session factory."""
from collections.abc import AsyncGenerator
from typing import Any

from sqlalchemy import event
from sqlalchemy.ext.asyncio import (
    AsyncEngine,
    AsyncSession,
    async_sessionmaker,
    create_async_engine,
)

from core.config import get_settings


def is_sqlite_url(url: str) -> bool:
    """Return True for sqlite / aiosqlite database URLs."""
    return url.startswith("sqlite")


def enable_sqlite_savepoints(engine: AsyncEngine) -> None:
    """
    Make SAVEPOINT work on the sqlite driver.

    The driver issues its own BEGIN lazily, which breaks begin_nested(). Turning
    that off and emitting BEGIN ourselves gives sqlite the same transaction
    semantics the lifecycle service relies on with PostgreSQL. Foreign keys are
    switched on so ON DELETE CASCADE behaves the same as well.
    """

    @event.listens_for(engine.sync_engine, "connect")
    def _on_connect(dbapi_connection: Any, _connection_record: Any) -> None:
        dbapi_connection.isolation_level = None
        cursor = dbapi_connection.cursor()
        cursor.execute("PRAGMA foreign_keys=ON")
        cursor.close()

    @event.listens_for(engine.sync_engine, "begin")
    def _on_begin(conn: Any) -> None:
        conn.exec_driver_sql("BEGIN")


def build_engine(database_url: str, **kwargs: Any) -> AsyncEngine:
    """Create an async engine, applying sqlite-specific setup when needed."""
    engine = create_async_engine(database_url, **kwargs)
    if is_sqlite_url(database_url):
        enable_sqlite_savepoints(engine)
    return engine


settings = get_settings()

_engine_kwargs: dict[str, Any] = {"echo": False, "pool_pre_ping": True}
if not is_sqlite_url(settings.database_url):
    _engine_kwargs["pool_size"] = settings.db_pool_size
    _engine_kwargs["max_overflow"] = settings.db_max_overflow

engine = build_engine(settings.database_url, **_engine_kwargs)

async_session_factory = async_sessionmaker(
    engine,
    class_=AsyncSession,
    expire_on_commit=False,
)


def get_session_factory() -> async_sessionmaker:
    """Return the session factory for tasks that manage their own sessions."""
    return async_session_factory


async def get_async_session() -> AsyncGenerator[AsyncSession]:
    """
    Yield an async database session.

    Uses unit-of-work pattern: services use flush() for refreshing objects,
    commit happens once here at request end. This ensures atomic transactions
    per request - if anything fails, all changes are rolled back.
    """
    async with async_session_factory() as session:
        try:
            yield session
            await session.commit()
        except Exception:
            await session.rollback()
            raise
