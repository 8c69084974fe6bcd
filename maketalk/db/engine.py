"""
Database engine configuration for the stage manifest.

Provides an async SQLAlchemy engine on an SQLite file inside the workspace,
with WAL mode and crash-safe PRAGMA configuration.
"""
from pathlib import Path

from sqlalchemy import event
from sqlalchemy.ext.asyncio import (
    AsyncEngine,
    AsyncSession,
    async_sessionmaker,
    create_async_engine,
)


def configure_sqlite_pragmas(dbapi_conn, connection_record):
    """
    Configure SQLite PRAGMA settings for crash safety.

    - WAL mode: Write-Ahead Logging
    - FULL synchronous: a stage marked complete stays complete after a crash
    - Foreign keys: Enable referential integrity
    - Busy timeout: Wait up to 5s for locks
    """
    cursor = dbapi_conn.cursor()
    cursor.execute("PRAGMA journal_mode=WAL")
    cursor.execute("PRAGMA synchronous=FULL")
    cursor.execute("PRAGMA foreign_keys=ON")
    cursor.execute("PRAGMA busy_timeout=5000")
    cursor.close()


def create_manifest_engine(db_path: Path) -> AsyncEngine:
    """Create an aiosqlite engine for `db_path` with PRAGMAs registered."""
    engine = create_async_engine(f"sqlite+aiosqlite:///{db_path}", echo=False)
    # CRITICAL: Use engine.sync_engine for aiosqlite compatibility
    event.listens_for(engine.sync_engine, "connect")(configure_sqlite_pragmas)
    return engine


def create_session_factory(engine: AsyncEngine) -> async_sessionmaker[AsyncSession]:
    # expire_on_commit=False keeps returned rows usable after commit
    return async_sessionmaker(engine, expire_on_commit=False, class_=AsyncSession)
