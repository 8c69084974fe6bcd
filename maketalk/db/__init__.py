"""
Database module for the stage manifest.

Provides the async SQLAlchemy engine factory and schema initialization.
"""
from sqlalchemy.ext.asyncio import AsyncEngine

from maketalk.db.engine import create_manifest_engine, create_session_factory
from maketalk.db.models import Base, PipelineRun, StageRecord


async def init_database(engine: AsyncEngine) -> None:
    """Create tables on first use. Idempotent."""
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)


__all__ = [
    "Base",
    "PipelineRun",
    "StageRecord",
    "create_manifest_engine",
    "create_session_factory",
    "init_database",
]
