"""Persistent record of which stages completed, and on what output.

Resume decisions read this manifest instead of inferring completion from
directory contents alone: a directory that is merely non-empty may hold the
partial output of an interrupted stage.
"""

import logging
import uuid
from datetime import datetime, timezone
from pathlib import Path
from typing import Iterable, Optional

from sqlalchemy import select, update

from maketalk.db import PipelineRun, StageRecord, create_manifest_engine, create_session_factory, init_database
from maketalk.orchestrator.state import EntryMode, Stage, downstream_of

logger = logging.getLogger(__name__)


class StageManifest:
    """Async SQLite-backed manifest of pipeline runs and stage completions.

    Example:
        async with StageManifest(workspace.manifest_db_path) as manifest:
            run_id = await manifest.start_run(EntryMode.FRESH)
    """

    def __init__(self, db_path: Path):
        self.db_path = Path(db_path)
        self._engine = None
        self._session = None

    async def open(self) -> "StageManifest":
        self.db_path.parent.mkdir(parents=True, exist_ok=True)
        self._engine = create_manifest_engine(self.db_path)
        self._session = create_session_factory(self._engine)
        await init_database(self._engine)
        return self

    async def close(self) -> None:
        if self._engine is not None:
            await self._engine.dispose()
            self._engine = None

    async def __aenter__(self) -> "StageManifest":
        return await self.open()

    async def __aexit__(self, exc_type, exc, tb) -> None:
        await self.close()

    async def start_run(self, mode: EntryMode) -> uuid.UUID:
        async with self._session() as session:
            run = PipelineRun(mode=mode.value, status="running")
            session.add(run)
            await session.commit()
            return run.id

    async def finish_run(
        self,
        run_id: uuid.UUID,
        status: str,
        step_log: Optional[dict] = None,
        total_duration: Optional[float] = None,
        error_message: Optional[str] = None,
    ) -> None:
        async with self._session() as session:
            run = await session.get(PipelineRun, run_id)
            if run is None:
                return
            run.status = status
            run.completed_at = datetime.now(timezone.utc)
            run.total_duration_seconds = total_duration
            run.log = step_log
            run.error_message = error_message
            await session.commit()

    async def stage_started(self, run_id: uuid.UUID, stage: Stage) -> int:
        """Record that `stage` began; earlier records for it become stale."""
        async with self._session() as session:
            await session.execute(
                update(StageRecord)
                .where(StageRecord.stage == stage.value)
                .values(invalidated=True)
            )
            record = StageRecord(run_id=run_id, stage=stage.value, status="started")
            session.add(record)
            await session.commit()
            return record.id

    async def stage_completed(
        self,
        record_id: int,
        fingerprint: str,
        succeeded: int,
        failed: int,
    ) -> None:
        async with self._session() as session:
            record = await session.get(StageRecord, record_id)
            if record is None:
                return
            record.status = "complete"
            record.output_fingerprint = fingerprint
            record.succeeded_count = succeeded
            record.failed_count = failed
            record.completed_at = datetime.now(timezone.utc)
            await session.commit()

    async def latest(self, stage: Stage) -> Optional[StageRecord]:
        """Most recent valid record for `stage`, or None."""
        async with self._session() as session:
            result = await session.execute(
                select(StageRecord)
                .where(StageRecord.stage == stage.value)
                .where(StageRecord.invalidated.is_(False))
                .order_by(StageRecord.id.desc())
                .limit(1)
            )
            return result.scalar_one_or_none()

    async def invalidate(self, stages: Iterable[Stage]) -> None:
        """Forget completion of `stages` (mirrors WorkspaceStore.reset_downstream_of)."""
        names = [s.value for s in stages]
        if not names:
            return
        async with self._session() as session:
            await session.execute(
                update(StageRecord)
                .where(StageRecord.stage.in_(names))
                .values(invalidated=True)
            )
            await session.commit()
        logger.debug(f"Invalidated manifest records for: {', '.join(names)}")

    async def invalidate_from(self, stage: Optional[Stage]) -> list[Stage]:
        """Invalidate every stage after `stage`, like WorkspaceStore.reset_downstream_of."""
        stages = downstream_of(stage)
        await self.invalidate(stages)
        return stages
