"""Main pipeline orchestrator with resumable stage execution and manifest tracking.

Coordinates the presentation pipeline with:
- Explicit state machine transitions (maketalk.orchestrator.state)
- Entry-mode preconditions checked against the stage manifest
- Selective reset of downstream stage output before running
- Per-step timing recorded on the PipelineRun
- Deferral when a human has to author titles
- Progress callback interface for the CLI
"""

import logging
import time
import uuid
from pathlib import Path
from typing import Awaitable, Callable, Optional

from pydantic import BaseModel, Field

from maketalk.errors import FatalPrecondition, PipelineDeferred, TitleSpecInvalid
from maketalk.orchestrator.state import (
    MODE_DESCRIPTIONS,
    PRESERVED_THROUGH,
    STAGE_DESCRIPTIONS,
    EntryMode,
    Stage,
    next_stage,
)
from maketalk.pipeline.audio import extract_audio
from maketalk.pipeline.context import StageContext
from maketalk.pipeline.convert import convert_sources
from maketalk.pipeline.discovery import find_sources
from maketalk.pipeline.merge import merge_sections
from maketalk.pipeline.prompt import generate_prompt, generate_template
from maketalk.pipeline.stitcher import stitch_final
from maketalk.pipeline.title_cards import generate_title_cards
from maketalk.pipeline.transcribe import transcribe_audio
from maketalk.schemas.work import StageResult
from maketalk.services.stage_manifest import StageManifest

logger = logging.getLogger(__name__)

StageHandler = Callable[[StageContext], Awaitable[StageResult]]

STAGE_HANDLERS: dict[Stage, StageHandler] = {
    Stage.CONVERT: convert_sources,
    Stage.MERGE: merge_sections,
    Stage.EXTRACT_AUDIO: extract_audio,
    Stage.TRANSCRIBE: transcribe_audio,
    Stage.PROMPT: generate_prompt,
    Stage.TEMPLATE: generate_template,
    Stage.TITLE_CARDS: generate_title_cards,
    Stage.FINAL: stitch_final,
}

# Stage whose output directory a stage reads (step 1 reads the project dir)
STAGE_INPUTS: dict[Stage, Stage] = {
    Stage.MERGE: Stage.CONVERT,
    Stage.EXTRACT_AUDIO: Stage.MERGE,
    Stage.TRANSCRIBE: Stage.EXTRACT_AUDIO,
    Stage.PROMPT: Stage.TRANSCRIBE,
    Stage.TEMPLATE: Stage.MERGE,
    Stage.TITLE_CARDS: Stage.MERGE,
    Stage.FINAL: Stage.TITLE_CARDS,
}

MODE_REASONS = {
    EntryMode.FRESH: "no resume flag given",
    EntryMode.RESUME_AFTER_CONVERSION: "--resume-after-conversion given",
    EntryMode.RESUME_AFTER_TITLES: "--continue given",
}


class PipelineOutcome(BaseModel):
    """Summary of a run that reached the end of the stage sequence."""

    run_id: uuid.UUID
    mode: EntryMode
    output: Optional[Path] = None
    results: list[StageResult] = Field(default_factory=list)
    step_log: dict[str, float] = Field(default_factory=dict)


class PipelineOrchestrator:
    """
    Runs the stages for one entry mode.

    Example:
        orchestrator = PipelineOrchestrator(ctx, EntryMode.FRESH)
        outcome = await orchestrator.run()

    Raises from run():
        FatalPrecondition: Preconditions not met; nothing more is attempted
        PipelineDeferred: Stopped on purpose until a title spec is written
        IncompatibleSegmentsError / ExternalProcessFailed: Final stitch failed
    """

    def __init__(self, ctx: StageContext, mode: EntryMode):
        self.ctx = ctx
        self.mode = mode
        self.workspace = ctx.workspace

    async def run(self) -> PipelineOutcome:
        ctx = self.ctx
        ctx.status(f"{MODE_DESCRIPTIONS[self.mode]} ({MODE_REASONS[self.mode]})")
        if not ctx.transcription_available and self.mode is not EntryMode.RESUME_AFTER_TITLES:
            logger.warning(
                "Transcriber not available: steps 3-5 are replaced by a title card template for manual editing"
            )

        self.workspace.ensure_layout()
        async with StageManifest(self.workspace.manifest_db_path) as manifest:
            await self._check_entry(manifest)

            preserved = PRESERVED_THROUGH[self.mode]
            self.workspace.reset_downstream_of(preserved)
            await manifest.invalidate_from(preserved)

            run_id = await manifest.start_run(self.mode)
            outcome = PipelineOutcome(run_id=run_id, mode=self.mode)
            pipeline_start = time.monotonic()

            try:
                stage = next_stage(None, self.mode, transcription_available=ctx.transcription_available)
                while stage is not None:
                    result = await self._run_stage(manifest, run_id, stage, outcome.step_log)
                    outcome.results.append(result)
                    if result.deferral:
                        raise PipelineDeferred(result.deferral, result.instructions)
                    stage = next_stage(stage, self.mode, transcription_available=ctx.transcription_available)
            except PipelineDeferred:
                await manifest.finish_run(
                    run_id, "deferred", outcome.step_log, time.monotonic() - pipeline_start
                )
                raise
            except BaseException as e:
                status = "failed" if isinstance(e, Exception) else "interrupted"
                await manifest.finish_run(
                    run_id, status, outcome.step_log, time.monotonic() - pipeline_start, str(e)[:500]
                )
                raise

            total = time.monotonic() - pipeline_start
            await manifest.finish_run(run_id, "complete", outcome.step_log, total)

        final = outcome.results[-1] if outcome.results else None
        if final is not None and final.stage is Stage.FINAL:
            outcome.output = final.outputs.get("final")
        logger.info(f"Pipeline completed in {total:.2f}s")
        return outcome

    async def _check_entry(self, manifest: StageManifest) -> None:
        """Preconditions of the entry mode, checked before anything is reset."""
        if self.mode is EntryMode.FRESH:
            # Naming errors must not cost the operator earlier output
            find_sources(self.workspace.project_dir, self.ctx.settings.storage.source_extensions)

        elif self.mode is EntryMode.RESUME_AFTER_CONVERSION:
            converted = self.workspace.stage_dir(Stage.CONVERT)
            if not self.workspace.is_populated(Stage.CONVERT, "*.mp4"):
                raise FatalPrecondition(
                    f"No converted videos found in {converted}",
                    ["Run maketalk without --resume-after-conversion first"],
                )
            await self._check_manifest(manifest, Stage.CONVERT)
            count = len(self.workspace.list_files(Stage.CONVERT, "*.mp4"))
            self.ctx.status(f"Found {count} converted video(s)")

        elif self.mode is EntryMode.RESUME_AFTER_TITLES:
            title_file = self.workspace.title_cards_file
            if not title_file.exists():
                raise TitleSpecInvalid(
                    f"{title_file.name} not found",
                    [
                        "Run maketalk to generate the template or the title prompt",
                        "Edit the titles and descriptions",
                        "Run maketalk --continue",
                    ],
                )
            if not self.workspace.is_populated(Stage.MERGE, "*-section.mp4"):
                raise FatalPrecondition(
                    f"No section videos found in {self.workspace.stage_dir(Stage.MERGE)}",
                    ["Run maketalk (or maketalk --resume-after-conversion) first"],
                )
            await self._check_manifest(manifest, Stage.MERGE)

    async def _check_manifest(self, manifest: StageManifest, stage: Stage) -> None:
        """
        Refuse to resume on top of a stage that started but never completed.

        No record at all (workspace from an older run or copied by hand) is
        accepted on the directory check alone.
        """
        record = await manifest.latest(stage)
        if record is None:
            logger.debug(f"No manifest record for {stage.value}, trusting directory contents")
            return
        if record.status != "complete":
            raise FatalPrecondition(
                f"{STAGE_DESCRIPTIONS[stage]} was interrupted before completing; its output is incomplete",
                ["Run maketalk again from an earlier entry point"],
            )
        if record.output_fingerprint != self.workspace.fingerprint(stage):
            logger.warning(f"Output of {stage.value} changed since it completed")

    async def _run_stage(
        self,
        manifest: StageManifest,
        run_id: uuid.UUID,
        stage: Stage,
        step_log: dict[str, float],
    ) -> StageResult:
        input_stage = STAGE_INPUTS.get(stage)
        if input_stage is not None and not self.workspace.is_populated(input_stage):
            input_dir = self.workspace.stage_dir(input_stage)
            if self.mode is EntryMode.FRESH or stage is Stage.FINAL:
                raise FatalPrecondition(f"No work discovered for {stage.value}: {input_dir} is empty")
            reason = f"{input_dir} is empty"
            logger.warning(f"Skipping {STAGE_DESCRIPTIONS[stage]}: {reason}")
            return StageResult(stage=stage, skipped_reason=reason)

        step_start = time.monotonic()
        self.ctx.status(STAGE_DESCRIPTIONS[stage])
        record_id = await manifest.stage_started(run_id, stage)

        result = await STAGE_HANDLERS[stage](self.ctx)

        await manifest.stage_completed(
            record_id,
            self.workspace.fingerprint(stage),
            len(result.succeeded),
            len(result.failed),
        )
        step_duration = time.monotonic() - step_start
        step_log[stage.value] = step_duration
        logger.info(
            f"{stage.value} completed in {step_duration:.2f}s "
            f"({len(result.succeeded)} succeeded, {len(result.failed)} failed)"
        )
        return result
