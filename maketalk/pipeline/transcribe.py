"""Step 4: one plain-text transcript per section."""

import logging
from pathlib import Path

from maketalk.orchestrator.stage_runner import run_stage
from maketalk.orchestrator.state import Stage
from maketalk.pipeline.context import StageContext
from maketalk.pipeline.discovery import discover
from maketalk.schemas.work import StageResult, WorkItem

logger = logging.getLogger(__name__)


async def transcribe_audio(ctx: StageContext) -> StageResult:
    items = discover(ctx.workspace.stage_dir(Stage.EXTRACT_AUDIO), [".wav"])
    transcriber = ctx.transcriber()

    async def transcribe(item: WorkItem) -> Path:
        ctx.status(f"Transcribing section {item.section_id}...")
        text = await transcriber.transcribe(item.source_path)
        output = ctx.workspace.transcript_path(item.section_id)
        output.write_text(text, encoding="utf-8")
        ctx.progress(f"Transcribing {item.section_id}", 100)
        return output

    return await run_stage(Stage.TRANSCRIBE, items, transcribe)
