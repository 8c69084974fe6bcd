"""Step 3: speech audio per section, in the transcriber's input format."""

import logging
from pathlib import Path

from maketalk.orchestrator.stage_runner import run_stage
from maketalk.orchestrator.state import Stage
from maketalk.pipeline.context import StageContext
from maketalk.pipeline.discovery import discover
from maketalk.pipeline.encoding import speech_audio_args
from maketalk.schemas.work import StageResult, WorkItem

logger = logging.getLogger(__name__)


async def extract_audio(ctx: StageContext) -> StageResult:
    items = discover(ctx.workspace.stage_dir(Stage.MERGE), [".mp4"])

    async def extract(item: WorkItem) -> Path:
        output = ctx.workspace.audio_path(item.section_id)
        await ctx.run_ffmpeg(
            [
                "-i", str(item.source_path),
                *speech_audio_args(ctx.settings.transcription),
                "-y", str(output),
            ],
            f"Extracting audio {item.section_id}",
        )
        return output

    return await run_stage(Stage.EXTRACT_AUDIO, items, extract)
