"""Step 1: normalize raw recordings into uniformly encoded MP4 parts.

Every raw input is re-encoded at the shared output parameters. When inputs
disagree on frame size the operator decides: pad everything to the most
common size, or stop and fix the recordings by hand.
"""

import logging
from collections import Counter
from pathlib import Path
from typing import Optional

from maketalk.errors import FatalPrecondition, PipelineDeferred
from maketalk.orchestrator.stage_runner import run_stage
from maketalk.orchestrator.state import Stage
from maketalk.pipeline.context import StageContext
from maketalk.pipeline.discovery import find_sources
from maketalk.pipeline.encoding import output_encoding_args, pad_filter
from maketalk.schemas.media import MediaInfo
from maketalk.schemas.work import StageResult, WorkItem

logger = logging.getLogger(__name__)


def modal_dimensions(dimensions: list[tuple[int, int]]) -> Optional[tuple[int, int]]:
    """
    Most common (width, height); ties go to the first one seen.

    Examples:
        >>> modal_dimensions([(1280, 720), (1920, 1080), (1920, 1080)])
        (1920, 1080)
        >>> modal_dimensions([(1280, 720), (1920, 1080)])
        (1280, 720)
    """
    if not dimensions:
        return None
    return Counter(dimensions).most_common(1)[0][0]


async def _probe_all(ctx: StageContext, items: list[WorkItem]) -> dict[str, MediaInfo | Exception]:
    probed: dict[str, MediaInfo | Exception] = {}
    for item in items:
        try:
            info = await ctx.probe.probe(item.source_path)
            if info.video is None:
                raise ValueError("no video stream")
            probed[item.item_id] = info
        except FatalPrecondition:
            raise
        except Exception as e:
            logger.error(f"Error checking dimensions for {item.name}: {e}")
            probed[item.item_id] = e
    return probed


async def _resolve_target(ctx: StageContext, probed: dict[str, MediaInfo | Exception]) -> Optional[tuple[int, int]]:
    """Return the pad target, None when all inputs already agree."""
    dimensions = [
        (info.video.width, info.video.height)
        for info in probed.values()
        if isinstance(info, MediaInfo)
    ]
    counts = Counter(dimensions)
    if len(counts) <= 1:
        return None

    logger.warning("Source videos have different dimensions:")
    for (width, height), count in counts.items():
        logger.warning(f"  {width}x{height}: {count} video(s)")

    width, height = modal_dimensions(dimensions)
    accepted = await ctx.prompter.confirm(
        f"Convert all videos to the most common dimension {width}x{height} (may add black bars)?"
    )
    if not accepted:
        raise PipelineDeferred(
            "Source videos have different dimensions",
            ["Re-export the recordings at one frame size, then run maketalk again."],
        )
    return width, height


async def convert_sources(ctx: StageContext) -> StageResult:
    """
    Convert every raw input in the project directory.

    Raises:
        FatalPrecondition: If no raw input exists
        NamingConventionError: If any input lacks the NN- prefix (before any work)
        PipelineDeferred: If the operator refuses dimension padding
    """
    items = find_sources(ctx.workspace.project_dir, ctx.settings.storage.source_extensions)
    ctx.status(f"Found {len(items)} properly named source file(s)")

    probed = await _probe_all(ctx, items)
    target = await _resolve_target(ctx, probed)
    encoding = ctx.settings.encoding

    async def convert(item: WorkItem) -> Path:
        info = probed[item.item_id]
        if isinstance(info, Exception):
            raise info

        output = ctx.workspace.converted_path(item.item_id)
        args = ["-i", str(item.source_path)]
        if target is not None and info.video.dimensions != f"{target[0]}x{target[1]}":
            logger.info(f"Adding padding to {item.name}: {info.video.dimensions} -> {target[0]}x{target[1]}")
            args += ["-vf", pad_filter(info.video.width, info.video.height, *target)]
        args += ["-af", encoding.audio_filter, *output_encoding_args(encoding), "-y", str(output)]

        await ctx.run_ffmpeg(args, f"Converting {item.item_id}")
        logger.info(f"Converted: {item.item_id}")
        return output

    return await run_stage(Stage.CONVERT, items, convert)
