"""Step 2: one canonical NN-section.mp4 per section.

Reads converted parts and writes into the sections directory only, so
running it again on the same parts produces the same files.
"""

import logging
import shutil
from pathlib import Path

from maketalk.orchestrator.stage_runner import run_stage
from maketalk.orchestrator.state import Stage
from maketalk.pipeline.context import StageContext
from maketalk.pipeline.discovery import discover
from maketalk.pipeline.encoding import output_encoding_args
from maketalk.schemas.work import SectionGroup, StageResult, group_sections

logger = logging.getLogger(__name__)


def concat_list(paths: list[Path]) -> str:
    """concat demuxer input; absolute paths, single quotes escaped."""
    lines = []
    for path in paths:
        escaped = str(path.resolve()).replace("'", "'\\''")
        lines.append(f"file '{escaped}'\n")
    return "".join(lines)


def concat_filter(count: int) -> str:
    """
    filter_complex joining `count` inputs with one video and one audio stream each.

    Example:
        >>> concat_filter(2)
        '[0:v][0:a][1:v][1:a]concat=n=2:v=1:a=1[v][a]'
    """
    inputs = "".join(f"[{i}:v][{i}:a]" for i in range(count))
    return f"{inputs}concat=n={count}:v=1:a=1[v][a]"


async def _parts_share_streams(ctx: StageContext, parts: list[Path]) -> bool:
    signatures = {(await ctx.probe.probe(part)).stream_signature() for part in parts}
    return len(signatures) == 1


async def merge_sections(ctx: StageContext) -> StageResult:
    """Merge multi-part sections and copy single-part sections."""
    items = discover(ctx.workspace.stage_dir(Stage.CONVERT), [".mp4"])
    groups = group_sections(items)

    async def merge(group: SectionGroup) -> Path:
        output = ctx.workspace.section_path(group.section_id)
        parts = [part.source_path for part in group.parts]

        if not group.is_multipart:
            shutil.copyfile(parts[0], output)
            logger.info(f"Section {group.section_id}: single part {parts[0].name}")
            return output

        logger.info(f"Found multi-part section {group.section_id} with {len(parts)} parts")
        label = f"Merging section {group.section_id}"

        if await _parts_share_streams(ctx, parts):
            list_file = ctx.workspace.stage_dir(Stage.MERGE) / f"{group.section_id}-concat.txt"
            list_file.write_text(concat_list(parts), encoding="utf-8")
            try:
                await ctx.run_ffmpeg(
                    ["-f", "concat", "-safe", "0", "-i", str(list_file), "-c", "copy", "-y", str(output)],
                    label,
                )
            finally:
                list_file.unlink(missing_ok=True)
        else:
            logger.warning(f"Section {group.section_id}: parts differ in stream parameters, re-encoding")
            args = []
            for part in parts:
                args += ["-i", str(part)]
            args += [
                "-filter_complex", concat_filter(len(parts)),
                "-map", "[v]",
                "-map", "[a]",
                *output_encoding_args(ctx.settings.encoding),
                "-y", str(output),
            ]
            await ctx.run_ffmpeg(args, label)

        logger.info(f"Merged section {group.section_id}")
        return output

    return await run_stage(Stage.MERGE, groups, merge)
