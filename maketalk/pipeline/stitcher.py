"""Step 7: stitch title cards and sections into the final presentation.

Uses the ffmpeg concat demuxer with stream copy. Stream copy silently
produces a broken file when segments disagree on codec parameters, so every
segment is probed first and a mismatch fails the stage.
"""

import logging
from pathlib import Path

from maketalk.errors import FatalPrecondition, IncompatibleSegmentsError
from maketalk.orchestrator.state import Stage
from maketalk.pipeline.context import StageContext
from maketalk.pipeline.merge import concat_list
from maketalk.schemas.work import StageResult, WorkItem, parse_section_id

logger = logging.getLogger(__name__)


def pair_segments(ctx: StageContext) -> list[tuple[str, Path, Path]]:
    """
    (section id, title video, section video) in numeric order.

    Sections without a title video and titles without a section are left
    out with a warning.
    """
    titles = {
        parse_section_id(p.name): p
        for p in ctx.workspace.list_files(Stage.TITLE_CARDS, "[0-9][0-9]-title.mp4")
    }
    sections = {
        parse_section_id(p.name): p
        for p in ctx.workspace.list_files(Stage.MERGE, "[0-9][0-9]-section.mp4")
    }

    for section_id in sorted(set(sections) - set(titles)):
        logger.warning(f"Section {section_id} has no title card video, leaving it out")
    for section_id in sorted(set(titles) - set(sections)):
        logger.warning(f"Title card {section_id} has no section video, leaving it out")

    return [
        (section_id, titles[section_id], sections[section_id])
        for section_id in sorted(set(titles) & set(sections))
    ]


async def verify_segments(ctx: StageContext, segments: list[Path]) -> None:
    """
    Probe every segment and compare stream parameters with the first.

    Raises:
        IncompatibleSegmentsError: If any segment differs
    """
    reference = None
    mismatches = []
    for segment in segments:
        signature = (await ctx.probe.probe(segment)).stream_signature()
        if reference is None:
            reference = (segment, signature)
        elif signature != reference[1]:
            mismatches.append(f"{segment.name} {signature} != {reference[0].name} {reference[1]}")
    if mismatches:
        raise IncompatibleSegmentsError(mismatches)


async def stitch_final(ctx: StageContext) -> StageResult:
    """
    Concatenate title(NN), section(NN) for every section into the final output.

    Raises:
        FatalPrecondition: If there is nothing to concatenate
        IncompatibleSegmentsError: If segments can not be stream-copied together
        ExternalProcessFailed: If ffmpeg fails
    """
    pairs = pair_segments(ctx)
    if not pairs:
        raise FatalPrecondition("No videos to concatenate")

    segments = [path for _, title, section in pairs for path in (title, section)]
    logger.info(f"Stitching {len(segments)} segments from {len(pairs)} section(s)")
    await verify_segments(ctx, segments)

    list_file = ctx.workspace.final_concat_path
    list_file.write_text(concat_list(segments), encoding="utf-8")

    output = ctx.workspace.final_output_path
    await ctx.run_ffmpeg(
        [
            "-f", "concat",
            "-safe", "0",
            "-i", str(list_file),
            "-c", "copy",
            "-movflags", "+faststart",
            "-y", str(output),
        ],
        "Creating final video",
    )

    duration = (await ctx.probe.probe(output)).duration
    if duration is not None:
        minutes, seconds = divmod(int(duration), 60)
        ctx.status(f"Final video created: {output} ({minutes}m {seconds}s)")
    else:
        ctx.status(f"Final video created: {output}")

    return StageResult(
        stage=Stage.FINAL,
        succeeded=[WorkItem(section_id=s, source_path=section) for s, _, section in pairs],
        outputs={"final": output},
    )
