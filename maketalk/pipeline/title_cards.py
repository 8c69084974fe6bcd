"""Step 6: render title card images and wrap them in short silent videos."""

import logging
from pathlib import Path

from maketalk.errors import TitleSpecInvalid
from maketalk.orchestrator.stage_runner import run_stage
from maketalk.orchestrator.state import Stage
from maketalk.pipeline.context import StageContext
from maketalk.pipeline.encoding import fit_filter, output_encoding_args
from maketalk.pipeline.title_spec import load_title_spec, section_ids
from maketalk.schemas.title_cards import TitleCardDocument
from maketalk.schemas.work import StageResult, WorkItem

logger = logging.getLogger(__name__)


def _require_spec(ctx: StageContext, ids: list[str]) -> TitleCardDocument:
    title_file = ctx.workspace.title_cards_file
    document = load_title_spec(title_file)
    if document is None:
        raise TitleSpecInvalid(
            f"{title_file.name} not found",
            [
                "Run maketalk to generate the template or the title prompt",
                f"Write the titles and descriptions into {title_file}",
                "Run maketalk --continue",
            ],
        )

    missing = document.missing_sections(ids)
    if missing:
        raise TitleSpecInvalid(
            f"{title_file.name} has no title card for section(s) {', '.join(missing)}",
            [f"Add an entry with \"number\": \"{s}\"" for s in missing],
        )

    for number in sorted(set(document.by_section) - set(ids)):
        logger.warning(f"Title card {number} has no matching section video, skipping")
    return document


def title_video_args(
    image: Path,
    output: Path,
    width: int,
    height: int,
    ctx: StageContext,
) -> list[str]:
    """Still image plus silent stereo track, encoded like the section videos."""
    enc = ctx.settings.encoding
    return [
        "-loop", "1",
        "-i", str(image),
        "-f", "lavfi",
        "-i", f"anullsrc=channel_layout=stereo:sample_rate={enc.audio_sample_rate}",
        "-vf", fit_filter(width, height),
        "-t", str(ctx.settings.title_cards.duration_seconds),
        *output_encoding_args(enc),
        "-shortest",
        "-y", str(output),
    ]


async def generate_title_cards(ctx: StageContext) -> StageResult:
    """
    Render NN-title.png and NN-title.mp4 for every section video.

    Raises:
        TitleSpecInvalid: If the spec is missing, malformed or leaves a section uncovered
    """
    ids = section_ids(ctx)
    document = _require_spec(ctx, ids)
    cards = document.by_section
    items = [WorkItem(section_id=s, source_path=ctx.workspace.section_path(s)) for s in ids]

    async def render(item: WorkItem) -> Path:
        card = cards[item.section_id]
        info = await ctx.probe.probe(item.source_path)
        if info.video is None:
            raise ValueError(f"{item.name} has no video stream")

        ctx.status(f"Rendering title card {card.number}: {card.title}")
        image = await ctx.renderer.render_png(
            card.number,
            card.title,
            card.description,
            ctx.workspace.title_image_path(card.number),
        )
        output = ctx.workspace.title_video_path(card.number)
        await ctx.run_ffmpeg(
            title_video_args(image, output, info.video.width, info.video.height, ctx),
            f"Title video {card.number}",
        )
        logger.info(f"Created title card {card.number}")
        return output

    return await run_stage(Stage.TITLE_CARDS, items, render)
