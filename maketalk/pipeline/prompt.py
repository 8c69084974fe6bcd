"""Step 5: hand title authoring to a human or an LLM.

With transcripts available the stage writes a combined transcript and a
ready-to-paste prompt. Without a transcriber it writes sections.json and a
title_cards.json template instead. Either way the run then stops until the
title spec is written, unless an existing spec already covers every section
and the operator chooses to reuse it.
"""

import logging

from maketalk.errors import FatalPrecondition, TitleSpecInvalid
from maketalk.orchestrator.state import Stage
from maketalk.pipeline.context import StageContext
from maketalk.pipeline.discovery import discover
from maketalk.pipeline.title_spec import load_title_spec, offer_existing_spec, section_ids, write_title_spec
from maketalk.schemas.title_cards import SectionInfo, SectionsDocument, TitleCard, TitleCardDocument
from maketalk.schemas.work import StageResult

logger = logging.getLogger(__name__)

TITLE_PROMPT = """I have a video presentation split into multiple sections. I need you to help me create compelling title cards for each section.

Please read the transcriptions below and suggest:
1. A short, punchy title (max 6-8 words)
2. A descriptive subtitle (max 10-12 words)

The titles should be:
- Clear and engaging
- Consistent in style
- Professional but not boring
- Focused on the key message of each section

After we agree on the titles, please save them in a JSON file called `{filename}` with this format:
```json
{{
  "title_cards": [
    {{
      "number": "01",
      "title": "Title Here",
      "description": "Description here"
    }},
    ...
  ]
}}
```

Here are the transcriptions:

"""

TEMPLATE_INSTRUCTIONS = [
    "Please edit the title and description for each section",
    "Keep titles short and punchy (max 6-8 words)",
    "Keep descriptions concise (max 10-12 words)",
    "Save this file and run 'maketalk --continue' when done",
]

UNKNOWN_DURATION = "[run 'ffprobe' to get duration]"


def combine_transcripts(transcripts: dict[str, list[str]]) -> str:
    """
    Markdown document of all transcripts, sections in numeric order.

    Example:
        >>> combine_transcripts({"01": ["Hello"]})
        '# Video Transcriptions\\n\\n## Section 01\\n\\nHello\\n\\n---\\n\\n'
    """
    parts = ["# Video Transcriptions\n\n"]
    for section_id in sorted(transcripts):
        parts.append(f"## Section {section_id}\n\n")
        parts.append("\n\n".join(transcripts[section_id]))
        parts.append("\n\n---\n\n")
    return "".join(parts)


def _load_for_reuse(ctx: StageContext):
    try:
        return load_title_spec(ctx.workspace.title_cards_file)
    except TitleSpecInvalid as e:
        logger.warning(f"Ignoring existing title spec: {e}")
        return None


async def generate_prompt(ctx: StageContext) -> StageResult:
    """Write transcriptions_combined.md and title_prompt.txt, then defer."""
    ids = section_ids(ctx)
    if await offer_existing_spec(ctx, _load_for_reuse(ctx), ids):
        return StageResult(stage=Stage.PROMPT)

    transcripts: dict[str, list[str]] = {}
    for item in discover(ctx.workspace.stage_dir(Stage.TRANSCRIBE), [".txt"]):
        transcripts.setdefault(item.section_id, []).append(
            item.source_path.read_text(encoding="utf-8")
        )
    if not transcripts:
        raise FatalPrecondition("No transcriptions available to build a title prompt from")

    untranscribed = [s for s in ids if s not in transcripts]
    if untranscribed:
        logger.warning(f"No transcription for section(s) {', '.join(untranscribed)}")

    combined = combine_transcripts(transcripts)
    ctx.workspace.combined_transcript_path.write_text(combined, encoding="utf-8")

    title_file = ctx.workspace.title_cards_file
    prompt = TITLE_PROMPT.format(filename=title_file.name) + combined
    ctx.workspace.prompt_path.write_text(prompt, encoding="utf-8")
    ctx.status(f"Title prompt saved to: {ctx.workspace.prompt_path}")

    return StageResult(
        stage=Stage.PROMPT,
        outputs={
            "combined": ctx.workspace.combined_transcript_path,
            "prompt": ctx.workspace.prompt_path,
        },
        deferral="Waiting for title cards to be written",
        instructions=[
            f"Paste the contents of {ctx.workspace.prompt_path} into your LLM of choice",
            "Iterate on the titles until you're happy",
            f"Save the final titles to {title_file}",
            "Run: maketalk --continue",
        ],
    )


async def _section_duration(ctx: StageContext, section_id: str) -> str:
    try:
        info = await ctx.probe.probe(ctx.workspace.section_path(section_id))
    except FatalPrecondition:
        raise
    except Exception as e:
        logger.debug(f"Could not probe duration of section {section_id}: {e}")
        return UNKNOWN_DURATION
    if info.duration is None:
        return UNKNOWN_DURATION
    return f"{info.duration:.2f}s"


async def generate_template(ctx: StageContext) -> StageResult:
    """
    Write sections.json and a title_cards.json template, then defer.

    Cards already present in title_cards.json are kept as written; only
    sections without a card get a placeholder.

    Raises:
        TitleSpecInvalid: If an existing title_cards.json can not be parsed,
            since overwriting it would lose hand-written titles
    """
    ids = section_ids(ctx)
    title_file = ctx.workspace.title_cards_file
    existing = load_title_spec(title_file)
    if await offer_existing_spec(ctx, existing, ids):
        return StageResult(stage=Stage.TEMPLATE)

    sections = SectionsDocument(
        sections=[
            SectionInfo(
                number=section_id,
                filename=ctx.workspace.section_path(section_id).name,
                duration=await _section_duration(ctx, section_id),
            )
            for section_id in ids
        ]
    )
    ctx.workspace.sections_file.write_text(sections.model_dump_json(indent=2) + "\n", encoding="utf-8")

    cards = dict(existing.by_section) if existing else {}
    for section_id in ids:
        if section_id not in cards:
            cards[section_id] = TitleCard(
                number=section_id,
                title=f"Section {section_id} Title",
                description=f"Description for section {section_id}",
            )
    extras = dict(existing.model_extra or {}) if existing else {}
    extras.setdefault("instructions", TEMPLATE_INSTRUCTIONS)
    document = TitleCardDocument(
        title_cards=[cards[key] for key in sorted(cards)],
        **extras,
    )
    write_title_spec(document, title_file)
    ctx.status(f"Created template files: {ctx.workspace.sections_file.name}, {title_file.name}")

    return StageResult(
        stage=Stage.TEMPLATE,
        outputs={"sections": ctx.workspace.sections_file, "title_cards": title_file},
        deferral="Waiting for the title card template to be edited",
        instructions=[
            f"Edit {title_file} with your section titles and descriptions",
            "Run: maketalk --continue",
            'Tip: preview a card first with maketalk --preview 01 "Your Title" "Your Description"',
        ],
    )
