"""State machine constants and transition logic for pipeline orchestrator.

Defines the fixed stage order, the three entry modes and the transition
function that decides what runs next. Nothing here touches the filesystem,
so "what runs next" stays independent of "how it is awaited".
"""

from enum import Enum
from typing import Optional


class Stage(str, Enum):
    """Pipeline stages. Declaration order is execution order."""

    CONVERT = "convert"
    MERGE = "merge"
    EXTRACT_AUDIO = "extract_audio"
    TRANSCRIBE = "transcribe"
    PROMPT = "prompt"
    TEMPLATE = "template"
    TITLE_CARDS = "title_cards"
    FINAL = "final"

    @property
    def position(self) -> int:
        return STAGE_ORDER.index(self)


STAGE_ORDER = list(Stage)

STAGE_DESCRIPTIONS = {
    Stage.CONVERT: "Step 1: Converting source videos to MP4",
    Stage.MERGE: "Step 2: Merging multi-part sections",
    Stage.EXTRACT_AUDIO: "Step 3: Extracting audio from section videos",
    Stage.TRANSCRIBE: "Step 4: Transcribing audio",
    Stage.PROMPT: "Step 5: Preparing title prompt",
    Stage.TEMPLATE: "Step 5: Generating title card template for manual editing",
    Stage.TITLE_CARDS: "Step 6: Generating title cards",
    Stage.FINAL: "Step 7: Creating final video",
}

# Transitions with transcription available
STEP_TRANSITIONS: dict[Stage, Optional[Stage]] = {
    Stage.CONVERT: Stage.MERGE,
    Stage.MERGE: Stage.EXTRACT_AUDIO,
    Stage.EXTRACT_AUDIO: Stage.TRANSCRIBE,
    Stage.TRANSCRIBE: Stage.PROMPT,
    Stage.PROMPT: Stage.TITLE_CARDS,
    Stage.TEMPLATE: Stage.TITLE_CARDS,
    Stage.TITLE_CARDS: Stage.FINAL,
    Stage.FINAL: None,
}

# Without a transcriber, audio extraction through prompt generation is
# replaced by the template stage
DEGRADED_TRANSITIONS: dict[Stage, Optional[Stage]] = {
    **STEP_TRANSITIONS,
    Stage.MERGE: Stage.TEMPLATE,
}


class EntryMode(str, Enum):
    """How the run was entered; selected once from mutually exclusive flags."""

    FRESH = "fresh"
    RESUME_AFTER_CONVERSION = "resume_after_conversion"
    RESUME_AFTER_TITLES = "resume_after_titles"


ENTRY_STAGES = {
    EntryMode.FRESH: Stage.CONVERT,
    EntryMode.RESUME_AFTER_CONVERSION: Stage.MERGE,
    EntryMode.RESUME_AFTER_TITLES: Stage.TITLE_CARDS,
}

MODE_DESCRIPTIONS = {
    EntryMode.FRESH: "Fresh run: converting all source videos",
    EntryMode.RESUME_AFTER_CONVERSION: (
        "Resuming after conversion: keeping converted videos, "
        "clearing everything downstream"
    ),
    EntryMode.RESUME_AFTER_TITLES: (
        "Continuing after title authoring: rendering title cards "
        "and assembling the final video"
    ),
}

# Last stage whose artifacts survive entering in a given mode
# (None: nothing survives)
PRESERVED_THROUGH: dict[EntryMode, Optional[Stage]] = {
    EntryMode.FRESH: None,
    EntryMode.RESUME_AFTER_CONVERSION: Stage.CONVERT,
    EntryMode.RESUME_AFTER_TITLES: Stage.TEMPLATE,
}


def select_mode(resume_after_conversion: bool = False, continue_after_titles: bool = False) -> EntryMode:
    """Map entry flags to a mode.

    Raises:
        ValueError: If more than one mode flag is set.
    """
    if resume_after_conversion and continue_after_titles:
        raise ValueError("--resume-after-conversion and --continue are mutually exclusive")
    if resume_after_conversion:
        return EntryMode.RESUME_AFTER_CONVERSION
    if continue_after_titles:
        return EntryMode.RESUME_AFTER_TITLES
    return EntryMode.FRESH


def first_stage(mode: EntryMode) -> Stage:
    return ENTRY_STAGES[mode]


def next_stage(
    current: Optional[Stage],
    mode: EntryMode,
    *,
    transcription_available: bool = True,
) -> Optional[Stage]:
    """Return the stage after `current`, or None when the run is done.

    current=None means the run has not started yet.

    Examples:
        >>> next_stage(None, EntryMode.RESUME_AFTER_CONVERSION)
        <Stage.MERGE: 'merge'>
        >>> next_stage(Stage.MERGE, EntryMode.FRESH, transcription_available=False)
        <Stage.TEMPLATE: 'template'>
    """
    if current is None:
        return first_stage(mode)
    transitions = STEP_TRANSITIONS if transcription_available else DEGRADED_TRANSITIONS
    return transitions[current]


def downstream_of(stage: Optional[Stage]) -> list[Stage]:
    """Stages strictly after `stage` in execution order (all stages for None)."""
    if stage is None:
        return list(STAGE_ORDER)
    return STAGE_ORDER[stage.position + 1:]
