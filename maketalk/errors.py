"""Error taxonomy shared by the runner, the stages and the orchestrator.

FatalPrecondition and its subclasses stop the run before (or instead of)
doing work. ExternalProcessFailed is raised per item and normally absorbed by
the stage runner. PipelineDeferred is not an error: it stops the run on
purpose until someone edits a document.
"""

from typing import Optional, Sequence


class MakeTalkError(Exception):
    """Base class for all maketalk errors."""


class FatalPrecondition(MakeTalkError):
    """A condition that makes running (or continuing) the pipeline pointless."""

    def __init__(self, message: str, details: Optional[Sequence[str]] = None):
        super().__init__(message)
        self.message = message
        self.details = list(details or [])


class NamingConventionError(FatalPrecondition):
    """Raw inputs without the two-digit section prefix."""

    def __init__(self, files: Sequence[str]):
        super().__init__(
            "Source files must follow the naming convention NN-name.ext "
            "where NN is a two-digit section number (01, 02, ...)",
            details=list(files),
        )
        self.files = list(files)


class ExternalToolUnavailable(FatalPrecondition):
    """A required executable is missing or cannot be spawned."""

    def __init__(self, tools: Sequence[str]):
        super().__init__(
            f"Missing required dependencies: {', '.join(tools)}",
            details=list(tools),
        )
        self.tools = list(tools)


class TitleSpecInvalid(FatalPrecondition):
    """title_cards.json is missing, malformed, or does not cover all sections."""


class ExternalProcessFailed(MakeTalkError):
    """An external command exited with a non-zero status."""

    def __init__(self, command: str, exit_code: int, output_tail: Optional[Sequence[str]] = None):
        self.command = command
        self.exit_code = exit_code
        self.output_tail = list(output_tail or [])
        message = f"{command} exited with code {exit_code}"
        if self.output_tail:
            message += f": {self.output_tail[-1]}"
        super().__init__(message)


class TranscriptNotFound(MakeTalkError):
    """The transcriber ran but printed no recognizable transcript."""


class IncompatibleSegmentsError(MakeTalkError):
    """Final segments disagree on stream parameters, so stream copy is unsafe."""

    def __init__(self, mismatches: Sequence[str]):
        super().__init__(
            "Segments do not share codec, frame rate, resolution and audio "
            "parameters; refusing to stream-copy: " + "; ".join(mismatches)
        )
        self.mismatches = list(mismatches)


class PipelineDeferred(Exception):
    """Raised when the pipeline stops to wait for a human (or LLM) edit."""

    def __init__(self, reason: str, instructions: Optional[Sequence[str]] = None):
        super().__init__(reason)
        self.reason = reason
        self.instructions = list(instructions or [])
