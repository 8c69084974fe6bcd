"""
Speech-to-text through an external transcription binary.

The binary takes one audio path and prints, among other diagnostics,
a line of the form: Transcription: "the spoken text"
"""

import logging
import re
from pathlib import Path

from maketalk.errors import TranscriptNotFound
from maketalk.services.process_runner import ProcessRunner

logger = logging.getLogger(__name__)

TRANSCRIPT_PATTERN = re.compile(r'Transcription: "(.*?)"', re.DOTALL)


def extract_transcript(output: str) -> str:
    """
    Pull the quoted transcript out of the binary's output.

    Raises:
        TranscriptNotFound: If no non-empty transcript is present
    """
    match = TRANSCRIPT_PATTERN.search(output)
    if not match or not match.group(1):
        raise TranscriptNotFound("No transcription found in transcriber output")
    return match.group(1)


class Transcriber:
    """
    Runs the external transcriber on extracted audio.

    Example:
        transcriber = Transcriber(runner, Path("/opt/yakety/transcribe"))
        text = await transcriber.transcribe(Path("01-section.wav"))
    """

    def __init__(self, runner: ProcessRunner, binary: Path):
        self.runner = runner
        self.binary = binary

    async def transcribe(self, audio_path: Path) -> str:
        output = await self.runner.capture(str(self.binary), [str(audio_path)], merge_stderr=True)
        text = extract_transcript(output.stdout)
        logger.debug(f"Transcribed {audio_path.name}: {len(text)} chars")
        return text
