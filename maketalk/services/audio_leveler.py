"""
Standalone two-pass EBU R128 loudness normalization.

Pass one measures the file with loudnorm's JSON report; pass two applies the
measured values with linear normalization into a temporary sibling file,
which then replaces the original.
"""

import json
import logging
import re
import time
from pathlib import Path
from typing import Callable, Optional

from pydantic import ValidationError

from maketalk.config import Settings, settings as default_settings
from maketalk.errors import FatalPrecondition, MakeTalkError
from maketalk.schemas.media import LoudnormStats
from maketalk.services.process_runner import ProcessRunner
from maketalk.services.progress import ProgressParser

logger = logging.getLogger(__name__)

_JSON_BLOCK = re.compile(r"\{[^{}]*\}", re.DOTALL)


def parse_loudnorm_report(output: str) -> LoudnormStats:
    """
    Extract the loudnorm JSON block from ffmpeg diagnostics.

    Raises:
        MakeTalkError: If no parseable report is present
    """
    for block in reversed(_JSON_BLOCK.findall(output)):
        try:
            return LoudnormStats.model_validate(json.loads(block))
        except (json.JSONDecodeError, ValidationError):
            continue
    raise MakeTalkError("Could not parse loudnorm analysis")


class AudioLeveler:
    """
    Levels the audio of one media file in place.

    Example:
        leveler = AudioLeveler(runner, ffmpeg="ffmpeg")
        before, after = await leveler.level(Path("final.mp4"))
    """

    def __init__(self, runner: ProcessRunner, ffmpeg: Optional[str] = None, settings: Optional[Settings] = None):
        self.runner = runner
        self.settings = settings or default_settings
        self.ffmpeg = ffmpeg or self.settings.tools.ffmpeg

    def _loudnorm(self, target: float) -> str:
        cfg = self.settings.loudness
        return f"loudnorm=I={target}:TP={cfg.true_peak}:LRA={cfg.loudness_range}"

    async def analyze(self, path: Path, target: Optional[float] = None) -> LoudnormStats:
        target = self.settings.loudness.integrated if target is None else target
        output = await self.runner.capture(
            self.ffmpeg,
            ["-hide_banner", "-i", str(path), "-af", f"{self._loudnorm(target)}:print_format=json", "-f", "null", "-"],
        )
        return parse_loudnorm_report(output.stderr)

    async def level(
        self,
        path: Path,
        target: Optional[float] = None,
        on_progress: Optional[Callable[[int], None]] = None,
    ) -> tuple[LoudnormStats, Optional[LoudnormStats]]:
        """
        Normalize `path` in place.

        Returns:
            (measured stats before, stats after or None if verification failed)

        Raises:
            FatalPrecondition: If the input does not exist
            MakeTalkError: If analysis fails
            ExternalProcessFailed: If the leveling pass fails
        """
        path = Path(path)
        if not path.exists():
            raise FatalPrecondition(f"Input file not found: {path}")

        target = self.settings.loudness.integrated if target is None else target
        temp_path = path.with_name(f"{path.stem}_temp_{int(time.time() * 1000)}{path.suffix}")

        logger.info(f"Analyzing audio levels of {path.name}")
        stats = await self.analyze(path, target)
        logger.info(
            f"Current levels: {stats.input_i} LUFS integrated, "
            f"{stats.input_tp} dB true peak, {stats.input_lra} LU range"
        )

        leveling_filter = (
            f"{self._loudnorm(target)}"
            f":measured_I={stats.input_i}:measured_LRA={stats.input_lra}"
            f":measured_TP={stats.input_tp}:measured_thresh={stats.input_thresh}"
            f":offset={stats.target_offset}:linear=true:print_format=summary"
        )
        try:
            await self.runner.run(
                self.ffmpeg,
                [
                    "-i", str(path),
                    "-af", leveling_filter,
                    "-c:v", "copy",
                    "-c:a", self.settings.encoding.audio_codec,
                    "-b:a", self.settings.encoding.audio_bitrate,
                    "-y", str(temp_path),
                ],
                on_line=ProgressParser(on_progress).feed,
            )
            temp_path.replace(path)
        finally:
            temp_path.unlink(missing_ok=True)

        logger.info(f"Audio leveling complete, file updated in place: {path}")

        try:
            after = await self.analyze(path, target)
        except MakeTalkError as e:
            logger.warning(f"Could not verify output levels: {e}")
            after = None
        return stats, after
