"""ffprobe wrapper returning MediaInfo."""

import json
import logging
from pathlib import Path
from typing import Optional

from maketalk.config import Settings, settings as default_settings
from maketalk.schemas.media import MediaInfo
from maketalk.services.process_runner import ProcessRunner

logger = logging.getLogger(__name__)


class MediaProbe:
    """
    Reads stream parameters of media files with ffprobe.

    Example:
        probe = MediaProbe(runner, ffprobe="ffprobe")
        info = await probe.probe(Path("01-section.mp4"))
    """

    def __init__(self, runner: ProcessRunner, ffprobe: Optional[str] = None, settings: Optional[Settings] = None):
        self.runner = runner
        self.ffprobe = ffprobe or (settings or default_settings).tools.ffprobe

    async def probe(self, path: Path) -> MediaInfo:
        """
        Probe `path`.

        Raises:
            ExternalProcessFailed: If ffprobe rejects the file
            ValueError: If ffprobe output is not JSON
        """
        output = await self.runner.capture(
            self.ffprobe,
            ["-v", "error", "-show_streams", "-show_format", "-of", "json", str(path)],
        )
        try:
            data = json.loads(output.stdout or "{}")
        except json.JSONDecodeError as e:
            raise ValueError(f"Unreadable ffprobe output for {path.name}") from e

        info = MediaInfo.from_ffprobe(data)
        logger.debug(f"Probed {path.name}: {info}")
        return info
