"""maketalk - turn numbered screen recordings into a titled presentation video.

This module provides startup validation so required external tools are
located once, before any stage runs. Call validate_dependencies() during
application startup.
"""

import logging
import shutil
import subprocess
from pathlib import Path
from typing import NamedTuple, Optional

__version__ = "0.1.0"

logger = logging.getLogger(__name__)

BROWSER_CANDIDATES = (
    "google-chrome",
    "chromium",
    "chromium-browser",
    "/Applications/Google Chrome.app/Contents/MacOS/Google Chrome",
)


class ToolPaths(NamedTuple):
    """Resolved executables. transcriber=None selects the template path."""

    ffmpeg: str
    ffprobe: str
    browser: str
    transcriber: Optional[Path]


def _resolve(command: str) -> Optional[str]:
    found = shutil.which(command)
    if found:
        return found
    path = Path(command).expanduser()
    if path.is_file():
        return str(path)
    return None


def find_browser(configured: Optional[str] = None) -> Optional[str]:
    """Locate a headless-capable Chrome/Chromium, preferring the configured one."""
    candidates = (configured,) if configured else BROWSER_CANDIDATES
    for candidate in candidates:
        found = _resolve(candidate)
        if found:
            return found
    return None


def validate_dependencies(settings=None) -> ToolPaths:
    """Validate required system dependencies are available.

    ffmpeg, ffprobe and a Chrome/Chromium browser are required. The
    transcriber is optional; its absence is reported and returned as None.

    Raises:
        ExternalToolUnavailable: If any required tool is missing.
    """
    from maketalk.config import settings as default_settings
    from maketalk.errors import ExternalToolUnavailable

    settings = settings or default_settings
    tools = settings.tools
    missing = []

    ffmpeg = _resolve(tools.ffmpeg)
    if ffmpeg is None:
        missing.append("ffmpeg")
    else:
        try:
            result = subprocess.run([ffmpeg, "-version"], capture_output=True, check=True, text=True)
            logger.debug(f"ffmpeg validated: {result.stdout.splitlines()[0] if result.stdout else ffmpeg}")
        except (subprocess.CalledProcessError, OSError):
            missing.append("ffmpeg")

    ffprobe = _resolve(tools.ffprobe)
    if ffprobe is None:
        missing.append("ffprobe")

    browser = find_browser(tools.browser)
    if browser is None:
        missing.append("Chrome/Chromium for title card generation")

    if missing:
        raise ExternalToolUnavailable(missing)

    found = _resolve(str(settings.resolved_transcriber))
    transcriber = Path(found) if found else None
    if transcriber is None:
        logger.warning(
            f"Transcriber not found at {settings.resolved_transcriber} - will generate a title card template for manual editing"
        )

    return ToolPaths(ffmpeg=ffmpeg, ffprobe=ffprobe, browser=browser, transcriber=transcriber)
