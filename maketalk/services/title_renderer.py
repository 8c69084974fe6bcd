"""Title card image rendering through a headless browser screenshot."""

import logging
import os
import tempfile
from pathlib import Path
from typing import Optional

from maketalk.config import Settings, settings as default_settings
from maketalk.errors import MakeTalkError
from maketalk.services.process_runner import ProcessRunner
from maketalk.services.title_template import render_title_card_html

logger = logging.getLogger(__name__)


class TitleRenderer:
    """
    Renders title cards to HTML and, through the browser, to PNG.

    Example:
        renderer = TitleRenderer(runner, browser="chromium")
        await renderer.render_png("01", "Intro", "Where we start", Path("01-title.png"))
    """

    def __init__(self, runner: ProcessRunner, browser: Optional[str], settings: Optional[Settings] = None):
        self.runner = runner
        self.browser = browser
        self.settings = settings or default_settings

    def html(self, number: str, title: str, description: str) -> str:
        return render_title_card_html(
            number,
            title,
            description,
            self.settings.title_cards.width,
            self.settings.title_cards.height,
        )

    def write_html(self, number: str, title: str, description: str, output: Path) -> Path:
        output.write_text(self.html(number, title, description), encoding="utf-8")
        return output

    async def render_png(self, number: str, title: str, description: str, output: Path) -> Path:
        """
        Screenshot the card into `output`.

        The HTML is written to a temporary file next to the output and
        removed afterwards.

        Raises:
            MakeTalkError: If no browser is configured or no image was produced
            ExternalProcessFailed: If the browser exits non-zero
        """
        if not self.browser:
            raise MakeTalkError("Chrome/Chromium not found; cannot render title card images")

        width = self.settings.title_cards.width
        height = self.settings.title_cards.height
        fd, html_name = tempfile.mkstemp(prefix=f"title_card_{number}_", suffix=".html", dir=output.parent)
        html_path = Path(html_name)
        try:
            with os.fdopen(fd, "w", encoding="utf-8") as f:
                f.write(self.html(number, title, description))

            output.unlink(missing_ok=True)
            await self.runner.capture(
                self.browser,
                [
                    "--headless",
                    "--disable-gpu",
                    "--hide-scrollbars",
                    f"--screenshot={output.resolve()}",
                    f"--window-size={width},{height}",
                    html_path.resolve().as_uri(),
                ],
            )
        finally:
            html_path.unlink(missing_ok=True)

        if not output.exists():
            raise MakeTalkError(f"Browser produced no screenshot for section {number}")
        logger.debug(f"Rendered title card {output.name}")
        return output
