"""Per-run collaborators handed to every stage."""

import logging
from typing import Callable, Optional, Sequence

from maketalk import ToolPaths
from maketalk.config import Settings
from maketalk.services.file_manager import WorkspaceStore
from maketalk.services.media_probe import MediaProbe
from maketalk.services.process_runner import ProcessRunner
from maketalk.services.progress import ProgressParser
from maketalk.services.prompter import Prompter
from maketalk.services.title_renderer import TitleRenderer
from maketalk.services.transcriber import Transcriber

logger = logging.getLogger(__name__)


class StageContext:
    """
    Everything a stage needs to do its work.

    Args:
        settings: Active configuration
        workspace: Staging tree for this project
        runner: Process runner (owns the interrupt registry)
        tools: Executables resolved by validate_dependencies()
        prompter: Source of operator answers
        status_callback: Receives short status messages
        progress_callback: Receives (label, percent) for the active external process
    """

    def __init__(
        self,
        settings: Settings,
        workspace: WorkspaceStore,
        runner: ProcessRunner,
        tools: ToolPaths,
        prompter: Prompter,
        status_callback: Optional[Callable[[str], None]] = None,
        progress_callback: Optional[Callable[[str, int], None]] = None,
    ):
        self.settings = settings
        self.workspace = workspace
        self.runner = runner
        self.tools = tools
        self.prompter = prompter
        self.status_callback = status_callback
        self.progress_callback = progress_callback
        self.probe = MediaProbe(runner, ffprobe=tools.ffprobe)
        self.renderer = TitleRenderer(runner, tools.browser, settings=settings)

    @property
    def transcription_available(self) -> bool:
        return self.tools.transcriber is not None

    def transcriber(self) -> Transcriber:
        if self.tools.transcriber is None:
            raise RuntimeError("No transcriber available")
        return Transcriber(self.runner, self.tools.transcriber)

    def status(self, message: str) -> None:
        logger.info(message)
        if self.status_callback:
            self.status_callback(message)

    def progress(self, label: str, percent: int) -> None:
        if self.progress_callback:
            self.progress_callback(label, percent)

    async def run_ffmpeg(self, args: Sequence[str], label: str) -> None:
        """
        Run ffmpeg with progress reporting under `label`.

        A successful exit always reports 100%, also when ffmpeg printed no
        duration line to compute progress from.
        """
        parser = ProgressParser(lambda percent: self.progress(label, percent))
        await self.runner.run(
            self.tools.ffmpeg,
            ["-hide_banner", *args],
            on_line=parser.feed,
        )
        if parser.state.last_progress != 100:
            self.progress(label, 100)
