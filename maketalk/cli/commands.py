"""CLI for maketalk using Typer and Rich.

A single command with mutually exclusive modes:
- (no flag): fresh run from the raw recordings
- --resume-after-conversion: keep converted videos, redo everything after
- --continue: title spec written, render title cards and the final video
- --level-audio PATH: standalone loudness normalization of one file
- --preview ID TITLE DESCRIPTION: render one title card locally
"""

import asyncio
from pathlib import Path
from typing import Awaitable, Callable, Optional, Tuple

import typer
from rich.console import Console
from rich.status import Status

from maketalk import find_browser, validate_dependencies
from maketalk.config import settings
from maketalk.errors import FatalPrecondition, PipelineDeferred
from maketalk.logging_config import setup_logging
from maketalk.orchestrator.pipeline import PipelineOrchestrator
from maketalk.orchestrator.state import select_mode
from maketalk.pipeline.context import StageContext
from maketalk.services.audio_leveler import AudioLeveler
from maketalk.services.file_manager import WorkspaceStore
from maketalk.services.process_runner import ProcessRegistry, ProcessRunner
from maketalk.services.prompter import ConsolePrompter, Prompter, ScriptedPrompter
from maketalk.services.title_renderer import TitleRenderer

EXIT_OK = 0
EXIT_FAILURE = 1
EXIT_DEFERRED = 3
EXIT_INTERRUPTED = 130

PREVIEW_BASENAME = "preview_title_card"

app = typer.Typer(
    name="maketalk",
    help="Turn numbered screen recordings into a presentation video with title cards",
    add_completion=False,
)
console = Console()


class StatusPausingPrompter(Prompter):
    """Stops the spinner while a question waits for input."""

    def __init__(self, inner: Prompter, status: Status):
        self.inner = inner
        self.status = status

    async def confirm(self, question: str) -> bool:
        self.status.stop()
        try:
            return await self.inner.confirm(question)
        finally:
            self.status.start()


@app.command()
def main(
    resume_after_conversion: bool = typer.Option(
        False, "--resume-after-conversion", help="Skip conversion and reuse converted videos"
    ),
    continue_: bool = typer.Option(
        False, "--continue", help="Continue after title_cards.json has been written"
    ),
    level_audio: Optional[Path] = typer.Option(
        None, "--level-audio", exists=True, dir_okay=False, help="Normalize the loudness of one file in place"
    ),
    preview: Tuple[str, str, str] = typer.Option(
        (None, None, None), "--preview", metavar="ID TITLE DESCRIPTION", help="Render a single title card"
    ),
    yes: bool = typer.Option(False, "--yes", "-y", help="Answer yes to every question"),
    project_dir: Path = typer.Option(
        Path("."), "--project-dir", exists=True, file_okay=False, help="Directory holding the recordings"
    ),
    verbose: bool = typer.Option(False, "--verbose", "-v", help="Debug logging"),
):
    """Build a presentation video from NN-name.mov recordings.

    Converts the recordings, merges multi-part sections, transcribes them,
    prepares a title prompt, renders title cards and stitches everything into
    final_presentation.mp4.
    """
    selected = [
        flag
        for flag, given in (
            ("--resume-after-conversion", resume_after_conversion),
            ("--continue", continue_),
            ("--level-audio", level_audio is not None),
            ("--preview", preview[0] is not None),
        )
        if given
    ]
    if len(selected) > 1:
        raise typer.BadParameter(f"{' and '.join(selected)} are mutually exclusive")

    setup_logging("DEBUG" if verbose else settings.log_level, console=console)

    if level_audio is not None:
        code = asyncio.run(_guarded(lambda runner: _level_audio_async(runner, level_audio)))
    elif preview[0] is not None:
        code = asyncio.run(_guarded(lambda runner: _preview_async(runner, project_dir, *preview)))
    else:
        try:
            tools = validate_dependencies(settings)
        except FatalPrecondition as e:
            _print_fatal(e)
            raise typer.Exit(code=EXIT_FAILURE)

        mode = select_mode(resume_after_conversion, continue_)
        prompter = ScriptedPrompter(default=True) if yes else ConsolePrompter(console)
        code = asyncio.run(
            _guarded(lambda runner: _run_pipeline_async(runner, tools, mode, project_dir, prompter))
        )

    raise typer.Exit(code=code)


async def _guarded(body: Callable[[ProcessRunner], Awaitable[int]]) -> int:
    """Run `body` with interrupt cleanup of every spawned process.

    Maps outcomes to exit codes.
    """
    loop = asyncio.get_running_loop()
    registry = ProcessRegistry()
    registry.install_signal_handlers(loop, asyncio.current_task())
    try:
        return await body(ProcessRunner(registry))

    except asyncio.CancelledError:
        await registry.shutdown()
        console.print()
        console.print("[yellow]Interrupted. All external processes were stopped.[/yellow]")
        return EXIT_INTERRUPTED

    except PipelineDeferred as e:
        console.print()
        console.print(f"[yellow]Paused:[/yellow] {e.reason}")
        if e.instructions:
            console.print("[yellow]Next steps:[/yellow]")
            for number, step in enumerate(e.instructions, start=1):
                console.print(f"  {number}. {step}", highlight=False)
        return EXIT_DEFERRED

    except FatalPrecondition as e:
        _print_fatal(e)
        return EXIT_FAILURE

    except Exception as e:
        console.print()
        console.print(f"[red]✗ Pipeline failed:[/red] {e}", highlight=False)
        return EXIT_FAILURE

    finally:
        registry.remove_signal_handlers(loop)


def _print_fatal(error: FatalPrecondition) -> None:
    console.print(f"[red]Error:[/red] {error.message}", highlight=False)
    for detail in error.details:
        console.print(f"  - {detail}", highlight=False)


async def _run_pipeline_async(runner, tools, mode, project_dir: Path, prompter: Prompter) -> int:
    """Async implementation of a pipeline run."""
    workspace = WorkspaceStore(project_dir, settings)

    with console.status("[bold green]Starting pipeline...") as status:

        def progress_callback(label: str, percent: int):
            status.update(f"[bold green]{label}... {percent}%")

        def status_callback(message: str):
            status.update(f"[bold green]{message}")

        ctx = StageContext(
            settings=settings,
            workspace=workspace,
            runner=runner,
            tools=tools,
            prompter=StatusPausingPrompter(prompter, status),
            status_callback=status_callback,
            progress_callback=progress_callback,
        )
        outcome = await PipelineOrchestrator(ctx, mode).run()

    console.print("[green]✓[/green] Presentation complete!")
    if outcome.output:
        console.print(f"[green]Output:[/green] {outcome.output}")
    return EXIT_OK


async def _level_audio_async(runner: ProcessRunner, path: Path) -> int:
    """Async implementation of --level-audio."""
    leveler = AudioLeveler(runner, settings=settings)
    with console.status("[bold green]Leveling audio...") as status:
        before, after = await leveler.level(
            path, on_progress=lambda percent: status.update(f"[bold green]Leveling audio... {percent}%")
        )

    console.print(f"[green]✓[/green] Audio leveled: {path}")
    console.print(f"  Before: {before.input_i} LUFS, {before.input_tp} dBTP, LRA {before.input_lra}")
    if after is not None:
        console.print(f"  After:  {after.input_i} LUFS, {after.input_tp} dBTP, LRA {after.input_lra}")
    return EXIT_OK


async def _preview_async(runner: ProcessRunner, project_dir: Path, number: str, title: str, description: str) -> int:
    """Async implementation of --preview."""
    renderer = TitleRenderer(runner, find_browser(settings.tools.browser), settings=settings)
    html_path = renderer.write_html(number, title, description, project_dir / f"{PREVIEW_BASENAME}.html")
    console.print(f"[green]✓[/green] Preview HTML: {html_path}")

    if renderer.browser is None:
        console.print("[yellow]Chrome/Chromium not found; open the HTML file in a browser instead[/yellow]")
        return EXIT_OK

    png_path = await renderer.render_png(number, title, description, project_dir / f"{PREVIEW_BASENAME}.png")
    console.print(f"[green]✓[/green] Preview image: {png_path}")
    return EXIT_OK
