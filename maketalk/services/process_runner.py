"""External process execution with live diagnostic streaming.

Every child is started in its own session (and therefore its own process
group) and registered in a ProcessRegistry owned by the caller. On SIGINT or
SIGTERM the registry terminates every registered group before the host
exits, so an interrupted run never leaves ffmpeg encoding in the background.
"""

import asyncio
import codecs
import logging
import os
import re
import signal
from collections import deque
from typing import Callable, NamedTuple, Optional, Sequence

from maketalk.errors import ExternalProcessFailed, ExternalToolUnavailable

logger = logging.getLogger(__name__)

# ffmpeg rewrites its status line with \r, so both separators end a line
_LINE_SPLIT = re.compile(r"\r\n|\r|\n")
_READ_CHUNK = 4096
_OUTPUT_TAIL = 20
# Seconds a terminated group gets before SIGKILL
KILL_GRACE = 5.0


class CommandOutput(NamedTuple):
    returncode: int
    stdout: str
    stderr: str


class ProcessRegistry:
    """Live external processes, keyed by pid.

    Mutated from the single control task (register/unregister) and read from
    the signal handler. terminate_all() iterates over a snapshot, so removal
    during iteration is safe.
    """

    def __init__(self):
        self._processes: dict[int, asyncio.subprocess.Process] = {}
        self._installed_signals: list[int] = []

    def register(self, proc: asyncio.subprocess.Process) -> None:
        self._processes[proc.pid] = proc

    def unregister(self, proc: asyncio.subprocess.Process) -> None:
        self._processes.pop(proc.pid, None)

    def __len__(self) -> int:
        return len(self._processes)

    @property
    def pids(self) -> list[int]:
        return list(self._processes)

    def terminate_all(self, sig: int = signal.SIGTERM) -> None:
        """Send `sig` to every registered process group.

        Entries stay registered until their runner reaps them, so a later
        shutdown() can still escalate to SIGKILL.
        """
        for proc in list(self._processes.values()):
            if proc.returncode is None:
                logger.debug(f"Sending signal {sig} to process group {proc.pid}")
                _signal_group(proc, sig)

    async def shutdown(self, grace: float = KILL_GRACE) -> None:
        """Terminate all groups, wait up to `grace` seconds each, then SIGKILL."""
        procs = list(self._processes.values())
        self.terminate_all(signal.SIGTERM)
        for proc in procs:
            try:
                await stop_group(proc, grace)
            finally:
                self.unregister(proc)

    def install_signal_handlers(
        self,
        loop: asyncio.AbstractEventLoop,
        main_task: Optional[asyncio.Task] = None,
    ) -> None:
        """Terminate registered processes on SIGINT/SIGTERM, then cancel main_task."""

        def _on_signal(signum: int) -> None:
            logger.warning(f"Received {signal.Signals(signum).name}, cleaning up processes...")
            self.terminate_all(signal.SIGTERM)
            if main_task is not None and not main_task.done():
                main_task.cancel()

        for signum in (signal.SIGINT, signal.SIGTERM):
            loop.add_signal_handler(signum, _on_signal, signum)
            self._installed_signals.append(signum)

    def remove_signal_handlers(self, loop: asyncio.AbstractEventLoop) -> None:
        for signum in self._installed_signals:
            loop.remove_signal_handler(signum)
        self._installed_signals.clear()


def _signal_group(proc: asyncio.subprocess.Process, sig: int) -> None:
    try:
        os.killpg(proc.pid, sig)
    except (ProcessLookupError, PermissionError):
        # Already gone
        pass


async def stop_group(proc: asyncio.subprocess.Process, grace: float = KILL_GRACE) -> None:
    """SIGTERM the group of `proc`, SIGKILL it if still alive after `grace` seconds."""
    if proc.returncode is not None:
        return
    _signal_group(proc, signal.SIGTERM)
    try:
        await asyncio.wait_for(proc.wait(), timeout=grace)
    except asyncio.TimeoutError:
        logger.warning(f"Process {proc.pid} ignored SIGTERM, killing")
        _signal_group(proc, signal.SIGKILL)
        await proc.wait()


async def iter_lines(stream: asyncio.StreamReader):
    """Yield decoded lines, treating \\r, \\n and \\r\\n as terminators."""
    # Incremental decoding keeps multi-byte characters split across reads intact
    decoder = codecs.getincrementaldecoder("utf-8")(errors="replace")
    buffer = ""
    while True:
        chunk = await stream.read(_READ_CHUNK)
        if not chunk:
            buffer += decoder.decode(b"", final=True)
            break
        buffer += decoder.decode(chunk)
        parts = _LINE_SPLIT.split(buffer)
        buffer = parts.pop()
        for part in parts:
            if part:
                yield part
    if buffer:
        yield buffer


class ProcessRunner:
    """Spawn external commands and register them for interrupt cleanup.

    Example:
        runner = ProcessRunner(registry)
        await runner.run("ffmpeg", ["-i", "in.mov", "out.mp4"], on_line=parser.feed)
    """

    def __init__(self, registry: Optional[ProcessRegistry] = None, kill_grace: float = KILL_GRACE):
        self.registry = registry if registry is not None else ProcessRegistry()
        self.kill_grace = kill_grace

    async def _spawn(self, command: str, args: Sequence[str], **streams) -> asyncio.subprocess.Process:
        logger.debug(f"Running: {command} {' '.join(str(a) for a in args)}")
        try:
            proc = await asyncio.create_subprocess_exec(
                command,
                *[str(a) for a in args],
                stdin=asyncio.subprocess.DEVNULL,
                start_new_session=True,
                **streams,
            )
        except (FileNotFoundError, PermissionError) as e:
            raise ExternalToolUnavailable([command]) from e
        self.registry.register(proc)
        return proc

    async def _reap(self, proc: asyncio.subprocess.Process) -> None:
        """Make sure `proc` is gone and unregistered, whatever happened."""
        try:
            await stop_group(proc, self.kill_grace)
        finally:
            self.registry.unregister(proc)

    async def run(
        self,
        command: str,
        args: Sequence[str],
        on_line: Optional[Callable[[str], None]] = None,
    ) -> int:
        """Run `command`, feeding each diagnostic (stderr) line to on_line.

        Returns:
            The exit code (always 0; non-zero raises).

        Raises:
            ExternalToolUnavailable: If the executable cannot be spawned.
            ExternalProcessFailed: If the process exits non-zero.
        """
        proc = await self._spawn(
            command,
            args,
            stdout=asyncio.subprocess.DEVNULL,
            stderr=asyncio.subprocess.PIPE,
        )
        tail: deque[str] = deque(maxlen=_OUTPUT_TAIL)
        try:
            async for line in iter_lines(proc.stderr):
                tail.append(line)
                if on_line is not None:
                    on_line(line)
            returncode = await proc.wait()
        finally:
            await self._reap(proc)

        if returncode != 0:
            raise ExternalProcessFailed(command, returncode, list(tail))
        return returncode

    async def capture(
        self,
        command: str,
        args: Sequence[str],
        *,
        merge_stderr: bool = False,
        check: bool = True,
    ) -> CommandOutput:
        """Run `command` to completion and return its decoded output.

        With merge_stderr=True, stderr is folded into stdout (like 2>&1).
        """
        proc = await self._spawn(
            command,
            args,
            stdout=asyncio.subprocess.PIPE,
            stderr=asyncio.subprocess.STDOUT if merge_stderr else asyncio.subprocess.PIPE,
        )
        try:
            stdout, stderr = await proc.communicate()
        finally:
            await self._reap(proc)

        output = CommandOutput(
            returncode=proc.returncode,
            stdout=(stdout or b"").decode("utf-8", errors="replace"),
            stderr=(stderr or b"").decode("utf-8", errors="replace"),
        )
        if check and output.returncode != 0:
            diagnostic = output.stdout if merge_stderr else output.stderr
            raise ExternalProcessFailed(
                command, output.returncode, diagnostic.strip().splitlines()[-_OUTPUT_TAIL:]
            )
        return output
