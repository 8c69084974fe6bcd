"""
Tests for ProcessRunner and the interrupt cleanup registry.
"""
import asyncio
import os
import signal
import time

import pytest

from conftest import write_script
from maketalk.cli import commands
from maketalk.errors import ExternalProcessFailed, ExternalToolUnavailable
from maketalk.services.process_runner import ProcessRegistry, ProcessRunner


async def _wait_for_registration(registry: ProcessRegistry, timeout: float = 10.0) -> int:
    async def _poll():
        while not len(registry):
            await asyncio.sleep(0.01)
        return registry.pids[0]

    return await asyncio.wait_for(_poll(), timeout)


def _assert_gone(pid: int) -> None:
    with pytest.raises(ProcessLookupError):
        os.kill(pid, 0)


class TestRun:
    """Tests for ProcessRunner.run."""

    @pytest.mark.asyncio
    async def test_streams_lines_split_on_carriage_return(self, tmp_path):
        script = write_script(
            tmp_path / "chatty",
            "import sys\nsys.stderr.write('one\\rtwo\\nthree\\r\\nfour')\n",
        )
        lines = []
        runner = ProcessRunner()

        code = await runner.run(str(script), [], on_line=lines.append)

        assert code == 0
        assert lines == ["one", "two", "three", "four"]
        assert len(runner.registry) == 0

    @pytest.mark.asyncio
    async def test_multibyte_character_across_read_boundary(self, tmp_path):
        # 4095 ASCII bytes put the two-byte character across the first read
        script = write_script(
            tmp_path / "accented",
            "import sys\nsys.stderr.buffer.write(b'a' * 4095 + '\\u00e9'.encode() + b'\\n')\n",
        )
        lines = []

        await ProcessRunner().run(str(script), [], on_line=lines.append)

        assert lines == ["a" * 4095 + "\u00e9"]

    @pytest.mark.asyncio
    async def test_non_zero_exit_raises_with_tail(self, tmp_path):
        script = write_script(
            tmp_path / "broken",
            "import sys\nsys.stderr.write('bad input\\n')\nsys.exit(3)\n",
        )
        runner = ProcessRunner()

        with pytest.raises(ExternalProcessFailed) as excinfo:
            await runner.run(str(script), [])

        assert excinfo.value.exit_code == 3
        assert excinfo.value.command == str(script)
        assert excinfo.value.output_tail == ["bad input"]
        assert len(runner.registry) == 0

    @pytest.mark.asyncio
    async def test_missing_binary_is_tool_unavailable(self, tmp_path):
        runner = ProcessRunner()
        with pytest.raises(ExternalToolUnavailable) as excinfo:
            await runner.run(str(tmp_path / "does-not-exist"), [])
        assert excinfo.value.tools == [str(tmp_path / "does-not-exist")]

    @pytest.mark.asyncio
    async def test_capture_merges_stderr(self, tmp_path):
        script = write_script(
            tmp_path / "both",
            "import sys\nsys.stderr.write('err\\n')\nsys.stderr.flush()\nprint('out')\n",
        )
        output = await ProcessRunner().capture(str(script), [], merge_stderr=True)
        assert "err" in output.stdout
        assert "out" in output.stdout

    @pytest.mark.asyncio
    async def test_capture_unchecked_returns_code(self, tmp_path):
        script = write_script(tmp_path / "five", "import sys\nsys.exit(5)\n")
        output = await ProcessRunner().capture(str(script), [], check=False)
        assert output.returncode == 5


class TestInterrupt:
    """Interrupt reliably terminates the active external process group."""

    @pytest.mark.asyncio
    async def test_terminate_all_stops_running_process(self, sleeper):
        registry = ProcessRegistry()
        runner = ProcessRunner(registry)
        task = asyncio.create_task(runner.run(sleeper, []))

        pid = await _wait_for_registration(registry)
        registry.terminate_all()

        with pytest.raises(ExternalProcessFailed):
            await asyncio.wait_for(task, 10)
        assert len(registry) == 0
        _assert_gone(pid)

    @pytest.mark.asyncio
    async def test_signal_handler_cleans_up_and_cancels(self, sleeper):
        loop = asyncio.get_running_loop()
        registry = ProcessRegistry()
        runner = ProcessRunner(registry)
        task = asyncio.create_task(runner.run(sleeper, []))
        registry.install_signal_handlers(loop, task)
        try:
            pid = await _wait_for_registration(registry)
            os.kill(os.getpid(), signal.SIGTERM)

            with pytest.raises(asyncio.CancelledError):
                await asyncio.wait_for(task, 10)
        finally:
            registry.remove_signal_handlers(loop)

        assert len(registry) == 0
        _assert_gone(pid)

    @pytest.mark.asyncio
    async def test_cancelling_the_caller_reaps_the_child(self, sleeper):
        registry = ProcessRegistry()
        runner = ProcessRunner(registry)
        task = asyncio.create_task(runner.run(sleeper, []))

        pid = await _wait_for_registration(registry)
        task.cancel()

        with pytest.raises(asyncio.CancelledError):
            await task
        assert len(registry) == 0
        _assert_gone(pid)

    @pytest.mark.asyncio
    async def test_shutdown_escalates_to_kill(self, tmp_path):
        stubborn = write_script(
            tmp_path / "stubborn",
            "import signal, time\nsignal.signal(signal.SIGTERM, signal.SIG_IGN)\nprint('ready', flush=True)\ntime.sleep(60)\n",
        )
        registry = ProcessRegistry()
        proc = await asyncio.create_subprocess_exec(
            str(stubborn),
            stdout=asyncio.subprocess.PIPE,
            start_new_session=True,
        )
        registry.register(proc)
        await proc.stdout.readline()

        await registry.shutdown(grace=0.5)

        assert proc.returncode == -signal.SIGKILL
        assert len(registry) == 0

    @pytest.mark.asyncio
    async def test_terminated_child_is_killed_after_grace(self, tmp_path):
        stubborn = write_script(
            tmp_path / "stubborn",
            "import signal, sys, time\nsignal.signal(signal.SIGTERM, signal.SIG_IGN)\n"
            "sys.stderr.write('ready\\n')\nsys.stderr.flush()\ntime.sleep(60)\n",
        )
        registry = ProcessRegistry()
        runner = ProcessRunner(registry, kill_grace=0.5)
        task = asyncio.create_task(runner.run(str(stubborn), []))

        pid = await _wait_for_registration(registry)
        registry.terminate_all()
        # SIGTERM alone leaves the entry registered for escalation
        assert registry.pids == [pid]
        task.cancel()

        with pytest.raises(asyncio.CancelledError):
            await asyncio.wait_for(task, 10)
        assert len(registry) == 0
        _assert_gone(pid)

    @pytest.mark.asyncio
    async def test_interrupted_command_kills_stubborn_child(self, tmp_path):
        stubborn = write_script(
            tmp_path / "stubborn",
            "import signal, sys, time\nsignal.signal(signal.SIGTERM, signal.SIG_IGN)\n"
            "sys.stderr.write('ready\\n')\nsys.stderr.flush()\ntime.sleep(60)\n",
        )
        pids = []

        async def body(runner):
            def on_line(line):
                if line == "ready" and not pids:
                    pids.append(runner.registry.pids[0])
                    os.kill(os.getpid(), signal.SIGTERM)

            await runner.run(str(stubborn), [], on_line=on_line)
            return 0

        started = time.monotonic()
        code = await asyncio.wait_for(asyncio.create_task(commands._guarded(body)), 30)

        assert code == commands.EXIT_INTERRUPTED
        assert time.monotonic() - started < 30
        _assert_gone(pids[0])
