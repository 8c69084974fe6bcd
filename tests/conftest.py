"""
Pytest fixtures for maketalk tests.

The external tools are replaced by small executable Python scripts that
honour the same argument contracts and print the same kind of diagnostics,
so the tests spawn real processes without needing ffmpeg or a browser.

Fake media files are plain text: every fake encode writes "[<first input>]\\n",
and the concat demuxer concatenates those lines, so a final output reads
back as the ordered list of its segments.
"""
import json
import stat
import sys
from pathlib import Path

import pytest

from maketalk import ToolPaths
from maketalk.config import Settings, ToolsConfig
from maketalk.pipeline.context import StageContext
from maketalk.services.file_manager import WorkspaceStore
from maketalk.services.process_runner import ProcessRegistry, ProcessRunner
from maketalk.services.prompter import ScriptedPrompter

LOUDNORM_REPORT = {
    "input_i": "-23.54",
    "input_tp": "-7.96",
    "input_lra": "4.20",
    "input_thresh": "-34.10",
    "output_i": "-16.01",
    "output_tp": "-1.50",
    "output_lra": "3.90",
    "output_thresh": "-26.50",
    "normalization_type": "dynamic",
    "target_offset": "0.01",
}

FAKE_FFMPEG = '''
import json
import os
import sys

args = sys.argv[1:]
if args == ["-version"]:
    print("ffmpeg version 6.1-fake")
    sys.exit(0)

inputs = [args[i + 1] for i, arg in enumerate(args[:-1]) if arg == "-i"]
output = args[-1]

for path in inputs:
    if "fail" in os.path.basename(path):
        sys.stderr.write(path + ": Invalid data found when processing input\\n")
        sys.exit(1)

sys.stderr.write("  Duration: 00:00:10.00, start: 0.000000, bitrate: 2000 kb/s\\n")
sys.stderr.write("frame=  150 fps=30 time=00:00:05.00 bitrate=N/A speed=2x\\r")
sys.stderr.write("frame=  300 fps=30 time=00:00:10.00 bitrate=N/A speed=2x\\n")

if output == "-":
    sys.stderr.write("[Parsed_loudnorm_0 @ 0x1]\\n" + json.dumps(LOUDNORM, indent=4) + "\\n")
    sys.exit(0)

if "-f" in args and args[args.index("-f") + 1] == "concat":
    content = ""
    with open(inputs[0]) as listing:
        for line in listing:
            line = line.strip()
            if line.startswith("file '"):
                path = line[len("file '"):-1].replace("'\\\\''", "'")
                with open(path) as segment:
                    content += segment.read()
else:
    content = "[" + os.path.basename(inputs[0]) + "]\\n"

with open(output, "w") as f:
    f.write(content)
'''

FAKE_FFPROBE = '''
import json
import sys

path = sys.argv[-1]
try:
    with open(path) as f:
        text = f.read()
except OSError:
    sys.stderr.write(path + ": No such file or directory\\n")
    sys.exit(1)

meta = {}
if text.lstrip().startswith("{"):
    meta = json.loads(text)
if meta.get("broken"):
    sys.stderr.write(path + ": Invalid data found when processing input\\n")
    sys.exit(1)

print(json.dumps({
    "streams": [
        {
            "codec_type": "video",
            "codec_name": meta.get("codec", "h264"),
            "width": meta.get("width", 1920),
            "height": meta.get("height", 1080),
            "pix_fmt": "yuv420p",
            "r_frame_rate": "30/1",
        },
        {
            "codec_type": "audio",
            "codec_name": "aac",
            "sample_rate": "48000",
            "channels": 2,
        },
    ],
    "format": {"duration": "10.000000"},
}))
'''

FAKE_BROWSER = '''
import sys

for arg in sys.argv[1:]:
    if arg.startswith("--screenshot="):
        with open(arg[len("--screenshot="):], "wb") as f:
            f.write(b"\\x89PNG fake screenshot")
'''

FAKE_TRANSCRIBER = '''
import os
import sys

audio = sys.argv[1]
name = os.path.splitext(os.path.basename(audio))[0]
sys.stderr.write("Loading model...\\n")
if "fail" not in name:
    print('Transcription: "Talk about ' + name + '"')
'''

FAKE_SLEEPER = '''
import time

time.sleep(60)
'''


def write_script(path: Path, body: str) -> Path:
    """Write an executable Python script running on the test interpreter."""
    path.write_text(f"#!{sys.executable}\n{body}")
    path.chmod(path.stat().st_mode | stat.S_IXUSR | stat.S_IXGRP | stat.S_IXOTH)
    return path


@pytest.fixture(autouse=True)
def wide_terminal(monkeypatch):
    """Keep rich help/error panels from truncating or wrapping option names."""
    monkeypatch.setenv("COLUMNS", "200")


@pytest.fixture
def fake_tools(tmp_path):
    """Executable stand-ins for ffmpeg, ffprobe, the browser and the transcriber."""
    bin_dir = tmp_path / "bin"
    bin_dir.mkdir()
    ffmpeg_body = f"LOUDNORM = {LOUDNORM_REPORT!r}\n" + FAKE_FFMPEG
    return ToolPaths(
        ffmpeg=str(write_script(bin_dir / "ffmpeg", ffmpeg_body)),
        ffprobe=str(write_script(bin_dir / "ffprobe", FAKE_FFPROBE)),
        browser=str(write_script(bin_dir / "chromium", FAKE_BROWSER)),
        transcriber=write_script(bin_dir / "transcribe", FAKE_TRANSCRIBER),
    )


@pytest.fixture
def sleeper(tmp_path):
    """A command that runs until it is signalled."""
    return str(write_script(tmp_path / "sleeper", FAKE_SLEEPER))


@pytest.fixture
def test_settings(fake_tools, monkeypatch):
    """Settings pointing at the fake tools, isolated from the environment."""
    monkeypatch.delenv("YAKD_TRANSCRIBE_PATH", raising=False)
    monkeypatch.delenv("MAKETALK_TRANSCRIBER_PATH", raising=False)
    return Settings(
        tools=ToolsConfig(
            ffmpeg=fake_tools.ffmpeg,
            ffprobe=fake_tools.ffprobe,
            browser=fake_tools.browser,
            transcriber=str(fake_tools.transcriber),
        )
    )


@pytest.fixture
def project_dir(tmp_path):
    """Empty project directory for raw recordings."""
    path = tmp_path / "talk"
    path.mkdir()
    return path


@pytest.fixture
def workspace(project_dir, test_settings):
    store = WorkspaceStore(project_dir, test_settings)
    store.ensure_layout()
    return store


@pytest.fixture
def runner():
    return ProcessRunner(ProcessRegistry())


@pytest.fixture
def make_context(test_settings, workspace, runner, fake_tools):
    """Factory for StageContext with scripted answers and optional transcriber."""

    def _make(prompter=None, transcriber=True, progress=None):
        tools = fake_tools if transcriber else fake_tools._replace(transcriber=None)
        return StageContext(
            settings=test_settings,
            workspace=workspace,
            runner=runner,
            tools=tools,
            prompter=prompter or ScriptedPrompter(default=True),
            progress_callback=(lambda label, percent: progress.append((label, percent))) if progress is not None else None,
        )

    return _make


def write_sources(project_dir: Path, *names: str, content: str = "raw recording\n") -> list[Path]:
    """Create fake raw recordings."""
    paths = []
    for name in names:
        path = project_dir / name
        path.write_text(content)
        paths.append(path)
    return paths


def write_title_cards(project_dir: Path, cards: list[dict], **extra) -> Path:
    path = project_dir / "title_cards.json"
    path.write_text(json.dumps({"title_cards": cards, **extra}, indent=2))
    return path
