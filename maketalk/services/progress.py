"""Percentage progress from ffmpeg-style diagnostic output.

The parser is a pure reducer over (state, line): it records the first
"Duration: HH:MM:SS.ff" it sees and turns every later "time=HH:MM:SS.ff"
into floor(current / total * 100), clamped to [0, 100]. A value is emitted
only when it differs from the previous emission; a regression reported by
the tool is passed through unchanged.
"""

import math
import re
from typing import Callable, NamedTuple, Optional

DURATION_PATTERN = re.compile(r"Duration: (\d{2}):(\d{2}):(\d{2}(?:\.\d+)?)")
POSITION_PATTERN = re.compile(r"time=(\d{2}):(\d{2}):(\d{2}(?:\.\d+)?)")


class ProgressState(NamedTuple):
    duration: Optional[float] = None
    last_progress: Optional[int] = None


def timestamp_seconds(hours: str, minutes: str, seconds: str) -> float:
    """HH, MM, SS.frac -> seconds, keeping the fraction."""
    return int(hours) * 3600 + int(minutes) * 60 + float(seconds)


def reduce_progress(state: ProgressState, line: str) -> tuple[ProgressState, Optional[int]]:
    """Fold one line into the state; return the new state and an optional percentage."""
    if state.duration is None:
        match = DURATION_PATTERN.search(line)
        if match:
            state = state._replace(duration=timestamp_seconds(*match.groups()))

    if not state.duration:
        return state, None

    match = POSITION_PATTERN.search(line)
    if not match:
        return state, None

    current = timestamp_seconds(*match.groups())
    percent = max(0, min(100, math.floor(current / state.duration * 100)))
    if percent == state.last_progress:
        return state, None
    return state._replace(last_progress=percent), percent


class ProgressParser:
    """Stateful wrapper around reduce_progress for line callbacks.

    Example:
        parser = ProgressParser(lambda pct: print(f"{pct}%"))
        await runner.run("ffmpeg", args, on_line=parser.feed)
    """

    def __init__(self, on_progress: Optional[Callable[[int], None]] = None):
        self.state = ProgressState()
        self.on_progress = on_progress

    def feed(self, line: str) -> Optional[int]:
        self.state, percent = reduce_progress(self.state, line)
        if percent is not None and self.on_progress is not None:
            self.on_progress(percent)
        return percent
