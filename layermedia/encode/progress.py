"""Parser for ffmpeg's machine-readable ``-progress`` stream.

ffmpeg writes blocks of ``key=value`` lines terminated by
``progress=continue`` or ``progress=end``::

    frame=240
    out_time_us=8000000
    out_time_ms=8000000
    out_time=00:00:08.000000
    total_size=1048576
    progress=continue

``out_time_ms`` is in microseconds despite its name.
"""

from __future__ import annotations

import re

PROGRESS_LINE = re.compile(r"^([a-z_0-9]+)=(\S*)$")

# Running percentages stay below 100; only a clean exit reports 100.
MAX_RUNNING_PERCENT = 99.0


def parse_timestamp(value: str) -> float | None:
    """Parse ``HH:MM:SS.micro`` into seconds."""
    try:
        hours, minutes, seconds = value.split(":")
        return int(hours) * 3600 + int(minutes) * 60 + float(seconds)
    except ValueError:
        return None


class ProgressParser:
    """Accumulates progress tokens and converts elapsed output time to a percentage."""

    def __init__(self, duration: float = 0.0, total_frames: int = 0):
        self.duration = duration
        self.total_frames = total_frames
        self.out_time: float = 0.0
        self.frame: int = 0
        self.total_size: int = 0
        self.ended = False
        self._percent = 0.0

    @staticmethod
    def is_progress_line(line: str) -> bool:
        return PROGRESS_LINE.match(line.strip()) is not None

    def feed(self, line: str) -> float | None:
        """Consume one line; returns the new percentage when a block completes."""
        match = PROGRESS_LINE.match(line.strip())
        if match is None:
            return None
        key, value = match.groups()

        if key in ("out_time_us", "out_time_ms"):
            try:
                self.out_time = max(self.out_time, int(value) / 1_000_000)
            except ValueError:
                pass
        elif key == "out_time":
            seconds = parse_timestamp(value)
            if seconds is not None:
                self.out_time = max(self.out_time, seconds)
        elif key == "frame":
            try:
                self.frame = max(self.frame, int(value))
            except ValueError:
                pass
        elif key == "total_size":
            try:
                self.total_size = int(value)
            except ValueError:
                pass
        elif key == "progress":
            if value == "end":
                self.ended = True
            return self._update()
        return None

    @property
    def percent(self) -> float:
        return self._percent

    def _update(self) -> float:
        if self.duration > 0:
            raw = self.out_time / self.duration * 100
        elif self.total_frames > 0:
            raw = self.frame / self.total_frames * 100
        else:
            raw = 0.0
        raw = max(0.0, min(raw, MAX_RUNNING_PERCENT))
        self._percent = max(self._percent, raw)
        return self._percent
