"""Spawning ffmpeg and streaming its progress channel."""

from __future__ import annotations

import logging
import subprocess
import threading
from collections import deque
from typing import Callable

from layermedia.encode.progress import ProgressParser
from layermedia.errors import EncodeError, SpawnError

logger = logging.getLogger(__name__)

_OUTPUT_TAIL_LINES = 40


def with_progress(args: list[str]) -> list[str]:
    """Insert ``-progress pipe:1 -nostats`` before the output path (last arg)."""
    if not args:
        raise ValueError("Encoder argument list is empty")
    return args[:-1] + ["-progress", "pipe:1", "-nostats", args[-1]]


class EncoderProcess:
    """One ffmpeg invocation with progress parsing and forced termination.

    ``run()`` blocks until the process exits. ``terminate()`` may be called
    from any thread; a terminated run returns normally with
    ``terminated`` set instead of raising ``EncodeError``.
    """

    def __init__(
        self,
        binary: str,
        args: list[str],
        duration: float = 0.0,
        total_frames: int = 0,
    ):
        self.binary = binary
        self.args = args
        self.parser = ProgressParser(duration=duration, total_frames=total_frames)
        self.returncode: int | None = None
        self.terminated = False
        self._process: subprocess.Popen | None = None
        self._lock = threading.Lock()
        self._tail: deque[str] = deque(maxlen=_OUTPUT_TAIL_LINES)

    @property
    def command(self) -> list[str]:
        return [self.binary, *with_progress(self.args)]

    @property
    def output_tail(self) -> str:
        return "\n".join(self._tail)

    def run(
        self,
        progress_callback: Callable[[float], None] | None = None,
        line_callback: Callable[[ProgressParser], None] | None = None,
    ) -> int:
        """Run to completion.

        Args:
            progress_callback: Called with each new percentage in [0, 100).
            line_callback: Called with the parser after every progress block,
                for callers that track frames or output size.

        Returns:
            The process exit code (0 on success, anything if terminated).

        Raises:
            SpawnError: If the binary is missing or not executable.
            EncodeError: If the process exits non-zero without being terminated.
        """
        with self._lock:
            if self.terminated:
                return -1
            logger.debug("Running encoder: %s", " ".join(self.command))
            try:
                self._process = subprocess.Popen(
                    self.command,
                    stdin=subprocess.DEVNULL,
                    stdout=subprocess.PIPE,
                    stderr=subprocess.STDOUT,
                    text=True,
                    encoding="utf-8",
                    errors="replace",
                    bufsize=1,
                )
            except (FileNotFoundError, PermissionError) as e:
                raise SpawnError(f"Cannot execute {self.binary}: {e}") from e

        process = self._process
        try:
            last_reported = -1.0
            for line in process.stdout:
                if not ProgressParser.is_progress_line(line):
                    stripped = line.strip()
                    if stripped:
                        self._tail.append(stripped)
                    continue
                percent = self.parser.feed(line)
                if percent is None:
                    continue
                if line_callback:
                    line_callback(self.parser)
                if progress_callback and percent > last_reported:
                    last_reported = percent
                    progress_callback(percent)
            self.returncode = process.wait()
        finally:
            self._kill_if_running()
            if process.stdout:
                process.stdout.close()

        if self.terminated:
            logger.info("Encoder terminated (exit %s)", self.returncode)
            return self.returncode
        if self.returncode != 0:
            logger.error(
                "Encoder exited with code %s. Output tail:\n%s", self.returncode, self.output_tail
            )
            raise EncodeError(
                f"ffmpeg exited with code {self.returncode}",
                returncode=self.returncode,
                output_tail=self.output_tail,
            )
        return self.returncode

    def terminate(self) -> None:
        """Kill the process; safe to call repeatedly or before ``run()``."""
        with self._lock:
            self.terminated = True
        self._kill_if_running()

    def _kill_if_running(self) -> None:
        process = self._process
        if process is None or process.poll() is not None:
            return
        try:
            process.kill()
            process.wait(timeout=5)
        except (OSError, subprocess.TimeoutExpired):
            logger.warning("Encoder process %s did not exit after kill", process.pid)
