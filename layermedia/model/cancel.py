"""Cooperative cancellation shared between a job and its child process."""

from __future__ import annotations

import logging
import threading
from contextlib import contextmanager

logger = logging.getLogger(__name__)


class CancelToken:
    """A polled cancellation flag that also owns the in-flight child process.

    Loops check ``is_cancelled()`` at their checkpoints. ``cancel()`` sets
    the flag and terminates whatever process is currently bound, so a
    running encoder does not have to reach a checkpoint to stop.
    """

    def __init__(self):
        self._lock = threading.Lock()
        self._cancelled = False
        self._process = None

    def cancel(self) -> None:
        with self._lock:
            self._cancelled = True
            process = self._process
        if process is not None:
            logger.debug("Terminating bound process on cancel")
            process.terminate()

    def is_cancelled(self) -> bool:
        return self._cancelled

    __call__ = is_cancelled

    @contextmanager
    def bind(self, process):
        """Bind *process* (anything with ``terminate()``) for the block's duration."""
        with self._lock:
            self._process = process
            already = self._cancelled
        if already:
            process.terminate()
        try:
            yield process
        finally:
            with self._lock:
                if self._process is process:
                    self._process = None
