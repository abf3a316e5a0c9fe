"""QThread worker for orchestrator commands that do not touch the render surface."""

from __future__ import annotations

import logging
from typing import Callable

from PySide6.QtCore import QThread, Signal

logger = logging.getLogger(__name__)


class CommandWorker(QThread):
    """Runs one orchestrator command in a background thread.

    ``command`` is called with an ``on_event`` callback and must return the
    terminal event, e.g. ``partial(orchestrator.generate_gif, request)``.
    ``cancel`` is the matching orchestrator stop command.

    Signals:
        progress: each non-terminal progress event
        finished_event: the terminal progress event
        error: message of an unexpected exception
    """

    progress = Signal(object)
    finished_event = Signal(object)
    error = Signal(str)

    def __init__(
        self,
        command: Callable[..., object],
        cancel: Callable[[], None] | None = None,
        parent=None,
    ):
        super().__init__(parent)
        self._command = command
        self._cancel = cancel
        self.result = None

    def cancel(self) -> None:
        if self._cancel is not None:
            self._cancel()

    def _on_event(self, event) -> None:
        if not event.final:
            self.progress.emit(event)

    def run(self) -> None:
        try:
            self.result = self._command(on_event=self._on_event)
        except Exception as e:
            logger.exception("Command failed")
            self.error.emit(str(e))
            return
        self.finished_event.emit(self.result)
