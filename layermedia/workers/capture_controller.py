"""GUI-thread driver for commands that use the render surface."""

from __future__ import annotations

from typing import Callable

from PySide6.QtCore import QObject, QTimer, Signal


class CaptureController(QObject):
    """Starts a render-surface command from the Qt event loop.

    QtWebEngine only runs on the GUI thread, so frame export and recording
    cannot use a QThread. ``start()`` queues the command on the event loop;
    while it runs the surface spins nested event loops, which keeps the UI
    responsive and lets ``cancel()`` arrive between frames.

    Signals:
        progress: each non-terminal progress event
        finished_event: the terminal progress event
    """

    progress = Signal(object)
    finished_event = Signal(object)

    def __init__(
        self,
        command: Callable[..., object],
        cancel: Callable[[], None] | None = None,
        parent=None,
    ):
        super().__init__(parent)
        self._command = command
        self._cancel = cancel
        self._running = False
        self.result = None

    @property
    def running(self) -> bool:
        return self._running

    def start(self) -> None:
        if self._running:
            return
        self._running = True
        QTimer.singleShot(0, self._run)

    def cancel(self) -> None:
        if self._cancel is not None:
            self._cancel()

    def _on_event(self, event) -> None:
        if not event.final:
            self.progress.emit(event)

    def _run(self) -> None:
        try:
            self.result = self._command(on_event=self._on_event)
        finally:
            self._running = False
        self.finished_event.emit(self.result)
