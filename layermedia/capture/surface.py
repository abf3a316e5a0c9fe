"""Offscreen render surfaces for frame-accurate capture.

A surface loads an artwork URL at exact pixel dimensions, takes over the
page's ``requestAnimationFrame`` clock, and hands back encoded stills on
demand. Surfaces hold native resources and must be closed explicitly;
use them as context managers.
"""

from __future__ import annotations

import logging
import time
from abc import ABC, abstractmethod

from layermedia.errors import LoadError
from layermedia.model.session import ImageFormat

logger = logging.getLogger(__name__)

# Queues rAF callbacks instead of letting them fire on the display refresh.
# __advanceFrame() moves a simulated clock forward by one fixed interval and
# flushes exactly the callbacks queued since the previous call.
FRAME_CONTROL_SCRIPT = """
(function() {
  if (window.__frameControlInstalled) { return true; }
  window.__frameControlInstalled = true;
  window.__originalRAF = window.requestAnimationFrame;
  window.__rafCallbacks = [];
  window.__rafPaused = true;
  window.__simulatedTime = performance.now();
  window.__frameInterval = %(interval).6f;

  window.requestAnimationFrame = function(callback) {
    if (window.__rafPaused) {
      window.__rafCallbacks.push(callback);
      return window.__rafCallbacks.length;
    }
    return window.__originalRAF(callback);
  };

  window.__advanceFrame = function() {
    var callbacks = window.__rafCallbacks.slice();
    window.__rafCallbacks = [];
    window.__simulatedTime += window.__frameInterval;
    var timestamp = window.__simulatedTime;
    callbacks.forEach(function(cb) {
      try { cb(timestamp); } catch (e) {}
    });
    return callbacks.length;
  };
  return true;
})();
"""

ADVANCE_FRAME_SCRIPT = "window.__advanceFrame()"


def frame_control_script(interval_ms: float) -> str:
    return FRAME_CONTROL_SCRIPT % {"interval": interval_ms}


class RenderSurface(ABC):
    """A script-controllable page renderer sized to the capture resolution."""

    def __init__(self, width: int, height: int):
        self.width = width
        self.height = height

    @abstractmethod
    def load(self, url: str) -> None:
        """Load *url*; raises LoadError if it does not finish in time."""

    @abstractmethod
    def run_script(self, script: str):
        """Evaluate JavaScript in the page's main world and return its result."""

    @abstractmethod
    def snapshot(self, image_format: ImageFormat, quality: int = 95) -> bytes:
        """Return the current frame encoded as JPEG (at *quality*) or PNG."""

    @abstractmethod
    def is_alive(self) -> bool:
        ...

    @abstractmethod
    def close(self) -> None:
        """Release the native surface. Safe to call more than once."""

    def install_frame_control(self, interval_ms: float) -> None:
        if self.run_script(frame_control_script(interval_ms)) is not True:
            raise LoadError("Frame control script could not be installed")
        logger.debug("Frame control injected with interval %.2fms", interval_ms)

    def advance_frame(self) -> int:
        """Advance the simulated clock one interval; returns the number of callbacks run."""
        result = self.run_script(ADVANCE_FRAME_SCRIPT)
        if result is None:
            raise RuntimeError("Frame advance script returned no result")
        return int(result)

    def wait(self, ms: int) -> None:
        time.sleep(ms / 1000)

    def __enter__(self):
        return self

    def __exit__(self, *exc):
        self.close()
        return False


class WebEngineSurface(RenderSurface):
    """Hidden QWebEngineView. Must be created and driven on the Qt GUI thread.

    Waits (page load, script results, settle delays) spin a local
    QEventLoop so the rest of the application keeps processing events,
    including stop requests.
    """

    def __init__(self, width: int, height: int, load_timeout_sec: float = 30.0):
        super().__init__(width, height)
        from PySide6.QtCore import Qt
        from PySide6.QtWebEngineWidgets import QWebEngineView

        self.load_timeout_sec = load_timeout_sec
        self._alive = True
        self._view = QWebEngineView()
        self._view.setAttribute(Qt.WidgetAttribute.WA_DontShowOnScreen, True)
        self._view.setFixedSize(width, height)
        self._view.page().renderProcessTerminated.connect(self._on_render_process_terminated)
        self._view.show()

    def _on_render_process_terminated(self, status, exit_code) -> None:
        logger.error("Render process terminated (status=%s, exit=%s)", status, exit_code)
        self._alive = False

    def _await(self, start, timeout_ms: int) -> tuple[bool, object]:
        """Call ``start(deliver)`` and spin a local event loop until deliver() or timeout."""
        from PySide6.QtCore import QEventLoop, QTimer

        loop = QEventLoop()
        box: dict[str, object] = {}

        def deliver(value=None) -> None:
            box["value"] = value
            loop.quit()

        timer = QTimer()
        timer.setSingleShot(True)
        timer.timeout.connect(loop.quit)
        start(deliver)
        if "value" not in box:
            timer.start(timeout_ms)
            try:
                loop.exec()
            finally:
                timer.stop()
        return "value" in box, box.get("value")

    def load(self, url: str) -> None:
        from PySide6.QtCore import QUrl

        connected = []

        def start(deliver) -> None:
            self._view.loadFinished.connect(deliver)
            connected.append(deliver)
            self._view.load(QUrl(url))

        try:
            finished, ok = self._await(start, int(self.load_timeout_sec * 1000))
        finally:
            for slot in connected:
                self._view.loadFinished.disconnect(slot)
        if not finished:
            raise LoadError(f"Timed out after {self.load_timeout_sec:.0f}s loading {url}")
        if not ok:
            raise LoadError(f"Failed to load artwork: {url}")
        logger.info("Artwork loaded: %s", url)

    def run_script(self, script: str):
        if not self.is_alive():
            raise RuntimeError("Render surface is closed")
        finished, value = self._await(
            lambda deliver: self._view.page().runJavaScript(script, 0, deliver),
            int(self.load_timeout_sec * 1000),
        )
        if not finished:
            raise RuntimeError("Timed out waiting for script result")
        return value

    def snapshot(self, image_format: ImageFormat, quality: int = 95) -> bytes:
        from PySide6.QtCore import QBuffer, QByteArray, QIODevice, Qt

        if not self.is_alive():
            raise RuntimeError("Render surface is closed")
        image = self._view.grab().toImage()
        if image.width() != self.width or image.height() != self.height:
            # HiDPI grabs come back at the device pixel ratio
            image = image.scaled(
                self.width, self.height,
                Qt.AspectRatioMode.IgnoreAspectRatio,
                Qt.TransformationMode.SmoothTransformation,
            )
        data = QByteArray()
        buffer = QBuffer(data)
        buffer.open(QIODevice.OpenModeFlag.WriteOnly)
        try:
            if image_format is ImageFormat.JPEG:
                ok = image.save(buffer, "JPG", quality)
            else:
                ok = image.save(buffer, "PNG")
        finally:
            buffer.close()
        if not ok:
            raise RuntimeError(f"Could not encode frame as {image_format.value}")
        return bytes(data.data())

    def wait(self, ms: int) -> None:
        from PySide6.QtCore import QEventLoop, QTimer

        loop = QEventLoop()
        QTimer.singleShot(ms, loop, loop.quit)
        loop.exec()

    def is_alive(self) -> bool:
        return self._alive and self._view is not None

    def close(self) -> None:
        if self._view is None:
            return
        self._alive = False
        view, self._view = self._view, None
        view.stop()
        view.close()
        view.deleteLater()
        logger.debug("Render surface closed")
