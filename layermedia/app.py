"""QApplication setup and terminal runners for the command line."""

from __future__ import annotations

import logging
import os
import signal
import sys
from typing import Callable

from layermedia.model.progress import (
    CompressProgress,
    DownloadProgress,
    FrameCaptureProgress,
    GifProgress,
    RecordingProgress,
    Status,
    UploadProgress,
    WebAssetProgress,
)

EXIT_OK = 0
EXIT_ERROR = 1
EXIT_CANCELLED = 130

_EXIT_CODES = {
    Status.COMPLETED: EXIT_OK,
    Status.CANCELLED: EXIT_CANCELLED,
    Status.ERROR: EXIT_ERROR,
}


def configure_logging(verbose: bool = False) -> None:
    logging.basicConfig(
        level=logging.DEBUG if verbose else logging.INFO,
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
    )


def ensure_qt_application():
    """Return the QApplication, creating one that can host QtWebEngine.

    Without a display the offscreen platform plugin is used.
    """
    from PySide6.QtCore import QCoreApplication, Qt
    from PySide6.QtWidgets import QApplication

    existing = QApplication.instance()
    if existing is not None:
        return existing

    if not os.environ.get("DISPLAY") and sys.platform.startswith("linux"):
        os.environ.setdefault("QT_QPA_PLATFORM", "offscreen")
    # QtWebEngine must be imported and GL sharing enabled before the app exists
    import PySide6.QtWebEngineWidgets  # noqa: F401

    QCoreApplication.setAttribute(Qt.ApplicationAttribute.AA_ShareOpenGLContexts)
    app = QApplication(sys.argv[:1])
    app.setApplicationName("LayerMedia")
    app.setOrganizationName("LayerMedia")
    return app


def format_event(event) -> str:
    """One-line terminal rendering of a progress event."""
    if isinstance(event, FrameCaptureProgress):
        return f"Frames: {event.current_frame}/{event.total_frames}"
    if isinstance(event, RecordingProgress):
        phase = "Capturing" if event.progress < 100 else "Encoding"
        return f"{phase}: {min(event.progress, 200) / 2:.0f}%"
    if isinstance(event, WebAssetProgress):
        name = os.path.basename(event.file_path)
        return f"{name} {event.format}/{event.codec}: {event.progress:.0f}% ({event.status.value})"
    if isinstance(event, GifProgress):
        return (
            f"GIF {event.current_export}/{event.total_exports} "
            f"{event.scale} {event.target_size}: {event.progress:.0f}%"
        )
    if isinstance(event, CompressProgress):
        return (
            f"Compress: {event.progress:.0f}% "
            f"({event.current_size_bytes / 1e6:.1f}MB, est. {event.estimated_size_bytes / 1e6:.1f}MB)"
        )
    if isinstance(event, UploadProgress):
        return f"Upload: {event.uploaded_files}/{event.total_files} {event.current_file}"
    if isinstance(event, DownloadProgress):
        return (
            f"Download: {event.downloaded_files}/{event.total_files} "
            f"({event.downloaded_bytes}/{event.total_bytes} bytes) {event.current_file}"
        )
    return repr(event)


def print_summary(event) -> None:
    if event.status is Status.COMPLETED:
        output = getattr(event, "output_path", None) or getattr(event, "output_folder", None)
        print(f"Done!{f' Output saved to: {output}' if output else ''}")
    elif event.status is Status.CANCELLED:
        print("Cancelled.", file=sys.stderr)
    else:
        print(f"Error: {event.error}", file=sys.stderr)

    warning = getattr(event, "warning", None)
    if warning:
        print(f"Warning: {warning}", file=sys.stderr)
    for error in getattr(event, "errors", None) or []:
        print(f"  failed: {error}", file=sys.stderr)


def run_command(
    command: Callable[..., object],
    cancel: Callable[[], None] | None = None,
    headless: bool = False,
) -> int:
    """Run *command* in the foreground, printing progress.

    Ctrl-C calls *cancel*; the command then finishes with a Cancelled
    terminal event. Returns 0 on Completed, 1 on Error, 130 on Cancelled.
    """

    def on_event(event) -> None:
        if not headless and not event.final:
            print(f"  {format_event(event)}", end="\r", flush=True)

    def on_sigint(signum, frame) -> None:
        print("\nStopping...", file=sys.stderr)
        if cancel is not None:
            cancel()

    previous = signal.signal(signal.SIGINT, on_sigint)
    try:
        result = command(on_event=on_event)
    finally:
        signal.signal(signal.SIGINT, previous)

    if not headless:
        print()
    print_summary(result)
    return _EXIT_CODES.get(result.status, EXIT_ERROR)
