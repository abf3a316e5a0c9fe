"""Progress events streamed by every long-running command.

Each command emits any number of events followed by exactly one event with
``final=True``. ``ProgressEmitter`` enforces that contract.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from enum import Enum
from typing import Callable

logger = logging.getLogger(__name__)


class Status(str, Enum):
    PENDING = "pending"
    LISTING = "listing"
    RUNNING = "running"
    COMPLETED = "completed"
    CANCELLED = "cancelled"
    ERROR = "error"

    @property
    def is_terminal(self) -> bool:
        return self in (Status.COMPLETED, Status.CANCELLED, Status.ERROR)


@dataclass
class FrameCaptureProgress:
    current_frame: int
    total_frames: int
    status: Status
    output_folder: str | None = None
    error: str | None = None
    final: bool = False


@dataclass
class RecordingProgress:
    """``progress`` runs 0-100 while capturing and 100-200 while encoding."""

    progress: float
    status: Status
    output_path: str | None = None
    error: str | None = None
    final: bool = False


@dataclass
class WebAssetProgress:
    file_path: str
    format: str
    codec: str
    progress: float
    status: Status
    error: str | None = None
    errors: list[str] = field(default_factory=list)
    final: bool = False


@dataclass
class GifProgress:
    current_export: int
    total_exports: int
    scale: str
    target_size: str
    progress: float
    status: Status
    output_path: str | None = None
    error: str | None = None
    warning: str | None = None
    errors: list[str] = field(default_factory=list)
    final: bool = False


@dataclass
class CompressProgress:
    progress: float
    current_size_bytes: int
    estimated_size_bytes: int
    status: Status
    output_path: str | None = None
    error: str | None = None
    final: bool = False


@dataclass
class UploadProgress:
    total_files: int
    uploaded_files: int
    current_file: str
    status: Status
    total_bytes: int = 0
    uploaded_bytes: int = 0
    error: str | None = None
    final: bool = False


@dataclass
class DownloadProgress:
    total_files: int
    downloaded_files: int
    total_bytes: int
    downloaded_bytes: int
    status: Status
    current_file: str = ""
    error: str | None = None
    final: bool = False


class ProgressEmitter:
    """Forwards events to a callback and guarantees a single terminal event."""

    def __init__(self, callback: Callable[[object], None] | None = None):
        self._callback = callback
        self._final = None

    @property
    def final_event(self):
        return self._final

    @property
    def finished(self) -> bool:
        return self._final is not None

    def emit(self, event) -> None:
        if self._final is not None:
            logger.debug("Dropping event after terminal event: %r", event)
            return
        if self._callback:
            self._callback(event)

    def finish(self, event):
        if self._final is not None:
            logger.debug("Dropping second terminal event: %r", event)
            return self._final
        event.final = True
        self._final = event
        if self._callback:
            self._callback(event)
        return event

    def relay(self, event) -> None:
        """Forward the non-terminal events of a nested command."""
        if not event.final:
            self.emit(event)
