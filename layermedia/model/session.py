"""CaptureSession state machine and the process-wide capture slot."""

from __future__ import annotations

import threading
from dataclasses import dataclass, field
from enum import Enum

from layermedia.errors import BusyError
from layermedia.model.cancel import CancelToken


class SourceKind(str, Enum):
    GENERATIVE_SURFACE = "generative_surface"
    VIDEO_FILE = "video_file"


class ImageFormat(str, Enum):
    JPEG = "jpeg"
    PNG = "png"

    @property
    def extension(self) -> str:
        return "jpg" if self is ImageFormat.JPEG else "png"


class CapturePurpose(str, Enum):
    FRAMES = "frames"
    RECORDING = "recording"


class SessionStatus(str, Enum):
    IDLE = "idle"
    CAPTURING = "capturing"
    COMPLETED = "completed"
    CANCELLED = "cancelled"
    ERROR = "error"


# Square presets, width x height
RESOLUTIONS: dict[str, tuple[int, int]] = {
    "2k": (1080, 1080),
    "4k": (2160, 2160),
    "8k": (4320, 4320),
}

RECORDING_RESOLUTIONS = ("2k", "4k")

# Native rAF timing drifts at high pixel counts; recordings use these instead of 1000/fps.
CALIBRATED_FRAME_INTERVALS_MS: dict[str, float] = {
    "4k": 100.0,
}

_TRANSITIONS: dict[SessionStatus, set[SessionStatus]] = {
    SessionStatus.IDLE: {SessionStatus.CAPTURING},
    SessionStatus.CAPTURING: {
        SessionStatus.COMPLETED,
        SessionStatus.CANCELLED,
        SessionStatus.ERROR,
    },
    SessionStatus.COMPLETED: set(),
    SessionStatus.CANCELLED: set(),
    SessionStatus.ERROR: set(),
}


def resolution_size(name: str) -> tuple[int, int]:
    try:
        return RESOLUTIONS[name]
    except KeyError:
        raise ValueError(f"Unknown resolution: {name!r}") from None


@dataclass
class CaptureSession:
    """One in-flight frame-producing job."""

    source_kind: SourceKind
    frame_rate: float
    total_frames: int
    resolution: str
    image_format: ImageFormat
    output_directory: str
    purpose: CapturePurpose = CapturePurpose.FRAMES
    calibrated_timing: bool = False
    current_frame_index: int = 0
    status: SessionStatus = SessionStatus.IDLE
    error: str | None = None
    cancel_token: CancelToken = field(default_factory=CancelToken, repr=False)

    @property
    def dimensions(self) -> tuple[int, int]:
        return resolution_size(self.resolution)

    @property
    def frame_interval_ms(self) -> float:
        if self.calibrated_timing and self.resolution in CALIBRATED_FRAME_INTERVALS_MS:
            return CALIBRATED_FRAME_INTERVALS_MS[self.resolution]
        return 1000.0 / self.frame_rate

    @property
    def is_capturing(self) -> bool:
        return self.status is SessionStatus.CAPTURING

    def transition(self, new_status: SessionStatus) -> None:
        if new_status not in _TRANSITIONS[self.status]:
            raise RuntimeError(
                f"Illegal capture session transition {self.status.value} -> {new_status.value}"
            )
        self.status = new_status

    def advance_to(self, index: int) -> None:
        if index < self.current_frame_index or index > self.total_frames:
            raise ValueError(
                f"Frame index {index} out of order (current {self.current_frame_index}, "
                f"total {self.total_frames})"
            )
        self.current_frame_index = index

    def complete(self) -> None:
        if self.cancel_token.is_cancelled() or self.current_frame_index != self.total_frames:
            raise RuntimeError("Session cannot complete before every frame was visited")
        self.transition(SessionStatus.COMPLETED)


class CaptureSlot:
    """Process-wide single-flight guard: at most one session is Capturing."""

    def __init__(self):
        self._lock = threading.Lock()
        self._active: CaptureSession | None = None

    @property
    def active(self) -> CaptureSession | None:
        return self._active

    @property
    def busy(self) -> bool:
        return self._active is not None

    def acquire(self, session: CaptureSession) -> None:
        with self._lock:
            if self._active is not None:
                raise BusyError("Capture already in progress")
            session.transition(SessionStatus.CAPTURING)
            self._active = session

    def release(self, session: CaptureSession) -> None:
        with self._lock:
            if self._active is session:
                self._active = None
