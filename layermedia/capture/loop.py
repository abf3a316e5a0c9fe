"""Sequential frame capture loop.

Each iteration advances the surface clock by one frame, snapshots it and
writes the encoded still to disk before the next iteration begins, so at
most one frame buffer is alive at any time and filename order always
matches temporal order.
"""

from __future__ import annotations

import logging
from pathlib import Path
from typing import Callable

from layermedia.capture.surface import RenderSurface
from layermedia.model.session import CaptureSession

logger = logging.getLogger(__name__)

# Wide enough for 8k captures of several hours at 60 fps
FRAME_INDEX_WIDTH = 6
LOG_EVERY_FRAMES = 30


def frame_filename(index: int, extension: str) -> str:
    return f"frame_{index:0{FRAME_INDEX_WIDTH}d}.{extension}"


def frame_pattern(extension: str) -> str:
    """ffmpeg image2 pattern matching ``frame_filename``."""
    return f"frame_%0{FRAME_INDEX_WIDTH}d.{extension}"


def write_frame(path: Path, data: bytes) -> None:
    with open(path, "wb") as fh:
        fh.write(data)
        fh.flush()


class FrameCaptureLoop:
    """Drives a RenderSurface through ``session.total_frames`` frames.

    The session's cancel token and the surface's liveness are checked at
    the top of every iteration. Snapshot and write failures are retried
    without advancing the clock again; a frame that still fails is logged
    and skipped so the rest of the capture survives.
    """

    def __init__(
        self,
        surface: RenderSurface,
        session: CaptureSession,
        settle_delay_ms: int = 5,
        retries: int = 2,
        jpeg_quality: int = 95,
    ):
        self.surface = surface
        self.session = session
        self.settle_delay_ms = settle_delay_ms
        self.retries = retries
        self.jpeg_quality = jpeg_quality
        self.frames_written = 0
        self.dropped_frames: list[int] = []
        self.surface_lost = False

    @property
    def output_dir(self) -> Path:
        return Path(self.session.output_directory)

    def _should_stop(self) -> bool:
        return self.session.cancel_token.is_cancelled() or not self.surface.is_alive()

    def _capture_one(self, index: int) -> bool:
        session = self.session
        path = self.output_dir / frame_filename(index, session.image_format.extension)

        try:
            self.surface.advance_frame()
        except Exception as e:
            logger.warning("Frame %d: advance failed: %s", index, e)
            return False

        for attempt in range(self.retries + 1):
            if attempt and self._should_stop():
                return False
            try:
                self.surface.wait(self.settle_delay_ms)
                data = self.surface.snapshot(session.image_format, self.jpeg_quality)
                write_frame(path, data)
                del data
                return True
            except Exception as e:
                logger.warning(
                    "Frame %d: capture attempt %d/%d failed: %s",
                    index, attempt + 1, self.retries + 1, e,
                )
        return False

    def run(self, on_frame: Callable[[CaptureSession], None] | None = None) -> bool:
        """Capture every remaining frame.

        Args:
            on_frame: Called after each frame index is visited.

        Returns:
            True if every index was visited, False if stopped early. A
            stopped capture keeps the frames already written.
        """
        session = self.session
        self.output_dir.mkdir(parents=True, exist_ok=True)

        for index in range(session.current_frame_index, session.total_frames):
            if session.cancel_token.is_cancelled():
                logger.info("Capture stopped at frame %d", index)
                return False
            if not self.surface.is_alive():
                self.surface_lost = True
                logger.error("Render surface lost at frame %d", index)
                return False

            if self._capture_one(index):
                self.frames_written += 1
            else:
                self.dropped_frames.append(index)

            session.advance_to(index + 1)
            if on_frame:
                on_frame(session)

            if (index + 1) % LOG_EVERY_FRAMES == 0:
                logger.info("Captured %d/%d frames", index + 1, session.total_frames)

        if self.dropped_frames:
            logger.warning(
                "Capture finished with %d dropped frames: %s",
                len(self.dropped_frames), self.dropped_frames,
            )
        return True
