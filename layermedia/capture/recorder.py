"""Record a generative artwork to a video file.

Frames are captured at a fixed 30 fps into a temporary directory, then
encoded in one ffmpeg pass. Progress runs 0-100 while capturing and
100-199 while encoding; 200 is reported only with the finished file.
"""

from __future__ import annotations

import logging
import shutil
import tempfile
from dataclasses import dataclass
from pathlib import Path
from typing import Callable

from layermedia.capture.frames import SurfaceFactory, default_surface_factory, run_surface_capture
from layermedia.capture.loop import frame_filename, frame_pattern
from layermedia.config import Settings
from layermedia.encode.args import RECORDING_CODECS, image_sequence_args
from layermedia.encode.process import EncoderProcess
from layermedia.encode.runner import remove_partial
from layermedia.errors import BusyError, LayerMediaError, ValidationError
from layermedia.fanout.naming import sanitize_for_filename
from layermedia.model.cancel import CancelToken
from layermedia.model.progress import ProgressEmitter, RecordingProgress, Status
from layermedia.model.session import (
    RECORDING_RESOLUTIONS,
    CapturePurpose,
    CaptureSession,
    CaptureSlot,
    ImageFormat,
    SessionStatus,
    SourceKind,
)

logger = logging.getLogger(__name__)

RECORDING_FPS = 30
TEMP_DIR_PREFIX = "layermedia-record-"

CAPTURE_DONE = 100.0
ENCODE_RUNNING_MAX = 199.0
RECORDING_DONE = 200.0


@dataclass
class RecordingRequest:
    url: str
    duration_seconds: int
    format: str  # "prores" or "mp4"
    resolution: str  # "2k" or "4k"
    artist_name: str
    artwork_title: str
    variation: int = 1
    output_dir: str = ""

    @property
    def total_frames(self) -> int:
        return self.duration_seconds * RECORDING_FPS

    def validate(self) -> None:
        if not self.url:
            raise ValidationError("Artwork URL is required")
        if self.duration_seconds <= 0:
            raise ValidationError("Recording duration must be positive")
        if self.format not in RECORDING_CODECS:
            raise ValidationError(f"Unknown recording format: {self.format!r}")
        if self.resolution not in RECORDING_RESOLUTIONS:
            raise ValidationError(
                f"Recording resolution must be one of {', '.join(RECORDING_RESOLUTIONS)}"
            )


def recording_filename(
    artist_name: str,
    artwork_title: str,
    variation: int,
    duration_seconds: int,
    resolution: str,
    format: str,
) -> str:
    """``{artist}_{title}_v{n}_{seconds}s_{resolution}.{mov|mp4}``"""
    extension = RECORDING_CODECS[format].container
    return (
        f"{sanitize_for_filename(artist_name)}_{sanitize_for_filename(artwork_title)}"
        f"_v{variation}_{duration_seconds}s_{resolution}.{extension}"
    )


def fill_dropped_frames(directory: str, dropped: list[int], extension: str) -> int:
    """Copy the previous frame over each dropped index so the sequence has no gaps.

    ffmpeg's image2 demuxer stops at the first missing number and starts at
    the first present one. Dropped leading frames take the first frame that
    was written. Returns the number of frames filled.
    """
    directory = Path(directory)
    filled = 0
    leading = []
    for index in sorted(dropped):
        source = directory / frame_filename(index - 1, extension)
        if index > 0 and source.exists():
            shutil.copyfile(source, directory / frame_filename(index, extension))
            filled += 1
        else:
            leading.append(index)
    for index in reversed(leading):
        source = directory / frame_filename(index + 1, extension)
        if source.exists():
            shutil.copyfile(source, directory / frame_filename(index, extension))
            filled += 1
    return filled


def record_artwork(
    request: RecordingRequest,
    ffmpeg: str,
    slot: CaptureSlot,
    on_event: Callable[[RecordingProgress], None] | None = None,
    settings: Settings | None = None,
    surface_factory: SurfaceFactory = default_surface_factory,
    cancel_token: CancelToken | None = None,
    process_factory: Callable[..., EncoderProcess] = EncoderProcess,
) -> RecordingProgress:
    """Capture then encode; returns the terminal event.

    The temporary frame directory is removed on every exit path, and a
    partially encoded file is removed unless encoding succeeded.
    """
    settings = settings or Settings()
    emitter = ProgressEmitter(on_event)

    def fail(message: str) -> RecordingProgress:
        return emitter.finish(RecordingProgress(0, Status.ERROR, error=message))

    try:
        request.validate()
    except ValidationError as e:
        return fail(str(e))

    output_dir = Path(request.output_dir or settings.recordings_dir)
    output_path = str(output_dir / recording_filename(
        request.artist_name, request.artwork_title, request.variation,
        request.duration_seconds, request.resolution, request.format,
    ))
    preset = RECORDING_CODECS[request.format]

    token = cancel_token or CancelToken()
    temp_dir = tempfile.mkdtemp(prefix=TEMP_DIR_PREFIX)
    session = CaptureSession(
        source_kind=SourceKind.GENERATIVE_SURFACE,
        frame_rate=RECORDING_FPS,
        total_frames=request.total_frames,
        resolution=request.resolution,
        image_format=ImageFormat.JPEG,
        output_directory=temp_dir,
        purpose=CapturePurpose.RECORDING,
        calibrated_timing=True,
        cancel_token=token,
    )
    try:
        slot.acquire(session)
    except BusyError as e:
        shutil.rmtree(temp_dir, ignore_errors=True)
        return fail(str(e))

    logger.info(
        "Recording %s: %s, %ds @ %dfps, %s -> %s",
        request.url, request.resolution, request.duration_seconds,
        RECORDING_FPS, request.format, output_path,
    )
    logger.debug("Temp directory: %s", temp_dir)

    def on_frame(s: CaptureSession) -> None:
        emitter.emit(RecordingProgress(
            s.current_frame_index / s.total_frames * CAPTURE_DONE, Status.RUNNING
        ))

    def on_encode(percent: float) -> None:
        emitter.emit(RecordingProgress(
            min(CAPTURE_DONE + percent, ENCODE_RUNNING_MAX), Status.RUNNING
        ))

    encoded = False
    try:
        loop = run_surface_capture(session, request.url, surface_factory, settings, on_frame)
        if token.is_cancelled() or session.current_frame_index < session.total_frames:
            session.transition(SessionStatus.CANCELLED)
            error = "Render surface was closed" if loop.surface_lost else None
            return emitter.finish(RecordingProgress(0, Status.CANCELLED, error=error))

        logger.info("Captured %d frames, encoding video", loop.frames_written)
        if loop.dropped_frames:
            fill_dropped_frames(temp_dir, loop.dropped_frames, session.image_format.extension)
        emitter.emit(RecordingProgress(CAPTURE_DONE, Status.RUNNING))
        output_dir.mkdir(parents=True, exist_ok=True)

        width, height = session.dimensions
        args = image_sequence_args(
            str(Path(temp_dir) / frame_pattern(session.image_format.extension)),
            RECORDING_FPS, output_path, preset, width, height,
        )
        process = process_factory(ffmpeg, args, total_frames=session.total_frames)
        try:
            with token.bind(process):
                process.run(progress_callback=on_encode)
                terminated = process.terminated
        finally:
            process.terminate()

        if terminated or token.is_cancelled():
            session.transition(SessionStatus.CANCELLED)
            return emitter.finish(RecordingProgress(CAPTURE_DONE, Status.CANCELLED))

        session.complete()
        encoded = True
    except (LayerMediaError, OSError, RuntimeError) as e:
        logger.error("Recording failed: %s", e)
        session.error = str(e)
        if session.status is SessionStatus.CAPTURING:
            session.transition(SessionStatus.ERROR)
        return fail(str(e))
    finally:
        slot.release(session)
        shutil.rmtree(temp_dir, ignore_errors=True)
        if not encoded:
            remove_partial(output_path)

    logger.info("Recording saved: %s", output_path)
    return emitter.finish(RecordingProgress(RECORDING_DONE, Status.COMPLETED, output_path=output_path))
