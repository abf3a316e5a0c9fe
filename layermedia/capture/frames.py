"""Frame export: generative artwork capture and video frame extraction.

Both produce ``frame_{index:06d}.{ext}`` sequences in
``{output_dir}/{folder_name}`` and share the process-wide CaptureSlot, so
only one of them (or a recording) runs at a time.
"""

from __future__ import annotations

import logging
import math
from dataclasses import dataclass
from pathlib import Path
from typing import Callable

from layermedia.capture.loop import FrameCaptureLoop, frame_pattern
from layermedia.capture.surface import RenderSurface, WebEngineSurface
from layermedia.config import Settings
from layermedia.encode.args import frame_extraction_args
from layermedia.encode.ffprobe import get_duration
from layermedia.encode.process import EncoderProcess
from layermedia.encode.progress import ProgressParser
from layermedia.errors import BusyError, LayerMediaError, ValidationError
from layermedia.model.cancel import CancelToken
from layermedia.model.progress import FrameCaptureProgress, ProgressEmitter, Status
from layermedia.model.session import (
    RESOLUTIONS,
    CaptureSession,
    CaptureSlot,
    ImageFormat,
    SessionStatus,
    SourceKind,
)

logger = logging.getLogger(__name__)

# (width, height, load_timeout_sec) -> surface
SurfaceFactory = Callable[[int, int, float], RenderSurface]


def default_surface_factory(width: int, height: int, load_timeout_sec: float) -> RenderSurface:
    return WebEngineSurface(width, height, load_timeout_sec=load_timeout_sec)


@dataclass
class GenerativeCaptureRequest:
    url: str
    fps: float
    total_frames: int
    resolution: str
    image_format: ImageFormat
    output_dir: str
    folder_name: str

    def validate(self) -> None:
        if not self.url:
            raise ValidationError("Artwork URL is required")
        if self.fps <= 0:
            raise ValidationError("Frame rate must be positive")
        if self.total_frames <= 0:
            raise ValidationError("Total frames must be positive")
        if self.resolution not in RESOLUTIONS:
            raise ValidationError(f"Unknown resolution: {self.resolution!r}")
        if not self.folder_name:
            raise ValidationError("Folder name is required")

    @property
    def output_folder(self) -> str:
        return str(Path(self.output_dir) / self.folder_name)


@dataclass
class FrameExtractionRequest:
    video_path: str
    fps: float
    image_format: ImageFormat
    output_dir: str
    folder_name: str

    def validate(self) -> None:
        if self.fps <= 0:
            raise ValidationError("Frame rate must be positive")
        if not Path(self.video_path).exists():
            raise ValidationError(f"Input not found: {self.video_path}")
        if not self.folder_name:
            raise ValidationError("Folder name is required")

    @property
    def output_folder(self) -> str:
        return str(Path(self.output_dir) / self.folder_name)


def run_surface_capture(
    session: CaptureSession,
    url: str,
    surface_factory: SurfaceFactory,
    settings: Settings,
    on_frame: Callable[[CaptureSession], None] | None = None,
) -> FrameCaptureLoop:
    """Load *url* on a fresh surface and capture the session's frames into its directory.

    The surface is closed before this returns, whatever happens.

    Raises:
        LoadError: If the artwork cannot be loaded or frame control cannot be installed.
    """
    width, height = session.dimensions
    with surface_factory(width, height, settings.load_timeout_sec) as surface:
        surface.load(url)
        surface.wait(settings.initial_render_delay_ms)
        surface.install_frame_control(session.frame_interval_ms)
        loop = FrameCaptureLoop(
            surface,
            session,
            settle_delay_ms=settings.settle_delay_ms,
            retries=settings.frame_retries,
            jpeg_quality=settings.jpeg_quality,
        )
        loop.run(on_frame)
    return loop


def _finish_session(session: CaptureSession) -> Status:
    finished = session.current_frame_index == session.total_frames
    if finished and not session.cancel_token.is_cancelled():
        session.complete()
        return Status.COMPLETED
    session.transition(SessionStatus.CANCELLED)
    return Status.CANCELLED


def _fail_session(session: CaptureSession, error: Exception) -> None:
    session.error = str(error)
    if session.status is SessionStatus.CAPTURING:
        session.transition(SessionStatus.ERROR)


def capture_generative_frames(
    request: GenerativeCaptureRequest,
    slot: CaptureSlot,
    on_event: Callable[[FrameCaptureProgress], None] | None = None,
    settings: Settings | None = None,
    surface_factory: SurfaceFactory = default_surface_factory,
    cancel_token: CancelToken | None = None,
) -> FrameCaptureProgress:
    """Capture ``total_frames`` stills of a live artwork; returns the terminal event.

    Must run on the Qt GUI thread when using ``WebEngineSurface``.
    """
    settings = settings or Settings()
    emitter = ProgressEmitter(on_event)

    try:
        request.validate()
    except ValidationError as e:
        return emitter.finish(FrameCaptureProgress(0, request.total_frames, Status.ERROR, error=str(e)))

    session = CaptureSession(
        source_kind=SourceKind.GENERATIVE_SURFACE,
        frame_rate=request.fps,
        total_frames=request.total_frames,
        resolution=request.resolution,
        image_format=request.image_format,
        output_directory=request.output_folder,
        cancel_token=cancel_token or CancelToken(),
    )
    try:
        slot.acquire(session)
    except BusyError as e:
        return emitter.finish(FrameCaptureProgress(0, request.total_frames, Status.ERROR, error=str(e)))

    output_folder = request.output_folder
    logger.info(
        "Capturing %d frames of %s at %s (%s) into %s",
        request.total_frames, request.url, request.resolution,
        request.image_format.value, output_folder,
    )

    def on_frame(s: CaptureSession) -> None:
        emitter.emit(FrameCaptureProgress(
            s.current_frame_index, s.total_frames, Status.RUNNING, output_folder=output_folder
        ))

    try:
        Path(output_folder).mkdir(parents=True, exist_ok=True)
        emitter.emit(FrameCaptureProgress(0, session.total_frames, Status.RUNNING, output_folder))
        loop = run_surface_capture(session, request.url, surface_factory, settings, on_frame)
        status = _finish_session(session)
        error = "Render surface was closed" if loop.surface_lost else None
    except (LayerMediaError, OSError, RuntimeError) as e:
        logger.error("Frame capture failed: %s", e)
        _fail_session(session, e)
        return emitter.finish(FrameCaptureProgress(
            session.current_frame_index, session.total_frames, Status.ERROR,
            output_folder=output_folder, error=str(e),
        ))
    finally:
        slot.release(session)

    logger.info(
        "Frame capture %s at %d/%d", status.value, session.current_frame_index, session.total_frames
    )
    return emitter.finish(FrameCaptureProgress(
        session.current_frame_index, session.total_frames, status,
        output_folder=output_folder, error=error,
    ))


def extract_video_frames(
    request: FrameExtractionRequest,
    ffmpeg: str,
    ffprobe: str,
    slot: CaptureSlot,
    on_event: Callable[[FrameCaptureProgress], None] | None = None,
    cancel_token: CancelToken | None = None,
    process_factory: Callable[..., EncoderProcess] = EncoderProcess,
    probe: Callable[..., float] = get_duration,
) -> FrameCaptureProgress:
    """Extract stills from a video file at ``request.fps``; returns the terminal event.

    Frames already written are kept when the extraction is cancelled.
    """
    emitter = ProgressEmitter(on_event)

    def fail(message: str, current: int = 0, total: int = 0) -> FrameCaptureProgress:
        return emitter.finish(FrameCaptureProgress(current, total, Status.ERROR, error=message))

    try:
        request.validate()
        duration = probe(request.video_path, ffprobe=ffprobe)
    except (LayerMediaError, OSError) as e:
        return fail(str(e))

    total_frames = max(1, math.ceil(duration * request.fps))
    output_folder = request.output_folder
    session = CaptureSession(
        source_kind=SourceKind.VIDEO_FILE,
        frame_rate=request.fps,
        total_frames=total_frames,
        resolution="",
        image_format=request.image_format,
        output_directory=output_folder,
        cancel_token=cancel_token or CancelToken(),
    )
    try:
        slot.acquire(session)
    except BusyError as e:
        return fail(str(e), total=total_frames)

    ext = request.image_format.extension
    args = frame_extraction_args(
        request.video_path,
        request.fps,
        str(Path(output_folder) / frame_pattern(ext)),
        jpeg=request.image_format is ImageFormat.JPEG,
    )
    process = process_factory(ffmpeg, args, total_frames=total_frames)

    def on_block(parser: ProgressParser) -> None:
        index = min(parser.frame, total_frames)
        if index > session.current_frame_index:
            session.advance_to(index)
            emitter.emit(FrameCaptureProgress(
                index, total_frames, Status.RUNNING, output_folder=output_folder
            ))

    logger.info(
        "Extracting ~%d frames from %s at %s fps into %s",
        total_frames, request.video_path, request.fps, output_folder,
    )
    try:
        Path(output_folder).mkdir(parents=True, exist_ok=True)
        with session.cancel_token.bind(process):
            process.run(line_callback=on_block)
            terminated = process.terminated
    except (LayerMediaError, OSError) as e:
        logger.error("Frame extraction failed: %s", e)
        _fail_session(session, e)
        return fail(str(e), session.current_frame_index, total_frames)
    finally:
        process.terminate()
        slot.release(session)

    if terminated:
        session.transition(SessionStatus.CANCELLED)
        status = Status.CANCELLED
    else:
        session.advance_to(total_frames)
        status = _finish_session(session)
    return emitter.finish(FrameCaptureProgress(
        session.current_frame_index, total_frames, status, output_folder=output_folder
    ))
