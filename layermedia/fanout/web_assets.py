"""Web delivery fan-out: {card, featured, page} x {h264, hevc, vp9} per input."""

from __future__ import annotations

import logging
from dataclasses import dataclass
from pathlib import Path
from typing import Callable

from layermedia.encode.args import WEB_CODECS, thumbnail_args, web_asset_args
from layermedia.encode.ffprobe import get_duration
from layermedia.encode.process import EncoderProcess
from layermedia.encode.runner import EncodeJobRunner
from layermedia.errors import LayerMediaError, ValidationError
from layermedia.fanout.naming import ArtworkName, parse_filename
from layermedia.fanout.sequencer import FanOutSequencer
from layermedia.model.cancel import CancelToken
from layermedia.model.jobs import BatchStatus, EncodeJob, FanOutBatch, JobStatus
from layermedia.model.progress import ProgressEmitter, Status, WebAssetProgress

logger = logging.getLogger(__name__)

VIDEO_EXTENSIONS = (".mp4", ".mov", ".avi", ".mkv", ".webm", ".m4v")

MINIMUM_DURATION_SECONDS = 30.0

THUMBNAIL_TARGET = "thumbnail"


@dataclass(frozen=True)
class FormatConfig:
    name: str
    width: int
    height: int
    duration: float | None = None  # None = full source duration
    start_time: float | None = None  # None = from the beginning


FORMAT_CONFIGS: tuple[FormatConfig, ...] = (
    FormatConfig("card", 640, 640, duration=5, start_time=15),
    FormatConfig("featured", 1500, 1500),
    FormatConfig("page", 1000, 1000),
)

CODECS: tuple[str, ...] = tuple(WEB_CODECS)


def output_filename(
    name: ArtworkName,
    fmt: FormatConfig,
    duration: float,
    codec: str | None = None,
) -> str:
    """``{artist}_{title}_{format}_{w}x{h}_{dur}s.{codec}.mp4`` or the ``_thumbnail_`` jpg."""
    seconds = fmt.duration if fmt.duration is not None else round(duration)
    seconds = int(seconds)
    base = f"{name.artist}_{name.title}_{fmt.name}"
    if codec is None:
        return f"{base}_thumbnail_{fmt.width}x{fmt.height}_{seconds}s.jpg"
    return f"{base}_{fmt.width}x{fmt.height}_{seconds}s.{codec}.mp4"


def find_video_files(path: str | Path) -> list[str]:
    """Return *path* if it is a video file, or the video files directly inside a directory."""
    path = Path(path)
    if path.is_file():
        return [str(path)] if path.suffix.lower() in VIDEO_EXTENSIONS else []
    if path.is_dir():
        return sorted(
            str(p) for p in path.iterdir()
            if p.is_file() and p.suffix.lower() in VIDEO_EXTENSIONS
        )
    return []


def validate_inputs(
    file_paths: list[str],
    ffprobe: str,
    minimum_duration: float = MINIMUM_DURATION_SECONDS,
    probe: Callable[..., float] = get_duration,
) -> dict[str, float]:
    """Probe every input up front; any input under the minimum rejects the whole request."""
    if not file_paths:
        raise ValidationError("No input files")
    durations: dict[str, float] = {}
    for file_path in file_paths:
        duration = probe(file_path, ffprobe=ffprobe)
        if duration < minimum_duration:
            raise ValidationError(
                f'Video "{Path(file_path).name}" is only {round(duration)}s. '
                f"Minimum required duration is {round(minimum_duration)}s."
            )
        durations[file_path] = duration
    return durations


def build_batch(
    input_path: str,
    output_dir: str,
    source_duration: float,
    batch: FanOutBatch | None = None,
) -> FanOutBatch:
    """Append one input's thumbnail and codec jobs (in format order) to *batch*."""
    batch = batch if batch is not None else FanOutBatch()
    name = parse_filename(Path(input_path).name)
    artwork_dir = Path(output_dir) / name.folder_name

    for fmt in FORMAT_CONFIGS:
        duration = fmt.duration if fmt.duration is not None else source_duration
        size = (fmt.width, fmt.height)

        thumb_path = str(artwork_dir / output_filename(name, fmt, duration))
        batch.add(EncodeJob(
            input_path=input_path,
            output_path=thumb_path,
            target_dimensions=size,
            target=THUMBNAIL_TARGET,
            group=fmt.name,
            args=thumbnail_args(input_path, thumb_path, fmt.width, fmt.height, fmt.start_time),
            duration=0.0,
        ))

        for codec in CODECS:
            out_path = str(artwork_dir / output_filename(name, fmt, duration, codec))
            batch.add(EncodeJob(
                input_path=input_path,
                output_path=out_path,
                target_dimensions=size,
                target=codec,
                group=fmt.name,
                args=web_asset_args(
                    input_path, out_path, fmt.width, fmt.height, codec,
                    duration=fmt.duration, start_time=fmt.start_time,
                ),
                duration=duration,
            ))
    logger.info("Planned %d web asset jobs for %s into %s", len(batch), input_path, artwork_dir)
    return batch


def generate_web_assets(
    file_paths: list[str],
    output_dir: str,
    ffmpeg: str,
    ffprobe: str,
    on_event: Callable[[WebAssetProgress], None] | None = None,
    cancel_token: CancelToken | None = None,
    minimum_duration: float = MINIMUM_DURATION_SECONDS,
    process_factory: Callable[..., EncoderProcess] = EncoderProcess,
    probe: Callable[..., float] = get_duration,
) -> WebAssetProgress:
    """Validate every input, then run all of their jobs in one sequential batch.

    Returns the terminal event; its ``errors`` list names every failed job.
    """
    emitter = ProgressEmitter(on_event)

    def terminal(status: Status, error: str | None = None, errors=None) -> WebAssetProgress:
        return emitter.finish(WebAssetProgress(
            "", "", "", 100 if status is Status.COMPLETED else 0, status,
            error=error, errors=errors or [],
        ))

    try:
        durations = validate_inputs(file_paths, ffprobe, minimum_duration, probe)
    except (LayerMediaError, OSError) as e:
        logger.error("Web asset request rejected: %s", e)
        return terminal(Status.ERROR, str(e))

    batch = FanOutBatch(cancel_token=cancel_token or CancelToken())
    for file_path, duration in durations.items():
        build_batch(file_path, output_dir, duration, batch)

    def on_update(job: EncodeJob) -> None:
        status = {
            JobStatus.PENDING: Status.PENDING,
            JobStatus.COMPLETED: Status.COMPLETED,
            JobStatus.ERROR: Status.ERROR,
            JobStatus.CANCELLED: Status.CANCELLED,
        }.get(job.status, Status.RUNNING)
        emitter.emit(WebAssetProgress(
            job.input_path, job.group, job.target, job.progress_percent, status, error=job.error
        ))

    runner = EncodeJobRunner(ffmpeg, batch.cancel_token, process_factory)
    result = FanOutSequencer(batch, runner.run).run(on_update)

    errors = [f"{Path(job.input_path).name} {job.label}: {job.error}" for job in result.errors]
    status = {
        BatchStatus.COMPLETED: Status.COMPLETED,
        BatchStatus.CANCELLED: Status.CANCELLED,
        BatchStatus.ERROR: Status.ERROR,
    }[result.status]
    logger.info(
        "Web assets %s: %d/%d jobs completed, %d failed",
        status.value, len(result.completed), len(batch), len(errors),
    )
    return terminal(status, result.error, errors)
