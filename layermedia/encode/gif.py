"""Size-bounded animated GIF exports via two-pass palette encoding."""

from __future__ import annotations

import logging
import os
import tempfile
from dataclasses import dataclass
from pathlib import Path
from typing import Callable

from layermedia.encode.args import GifFilters, palette_args, paletteuse_args
from layermedia.encode.process import EncoderProcess
from layermedia.errors import ValidationError
from layermedia.fanout.sequencer import FanOutSequencer
from layermedia.model.cancel import CancelToken
from layermedia.model.jobs import BatchStatus, EncodeJob, FanOutBatch, JobStatus
from layermedia.model.progress import GifProgress, ProgressEmitter, Status

logger = logging.getLogger(__name__)

MB = 1024 * 1024

SIZE_LIMITS: dict[str, int] = {
    "10mb": 10 * MB,
    "5mb": 5 * MB,
    "2mb": 2 * MB,
    "1mb": 1 * MB,
}

SCALE_HEIGHTS: dict[str, int | None] = {
    "original": None,
    "720p": 720,
    "480p": 480,
    "360p": 360,
    "240p": 240,
}

# Share of the reported progress taken by the palette pass
PALETTE_WEIGHT = 30.0


@dataclass
class GifRequest:
    input_path: str
    start_time: float
    end_time: float
    target_sizes: list[str]
    scales: list[str]
    fps: float = 15.0
    dithering: bool = True

    @property
    def duration(self) -> float:
        return self.end_time - self.start_time

    def validate(self) -> None:
        if self.duration <= 0:
            raise ValidationError("GIF end time must be after start time")
        if self.fps <= 0:
            raise ValidationError("GIF fps must be positive")
        if not self.target_sizes or not self.scales:
            raise ValidationError("Select at least one scale and one target size")
        for size in self.target_sizes:
            if size not in SIZE_LIMITS:
                raise ValidationError(f"Unknown GIF target size: {size!r}")
        for scale in self.scales:
            if scale not in SCALE_HEIGHTS:
                raise ValidationError(f"Unknown GIF scale: {scale!r}")
        if not Path(self.input_path).exists():
            raise ValidationError(f"Input not found: {self.input_path}")


def size_label(target_size: str) -> str:
    return target_size.replace("mb", "MB")


def output_path_for(input_path: str, scale: str, target_size: str) -> str:
    """``{dir}/{stem}_{scale}_{N}MB.gif`` next to the input."""
    path = Path(input_path)
    return str(path.with_name(f"{path.stem}_{scale}_{size_label(target_size)}.gif"))


def build_batch(request: GifRequest) -> FanOutBatch:
    batch = FanOutBatch()
    for scale in request.scales:
        for target_size in request.target_sizes:
            batch.add(EncodeJob(
                input_path=request.input_path,
                output_path=output_path_for(request.input_path, scale, target_size),
                target_dimensions=None,
                target=target_size,
                group=scale,
                duration=request.duration,
            ))
    return batch


def size_advisory(output_path: str, target_size: str) -> str | None:
    """Warning text when the written GIF exceeds its size class, else None."""
    size = os.path.getsize(output_path)
    if size <= SIZE_LIMITS[target_size]:
        return None
    return (
        f"GIF {Path(output_path).name} is {size / MB:.2f}MB, "
        f"exceeds target of {target_size.upper()}"
    )


class GifExporter:
    """Executes GIF jobs: palette pass, then paletteuse pass, palette always removed."""

    def __init__(
        self,
        request: GifRequest,
        ffmpeg: str,
        cancel_token: CancelToken,
        process_factory: Callable[..., EncoderProcess] = EncoderProcess,
    ):
        self.request = request
        self.ffmpeg = ffmpeg
        self.cancel_token = cancel_token
        self._process_factory = process_factory

    def _run_pass(self, args: list[str], on_progress: Callable[[float], None]) -> bool:
        process = self._process_factory(self.ffmpeg, args, duration=self.request.duration)
        try:
            with self.cancel_token.bind(process):
                process.run(progress_callback=on_progress)
                return not process.terminated
        finally:
            process.terminate()

    def __call__(self, job: EncodeJob, on_progress: Callable[[float], None]) -> bool:
        request = self.request
        filters = GifFilters(fps=request.fps, scale_height=SCALE_HEIGHTS[job.group])
        fd, palette_path = tempfile.mkstemp(prefix="layermedia-palette-", suffix=".png")
        os.close(fd)

        def report(percent: float) -> None:
            if job.update_progress(percent):
                on_progress(job.progress_percent)

        try:
            finished = self._run_pass(
                palette_args(request.input_path, palette_path, request.start_time,
                             request.duration, filters),
                lambda p: report(p * PALETTE_WEIGHT / 100),
            )
            if finished:
                finished = self._run_pass(
                    paletteuse_args(request.input_path, palette_path, job.output_path,
                                    request.start_time, request.duration, filters,
                                    request.dithering),
                    lambda p: report(PALETTE_WEIGHT + p * (100 - PALETTE_WEIGHT) / 100),
                )
        except Exception:
            Path(job.output_path).unlink(missing_ok=True)
            raise
        finally:
            try:
                os.unlink(palette_path)
            except OSError:
                pass

        if not finished:
            Path(job.output_path).unlink(missing_ok=True)
            return False

        job.warning = size_advisory(job.output_path, job.target)
        if job.warning:
            logger.warning(job.warning)
        report(100.0)
        return True


def generate_gifs(
    request: GifRequest,
    ffmpeg: str,
    on_event: Callable[[GifProgress], None] | None = None,
    cancel_token: CancelToken | None = None,
    process_factory: Callable[..., EncoderProcess] = EncoderProcess,
) -> GifProgress:
    """Export every scale x size-class combination; returns the terminal event."""
    emitter = ProgressEmitter(on_event)
    try:
        request.validate()
    except ValidationError as e:
        return emitter.finish(GifProgress(0, 0, "", "", 0, Status.ERROR, error=str(e)))

    batch = build_batch(request)
    if cancel_token is not None:
        batch.cancel_token = cancel_token
    total = len(batch)
    index_of = {id(job): i for i, job in enumerate(batch.jobs)}

    def on_update(job: EncodeJob) -> None:
        status = {
            JobStatus.ERROR: Status.ERROR,
            JobStatus.CANCELLED: Status.CANCELLED,
        }.get(job.status, Status.RUNNING)
        emitter.emit(GifProgress(
            current_export=index_of[id(job)] + 1,
            total_exports=total,
            scale=job.group,
            target_size=f"< {job.target.upper()}",
            progress=job.progress_percent if job.status is not JobStatus.ERROR else 0,
            status=status,
            output_path=job.output_path if job.status is JobStatus.COMPLETED else None,
            error=job.error,
            warning=job.warning,
        ))

    exporter = GifExporter(request, ffmpeg, batch.cancel_token, process_factory)
    result = FanOutSequencer(batch, exporter).run(on_update)

    errors = [f"{job.label}: {job.error}" for job in result.errors]
    status = {
        BatchStatus.COMPLETED: Status.COMPLETED,
        BatchStatus.CANCELLED: Status.CANCELLED,
        BatchStatus.ERROR: Status.ERROR,
    }[result.status]
    return emitter.finish(GifProgress(
        current_export=len(result.started),
        total_exports=total,
        scale="",
        target_size="",
        progress=100 if status is Status.COMPLETED else 0,
        status=status,
        error=result.error,
        errors=errors,
    ))
