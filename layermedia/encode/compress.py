"""Single-output H.264 compression with live size estimates."""

from __future__ import annotations

import logging
from dataclasses import dataclass
from pathlib import Path
from typing import Callable

from layermedia.encode.args import compress_args
from layermedia.encode.ffprobe import extract_metadata
from layermedia.encode.process import EncoderProcess
from layermedia.encode.progress import ProgressParser
from layermedia.encode.runner import remove_partial
from layermedia.errors import LayerMediaError, ValidationError
from layermedia.model.cancel import CancelToken
from layermedia.model.progress import CompressProgress, ProgressEmitter, Status

logger = logging.getLogger(__name__)

SCALE_HEIGHTS: dict[str, int | None] = {
    "original": None,
    "1080p": 1080,
    "720p": 720,
    "480p": 480,
}

PRESETS = ("slow", "medium", "fast", "veryfast")


@dataclass
class CompressRequest:
    input_path: str
    scale: str = "original"
    crf: int = 23  # 0-51, lower is better quality and bigger files
    preset: str = "medium"
    audio_bitrate_kbps: int = 128
    remove_audio: bool = False

    def validate(self) -> None:
        if self.scale not in SCALE_HEIGHTS:
            raise ValidationError(f"Unknown scale: {self.scale!r}")
        if self.preset not in PRESETS:
            raise ValidationError(f"Unknown preset: {self.preset!r}")
        if not 0 <= self.crf <= 51:
            raise ValidationError(f"CRF must be between 0 and 51, got {self.crf}")
        if not Path(self.input_path).exists():
            raise ValidationError(f"Input not found: {self.input_path}")


def output_path_for(input_path: str, scale: str) -> str:
    """``{stem}_compressed[_{scale}].mp4`` next to the input."""
    path = Path(input_path)
    suffix = "" if scale == "original" else f"_{scale}"
    return str(path.with_name(f"{path.stem}_compressed{suffix}.mp4"))


def compress_video(
    request: CompressRequest,
    ffmpeg: str,
    ffprobe: str,
    on_event: Callable[[CompressProgress], None] | None = None,
    cancel_token: CancelToken | None = None,
    process_factory: Callable[..., EncoderProcess] = EncoderProcess,
    probe: Callable[..., object] = extract_metadata,
) -> CompressProgress:
    """Compress one file; returns the terminal event."""
    emitter = ProgressEmitter(on_event)
    cancel_token = cancel_token or CancelToken()

    def fail(message: str) -> CompressProgress:
        return emitter.finish(CompressProgress(0, 0, 0, Status.ERROR, error=message))

    try:
        request.validate()
        duration = probe(request.input_path, ffprobe=ffprobe).duration
    except (LayerMediaError, OSError) as e:
        return fail(str(e))

    output_path = output_path_for(request.input_path, request.scale)
    args = compress_args(
        request.input_path,
        output_path,
        crf=request.crf,
        preset=request.preset,
        audio_bitrate_kbps=request.audio_bitrate_kbps,
        remove_audio=request.remove_audio,
        scale_height=SCALE_HEIGHTS[request.scale],
    )
    process = process_factory(ffmpeg, args, duration=duration)

    def on_block(parser: ProgressParser) -> None:
        percent = parser.percent
        current = parser.total_size
        if current <= 0:
            try:
                current = Path(output_path).stat().st_size
            except OSError:
                current = 0
        estimated = round(current / (percent / 100)) if percent > 0 else 0
        emitter.emit(CompressProgress(round(percent), current, estimated, Status.RUNNING))

    try:
        with cancel_token.bind(process):
            process.run(line_callback=on_block)
            terminated = process.terminated
    except LayerMediaError as e:
        remove_partial(output_path)
        return fail(str(e))
    finally:
        process.terminate()

    if terminated:
        remove_partial(output_path)
        return emitter.finish(CompressProgress(0, 0, 0, Status.CANCELLED))

    final_size = Path(output_path).stat().st_size if Path(output_path).exists() else 0
    logger.info("Compressed %s -> %s (%d bytes)", request.input_path, output_path, final_size)
    return emitter.finish(CompressProgress(
        100, final_size, final_size, Status.COMPLETED, output_path=output_path
    ))
