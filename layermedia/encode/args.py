"""ffmpeg argument construction.

Builders return argument lists without the binary and without the progress
flags; ``EncoderProcess`` adds those. The output path is always last.
"""

from __future__ import annotations

from dataclasses import dataclass


@dataclass(frozen=True)
class CodecPreset:
    name: str
    video_args: tuple[str, ...]
    container: str = "mp4"
    faststart: bool = True

    def args(self) -> list[str]:
        result = list(self.video_args)
        if self.faststart:
            result += ["-movflags", "+faststart"]
        return result


# Web delivery codecs. Newer codecs need a higher CRF for the same perceived quality.
WEB_CODECS: dict[str, CodecPreset] = {
    "h264": CodecPreset(
        "h264",
        ("-c:v", "libx264", "-preset", "medium", "-crf", "23", "-pix_fmt", "yuv420p"),
    ),
    "hevc": CodecPreset(
        "hevc",
        (
            "-c:v", "libx265", "-preset", "medium", "-crf", "28",
            "-pix_fmt", "yuv420p", "-tag:v", "hvc1",
        ),
    ),
    "vp9": CodecPreset(
        "vp9",
        ("-c:v", "libvpx-vp9", "-crf", "30", "-b:v", "0", "-pix_fmt", "yuv420p"),
        faststart=False,
    ),
}

# Recording masters
RECORDING_CODECS: dict[str, CodecPreset] = {
    "prores": CodecPreset(
        "prores",
        ("-c:v", "prores_ks", "-profile:v", "4", "-pix_fmt", "yuva444p10le"),
        container="mov",
        faststart=False,
    ),
    "mp4": CodecPreset(
        "mp4",
        ("-c:v", "libx264", "-preset", "slow", "-crf", "15", "-pix_fmt", "yuv420p"),
    ),
}

JPEG_QSCALE = "2"

GIF_DITHER_ON = "floyd_steinberg"
GIF_DITHER_OFF = "none"


def _num(value: float) -> str:
    """Format seconds/fps without a trailing ``.0``."""
    return str(int(value)) if float(value).is_integer() else str(value)


def fit_pad_filter(width: int, height: int) -> str:
    """Scale to fit inside width x height keeping aspect, then pad centered to exactly that size."""
    return (
        f"scale={width}:{height}:force_original_aspect_ratio=decrease,"
        f"pad={width}:{height}:(ow-iw)/2:(oh-ih)/2"
    )


def image_sequence_args(
    pattern: str,
    fps: float,
    output_path: str,
    preset: CodecPreset,
    width: int,
    height: int,
) -> list[str]:
    """Encode a numbered image sequence; the input rate is always declared."""
    return [
        "-y",
        "-framerate", _num(fps),
        "-i", pattern,
        "-vf", fit_pad_filter(width, height),
        *preset.args(),
        output_path,
    ]


def web_asset_args(
    input_path: str,
    output_path: str,
    width: int,
    height: int,
    codec: str,
    duration: float | None = None,
    start_time: float | None = None,
) -> list[str]:
    preset = WEB_CODECS[codec]
    args = ["-y"]
    if start_time is not None:
        # Before -i for fast input seeking
        args += ["-ss", _num(start_time)]
    args += ["-i", input_path]
    if duration is not None:
        args += ["-t", _num(duration)]
    args += ["-vf", fit_pad_filter(width, height), *preset.args(), "-an", output_path]
    return args


def thumbnail_args(
    input_path: str,
    output_path: str,
    width: int,
    height: int,
    start_time: float | None = None,
) -> list[str]:
    args = ["-y"]
    if start_time is not None:
        args += ["-ss", _num(start_time)]
    args += [
        "-i", input_path,
        "-vf", fit_pad_filter(width, height),
        "-vframes", "1",
        "-q:v", JPEG_QSCALE,
        output_path,
    ]
    return args


def frame_extraction_args(
    input_path: str,
    fps: float,
    output_pattern: str,
    jpeg: bool,
) -> list[str]:
    args = [
        "-y",
        "-i", input_path,
        "-vf", f"fps={_num(fps)}",
        "-start_number", "0",
    ]
    if jpeg:
        args += ["-q:v", JPEG_QSCALE]
    args.append(output_pattern)
    return args


def compress_args(
    input_path: str,
    output_path: str,
    crf: int,
    preset: str,
    audio_bitrate_kbps: int,
    remove_audio: bool,
    scale_height: int | None = None,
) -> list[str]:
    args = [
        "-y",
        "-i", input_path,
        "-c:v", "libx264",
        "-preset", preset,
        "-crf", str(crf),
    ]
    if remove_audio:
        args.append("-an")
    else:
        args += ["-c:a", "aac", "-b:a", f"{audio_bitrate_kbps}k"]
    args += ["-movflags", "+faststart"]
    if scale_height is not None:
        # -2 keeps the width even for yuv420p
        args += ["-vf", f"scale=-2:{scale_height}"]
    args.append(output_path)
    return args


@dataclass(frozen=True)
class GifFilters:
    fps: float
    scale_height: int | None = None

    def chain(self) -> str:
        filters = [f"fps={_num(self.fps)}"]
        if self.scale_height is not None:
            filters.append(f"scale=-1:{self.scale_height}:flags=lanczos")
        return ",".join(filters)


def palette_args(
    input_path: str,
    palette_path: str,
    start_time: float,
    duration: float,
    filters: GifFilters,
) -> list[str]:
    return [
        "-y",
        "-ss", _num(start_time),
        "-t", _num(duration),
        "-i", input_path,
        "-vf", f"{filters.chain()},palettegen=stats_mode=diff",
        palette_path,
    ]


def paletteuse_args(
    input_path: str,
    palette_path: str,
    output_path: str,
    start_time: float,
    duration: float,
    filters: GifFilters,
    dithering: bool,
) -> list[str]:
    dither = GIF_DITHER_ON if dithering else GIF_DITHER_OFF
    return [
        "-y",
        "-ss", _num(start_time),
        "-t", _num(duration),
        "-i", input_path,
        "-i", palette_path,
        "-lavfi", f"{filters.chain()}[x];[x][1:v]paletteuse=dither={dither}",
        output_path,
    ]
