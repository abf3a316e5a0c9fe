"""Video metadata extraction via ffprobe."""

import json
import logging
import subprocess
from dataclasses import dataclass
from pathlib import Path

from layermedia.errors import ProbeError, SpawnError

logger = logging.getLogger(__name__)


@dataclass
class VideoInfo:
    path: str
    duration: float = 0.0
    width: int = 0
    height: int = 0
    fps: float = 0.0
    codec: str = ""
    size_bytes: int = 0
    bitrate_kbps: int = 0


def probe(video_path: str, ffprobe: str = "ffprobe") -> dict:
    """Run ffprobe and return parsed JSON output for the file's streams and format.

    Raises:
        FileNotFoundError: If video_path does not exist.
        SpawnError: If the ffprobe binary cannot be executed.
        ProbeError: If ffprobe fails or returns unusable output.
    """
    path = Path(video_path)
    if not path.exists():
        raise FileNotFoundError(f"Video file not found: {video_path}")

    try:
        result = subprocess.run(
            [
                ffprobe,
                "-v", "quiet",
                "-print_format", "json",
                "-show_format",
                "-show_streams",
                str(path),
            ],
            capture_output=True,
            text=True,
            timeout=30,
        )
    except (FileNotFoundError, PermissionError) as e:
        raise SpawnError(
            f"ffprobe not found ({ffprobe}). Install FFmpeg: brew install ffmpeg (macOS) "
            "or sudo apt install ffmpeg (Linux)"
        ) from e
    except subprocess.TimeoutExpired as e:
        raise ProbeError(f"ffprobe timed out on {video_path}") from e

    if result.returncode != 0:
        raise ProbeError(f"ffprobe failed: {result.stderr.strip()}")

    try:
        data = json.loads(result.stdout)
    except json.JSONDecodeError as e:
        raise ProbeError(f"ffprobe returned invalid JSON: {e}")

    return data


def get_video_stream(data: dict) -> dict:
    """Extract the first video stream from ffprobe data.

    Raises:
        ProbeError: If no video stream found.
    """
    for stream in data.get("streams", []):
        if stream.get("codec_type") == "video":
            return stream
    raise ProbeError("No video stream found in file")


def _parse_fps(stream: dict) -> float:
    # r_frame_rate is "24/1" or "30000/1001"
    try:
        num, den = stream.get("r_frame_rate", "0/1").split("/")
        if int(den) != 0:
            return int(num) / int(den)
    except (ValueError, ZeroDivisionError):
        pass
    return 0.0


def _parse_duration(stream: dict, fmt: dict, fps: float) -> float:
    for source in [fmt, stream]:
        raw = source.get("duration")
        if raw is not None:
            try:
                duration = float(raw)
                if duration > 0:
                    return duration
            except (ValueError, TypeError):
                pass

    if fps > 0:
        nb_frames = stream.get("nb_frames")
        if nb_frames is not None:
            try:
                return int(nb_frames) / fps
            except (ValueError, TypeError):
                pass

    # MKV/MTS keep it in tags.DURATION as "HH:MM:SS.microseconds"
    for source in [stream, fmt]:
        tag_dur = source.get("tags", {}).get("DURATION")
        if tag_dur:
            try:
                parts = tag_dur.split(":")
                duration = float(parts[0]) * 3600 + float(parts[1]) * 60 + float(parts[2])
                if duration > 0:
                    return duration
            except (ValueError, IndexError):
                pass
    return 0.0


def extract_metadata(video_path: str, ffprobe: str = "ffprobe") -> VideoInfo:
    """Probe a video file and return a populated VideoInfo."""
    data = probe(video_path, ffprobe=ffprobe)
    stream = get_video_stream(data)
    fmt = data.get("format", {})
    fps = _parse_fps(stream)

    def _int(value) -> int:
        try:
            return int(value)
        except (TypeError, ValueError):
            return 0

    info = VideoInfo(
        path=video_path,
        duration=_parse_duration(stream, fmt, fps),
        width=_int(stream.get("width")),
        height=_int(stream.get("height")),
        fps=round(fps, 3),
        codec=stream.get("codec_name", ""),
        size_bytes=_int(fmt.get("size")),
        bitrate_kbps=round(_int(fmt.get("bit_rate")) / 1000),
    )
    logger.debug("Probed %s: %s", video_path, info)
    return info


def get_duration(video_path: str, ffprobe: str = "ffprobe") -> float:
    return extract_metadata(video_path, ffprobe=ffprobe).duration
