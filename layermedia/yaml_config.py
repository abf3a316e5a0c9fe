"""YAML batch configuration for command-line usage."""

from __future__ import annotations

import glob
import warnings
from dataclasses import dataclass, field
from pathlib import Path

import yaml

from layermedia.config import Settings

KNOWN_TOP_KEYS = {"inputs", "output", "capture", "gif", "compress", "ffmpeg"}
KNOWN_OUTPUT_KEYS = {"dir", "recordings_dir", "web_assets_dir"}
KNOWN_CAPTURE_KEYS = {"settle_delay_ms", "initial_render_delay_ms", "load_timeout", "retries"}
KNOWN_GIF_KEYS = {"start", "end", "sizes", "scales", "fps", "dithering"}
KNOWN_COMPRESS_KEYS = {"scale", "crf", "preset", "audio_bitrate", "remove_audio"}
KNOWN_FFMPEG_KEYS = {"ffmpeg", "ffprobe"}


@dataclass
class BatchConfig:
    """All fields are None by default: unset means 'use the default'."""

    inputs: list[str] = field(default_factory=list)

    # Output
    output_dir: str | None = None
    recordings_dir: str | None = None
    web_assets_dir: str | None = None

    # Render surface
    settle_delay_ms: int | None = None
    initial_render_delay_ms: int | None = None
    load_timeout_sec: float | None = None
    frame_retries: int | None = None

    # GIF
    gif_start: float | None = None
    gif_end: float | None = None
    gif_sizes: list[str] | None = None
    gif_scales: list[str] | None = None
    gif_fps: float | None = None
    gif_dithering: bool | None = None

    # Compression
    compress_scale: str | None = None
    compress_crf: int | None = None
    compress_preset: str | None = None
    compress_audio_bitrate: int | None = None
    compress_remove_audio: bool | None = None

    # Binaries
    ffmpeg_path: str | None = None
    ffprobe_path: str | None = None


def _expand_globs(patterns: list[str], base_dir: Path) -> list[str]:
    """Expand glob patterns relative to *base_dir*, returning unique absolute paths."""
    seen: set[str] = set()
    results: list[str] = []
    for pattern in patterns:
        if not Path(pattern).is_absolute():
            pattern = str(base_dir / pattern)
        for match in sorted(glob.glob(pattern)):
            resolved = str(Path(match).resolve())
            if resolved not in seen:
                seen.add(resolved)
                results.append(resolved)
    return results


def _warn_unknown_keys(keys: set[str], known: set[str], section: str) -> None:
    for key in sorted(keys - known):
        warnings.warn(f"Unknown key '{key}' in {section} section of batch config", stacklevel=3)


def _section(raw: dict, name: str, known: set[str]) -> dict:
    value = raw[name]
    if not isinstance(value, dict):
        raise ValueError(f"'{name}' must be a mapping")
    _warn_unknown_keys(set(value.keys()), known, name)
    return value


def _str_list(value, name: str) -> list[str]:
    if isinstance(value, str):
        return [value]
    if not isinstance(value, list):
        raise ValueError(f"'{name}' must be a string or list of strings")
    return [str(v) for v in value]


def load_batch_config(path: str | Path) -> BatchConfig:
    """Load a YAML batch file and return a BatchConfig."""
    path = Path(path)
    if not path.exists():
        raise FileNotFoundError(f"Config file not found: {path}")

    raw = yaml.safe_load(path.read_text())
    if raw is None:
        return BatchConfig()
    if not isinstance(raw, dict):
        raise ValueError(f"Batch config must be a YAML mapping, got {type(raw).__name__}")

    _warn_unknown_keys(set(raw.keys()), KNOWN_TOP_KEYS, "top-level")

    base_dir = path.resolve().parent
    cfg = BatchConfig()

    if "inputs" in raw:
        cfg.inputs = _expand_globs(_str_list(raw["inputs"], "inputs"), base_dir)

    if "output" in raw:
        out = raw["output"]
        if isinstance(out, str):
            # Shorthand: output: "renders/"
            cfg.output_dir = out
        elif isinstance(out, dict):
            _warn_unknown_keys(set(out.keys()), KNOWN_OUTPUT_KEYS, "output")
            cfg.output_dir = out.get("dir")
            cfg.recordings_dir = out.get("recordings_dir")
            cfg.web_assets_dir = out.get("web_assets_dir")
        else:
            raise ValueError("'output' must be a string or mapping")

    if "capture" in raw:
        cap = _section(raw, "capture", KNOWN_CAPTURE_KEYS)
        if "settle_delay_ms" in cap:
            cfg.settle_delay_ms = int(cap["settle_delay_ms"])
        if "initial_render_delay_ms" in cap:
            cfg.initial_render_delay_ms = int(cap["initial_render_delay_ms"])
        if "load_timeout" in cap:
            cfg.load_timeout_sec = float(cap["load_timeout"])
        if "retries" in cap:
            cfg.frame_retries = int(cap["retries"])

    if "gif" in raw:
        gif = _section(raw, "gif", KNOWN_GIF_KEYS)
        if "start" in gif:
            cfg.gif_start = float(gif["start"])
        if "end" in gif:
            cfg.gif_end = float(gif["end"])
        if "sizes" in gif:
            cfg.gif_sizes = [s.lower() for s in _str_list(gif["sizes"], "gif.sizes")]
        if "scales" in gif:
            cfg.gif_scales = _str_list(gif["scales"], "gif.scales")
        if "fps" in gif:
            cfg.gif_fps = float(gif["fps"])
        if "dithering" in gif:
            cfg.gif_dithering = bool(gif["dithering"])

    if "compress" in raw:
        comp = _section(raw, "compress", KNOWN_COMPRESS_KEYS)
        cfg.compress_scale = comp.get("scale")
        if "crf" in comp:
            cfg.compress_crf = int(comp["crf"])
        cfg.compress_preset = comp.get("preset")
        if "audio_bitrate" in comp:
            cfg.compress_audio_bitrate = int(comp["audio_bitrate"])
        if "remove_audio" in comp:
            cfg.compress_remove_audio = bool(comp["remove_audio"])

    if "ffmpeg" in raw:
        bins = _section(raw, "ffmpeg", KNOWN_FFMPEG_KEYS)
        cfg.ffmpeg_path = bins.get("ffmpeg")
        cfg.ffprobe_path = bins.get("ffprobe")

    return cfg


def apply_config_to_settings(config: BatchConfig, settings: Settings | None = None) -> Settings:
    """Overlay non-None BatchConfig fields onto a Settings instance."""
    if settings is None:
        settings = Settings()

    field_map = {
        "output_dir": "capture_output_dir",
        "recordings_dir": "recordings_dir",
        "web_assets_dir": "web_assets_output_dir",
        "settle_delay_ms": "settle_delay_ms",
        "initial_render_delay_ms": "initial_render_delay_ms",
        "load_timeout_sec": "load_timeout_sec",
        "frame_retries": "frame_retries",
        "ffmpeg_path": "ffmpeg_path",
        "ffprobe_path": "ffprobe_path",
    }

    for config_field, settings_field in field_map.items():
        value = getattr(config, config_field)
        if value is not None:
            setattr(settings, settings_field, value)

    return settings
