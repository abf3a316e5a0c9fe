"""Settings dataclass with JSON persistence."""

import json
import os
import shutil
from dataclasses import asdict, dataclass
from pathlib import Path

from layermedia.errors import SpawnError

DEFAULT_CONFIG_DIR = Path.home() / ".layermedia"
DEFAULT_CONFIG_PATH = DEFAULT_CONFIG_DIR / "settings.json"

FFMPEG_ENV_VAR = "LAYERMEDIA_FFMPEG"
FFPROBE_ENV_VAR = "LAYERMEDIA_FFPROBE"


def _resolve_binary(configured: str, env_var: str, name: str) -> str:
    candidate = configured or os.environ.get(env_var) or name
    found = shutil.which(candidate)
    if found is None:
        raise SpawnError(
            f"{name} not found ({candidate!r}). Install FFmpeg: brew install ffmpeg (macOS) "
            f"or sudo apt install ffmpeg (Linux), or set {env_var}"
        )
    return found


@dataclass
class Settings:
    # External binaries ("" = environment variable, then PATH)
    ffmpeg_path: str = ""
    ffprobe_path: str = ""

    # Default output locations
    capture_output_dir: str = str(Path.home() / "Pictures" / "layermedia")
    recordings_dir: str = str(Path.home() / "Movies" / "layermedia")
    web_assets_output_dir: str = str(Path.home() / "Movies" / "layermedia" / "web-assets")

    # Render surface
    load_timeout_sec: float = 30.0
    initial_render_delay_ms: int = 500
    settle_delay_ms: int = 5
    frame_retries: int = 2
    jpeg_quality: int = 95

    # Web assets
    min_web_asset_duration_sec: float = 30.0

    # CDN
    cdn_base_url: str = "https://storage.bunnycdn.com"
    http_timeout_sec: float = 60.0
    download_chunk_bytes: int = 1024 * 1024

    def save(self, path: Path | None = None) -> None:
        path = path or DEFAULT_CONFIG_PATH
        path.parent.mkdir(parents=True, exist_ok=True)
        path.write_text(json.dumps(asdict(self), indent=2))

    @classmethod
    def load(cls, path: Path | None = None) -> "Settings":
        path = path or DEFAULT_CONFIG_PATH
        if not path.exists():
            return cls()
        try:
            data = json.loads(path.read_text())
            return cls(**{k: v for k, v in data.items() if k in cls.__dataclass_fields__})
        except (json.JSONDecodeError, TypeError):
            return cls()

    @property
    def resolved_ffmpeg_path(self) -> str:
        return _resolve_binary(self.ffmpeg_path, FFMPEG_ENV_VAR, "ffmpeg")

    @property
    def resolved_ffprobe_path(self) -> str:
        return _resolve_binary(self.ffprobe_path, FFPROBE_ENV_VAR, "ffprobe")
