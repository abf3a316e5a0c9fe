"""Shared test fixtures: synthetic videos, fake render surface, fake encoder, offscreen setup."""

import os
import shutil
import tempfile
from pathlib import Path

import numpy as np
import pytest

from layermedia.capture.surface import RenderSurface
from layermedia.errors import EncodeError
from layermedia.model.session import ImageFormat

# Force offscreen rendering for headless CI
os.environ.setdefault("QT_QPA_PLATFORM", "offscreen")


def pytest_addoption(parser):
    parser.addoption(
        "--run-webengine",
        action="store_true",
        default=False,
        help="Run tests that drive a real QtWebEngine render surface.",
    )


def pytest_configure(config):
    config.addinivalue_line("markers", "webengine: needs a real QtWebEngine surface")
    if config.getoption("--run-webengine"):
        # QtWebEngine has to be set up before pytest-qt creates the QApplication
        from layermedia.app import ensure_qt_application

        ensure_qt_application()


def pytest_collection_modifyitems(config, items):
    if config.getoption("--run-webengine"):
        return
    skip = pytest.mark.skip(reason="needs --run-webengine")
    for item in items:
        if "webengine" in item.keywords:
            item.add_marker(skip)


@pytest.fixture(scope="session")
def ffmpeg_bins():
    """(ffmpeg, ffprobe) paths; skips the test when either is not installed."""
    ffmpeg = shutil.which("ffmpeg")
    ffprobe = shutil.which("ffprobe")
    if not ffmpeg or not ffprobe:
        pytest.skip("ffmpeg/ffprobe not on PATH")
    return ffmpeg, ffprobe


@pytest.fixture(scope="session")
def tmp_video_dir():
    """Session-scoped temp directory for synthetic test videos."""
    with tempfile.TemporaryDirectory(prefix="layermedia_test_") as d:
        yield d


def _make_video(path: str, duration: float, fps: float, size: tuple[int, int], make_frame):
    """Helper to create a synthetic video using MoviePy."""
    from moviepy import VideoClip

    clip = VideoClip(make_frame, duration=duration).with_fps(fps)
    clip = clip.resized(size)
    clip.write_videofile(
        path,
        codec="libx264",
        audio=False,
        logger=None,
    )
    clip.close()


@pytest.fixture(scope="session")
def gradient_video(tmp_video_dir):
    """Horizontally sweeping gradient. 2s @ 24fps, 160x120."""
    path = os.path.join(tmp_video_dir, "sam_shull_color_spots_v1_2s_2k.mp4")

    def make_frame(t):
        x = np.linspace(0, 255, 160, dtype=np.float32)
        row = (x + t * 120) % 256
        frame = np.zeros((120, 160, 3), dtype=np.uint8)
        frame[:, :, 0] = row.astype(np.uint8)
        frame[:, :, 2] = 255 - row.astype(np.uint8)
        return frame

    _make_video(path, duration=2.0, fps=24, size=(160, 120), make_frame=make_frame)
    return path


# ---------------------------------------------------------------------------
# Fake render surface
# ---------------------------------------------------------------------------

class FakeSurface(RenderSurface):
    """In-memory RenderSurface that checks the one-buffer-in-flight rule.

    Each snapshot returns ``frame-{clock}`` bytes. Before every snapshot it
    asserts that the previous snapshot's bytes are already on disk at full
    size in ``output_dir``.
    """

    instances: list["FakeSurface"] = []

    def __init__(
        self,
        width: int,
        height: int,
        load_timeout_sec: float = 30.0,
        output_dir: str | None = None,
        fail_load: bool = False,
        snapshot_failures: dict[int, int] | None = None,
        advance_failures: set[int] | None = None,
        die_at: int | None = None,
        on_advance=None,
    ):
        super().__init__(width, height)
        self.output_dir = output_dir
        self.fail_load = fail_load
        self.snapshot_failures = dict(snapshot_failures or {})
        self.advance_failures = set(advance_failures or ())
        self.die_at = die_at
        self.on_advance = on_advance
        self.loaded_url = None
        self.interval_ms = None
        self.clock = 0
        self.advance_calls = 0
        self.snapshot_calls = 0
        self.waits: list[int] = []
        self.closed = False
        self._pending: tuple[str, int] | None = None
        FakeSurface.instances.append(self)

    def load(self, url):
        from layermedia.errors import LoadError

        if self.fail_load:
            raise LoadError(f"Failed to load artwork: {url}")
        self.loaded_url = url

    def run_script(self, script):
        if "__advanceFrame()" in script and "function" not in script:
            index = self.advance_calls
            self.advance_calls += 1
            # The clock tracks advance attempts so snapshots stay aligned with loop indices
            self.clock = self.advance_calls
            if index in self.advance_failures:
                raise RuntimeError("script error")
            if self.on_advance:
                self.on_advance(index)
            if self.die_at is not None and index + 1 >= self.die_at:
                self.closed = True
            return 1
        self.interval_ms = float(script.split("__frameInterval = ")[1].split(";")[0])
        return True

    def wait(self, ms):
        self.waits.append(ms)

    def _assert_previous_flushed(self):
        if self._pending is None or self.output_dir is None:
            return
        name, size = self._pending
        path = Path(self.output_dir) / name
        assert path.exists(), f"{name} not written before next snapshot"
        assert path.stat().st_size == size

    def snapshot(self, image_format, quality=95):
        self._assert_previous_flushed()
        index = self.clock - 1
        self.snapshot_calls += 1
        if self.snapshot_failures.get(index, 0) > 0:
            self.snapshot_failures[index] -= 1
            raise RuntimeError(f"snapshot failed at {index}")
        data = f"frame-{index}".encode()
        ext = image_format.extension
        self._pending = (f"frame_{index:06d}.{ext}", len(data))
        return data

    def is_alive(self):
        return not self.closed

    def close(self):
        self.closed = True


@pytest.fixture()
def fake_surface_factory():
    """Returns ``make(**options)`` producing a surface factory; created surfaces land in .instances."""
    FakeSurface.instances = []

    def make(**options):
        def factory(width, height, load_timeout_sec):
            return FakeSurface(width, height, load_timeout_sec, **options)
        factory.instances = FakeSurface.instances
        return factory

    make.instances = FakeSurface.instances
    return make


# ---------------------------------------------------------------------------
# Fake encoder process
# ---------------------------------------------------------------------------

class FakeProcess:
    """Stands in for EncoderProcess: writes the output file and reports progress.

    ``behavior`` is one of "ok", "fail", "cancel" (terminates itself
    mid-run, as a CancelToken would) or a callable run in place of the
    default body.
    """

    def __init__(self, binary, args, duration=0.0, total_frames=0, behavior="ok", output_bytes=64):
        from layermedia.encode.progress import ProgressParser

        self.binary = binary
        self.args = args
        self.duration = duration
        self.total_frames = total_frames
        self.behavior = behavior
        self.output_bytes = output_bytes
        self.parser = ProgressParser(duration=duration, total_frames=total_frames)
        self.terminated = False
        self.terminate_calls = 0
        self.ran = False

    @property
    def output_path(self):
        return self.args[-1]

    def run(self, progress_callback=None, line_callback=None):
        self.ran = True
        if self.terminated:
            return -1
        if callable(self.behavior):
            return self.behavior(self, progress_callback, line_callback)
        if "%06d" not in self.output_path:
            Path(self.output_path).parent.mkdir(parents=True, exist_ok=True)
            Path(self.output_path).write_bytes(b"x" * self.output_bytes)
        for line in ("frame=5", "out_time_us=500000", f"total_size={self.output_bytes // 2}",
                     "progress=continue"):
            percent = self.parser.feed(line)
        if line_callback:
            line_callback(self.parser)
        if progress_callback:
            progress_callback(percent)
        if self.behavior == "cancel":
            self.terminate()
            return -9
        if self.behavior == "fail":
            raise EncodeError("ffmpeg exited with code 1", returncode=1, output_tail="boom")
        return 0

    def terminate(self):
        self.terminate_calls += 1
        self.terminated = True


@pytest.fixture()
def fake_process_factory():
    """``make(behaviors)`` -> factory; the n-th process gets ``behaviors[n]`` (default "ok")."""

    def make(behaviors=None, **kwargs):
        behaviors = list(behaviors or [])
        created = []

        def factory(binary, args, duration=0.0, total_frames=0):
            behavior = behaviors[len(created)] if len(created) < len(behaviors) else "ok"
            process = FakeProcess(binary, args, duration, total_frames, behavior, **kwargs)
            created.append(process)
            return process

        factory.created = created
        return factory

    return make


@pytest.fixture()
def jpeg():
    return ImageFormat.JPEG
