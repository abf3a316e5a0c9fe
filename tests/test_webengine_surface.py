"""Tests against a real QtWebEngine surface. Run with ``pytest --run-webengine``."""

import pytest

from layermedia.capture.frames import GenerativeCaptureRequest, capture_generative_frames
from layermedia.capture.surface import WebEngineSurface
from layermedia.config import Settings
from layermedia.errors import LoadError
from layermedia.model.progress import Status
from layermedia.model.session import CaptureSlot, ImageFormat

pytestmark = pytest.mark.webengine

ARTWORK = """<!doctype html>
<html><body style="margin:0">
<canvas id="c" width="64" height="64"></canvas>
<script>
  var ctx = document.getElementById("c").getContext("2d");
  window.__draws = 0;
  function draw(t) {
    window.__draws += 1;
    var shade = Math.floor(t / 10) % 256;
    ctx.fillStyle = "rgb(" + shade + ",0," + (255 - shade) + ")";
    ctx.fillRect(0, 0, 64, 64);
    requestAnimationFrame(draw);
  }
  requestAnimationFrame(draw);
</script>
</body></html>
"""


@pytest.fixture()
def artwork_url(tmp_path):
    page = tmp_path / "artwork.html"
    page.write_text(ARTWORK)
    return page.as_uri()


@pytest.fixture()
def surface(qtbot):
    s = WebEngineSurface(64, 64, load_timeout_sec=20)
    yield s
    s.close()


class TestWebEngineSurface:
    def test_frame_clock(self, surface, artwork_url):
        surface.load(artwork_url)
        surface.wait(200)
        surface.install_frame_control(100.0)
        surface.wait(50)
        start = surface.run_script("window.__simulatedTime")
        draws = surface.run_script("window.__draws")
        surface.advance_frame()
        surface.advance_frame()
        assert surface.run_script("window.__simulatedTime") == pytest.approx(start + 200.0)
        assert surface.run_script("window.__draws") == draws + 2

    def test_install_is_idempotent(self, surface, artwork_url):
        surface.load(artwork_url)
        surface.install_frame_control(50.0)
        surface.install_frame_control(50.0)

    def test_snapshot_formats(self, surface, artwork_url):
        surface.load(artwork_url)
        surface.wait(200)
        assert surface.snapshot(ImageFormat.PNG).startswith(b"\x89PNG")
        assert surface.snapshot(ImageFormat.JPEG, 90).startswith(b"\xff\xd8")

    def test_load_failure(self, surface, tmp_path):
        with pytest.raises(LoadError):
            surface.load((tmp_path / "missing.html").as_uri())

    def test_closed_surface(self, surface):
        surface.close()
        surface.close()
        assert not surface.is_alive()
        with pytest.raises(RuntimeError):
            surface.snapshot(ImageFormat.PNG)


class TestRealCapture:
    def test_capture_writes_frames(self, qtbot, tmp_path, artwork_url):
        request = GenerativeCaptureRequest(
            url=artwork_url,
            fps=30,
            total_frames=3,
            resolution="2k",
            image_format=ImageFormat.JPEG,
            output_dir=str(tmp_path),
            folder_name="frames",
        )
        result = capture_generative_frames(
            request, CaptureSlot(), settings=Settings(initial_render_delay_ms=200)
        )
        assert result.status is Status.COMPLETED
        files = sorted((tmp_path / "frames").iterdir())
        assert [f.name for f in files] == ["frame_000000.jpg", "frame_000001.jpg", "frame_000002.jpg"]
        assert all(f.read_bytes().startswith(b"\xff\xd8") for f in files)
