"""Tests for the sequential frame capture loop."""

from pathlib import Path

import pytest

from layermedia.capture.loop import FrameCaptureLoop, frame_filename, frame_pattern
from layermedia.model.session import (
    CaptureSession,
    ImageFormat,
    SessionStatus,
    SourceKind,
)


@pytest.fixture()
def out(tmp_path):
    return tmp_path / "frames"


def _session(out, total=5, image_format=ImageFormat.JPEG):
    session = CaptureSession(
        source_kind=SourceKind.GENERATIVE_SURFACE,
        frame_rate=30,
        total_frames=total,
        resolution="2k",
        image_format=image_format,
        output_directory=str(out),
    )
    session.transition(SessionStatus.CAPTURING)
    return session


def _files(out):
    return sorted(p.name for p in Path(out).iterdir())


class TestNames:
    def test_zero_padded(self):
        assert frame_filename(0, "jpg") == "frame_000000.jpg"
        assert frame_filename(1234, "png") == "frame_001234.png"

    def test_pattern(self):
        assert frame_pattern("png") == "frame_%06d.png"


class TestFrameCaptureLoop:
    def test_writes_every_index_in_order(self, out, fake_surface_factory):
        surface = fake_surface_factory(output_dir=str(out))(1080, 1080, 30)
        session = _session(out, total=5)
        loop = FrameCaptureLoop(surface, session)
        assert loop.run() is True
        assert _files(out) == [f"frame_{i:06d}.jpg" for i in range(5)]
        for i in range(5):
            assert (out / frame_filename(i, "jpg")).read_bytes() == f"frame-{i}".encode()
        assert session.current_frame_index == 5
        assert loop.frames_written == 5
        assert surface.advance_calls == 5

    def test_png_extension(self, out, fake_surface_factory):
        surface = fake_surface_factory(output_dir=str(out))(1080, 1080, 30)
        FrameCaptureLoop(surface, _session(out, total=2, image_format=ImageFormat.PNG)).run()
        assert _files(out) == ["frame_000000.png", "frame_000001.png"]

    def test_settle_delay_before_each_snapshot(self, out, fake_surface_factory):
        surface = fake_surface_factory(output_dir=str(out))(1080, 1080, 30)
        FrameCaptureLoop(surface, _session(out, total=3), settle_delay_ms=7).run()
        assert surface.waits == [7, 7, 7]

    def test_on_frame_sees_monotonic_index(self, out, fake_surface_factory):
        surface = fake_surface_factory(output_dir=str(out))(1080, 1080, 30)
        seen = []
        FrameCaptureLoop(surface, _session(out, total=4)).run(
            lambda s: seen.append(s.current_frame_index)
        )
        assert seen == [1, 2, 3, 4]

    def test_cancel_keeps_written_frames(self, out, fake_surface_factory):
        surface = fake_surface_factory(output_dir=str(out))(1080, 1080, 30)
        session = _session(out, total=10)

        def on_frame(s):
            if s.current_frame_index == 3:
                s.cancel_token.cancel()

        loop = FrameCaptureLoop(surface, session)
        assert loop.run(on_frame) is False
        assert _files(out) == [f"frame_{i:06d}.jpg" for i in range(3)]
        assert session.current_frame_index == 3
        assert surface.advance_calls == 3

    def test_snapshot_retry_does_not_skip_index(self, out, fake_surface_factory):
        surface = fake_surface_factory(output_dir=str(out), snapshot_failures={2: 2})(1080, 1080, 30)
        loop = FrameCaptureLoop(surface, _session(out, total=4), retries=2)
        assert loop.run() is True
        assert _files(out) == [f"frame_{i:06d}.jpg" for i in range(4)]
        assert (out / "frame_000002.jpg").read_bytes() == b"frame-2"
        # Retries reuse the advanced clock
        assert surface.advance_calls == 4
        assert loop.dropped_frames == []

    def test_exhausted_retries_drop_frame(self, out, fake_surface_factory):
        surface = fake_surface_factory(output_dir=str(out), snapshot_failures={1: 5})(1080, 1080, 30)
        loop = FrameCaptureLoop(surface, _session(out, total=3), retries=2)
        assert loop.run() is True
        assert loop.dropped_frames == [1]
        assert _files(out) == ["frame_000000.jpg", "frame_000002.jpg"]
        assert (out / "frame_000002.jpg").read_bytes() == b"frame-2"

    def test_advance_failure_drops_frame(self, out, fake_surface_factory):
        surface = fake_surface_factory(output_dir=str(out), advance_failures={1})(1080, 1080, 30)
        loop = FrameCaptureLoop(surface, _session(out, total=3))
        assert loop.run() is True
        assert loop.dropped_frames == [1]
        assert loop.frames_written == 2

    def test_surface_loss_stops_capture(self, out, fake_surface_factory):
        surface = fake_surface_factory(output_dir=str(out), die_at=3)(1080, 1080, 30)
        session = _session(out, total=10)
        loop = FrameCaptureLoop(surface, session)
        assert loop.run() is False
        assert loop.surface_lost
        assert session.current_frame_index == 3
        assert len(_files(out)) == 3

    def test_resumes_from_current_index(self, out, fake_surface_factory):
        surface = fake_surface_factory()(1080, 1080, 30)
        session = _session(out, total=5)
        session.advance_to(3)
        FrameCaptureLoop(surface, session).run()
        assert surface.advance_calls == 2
