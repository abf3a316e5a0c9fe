"""Tests for the capture session state machine, capture slot, cancel token and emitter."""

import threading

import pytest

from layermedia.errors import BusyError
from layermedia.model.cancel import CancelToken
from layermedia.model.progress import (
    CompressProgress,
    ProgressEmitter,
    Status,
)
from layermedia.model.session import (
    CapturePurpose,
    CaptureSession,
    CaptureSlot,
    ImageFormat,
    SessionStatus,
    SourceKind,
    resolution_size,
)


def _session(total=10, resolution="2k", **kwargs):
    return CaptureSession(
        source_kind=SourceKind.GENERATIVE_SURFACE,
        frame_rate=30,
        total_frames=total,
        resolution=resolution,
        image_format=ImageFormat.PNG,
        output_directory="/tmp/out",
        **kwargs,
    )


class TestCaptureSession:
    def test_dimensions(self):
        assert _session(resolution="8k").dimensions == (4320, 4320)
        with pytest.raises(ValueError):
            resolution_size("16k")

    def test_frame_interval(self):
        assert _session().frame_interval_ms == pytest.approx(1000 / 30)
        # Only recordings use the calibrated 4k interval
        assert _session(resolution="4k").frame_interval_ms == pytest.approx(1000 / 30)
        assert _session(resolution="4k", calibrated_timing=True).frame_interval_ms == 100.0
        assert _session(resolution="2k", calibrated_timing=True).frame_interval_ms == pytest.approx(
            1000 / 30
        )

    def test_extension(self):
        assert ImageFormat.JPEG.extension == "jpg"
        assert ImageFormat.PNG.extension == "png"

    def test_legal_transitions(self):
        session = _session()
        session.transition(SessionStatus.CAPTURING)
        session.transition(SessionStatus.CANCELLED)
        assert session.status is SessionStatus.CANCELLED
        # Sessions are single-use
        with pytest.raises(RuntimeError, match="Illegal"):
            session.transition(SessionStatus.CAPTURING)

    @pytest.mark.parametrize("target", [
        SessionStatus.COMPLETED, SessionStatus.CANCELLED, SessionStatus.ERROR,
    ])
    def test_idle_cannot_finish(self, target):
        with pytest.raises(RuntimeError, match="Illegal"):
            _session().transition(target)

    def test_index_only_moves_forward(self):
        session = _session(total=5)
        session.advance_to(3)
        with pytest.raises(ValueError):
            session.advance_to(2)
        with pytest.raises(ValueError):
            session.advance_to(6)
        session.advance_to(5)
        assert session.current_frame_index == 5

    def test_complete_requires_every_frame(self):
        session = _session(total=3)
        session.transition(SessionStatus.CAPTURING)
        session.advance_to(2)
        with pytest.raises(RuntimeError):
            session.complete()
        session.advance_to(3)
        session.complete()
        assert session.status is SessionStatus.COMPLETED

    def test_cancelled_session_never_completes(self):
        session = _session(total=1)
        session.transition(SessionStatus.CAPTURING)
        session.advance_to(1)
        session.cancel_token.cancel()
        with pytest.raises(RuntimeError):
            session.complete()


class TestCaptureSlot:
    def test_second_acquire_is_busy(self):
        slot = CaptureSlot()
        first, second = _session(), _session(purpose=CapturePurpose.RECORDING)
        slot.acquire(first)
        with pytest.raises(BusyError, match="already in progress"):
            slot.acquire(second)
        # The running session is untouched
        assert slot.active is first
        assert first.status is SessionStatus.CAPTURING
        assert second.status is SessionStatus.IDLE

    def test_release_frees_slot(self):
        slot = CaptureSlot()
        first = _session()
        slot.acquire(first)
        assert slot.busy
        slot.release(first)
        assert not slot.busy
        second = _session()
        slot.acquire(second)
        assert slot.active is second

    def test_release_of_other_session_is_ignored(self):
        slot = CaptureSlot()
        first = _session()
        slot.acquire(first)
        slot.release(_session())
        assert slot.active is first

    def test_concurrent_acquire_admits_one(self):
        slot = CaptureSlot()
        sessions = [_session() for _ in range(8)]
        admitted = []
        barrier = threading.Barrier(len(sessions))

        def worker(session):
            barrier.wait()
            try:
                slot.acquire(session)
                admitted.append(session)
            except BusyError:
                pass

        threads = [threading.Thread(target=worker, args=(s,)) for s in sessions]
        for t in threads:
            t.start()
        for t in threads:
            t.join()
        assert len(admitted) == 1


class _Proc:
    def __init__(self):
        self.terminate_calls = 0

    def terminate(self):
        self.terminate_calls += 1


class TestCancelToken:
    def test_cancel_terminates_bound_process(self):
        token = CancelToken()
        proc = _Proc()
        with token.bind(proc):
            token.cancel()
            assert proc.terminate_calls == 1
        assert token.is_cancelled()
        assert token()

    def test_bind_after_cancel_terminates_immediately(self):
        token = CancelToken()
        token.cancel()
        proc = _Proc()
        with token.bind(proc):
            pass
        assert proc.terminate_calls == 1

    def test_unbound_after_block(self):
        token = CancelToken()
        proc = _Proc()
        with token.bind(proc):
            pass
        token.cancel()
        assert proc.terminate_calls == 0

    def test_cancel_is_idempotent(self):
        token = CancelToken()
        token.cancel()
        token.cancel()
        assert token.is_cancelled()


class TestProgressEmitter:
    def test_exactly_one_terminal_event(self):
        events = []
        emitter = ProgressEmitter(events.append)
        emitter.emit(CompressProgress(10, 1, 10, Status.RUNNING))
        first = emitter.finish(CompressProgress(100, 5, 5, Status.COMPLETED))
        second = emitter.finish(CompressProgress(0, 0, 0, Status.ERROR))
        emitter.emit(CompressProgress(50, 1, 2, Status.RUNNING))
        assert second is first
        assert [e.final for e in events] == [False, True]
        assert emitter.finished

    def test_relay_skips_nested_terminal(self):
        events = []
        outer = ProgressEmitter(events.append)
        inner = ProgressEmitter(outer.relay)
        inner.emit(CompressProgress(10, 1, 10, Status.RUNNING))
        result = inner.finish(CompressProgress(100, 5, 5, Status.COMPLETED))
        outer.finish(result)
        assert len(events) == 2
        assert events[-1] is result

    def test_without_callback(self):
        emitter = ProgressEmitter()
        event = emitter.finish(CompressProgress(0, 0, 0, Status.CANCELLED))
        assert event.final
        assert emitter.final_event is event

    def test_terminal_statuses(self):
        assert {s for s in Status if s.is_terminal} == {
            Status.COMPLETED, Status.CANCELLED, Status.ERROR,
        }
