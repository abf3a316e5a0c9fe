"""Runs one EncodeJob through a single ffmpeg process."""

from __future__ import annotations

import logging
from pathlib import Path
from typing import Callable

from layermedia.encode.process import EncoderProcess
from layermedia.model.cancel import CancelToken
from layermedia.model.jobs import EncodeJob

logger = logging.getLogger(__name__)


def remove_partial(path: str | Path) -> None:
    path = Path(path)
    try:
        path.unlink(missing_ok=True)
    except OSError as e:
        logger.warning("Could not remove partial output %s: %s", path, e)


class EncodeJobRunner:
    """Binds an encoder process to a cancel token and reports 0-100 progress.

    The process is torn down before ``run()`` returns on every path.
    """

    def __init__(
        self,
        ffmpeg: str,
        cancel_token: CancelToken | None = None,
        process_factory: Callable[..., EncoderProcess] = EncoderProcess,
    ):
        self.ffmpeg = ffmpeg
        self.cancel_token = cancel_token or CancelToken()
        self._process_factory = process_factory

    def run(self, job: EncodeJob, on_progress: Callable[[float], None] | None = None) -> bool:
        """Run *job*'s arguments.

        Returns:
            True if the encoder finished, False if it was cancelled.

        Raises:
            SpawnError, EncodeError: Propagated from the encoder process.
        """
        if self.cancel_token.is_cancelled():
            return False

        Path(job.output_path).parent.mkdir(parents=True, exist_ok=True)
        process = self._process_factory(self.ffmpeg, job.args, duration=job.duration)

        def report(percent: float) -> None:
            if job.update_progress(percent) and on_progress:
                on_progress(job.progress_percent)

        try:
            with self.cancel_token.bind(process):
                process.run(progress_callback=report)
                terminated = process.terminated
        except Exception:
            if job.discard_partial:
                remove_partial(job.output_path)
            raise
        finally:
            process.terminate()

        if terminated:
            logger.info("Encode cancelled: %s", job.output_path)
            if job.discard_partial:
                remove_partial(job.output_path)
            return False

        report(100.0)
        return True
