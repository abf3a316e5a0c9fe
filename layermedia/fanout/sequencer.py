"""Strictly sequential execution of a FanOutBatch."""

from __future__ import annotations

import logging
from typing import Callable

from layermedia.errors import SpawnError
from layermedia.model.jobs import BatchResult, BatchStatus, EncodeJob, FanOutBatch, JobStatus

logger = logging.getLogger(__name__)

# execute(job, on_progress) -> False if the job was cancelled mid-run
JobExecutor = Callable[[EncodeJob, Callable[[float], None]], bool]


class FanOutSequencer:
    """Runs a batch's jobs one at a time with per-job failure isolation.

    The batch's cancel flag is checked before each job; once set, remaining
    jobs stay Pending. A job that raises is marked Error and the next job
    starts, except for ``SpawnError`` which means no job can succeed.
    """

    def __init__(self, batch: FanOutBatch, execute: JobExecutor):
        self.batch = batch
        self._execute = execute

    def run(self, on_update: Callable[[EncodeJob], None] | None = None) -> BatchResult:
        def notify(job: EncodeJob) -> None:
            if on_update:
                on_update(job)

        cancel = self.batch.cancel_token
        for index, job in enumerate(self.batch.jobs):
            if cancel.is_cancelled():
                logger.info("Batch cancelled before job %d/%d", index + 1, len(self.batch))
                return BatchResult(BatchStatus.CANCELLED, self.batch.jobs)

            job.status = JobStatus.PROCESSING
            notify(job)

            def on_progress(_percent: float, job=job) -> None:
                notify(job)

            try:
                finished = self._execute(job, on_progress)
            except SpawnError as e:
                job.status = JobStatus.ERROR
                job.error = str(e)
                notify(job)
                logger.error("Aborting batch: %s", e)
                return BatchResult(BatchStatus.ERROR, self.batch.jobs, error=str(e))
            except Exception as e:
                logger.exception("Job %s failed", job.label)
                job.status = JobStatus.ERROR
                job.error = str(e)
                notify(job)
                continue

            if not finished:
                job.status = JobStatus.CANCELLED
                notify(job)
                return BatchResult(BatchStatus.CANCELLED, self.batch.jobs)

            job.status = JobStatus.COMPLETED
            notify(job)

        if cancel.is_cancelled():
            return BatchResult(BatchStatus.CANCELLED, self.batch.jobs)
        return BatchResult(BatchStatus.COMPLETED, self.batch.jobs)
