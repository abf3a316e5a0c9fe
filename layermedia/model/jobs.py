"""EncodeJob, FanOutBatch and BatchResult data models."""

from __future__ import annotations

from dataclasses import dataclass, field
from enum import Enum

from layermedia.model.cancel import CancelToken


class JobStatus(str, Enum):
    PENDING = "pending"
    PROCESSING = "processing"
    COMPLETED = "completed"
    ERROR = "error"
    CANCELLED = "cancelled"


class BatchStatus(str, Enum):
    COMPLETED = "completed"
    CANCELLED = "cancelled"
    ERROR = "error"


@dataclass
class EncodeJob:
    """One (input, output target) transcoding unit.

    ``target`` names the codec (``"h264"``), the thumbnail pass, or a GIF
    size class; ``group`` names the dimension preset or scale it belongs to.
    """

    input_path: str
    output_path: str
    target_dimensions: tuple[int, int] | None
    target: str
    group: str = ""
    args: list[str] = field(default_factory=list)
    duration: float = 0.0
    discard_partial: bool = True
    progress_percent: float = 0.0
    status: JobStatus = JobStatus.PENDING
    error: str | None = None
    warning: str | None = None

    @property
    def label(self) -> str:
        return f"{self.group}/{self.target}" if self.group else self.target

    def update_progress(self, percent: float) -> bool:
        """Raise progress to *percent*; returns False if it would go backwards."""
        percent = max(0.0, min(100.0, percent))
        if percent <= self.progress_percent:
            return False
        self.progress_percent = percent
        return True


@dataclass
class FanOutBatch:
    """Ordered jobs derived from one source input, sharing one cancel flag."""

    jobs: list[EncodeJob] = field(default_factory=list)
    cancel_token: CancelToken = field(default_factory=CancelToken, repr=False)

    def __len__(self) -> int:
        return len(self.jobs)

    def add(self, job: EncodeJob) -> EncodeJob:
        self.jobs.append(job)
        return job


@dataclass
class BatchResult:
    status: BatchStatus
    jobs: list[EncodeJob]
    error: str | None = None

    @property
    def errors(self) -> list[EncodeJob]:
        return [j for j in self.jobs if j.status is JobStatus.ERROR]

    @property
    def completed(self) -> list[EncodeJob]:
        return [j for j in self.jobs if j.status is JobStatus.COMPLETED]

    @property
    def started(self) -> list[EncodeJob]:
        return [j for j in self.jobs if j.status is not JobStatus.PENDING]

    @property
    def partial(self) -> bool:
        return self.status is BatchStatus.COMPLETED and bool(self.errors)
