"""In-memory job store for transcription jobs: status (queued / processing / done / error), progress and result."""
import time
import uuid
from dataclasses import dataclass, field, replace
from enum import Enum
from typing import Callable, Dict, Optional

from transcriber.core.errors import JobStateError


class JobStatus(str, Enum):
    QUEUED = "queued"
    PROCESSING = "processing"
    DONE = "done"
    ERROR = "error"

    @property
    def terminal(self) -> bool:
        return self in (JobStatus.DONE, JobStatus.ERROR)


_ALLOWED = {
    JobStatus.QUEUED: {JobStatus.PROCESSING, JobStatus.ERROR},
    JobStatus.PROCESSING: {JobStatus.PROCESSING, JobStatus.DONE, JobStatus.ERROR},
    JobStatus.DONE: set(),
    JobStatus.ERROR: set(),
}


@dataclass(frozen=True)
class Progress:
    pct: int = 0
    message: str = "queued"

    def __post_init__(self) -> None:
        if not 0 <= self.pct <= 100:
            raise JobStateError(f"progress pct out of range: {self.pct}")


@dataclass(frozen=True)
class Job:
    """Immutable snapshot of one transcription job.
    Why available: The pipeline replaces the snapshot on every step and pollers read whole snapshots, so a reader never sees a half-applied update.

    Construction rejects illegal combinations: done without result text,
    error without an error detail, or either field on the wrong status.
    """

    job_id: str
    upload_id: str
    original_name: str
    status: JobStatus = JobStatus.QUEUED
    progress: Progress = field(default_factory=Progress)
    result_text: Optional[str] = None
    error: Optional[str] = None
    created_at: float = 0.0
    started_at: Optional[float] = None
    finished_at: Optional[float] = None
    chunk_count: int = 0
    truncated: bool = False

    def __post_init__(self) -> None:
        if self.status is JobStatus.DONE and self.result_text is None:
            raise JobStateError("done job requires result_text")
        if self.status is not JobStatus.DONE and self.result_text is not None:
            raise JobStateError(f"{self.status.value} job can not carry result_text")
        if self.status is JobStatus.ERROR and not self.error:
            raise JobStateError("error job requires an error detail")
        if self.status is not JobStatus.ERROR and self.error is not None:
            raise JobStateError(f"{self.status.value} job can not carry an error")

    def _move(self, status: JobStatus, **changes) -> "Job":
        if status not in _ALLOWED[self.status]:
            raise JobStateError(
                f"illegal transition {self.status.value} -> {status.value}", job_id=self.job_id
            )
        return replace(self, status=status, **changes)

    def advance(self, pct: int, message: str, now: Optional[float] = None) -> "Job":
        """Move to (or stay in) processing with new progress. pct never goes backwards."""
        started = self.started_at
        if started is None:
            started = now if now is not None else time.time()
        pct = max(pct, self.progress.pct)
        return self._move(JobStatus.PROCESSING, progress=Progress(pct, message), started_at=started)

    def with_chunks(self, chunk_count: int, truncated: bool) -> "Job":
        return replace(self, chunk_count=chunk_count, truncated=truncated)

    def complete(self, result_text: str, now: Optional[float] = None) -> "Job":
        return self._move(
            JobStatus.DONE,
            progress=Progress(100, "done"),
            result_text=result_text,
            finished_at=now if now is not None else time.time(),
        )

    def fail(self, error: str, now: Optional[float] = None) -> "Job":
        # progress resets to 0 on failure
        return self._move(
            JobStatus.ERROR,
            progress=Progress(0, "error"),
            error=error or "unknown error",
            finished_at=now if now is not None else time.time(),
        )


class JobRegistry:
    """Owns job snapshots by job_id. Each entry is written only by the pipeline task bound to it."""

    def __init__(self, clock: Callable[[], float] = time.time):
        self.clock = clock
        self._jobs: Dict[str, Job] = {}

    def __len__(self) -> int:
        return len(self._jobs)

    def __contains__(self, job_id: str) -> bool:
        return job_id in self._jobs

    def create(self, upload_id: str, original_name: str) -> Job:
        """Allocate a queued job with progress 0 under a fresh job_id (independent of the upload id)."""
        job = Job(
            job_id=uuid.uuid4().hex,
            upload_id=upload_id,
            original_name=original_name,
            created_at=self.clock(),
        )
        self._jobs[job.job_id] = job
        return job

    def get(self, job_id: str) -> Optional[Job]:
        return self._jobs.get(job_id)

    def update(self, job_id: str, fn: Callable[[Job], Job]) -> Job:
        """Replace the snapshot for job_id with fn(current). Raises KeyError for an unknown job."""
        job = fn(self._jobs[job_id])
        self._jobs[job_id] = job
        return job
