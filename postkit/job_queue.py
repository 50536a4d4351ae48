"""In-process job queue with dependency tracking."""

from __future__ import annotations

import copy
import threading
from dataclasses import dataclass, field
from enum import Enum
from pathlib import Path


class JobType(Enum):
    TRANSCODE = "transcode"
    ENCODE = "encode"
    CREATE = "create"
    VALIDATE = "validate"
    LOUDNESS = "loudness"
    QC = "qc"
    COPY = "copy"
    KDM = "kdm"


class JobState(Enum):
    QUEUED = "queued"
    RUNNING = "running"
    COMPLETED = "completed"
    FAILED = "failed"
    CANCELLED = "cancelled"


_TYPE_NAMES = {
    JobType.TRANSCODE: "Transcode",
    JobType.ENCODE: "Encode",
    JobType.CREATE: "Create",
    JobType.VALIDATE: "Validate",
    JobType.LOUDNESS: "Loudness",
    JobType.QC: "QC",
    JobType.COPY: "Copy",
    JobType.KDM: "KDM",
}

_STATE_NAMES = {
    JobState.QUEUED: "Queued",
    JobState.RUNNING: "Running",
    JobState.COMPLETED: "Completed",
    JobState.FAILED: "Failed",
    JobState.CANCELLED: "Cancelled",
}


@dataclass
class Job:
    """A unit of work held by a :class:`JobQueue`."""

    id: int = 0
    job_type: JobType = JobType.CREATE
    state: JobState = JobState.QUEUED
    priority: int = 0
    description: str = ""
    input: Path = field(default_factory=Path)
    output: Path = field(default_factory=Path)
    progress: float = 0.0
    error: str = ""
    depends_on: list[int] = field(default_factory=list)


class JobQueue:
    """Thread-safe job queue; jobs run in submission order once dependencies complete."""

    def __init__(self) -> None:
        self._lock = threading.Lock()
        self._jobs: list[Job] = []
        self._next_id = 1

    def _find(self, job_id: int) -> Job | None:
        return next((job for job in self._jobs if job.id == job_id), None)

    def submit(self, job: Job) -> int:
        """Add a copy of ``job`` as queued and return its assigned ID."""
        job = copy.deepcopy(job)
        with self._lock:
            job.id = self._next_id
            job.state = JobState.QUEUED
            self._next_id += 1
            self._jobs.append(job)
            return job.id

    def cancel(self, job_id: int) -> bool:
        """Cancel a queued or running job; returns whether it was cancelled."""
        with self._lock:
            job = self._find(job_id)
            if job is not None and job.state in (JobState.QUEUED, JobState.RUNNING):
                job.state = JobState.CANCELLED
                return True
            return False

    def get(self, job_id: int) -> Job | None:
        """Return a snapshot of the job with ``job_id``, or None."""
        with self._lock:
            job = self._find(job_id)
            return copy.deepcopy(job) if job is not None else None

    def list(self) -> list[Job]:
        """Return snapshots of all jobs in submission order."""
        with self._lock:
            return copy.deepcopy(self._jobs)

    def next_runnable(self) -> Job | None:
        """Return the first queued job whose dependencies have all completed."""
        with self._lock:
            completed = {job.id for job in self._jobs if job.state is JobState.COMPLETED}
            for job in self._jobs:
                if job.state is JobState.QUEUED and all(
                    dep in completed for dep in job.depends_on
                ):
                    return copy.deepcopy(job)
            return None

    def set_state(self, job_id: int, state: JobState) -> None:
        with self._lock:
            job = self._find(job_id)
            if job is not None:
                job.state = state

    def set_progress(self, job_id: int, progress: float) -> None:
        """Set progress, from 0.0 to 1.0."""
        with self._lock:
            job = self._find(job_id)
            if job is not None:
                job.progress = progress

    def fail(self, job_id: int, error: str) -> None:
        """Mark a job failed with the given message."""
        with self._lock:
            job = self._find(job_id)
            if job is not None:
                job.state = JobState.FAILED
                job.error = error


def job_type_to_string(jt: JobType) -> str:
    return _TYPE_NAMES[jt]


def job_state_to_string(js: JobState) -> str:
    return _STATE_NAMES[js]