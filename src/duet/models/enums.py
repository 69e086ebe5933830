"""String enums for processing job documents."""

from enum import StrEnum


class JobStatus(StrEnum):
    QUEUED = "queued"
    DOWNLOADING = "downloading"
    PROCESSING = "processing"
    COMPLETED = "completed"
    FAILED = "failed"

    @property
    def is_active(self) -> bool:
        return self in ACTIVE_STATUSES

    @property
    def is_terminal(self) -> bool:
        return self in TERMINAL_STATUSES

    @property
    def rank(self) -> int:
        """Position along queued -> downloading -> processing -> terminal."""
        return _RANK[self]


ACTIVE_STATUSES = frozenset({JobStatus.QUEUED, JobStatus.DOWNLOADING, JobStatus.PROCESSING})
TERMINAL_STATUSES = frozenset({JobStatus.COMPLETED, JobStatus.FAILED})

_RANK = {
    JobStatus.QUEUED: 0,
    JobStatus.DOWNLOADING: 1,
    JobStatus.PROCESSING: 2,
    JobStatus.COMPLETED: 3,
    JobStatus.FAILED: 3,
}


class JobEventType(StrEnum):
    UPDATED = "job.updated"
    COMPLETED = "job.completed"
    FAILED = "job.failed"
    REMOVED = "job.removed"
    EXPIRED = "job.expired"
