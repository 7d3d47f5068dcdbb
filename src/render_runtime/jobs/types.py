"""
Job types for the render runtime.

This module defines the JobStatus enum, the JobRecord dataclass and the
partial-update JobPatch that together form the job lifecycle.
"""

from __future__ import annotations

import copy
import json
import secrets
import string
import time
from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Mapping

_BASE36 = string.digits + string.ascii_lowercase


class JobStatus(str, Enum):
    """Job lifecycle states.

    State transitions:
    - QUEUED -> RENDERING (pipeline dispatched)
    - RENDERING -> UPLOADING (artifact produced)
    - UPLOADING -> DONE (artifact published)
    - any non-terminal -> ERROR (failure at any stage)
    """
    QUEUED = "queued"
    RENDERING = "rendering"
    UPLOADING = "uploading"
    DONE = "done"
    ERROR = "error"

    @property
    def is_terminal(self) -> bool:
        """Check if this is a terminal state."""
        return self in {JobStatus.DONE, JobStatus.ERROR}


# Valid state transitions
VALID_TRANSITIONS: dict[JobStatus, set[JobStatus]] = {
    JobStatus.QUEUED: {JobStatus.RENDERING, JobStatus.ERROR},
    JobStatus.RENDERING: {JobStatus.UPLOADING, JobStatus.ERROR},
    JobStatus.UPLOADING: {JobStatus.DONE, JobStatus.ERROR},
    # Terminal states have no valid transitions
    JobStatus.DONE: set(),
    JobStatus.ERROR: set(),
}


def can_transition(current: JobStatus, new_status: JobStatus) -> bool:
    """Check if a move from ``current`` to ``new_status`` is allowed."""
    return new_status in VALID_TRANSITIONS.get(current, set())


def now_ms(clock=time.time) -> int:
    """Current time from ``clock`` (seconds) as integer epoch milliseconds."""
    return int(clock() * 1000)


def _base36(value: int) -> str:
    if value == 0:
        return "0"
    digits = []
    while value:
        value, rem = divmod(value, 36)
        digits.append(_BASE36[rem])
    return "".join(reversed(digits))


def generate_job_id(timestamp_ms: int | None = None) -> str:
    """Generate a job id: base36 millisecond timestamp followed by 10 random base36 chars."""
    if timestamp_ms is None:
        timestamp_ms = now_ms()
    suffix = "".join(secrets.choice(_BASE36) for _ in range(10))
    return _base36(timestamp_ms) + suffix


@dataclass
class JobRecord:
    """Persistent record of a render job.

    Timestamps are integer epoch milliseconds.
    """
    id: str
    status: JobStatus = JobStatus.QUEUED
    input_props: dict[str, Any] = field(default_factory=dict)
    video_url: str | None = None
    error: str | None = None
    created_at: int = field(default_factory=now_ms)
    updated_at: int = field(default_factory=now_ms)

    def copy(self) -> JobRecord:
        """Deep copy, so callers never share mutable payloads with the store."""
        return copy.deepcopy(self)

    def apply(self, patch: JobPatch, updated_at: int) -> JobRecord:
        """Return a new record with ``patch`` merged in."""
        merged = self.copy()
        if patch.status is not None:
            merged.status = patch.status
        if patch.video_url is not None:
            merged.video_url = patch.video_url
        if patch.error is not None:
            merged.error = patch.error
        if patch.input_props is not None:
            merged.input_props = copy.deepcopy(patch.input_props)
        merged.updated_at = updated_at
        return merged

    def to_dict(self) -> dict[str, Any]:
        """Client-facing JSON shape."""
        return {
            "id": self.id,
            "status": self.status.value,
            "inputProps": copy.deepcopy(self.input_props),
            "videoUrl": self.video_url,
            "error": self.error,
            "createdAt": self.created_at,
            "updatedAt": self.updated_at,
        }

    def to_hash(self) -> dict[str, str]:
        """Flat string mapping used as the stored representation."""
        return {
            "id": self.id,
            "status": self.status.value,
            "videoUrl": self.video_url or "",
            "error": self.error or "",
            "createdAt": str(self.created_at),
            "updatedAt": str(self.updated_at),
            "inputProps": json.dumps(self.input_props),
        }

    @classmethod
    def from_hash(cls, data: Mapping[str, str]) -> JobRecord:
        """Decode the stored representation."""
        return cls(
            id=data["id"],
            status=JobStatus(data.get("status") or JobStatus.QUEUED.value),
            input_props=json.loads(data.get("inputProps") or "{}"),
            video_url=data.get("videoUrl") or None,
            error=data.get("error") or None,
            created_at=int(data.get("createdAt") or 0),
            updated_at=int(data.get("updatedAt") or 0),
        )


@dataclass(frozen=True)
class JobPatch:
    """Partial update for a job; ``None`` fields are left untouched."""
    status: JobStatus | None = None
    video_url: str | None = None
    error: str | None = None
    input_props: dict[str, Any] | None = None

    def to_hash(self, updated_at: int) -> dict[str, str]:
        """Stored-field mapping for only the provided fields plus ``updatedAt``."""
        fields: dict[str, str] = {"updatedAt": str(updated_at)}
        if self.status is not None:
            fields["status"] = self.status.value
        if self.video_url is not None:
            fields["videoUrl"] = self.video_url
        if self.error is not None:
            fields["error"] = self.error
        if self.input_props is not None:
            fields["inputProps"] = json.dumps(self.input_props)
        return fields


@dataclass
class JobStats:
    """Aggregate view over the live jobs."""
    total_jobs: int = 0
    counts_by_status: dict[str, int] = field(
        default_factory=lambda: {status.value: 0 for status in JobStatus}
    )
    oldest_age_hours: float | None = None
    newest_age_hours: float | None = None

    @classmethod
    def from_samples(cls, samples: list[tuple[str, int]], at_ms: int) -> JobStats:
        """Build stats from ``(status, created_at_ms)`` pairs."""
        stats = cls(total_jobs=len(samples))
        for status, _ in samples:
            stats.counts_by_status[status] = stats.counts_by_status.get(status, 0) + 1
        if samples:
            created = [created_at for _, created_at in samples]
            stats.oldest_age_hours = round(max(0, at_ms - min(created)) / 3_600_000, 4)
            stats.newest_age_hours = round(max(0, at_ms - max(created)) / 3_600_000, 4)
        return stats

    def to_dict(self) -> dict[str, Any]:
        return {
            "totalJobs": self.total_jobs,
            "countsByStatus": dict(self.counts_by_status),
            "oldestAgeHours": self.oldest_age_hours,
            "newestAgeHours": self.newest_age_hours,
        }


__all__ = [
    "JobStatus",
    "JobRecord",
    "JobPatch",
    "JobStats",
    "VALID_TRANSITIONS",
    "can_transition",
    "generate_job_id",
    "now_ms",
]
