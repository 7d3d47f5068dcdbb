"""
Job store implementations.

This module provides the JobStore interface and an in-memory implementation.
The Redis-backed store lives in :mod:`render_runtime.storage.redis`.

Every store keeps two indexes next to the records: a set of live ids for
membership and counting, and an index ordered by creation time so that age
and count eviction are both a cheap range query.
"""

from __future__ import annotations

import asyncio
import bisect
import time
from abc import ABC, abstractmethod
from collections.abc import Callable
from typing import Any

from ..logging import get_logger
from .types import (
    JobPatch,
    JobRecord,
    JobStats,
    JobStatus,
    can_transition,
    generate_job_id,
)

Clock = Callable[[], float]

logger = get_logger("render_runtime.jobs")


class JobStore(ABC):
    """Abstract interface for bounded, TTL-expiring job persistence.

    Args:
        max_jobs: Count bound enforced by :meth:`evict`
        max_age_hours: Age bound enforced by :meth:`evict`; also the record TTL,
            refreshed on every mutation
        clock: Time source in seconds, injectable for tests
    """

    def __init__(
        self,
        *,
        max_jobs: int = 50,
        max_age_hours: float = 24,
        clock: Clock = time.time,
    ):
        self.max_jobs = max_jobs
        self.max_age_hours = max_age_hours
        self._clock = clock

    @property
    def ttl_ms(self) -> int:
        return int(self.max_age_hours * 3_600_000)

    def _now_ms(self) -> int:
        return int(self._clock() * 1000)

    def _new_record(self, payload: dict[str, Any]) -> JobRecord:
        now = self._now_ms()
        return JobRecord(
            id=generate_job_id(now),
            status=JobStatus.QUEUED,
            input_props=payload,
            created_at=now,
            updated_at=now,
        )

    @staticmethod
    def _check_patch(job_id: str, current: JobStatus, patch: JobPatch) -> bool:
        """Decide whether ``patch`` may be applied to a record in ``current``."""
        if current.is_terminal:
            logger.warning(
                "Ignoring update to terminal job",
                job_id=job_id,
                status=current.value,
                requested=patch.status.value if patch.status else None,
            )
            return False
        if patch.status is not None and not can_transition(current, patch.status):
            logger.warning(
                "Rejected invalid transition",
                job_id=job_id,
                status=current.value,
                requested=patch.status.value,
            )
            return False
        # videoUrl is written only on the move to done, error only on the move to error.
        if patch.video_url is not None and patch.status is not JobStatus.DONE:
            logger.warning("Rejected video URL outside transition to done", job_id=job_id, status=current.value)
            return False
        if patch.error is not None and patch.status is not JobStatus.ERROR:
            logger.warning("Rejected error outside transition to error", job_id=job_id, status=current.value)
            return False
        if patch.status is JobStatus.DONE and not patch.video_url:
            logger.warning("Rejected transition to done without a video URL", job_id=job_id)
            return False
        return True

    @abstractmethod
    async def create(self, payload: dict[str, Any]) -> JobRecord:
        """Create a queued job for ``payload`` and index it.

        Raises:
            StoreUnavailableError: If the backing store is unreachable
        """
        ...

    @abstractmethod
    async def get(self, job_id: str) -> JobRecord | None:
        """Get a copy of a job, or None if absent or expired."""
        ...

    @abstractmethod
    async def update(self, job_id: str, patch: JobPatch) -> bool:
        """Merge ``patch`` into a job and refresh its TTL.

        Returns False without writing if the job is absent, terminal, or the
        requested status is not a valid transition. ``video_url`` is accepted
        only with (and required by) a move to done, ``error`` only with a move
        to error.
        """
        ...

    @abstractmethod
    async def delete(self, job_id: str) -> bool:
        """Delete a job and its index entries. Returns True if it existed."""
        ...

    @abstractmethod
    async def count(self) -> int:
        """Number of ids in the live-id index."""
        ...

    @abstractmethod
    async def evict(self) -> int:
        """Enforce the age and count bounds. Returns the number of jobs removed."""
        ...

    @abstractmethod
    async def stats(self) -> JobStats:
        """Aggregate counts and ages over the live jobs."""
        ...

    async def close(self) -> None:
        """Release backend resources."""
        return None


class InMemoryJobStore(JobStore):
    """In-memory job store implementation.

    Suitable for testing and single-process deployments without Redis.
    Expiry is applied lazily on access and by :meth:`evict`.
    """

    def __init__(
        self,
        *,
        max_jobs: int = 50,
        max_age_hours: float = 24,
        clock: Clock = time.time,
    ):
        super().__init__(max_jobs=max_jobs, max_age_hours=max_age_hours, clock=clock)
        self._records: dict[str, JobRecord] = {}
        self._expires_at: dict[str, int] = {}
        self._ids: set[str] = set()
        # (created_at, id) pairs kept sorted
        self._queue: list[tuple[int, str]] = []
        self._lock = asyncio.Lock()

    async def create(self, payload: dict[str, Any]) -> JobRecord:
        async with self._lock:
            record = self._new_record(payload)
            while record.id in self._ids:
                record = self._new_record(payload)

            self._records[record.id] = record.copy()
            self._expires_at[record.id] = record.updated_at + self.ttl_ms
            self._ids.add(record.id)
            bisect.insort(self._queue, (record.created_at, record.id))

            logger.info("Job created", job_id=record.id)
            return record.copy()

    def _live(self, job_id: str) -> JobRecord | None:
        record = self._records.get(job_id)
        if record is None:
            return None
        if self._expires_at[job_id] <= self._now_ms():
            # Record TTL lapsed; the index entries stay until evict() sees them.
            del self._records[job_id]
            del self._expires_at[job_id]
            return None
        return record

    async def get(self, job_id: str) -> JobRecord | None:
        async with self._lock:
            record = self._live(job_id)
            return record.copy() if record else None

    async def update(self, job_id: str, patch: JobPatch) -> bool:
        async with self._lock:
            record = self._live(job_id)
            if record is None:
                return False
            if not self._check_patch(job_id, record.status, patch):
                return False

            now = self._now_ms()
            self._records[job_id] = record.apply(patch, now)
            self._expires_at[job_id] = now + self.ttl_ms
            return True

    def _remove(self, job_id: str) -> bool:
        existed = self._records.pop(job_id, None) is not None
        self._expires_at.pop(job_id, None)
        if job_id in self._ids:
            self._ids.discard(job_id)
            self._queue = [entry for entry in self._queue if entry[1] != job_id]
        return existed

    async def delete(self, job_id: str) -> bool:
        async with self._lock:
            return self._remove(job_id)

    async def count(self) -> int:
        async with self._lock:
            return len(self._ids)

    async def evict(self) -> int:
        async with self._lock:
            now = self._now_ms()
            cutoff = now - self.ttl_ms
            removed = 0

            # Phase 1: age. Everything at or before the cutoff is a prefix of the queue.
            split = bisect.bisect_right(self._queue, cutoff, key=lambda entry: entry[0])
            expired = [job_id for _, job_id in self._queue[:split]]
            self._queue = self._queue[split:]
            for job_id in expired:
                self._ids.discard(job_id)
                self._records.pop(job_id, None)
                self._expires_at.pop(job_id, None)
                logger.log_eviction(job_id, "age")
            removed += len(expired)

            # Index entries whose record already lapsed never count as survivors.
            orphans = [job_id for _, job_id in self._queue if self._live(job_id) is None]
            for job_id in orphans:
                self._remove(job_id)
                logger.log_eviction(job_id, "missing")
            removed += len(orphans)

            # Phase 2: count, oldest first.
            excess = len(self._ids) - self.max_jobs
            if excess > 0:
                oldest = [job_id for _, job_id in self._queue[:excess]]
                self._queue = self._queue[excess:]
                for job_id in oldest:
                    self._ids.discard(job_id)
                    self._records.pop(job_id, None)
                    self._expires_at.pop(job_id, None)
                    logger.log_eviction(job_id, "count")
                removed += len(oldest)

            return removed

    async def stats(self) -> JobStats:
        async with self._lock:
            samples = []
            for job_id in list(self._ids):
                record = self._live(job_id)
                if record is None:
                    continue
                samples.append((record.status.value, record.created_at))
            return JobStats.from_samples(samples, self._now_ms())


__all__ = [
    "Clock",
    "JobStore",
    "InMemoryJobStore",
]
