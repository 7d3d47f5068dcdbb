"""
Producer-facing job service.

``submit`` returns as soon as the job is persisted and its pipeline is
dispatched; clients then poll ``status``.
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import Any

from .jobs.store import JobStore
from .jobs.types import JobRecord, JobStats, JobStatus
from .logging import get_logger
from .pipeline.runner import PipelineRunner
from .reaper import Reaper
from .validation import PayloadValidator

logger = get_logger("render_runtime.service")


@dataclass(frozen=True)
class SubmitResult:
    """Acknowledgement returned to the producer."""
    id: str
    status: JobStatus = JobStatus.QUEUED

    def to_dict(self) -> dict[str, Any]:
        return {"id": self.id, "status": self.status.value}


class JobService:
    """Submit jobs and read their state."""

    def __init__(
        self,
        store: JobStore,
        runner: PipelineRunner,
        reaper: Reaper | None = None,
        validator: PayloadValidator | None = None,
    ):
        self._store = store
        self._runner = runner
        self._reaper = reaper
        self._validator = validator or PayloadValidator()

    async def submit(self, payload: Any) -> SubmitResult:
        """
        Validate, persist and dispatch a job.

        Raises:
            InvalidPayloadError: If the payload is rejected; no job is created
            StoreUnavailableError: If the job could not be persisted
        """
        payload = self._validator.validate(payload)
        job = await self._store.create(payload)
        self._runner.dispatch(job)
        if self._reaper is not None:
            await self._reaper.check_capacity()
        logger.info("Job submitted", job_id=job.id)
        return SubmitResult(id=job.id, status=job.status)

    async def status(self, job_id: str) -> JobRecord | None:
        """Current state of a job, or None if unknown or expired."""
        return await self._store.get(job_id)

    async def stats(self) -> JobStats:
        return await self._store.stats()


__all__ = [
    "SubmitResult",
    "JobService",
]
