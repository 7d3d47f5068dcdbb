"""
Pipeline runner.

Drives one job through ``queued -> rendering -> uploading -> done`` on its own
asyncio task, persisting every intermediate state so status reads stay
consistent. Any failure ends the job in ``error`` with a readable reason; there
are no retries.
"""

from __future__ import annotations

import asyncio
from pathlib import Path

from ..config import PipelineConfig
from ..concurrency import with_timeout
from ..errors import (
    ErrorContext,
    PipelineTimeoutError,
    RenderError,
    RenderRuntimeError,
    StoreError,
    UploadError,
    describe_error,
)
from ..jobs.store import JobStore
from ..jobs.types import JobPatch, JobRecord, JobStatus
from ..logging import get_logger, timed
from .types import Renderer, Uploader

logger = get_logger("render_runtime.pipeline")

CANCELLED_MESSAGE = "Pipeline cancelled"


class PipelineRunner:
    """
    Runs render/upload pipelines for submitted jobs.

    Example:
        ```python
        runner = PipelineRunner(store, renderer, uploader, PipelineConfig(render_timeout_seconds=600))
        task = runner.dispatch(job)
        status = await task  # JobStatus.DONE, JobStatus.ERROR, or None if abandoned
        ```
    """

    def __init__(
        self,
        store: JobStore,
        renderer: Renderer,
        uploader: Uploader,
        config: PipelineConfig | None = None,
    ):
        self._store = store
        self._renderer = renderer
        self._uploader = uploader
        self._config = config or PipelineConfig()
        self._tasks: dict[str, asyncio.Task] = {}
        self._semaphore = (
            asyncio.Semaphore(self._config.max_concurrent_jobs)
            if self._config.max_concurrent_jobs
            else None
        )

    @property
    def config(self) -> PipelineConfig:
        return self._config

    @property
    def active_jobs(self) -> list[str]:
        """Ids of pipelines still in flight."""
        return [job_id for job_id, task in self._tasks.items() if not task.done()]

    def dispatch(self, job: JobRecord) -> asyncio.Task:
        """Start ``job``'s pipeline on a background task and return it."""
        task = asyncio.create_task(self._guarded(job), name=f"pipeline-{job.id}")
        self._tasks[job.id] = task
        task.add_done_callback(lambda _: self._tasks.pop(job.id, None))
        return task

    async def _guarded(self, job: JobRecord) -> JobStatus | None:
        try:
            if self._semaphore is None:
                return await self.run(job)
            async with self._semaphore:
                return await self.run(job)
        except asyncio.CancelledError:
            raise
        except Exception as e:
            # Only store failures while recording the outcome reach this point.
            logger.log_error(e, "Pipeline aborted", job_id=job.id)
            return None

    async def run(self, job: JobRecord) -> JobStatus | None:
        """
        Execute the pipeline for ``job`` in the current task.

        Returns:
            The terminal status written, or None if the job was evicted or
            finished elsewhere and the pipeline stopped without writing.

        Raises:
            StoreError: If the store fails while the outcome is being recorded
        """
        job_id = job.id
        with logger.job_context(job_id):
            try:
                if not await self._persist(job_id, JobStatus.RENDERING, job.status):
                    return None

                artifact: Path | None = None
                try:
                    artifact = await self._render(job)
                    if not await self._persist(job_id, JobStatus.UPLOADING, JobStatus.RENDERING):
                        return None
                    url = await self._upload(job_id, artifact)
                finally:
                    if artifact is not None:
                        self._remove_artifact(job_id, artifact)

                if not await self._persist(job_id, JobStatus.DONE, JobStatus.UPLOADING, video_url=url):
                    return None
                return JobStatus.DONE

            except asyncio.CancelledError:
                await self._record_failure(job_id, CANCELLED_MESSAGE, "Could not record cancellation")
                raise
            except StoreError as e:
                # A failed write does not mean the next one fails too.
                await self._record_failure(job_id, describe_error(e), "Could not record store failure")
                raise
            except Exception as e:
                logger.log_error(e, "Pipeline failed", job_id=job_id)
                if await self._persist(job_id, JobStatus.ERROR, None, error=describe_error(e)):
                    return JobStatus.ERROR
                return None

    async def _persist(
        self,
        job_id: str,
        status: JobStatus,
        previous: JobStatus | None,
        *,
        video_url: str | None = None,
        error: str | None = None,
    ) -> bool:
        patch = JobPatch(status=status, video_url=video_url, error=error)
        if not await self._store.update(job_id, patch):
            logger.warning("Job no longer accepts updates, stopping pipeline", status=status.value)
            return False
        logger.log_transition(
            job_id,
            status.value,
            previous.value if previous else None,
            **({"error": error} if error else {}),
        )
        return True

    async def _render(self, job: JobRecord) -> Path:
        timeout = self._config.render_timeout_seconds
        context = ErrorContext(job_id=job.id, stage=JobStatus.RENDERING.value)
        with timed() as timer:
            try:
                path = await with_timeout(
                    self._renderer.render(
                        job.input_props,
                        job_id=job.id,
                        concurrency=self._config.render_concurrency,
                    ),
                    timeout,
                )
            except asyncio.TimeoutError:
                raise PipelineTimeoutError(
                    f"Render timed out after {timeout}s", timeout=timeout, context=context
                ) from None
            except RenderRuntimeError:
                raise
            except Exception as e:
                raise RenderError(describe_error(e), context=context, cause=e) from e
        logger.info("Render finished", path=str(path), duration_ms=round(timer.elapsed_ms, 1))
        return Path(path)

    async def _upload(self, job_id: str, artifact: Path) -> str:
        timeout = self._config.upload_timeout_seconds
        context = ErrorContext(job_id=job_id, stage=JobStatus.UPLOADING.value)
        with timed() as timer:
            try:
                url = await with_timeout(
                    self._uploader.upload(
                        artifact,
                        resource_kind=self._config.resource_kind,
                        public_id=f"{self._config.public_id_prefix}{job_id}",
                    ),
                    timeout,
                )
            except asyncio.TimeoutError:
                raise PipelineTimeoutError(
                    f"Upload timed out after {timeout}s", timeout=timeout, context=context
                ) from None
            except RenderRuntimeError:
                raise
            except Exception as e:
                raise UploadError(describe_error(e), context=context, cause=e) from e
        logger.info("Upload finished", url=url, duration_ms=round(timer.elapsed_ms, 1))
        return url

    def _remove_artifact(self, job_id: str, artifact: Path) -> None:
        try:
            artifact.unlink(missing_ok=True)
        except OSError as e:
            logger.warning("Could not remove render artifact", job_id=job_id, path=str(artifact), error=str(e))

    async def _record_failure(self, job_id: str, message: str, failure_log: str) -> None:
        """Best-effort write of ``error``; store failures are logged, not raised."""
        try:
            if await self._store.update(job_id, JobPatch(status=JobStatus.ERROR, error=message)):
                logger.log_transition(job_id, JobStatus.ERROR.value, error=message)
        except StoreError as e:
            logger.log_error(e, failure_log, job_id=job_id)

    async def shutdown(self, timeout: float | None = None) -> None:
        """Wait up to ``timeout`` seconds for in-flight pipelines, then cancel the rest."""
        tasks = [task for task in self._tasks.values() if not task.done()]
        if not tasks:
            return
        logger.info("Waiting for in-flight pipelines", count=len(tasks))
        _, pending = await asyncio.wait(tasks, timeout=timeout)
        for task in pending:
            task.cancel()
        if pending:
            await asyncio.gather(*pending, return_exceptions=True)
            logger.warning("Cancelled unfinished pipelines", count=len(pending))


__all__ = [
    "CANCELLED_MESSAGE",
    "PipelineRunner",
]
