"""
Runtime assembly.

Wires the job store, pipeline runner, reaper and job service from
:class:`~render_runtime.config.Settings` and owns their lifecycle.
"""

from __future__ import annotations

import time
from typing import Any

from .adapters.render import CommandRenderer
from .adapters.upload import S3Uploader
from .config import Settings
from .jobs.store import Clock, JobStore
from .logging import configure_logging, get_logger
from .pipeline.runner import PipelineRunner
from .pipeline.types import Renderer, Uploader
from .reaper import Reaper
from .service import JobService
from .storage.redis import RedisJobStore
from .validation import PayloadValidator

logger = get_logger("render_runtime.runtime")


class RenderRuntime:
    """
    Assembled render runtime.

    Example:
        ```python
        settings = Settings.from_env()
        async with await RenderRuntime.create(settings) as runtime:
            result = await runtime.service.submit({"title": "Quiz #1"})
            job = await runtime.service.status(result.id)
        ```
    """

    def __init__(
        self,
        settings: Settings,
        store: JobStore,
        runner: PipelineRunner,
        reaper: Reaper,
        service: JobService,
    ):
        self.settings = settings
        self.store = store
        self.runner = runner
        self.reaper = reaper
        self.service = service
        self._started = False

    @classmethod
    async def create(
        cls,
        settings: Settings | None = None,
        *,
        renderer: Renderer | None = None,
        uploader: Uploader | None = None,
        store: JobStore | None = None,
        payload_schema: dict[str, Any] | None = None,
        clock: Clock = time.time,
    ) -> RenderRuntime:
        """
        Build a runtime.

        Args:
            settings: Configuration; defaults to ``Settings()``
            renderer: Render engine; defaults to a CommandRenderer from ``settings.render``
            uploader: Object store; defaults to an S3Uploader from ``settings.upload``
            store: Pre-built job store; defaults to connecting a RedisJobStore
            payload_schema: Optional JSON schema submitted payloads must satisfy
            clock: Time source in seconds

        Raises:
            StoreUnavailableError: If Redis cannot be reached
        """
        settings = settings or Settings()
        configure_logging(settings.logging.level, json_output=settings.logging.format == "json")

        if store is None:
            store = await RedisJobStore.connect(settings.store, clock=clock)
        renderer = renderer or CommandRenderer(settings.render, work_dir=settings.pipeline.work_dir)
        uploader = uploader or S3Uploader(settings.upload)

        runner = PipelineRunner(store, renderer, uploader, settings.pipeline)
        reaper = Reaper(store, settings.reaper)
        service = JobService(store, runner, reaper, PayloadValidator(payload_schema))
        return cls(settings, store, runner, reaper, service)

    async def start(self) -> None:
        if self._started:
            return
        if self.settings.reaper.enabled:
            await self.reaper.start()
        self._started = True
        logger.info(
            "Render runtime started",
            max_jobs=self.store.max_jobs,
            max_age_hours=self.store.max_age_hours,
            reaper=self.settings.reaper.enabled,
        )

    async def stop(self, timeout: float | None = 30.0) -> None:
        """Stop the reaper, drain pipelines for up to ``timeout`` seconds, close the store."""
        await self.reaper.stop()
        await self.runner.shutdown(timeout)
        await self.store.close()
        self._started = False
        logger.info("Render runtime stopped")

    async def __aenter__(self) -> RenderRuntime:
        await self.start()
        return self

    async def __aexit__(self, exc_type, exc, tb) -> None:
        await self.stop()


__all__ = [
    "RenderRuntime",
]
