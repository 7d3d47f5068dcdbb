"""
Periodic eviction.

The reaper is the only component that removes jobs. It runs one pass at
startup, then every ``cleanup_interval_minutes``, and can be woken early when a
submit pushes the live count past the soft limit.
"""

from __future__ import annotations

import asyncio

from .config import ReaperConfig
from .errors import StoreError
from .jobs.store import JobStore
from .logging import get_logger, timed

logger = get_logger("render_runtime.reaper")


class Reaper:
    """
    Background task enforcing the store's age and count bounds.

    Example:
        ```python
        reaper = Reaper(store, ReaperConfig(cleanup_interval_minutes=60))
        await reaper.start()
        ...
        await reaper.stop()
        ```
    """

    def __init__(self, store: JobStore, config: ReaperConfig | None = None):
        self._store = store
        self._config = config or ReaperConfig()
        self._wakeup = asyncio.Event()
        self._task: asyncio.Task | None = None
        self._running = False

        self.sweeps = 0
        self.total_removed = 0
        self.last_error: str | None = None

    @property
    def is_running(self) -> bool:
        return self._running

    @property
    def soft_limit(self) -> int:
        return int(self._store.max_jobs * self._config.soft_limit_ratio)

    async def sweep(self) -> int:
        """Run one eviction pass. Store failures are logged and reported as 0 removed."""
        with timed() as timer:
            try:
                removed = await self._store.evict()
            except StoreError as e:
                self.last_error = str(e)
                logger.log_error(e, "Eviction pass failed")
                return 0
        self.sweeps += 1
        self.total_removed += removed
        self.last_error = None
        logger.info("Eviction pass complete", removed=removed, duration_ms=round(timer.elapsed_ms, 1))
        return removed

    def request_sweep(self) -> None:
        """Wake the loop for an immediate pass."""
        self._wakeup.set()

    async def check_capacity(self) -> bool:
        """Request a sweep if the live count exceeds the soft limit. Returns True if one was requested."""
        try:
            count = await self._store.count()
        except StoreError as e:
            logger.log_error(e, "Capacity check failed")
            return False
        if count <= self.soft_limit:
            return False
        logger.info("Job count over soft limit, requesting sweep", count=count, soft_limit=self.soft_limit)
        if self._running:
            self.request_sweep()
        else:
            await self.sweep()
        return True

    async def start(self) -> None:
        """Run the initial pass and start the periodic loop."""
        if self._running:
            return
        self._running = True
        await self.sweep()
        self._task = asyncio.create_task(self._loop(), name="render-runtime-reaper")
        logger.info("Reaper started", interval_seconds=self._config.interval_seconds)

    async def run_forever(self) -> None:
        """Run the initial pass and the loop in the current task until cancelled."""
        self._running = True
        try:
            await self.sweep()
            await self._loop()
        finally:
            self._running = False

    async def _loop(self) -> None:
        while self._running:
            try:
                await asyncio.wait_for(self._wakeup.wait(), timeout=self._config.interval_seconds)
            except asyncio.TimeoutError:
                pass
            self._wakeup.clear()
            if not self._running:
                break
            try:
                await self.sweep()
            except Exception as e:
                logger.log_error(e, "Unexpected reaper failure")

    async def stop(self) -> None:
        """Stop the periodic loop."""
        self._running = False
        if self._task is None:
            return
        self._task.cancel()
        try:
            await self._task
        except asyncio.CancelledError:
            pass
        self._task = None
        logger.info("Reaper stopped", sweeps=self.sweeps, total_removed=self.total_removed)


__all__ = [
    "Reaper",
]
